"""
Session Management Module

A single terminal session moves through
UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED -> TERMINATED.
The session is an explicit object owned by the command dispatcher, so the
ledger never relies on a process-wide "current account".
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Optional
from enum import Enum

from .models import Account
from .store import AccountStore
from .hashing import PasswordHasher
from .exceptions import (
    ExceededAttemptsError, NotAuthenticatedError, SessionStateError
)
from .logging_config import get_logger, log_action


DEFAULT_MAX_PASSWORD_RETRIES = 3


class SessionState(Enum):
    """Session lifecycle states"""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    TERMINATED = "terminated"


@dataclass
class Session:
    """Binding between the terminal and at most one account"""
    state: SessionState = SessionState.UNAUTHENTICATED
    username: Optional[str] = None
    failed_attempts: int = 0
    previous_login_at: Optional[datetime] = None  # Value of last_login_at before this login

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Authenticates against the AccountStore and tracks the active account
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: Optional[PasswordHasher] = None,
        max_password_retries: int = DEFAULT_MAX_PASSWORD_RETRIES,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.store = store
        self.hasher = hasher or PasswordHasher()
        self.max_password_retries = max_password_retries
        self.clock = clock
        self.session = Session()
        self.logger = get_logger("pocket_bank.session")

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def previous_login_at(self) -> Optional[datetime]:
        return self.session.previous_login_at

    def begin_login(self, username: str) -> None:
        """
        Submit a username and start counting password attempts.

        Raises:
            SessionStateError: if an account is already logged in
            NotFoundError: if the username is unknown
        """
        if self.session.state == SessionState.AUTHENTICATED:
            raise SessionStateError(f"{self.session.username!r} is already logged in")

        self.session = Session()
        self.store.get(username)
        self.session.state = SessionState.AUTHENTICATING
        self.session.username = username

    def submit_password(self, password: str) -> bool:
        """
        Check a password for the pending username.

        Returns:
            True once authenticated, False for a tolerated wrong password

        Raises:
            ExceededAttemptsError: on the wrong password after the tolerated
                retries are used up; the login must restart from the username
        """
        if self.session.state != SessionState.AUTHENTICATING:
            raise SessionStateError("no login in progress, enter a username first")

        username = self.session.username
        account = self.store.find(username)
        if account is None:
            # Deleted between the two steps
            self.session = Session()
            raise SessionStateError(f"user {username!r} no longer exists")

        if not self.hasher.verify(password, account.password_digest):
            self.session.failed_attempts += 1
            log_action(
                self.logger, "warning", "Incorrect password",
                username=username, action="login_failed",
                extra={"failed_attempts": self.session.failed_attempts}
            )
            if self.session.failed_attempts > self.max_password_retries:
                self.session = Session()
                raise ExceededAttemptsError("exceeded maximum number of login attempts")
            return False

        self.session.previous_login_at = account.last_login_at
        account.last_login_at = self.clock()
        self.session.state = SessionState.AUTHENTICATED
        self.session.failed_attempts = 0
        log_action(self.logger, "info", "Login succeeded", username=username, action="login")
        return True

    def login(self, username: str, password: str) -> bool:
        """
        Single-call login; repeating it for the same pending username keeps
        counting attempts.
        """
        pending = (self.session.state == SessionState.AUTHENTICATING
                   and self.session.username == username)
        if not pending:
            self.begin_login(username)
        return self.submit_password(password)

    def require_account(self) -> Account:
        """Return the logged in account or raise NotAuthenticatedError"""
        if self.session.state != SessionState.AUTHENTICATED:
            raise NotAuthenticatedError("login required")
        account = self.store.find(self.session.username)
        if account is None:
            raise NotAuthenticatedError("login required")
        return account

    def logout(self) -> None:
        """End the active session"""
        if self.session.state != SessionState.AUTHENTICATED:
            raise NotAuthenticatedError("login required")
        self.terminate()

    def terminate(self) -> None:
        username = self.session.username
        self.session = Session(state=SessionState.TERMINATED)
        log_action(self.logger, "info", "Session ended", username=username, action="logout")
