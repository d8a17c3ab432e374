"""
Command Dispatcher Module

The command surface used by the terminal front end. Each command returns a
CommandResult instead of raising, so the caller can report the outcome and
re-prompt. Only fatal errors (PersistenceError) escape.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from .store import AccountStore
from .hashing import PasswordHasher
from .session import SessionManager, DEFAULT_MAX_PASSWORD_RETRIES
from .operations import LedgerOperations, DEFAULT_RECENT_TRANSACTIONS
from .exceptions import (
    BankError, IncorrectPasswordError, PersistenceError, ValidationError
)
from .logging_config import get_logger, log_action


@dataclass
class CommandResult:
    """Outcome of one command"""
    ok: bool
    message: str
    value: Any = None
    error: Optional[str] = None  # BankError.code when ok is False

    @classmethod
    def success(cls, message: str, value: Any = None) -> 'CommandResult':
        return cls(ok=True, message=message, value=value)

    @classmethod
    def failure(cls, error: BankError) -> 'CommandResult':
        return cls(ok=False, message=error.message, error=error.code)


class CommandDispatcher:
    """
    Routes terminal commands to the session and ledger operations
    """

    def __init__(
        self,
        store: AccountStore,
        on_exit: Optional[Callable[[], None]] = None,
        hasher: Optional[PasswordHasher] = None,
        max_password_retries: int = DEFAULT_MAX_PASSWORD_RETRIES,
        recent_transactions: int = DEFAULT_RECENT_TRANSACTIONS
    ):
        self.store = store
        self.hasher = hasher or PasswordHasher()
        self.sessions = SessionManager(store, self.hasher, max_password_retries=max_password_retries)
        self.ledger = LedgerOperations(store, self.sessions, recent_transactions=recent_transactions)
        self.on_exit = on_exit
        self.logger = get_logger("pocket_bank.commands")

    @property
    def current_username(self) -> Optional[str]:
        if self.sessions.session.is_authenticated:
            return self.sessions.session.username
        return None

    def _run(self, action: str, func: Callable[[], CommandResult]) -> CommandResult:
        try:
            result = func()
        except PersistenceError:
            raise
        except BankError as e:
            log_action(
                self.logger, "info", f"Command rejected: {e.message}",
                username=self.sessions.session.username, action=action,
                extra={"error": e.code}
            )
            return CommandResult.failure(e)
        log_action(self.logger, "debug", "Command completed",
                   username=self.sessions.session.username, action=action)
        return result

    def begin_login(self, username: str) -> CommandResult:
        """Check the username before any password is asked for"""
        def run():
            self.sessions.begin_login(username)
            return CommandResult.success("Enter password")
        return self._run("begin_login", run)

    def login(self, username: str, password: str) -> CommandResult:
        def run():
            if self.sessions.login(username, password):
                account = self.sessions.require_account()
                return CommandResult.success(f"Hi, {account.full_name}", account)
            attempts_left = (self.sessions.max_password_retries + 1
                             - self.sessions.session.failed_attempts)
            error = IncorrectPasswordError("Incorrect Password")
            return CommandResult(ok=False, message=error.message,
                                 value=attempts_left, error=error.code)
        return self._run("login", run)

    def create_account(self, username: str, full_name: str, password: str) -> CommandResult:
        def run():
            name = (username or "").strip()
            display_name = (full_name or "").strip()
            if not name:
                raise ValidationError("username must not be empty")
            if not display_name:
                raise ValidationError("full name must not be empty")
            if not password:
                raise ValidationError("password must not be empty")
            with self.store.atomic():
                account = self.store.create(name, display_name, self.hasher.digest(password))
            log_action(self.logger, "info", "Account created",
                       username=name, action="create_account")
            return CommandResult.success("Account created successfully", account)
        return self._run("create_account", run)

    def deposit(self, amount: Any) -> CommandResult:
        def run():
            record = self.ledger.deposit(amount)
            return CommandResult.success(
                f"{record.amount} successfully deposited to your account", record)
        return self._run("deposit", run)

    def withdraw(self, amount: Any) -> CommandResult:
        def run():
            record = self.ledger.withdraw(amount)
            return CommandResult.success(
                f"{record.amount} successfully withdrawn from your account", record)
        return self._run("withdraw", run)

    def transfer(self, receiver: str, amount: Any) -> CommandResult:
        def run():
            debit, credit = self.ledger.transfer(receiver, amount)
            return CommandResult.success(
                f"{debit.amount} successfully sent to {debit.counterparty}", (debit, credit))
        return self._run("transfer", run)

    def delete_account(self, confirm_first: bool, confirm_second: bool) -> CommandResult:
        def run():
            if self.ledger.delete_account(confirm_first, confirm_second):
                return CommandResult.success("Account deleted", True)
            return CommandResult.success("Account deletion cancelled", False)
        return self._run("delete_account", run)

    def list_transactions(self, start: int = 0, end: Optional[int] = None) -> CommandResult:
        def run():
            transactions = self.ledger.list_transactions(start, end)
            return CommandResult.success(f"{len(transactions)} transaction(s)", transactions)
        return self._run("list_transactions", run)

    def account_info(self) -> CommandResult:
        return self._run("account_info",
                         lambda: CommandResult.success("Account info", self.ledger.account_info()))

    def logout(self) -> CommandResult:
        def run():
            self.sessions.logout()
            return CommandResult.success("Logged out")
        return self._run("logout", run)

    def exit(self) -> CommandResult:
        """Save the ledger and report exit code 0"""
        if self.on_exit is not None:
            self.on_exit()
        log_action(self.logger, "info", "Exit requested", action="exit")
        return CommandResult.success("Goodbye", 0)
