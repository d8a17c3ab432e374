"""
Test suite for session management

Tests the login state machine, the wrong-password limit and last-login
tracking.
"""

import pytest
from datetime import datetime, timezone

from pocket_bank.hashing import PasswordHasher
from pocket_bank.store import AccountStore
from pocket_bank.session import SessionManager, SessionState
from pocket_bank.exceptions import (
    ExceededAttemptsError, NotAuthenticatedError, NotFoundError, SessionStateError
)


class TestPasswordHasher:
    """Test password digests"""

    def test_digest_is_deterministic_and_fixed_length(self):
        """Test the same secret always gives the same 44 character digest"""
        hasher = PasswordHasher()
        assert hasher.digest("secret") == hasher.digest("secret")
        assert len(hasher.digest("secret")) == 44
        assert len(hasher.digest("a much longer secret " * 10)) == 44
        assert hasher.digest("secret") != hasher.digest("Secret")

    def test_digest_does_not_contain_secret(self):
        """Test the raw secret is never stored"""
        assert "hunter2" not in PasswordHasher().digest("hunter2")

    def test_known_value(self):
        """Test SHA-256 in URL-safe base64"""
        assert PasswordHasher().digest("") == "47DEQpj8HBSa-_TImW-5JCeuQeRkm5NMpJWZG3hSuFU="

    def test_verify(self):
        """Test digest comparison"""
        hasher = PasswordHasher()
        digest = hasher.digest("pw")
        assert hasher.verify("pw", digest)
        assert not hasher.verify("wrong", digest)
        assert not hasher.verify("pw", "")


class TestSessionManager:
    """Test the login state machine"""

    def setup_method(self):
        """Set up test fixtures"""
        self.hasher = PasswordHasher()
        self.store = AccountStore()
        self.store.create("alice", "Alice Smith", self.hasher.digest("correct"))
        self.times = [
            datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc),
        ]
        self.sessions = SessionManager(self.store, self.hasher, clock=lambda: self.times.pop(0))

    def test_starts_unauthenticated(self):
        """Test the initial state"""
        assert self.sessions.state == SessionState.UNAUTHENTICATED
        with pytest.raises(NotAuthenticatedError):
            self.sessions.require_account()

    def test_successful_login(self):
        """Test username then password"""
        self.sessions.begin_login("alice")
        assert self.sessions.state == SessionState.AUTHENTICATING

        assert self.sessions.submit_password("correct")
        assert self.sessions.state == SessionState.AUTHENTICATED
        assert self.sessions.require_account().username == "alice"

    def test_unknown_user(self):
        """Test NotFound returns to unauthenticated"""
        with pytest.raises(NotFoundError):
            self.sessions.begin_login("nobody")
        assert self.sessions.state == SessionState.UNAUTHENTICATED

    def test_previous_login_captured_before_overwrite(self):
        """Test last-login bookkeeping across two logins"""
        assert self.sessions.login("alice", "correct")
        assert self.sessions.previous_login_at is None
        assert self.store.get("alice").last_login_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

        self.sessions.logout()
        assert self.sessions.login("alice", "correct")
        assert self.sessions.previous_login_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        assert self.store.get("alice").last_login_at == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

    def test_three_wrong_passwords_tolerated(self):
        """Test a correct password after three wrong ones still logs in"""
        self.sessions.begin_login("alice")
        for _ in range(3):
            assert not self.sessions.submit_password("wrong")
            assert self.sessions.state == SessionState.AUTHENTICATING

        assert self.sessions.submit_password("correct")
        assert self.sessions.state == SessionState.AUTHENTICATED

    def test_fourth_wrong_password_fails_login(self):
        """Test the attempt limit aborts the whole login"""
        self.sessions.begin_login("alice")
        for _ in range(3):
            assert not self.sessions.submit_password("wrong")

        with pytest.raises(ExceededAttemptsError):
            self.sessions.submit_password("wrong")
        assert self.sessions.state == SessionState.UNAUTHENTICATED

        # Must restart from the username
        with pytest.raises(SessionStateError):
            self.sessions.submit_password("correct")
        assert self.store.get("alice").last_login_at is None

    def test_login_restart_resets_attempts(self):
        """Test a fresh login gets a fresh attempt budget"""
        self.sessions.begin_login("alice")
        for _ in range(3):
            self.sessions.submit_password("wrong")
        with pytest.raises(ExceededAttemptsError):
            self.sessions.submit_password("wrong")

        self.sessions.begin_login("alice")
        for _ in range(3):
            assert not self.sessions.submit_password("wrong")
        assert self.sessions.submit_password("correct")

    def test_login_call_continues_pending_attempts(self):
        """Test repeated login() calls share one attempt count"""
        for _ in range(3):
            assert not self.sessions.login("alice", "wrong")
        with pytest.raises(ExceededAttemptsError):
            self.sessions.login("alice", "wrong")

    def test_configurable_retry_limit(self):
        """Test a stricter limit"""
        sessions = SessionManager(self.store, self.hasher, max_password_retries=0)
        sessions.begin_login("alice")
        with pytest.raises(ExceededAttemptsError):
            sessions.submit_password("wrong")

    def test_only_one_active_session(self):
        """Test a second login is refused while logged in"""
        self.sessions.login("alice", "correct")
        with pytest.raises(SessionStateError):
            self.sessions.begin_login("alice")

    def test_logout_terminates(self):
        """Test logout and re-login"""
        self.sessions.login("alice", "correct")
        self.sessions.logout()

        assert self.sessions.state == SessionState.TERMINATED
        with pytest.raises(NotAuthenticatedError):
            self.sessions.require_account()
        with pytest.raises(NotAuthenticatedError):
            self.sessions.logout()

        assert self.sessions.login("alice", "correct")

    def test_account_deleted_during_login(self):
        """Test the pending account disappearing between steps"""
        self.sessions.begin_login("alice")
        self.store.delete("alice")

        with pytest.raises(SessionStateError):
            self.sessions.submit_password("correct")
        assert self.sessions.state == SessionState.UNAUTHENTICATED
