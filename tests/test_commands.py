"""
Test suite for the command dispatcher

Tests that every command reports typed results and that rejected commands
leave the ledger unchanged.
"""

from decimal import Decimal

from pocket_bank.store import AccountStore
from pocket_bank.commands import CommandDispatcher, CommandResult
from pocket_bank.exceptions import NotFoundError
from pocket_bank.operations import AccountInfo


class TestCommandResult:
    """Test result construction"""

    def test_success(self):
        result = CommandResult.success("done", 42)
        assert result.ok and result.message == "done" and result.value == 42
        assert result.error is None

    def test_failure_carries_error_code(self):
        result = CommandResult.failure(NotFoundError("user 'x' not found"))
        assert not result.ok
        assert result.error == "not_found"
        assert result.message == "user 'x' not found"


class TestCommandDispatcher:
    """Test the command surface"""

    def setup_method(self):
        """Set up test fixtures"""
        self.exits = []
        self.store = AccountStore()
        self.dispatcher = CommandDispatcher(self.store, on_exit=lambda: self.exits.append(True))
        assert self.dispatcher.create_account("alice", "Alice Smith", "pw-a").ok
        assert self.dispatcher.create_account("bob", "Bob Jones", "pw-b").ok

    def test_create_account_stores_digest_not_password(self):
        """Test account creation"""
        account = self.store.get("alice")
        assert account.full_name == "Alice Smith"
        assert account.password_digest != "pw-a"
        assert account.balance == Decimal("1000.00")

    def test_create_account_strips_input(self):
        """Test surrounding whitespace is ignored"""
        result = self.dispatcher.create_account("  carol ", " Carol C ", "pw")
        assert result.ok
        assert self.store.get("carol").full_name == "Carol C"

    def test_duplicate_account_rejected(self):
        """Test duplicate usernames"""
        result = self.dispatcher.create_account("alice", "Other", "other")
        assert not result.ok
        assert result.error == "conflict"
        assert self.store.get("alice").full_name == "Alice Smith"

    def test_create_account_requires_fields(self):
        """Test empty input"""
        for args in [("", "Name", "pw"), ("   ", "Name", "pw"), ("dave", "", "pw"), ("dave", "Dave", "")]:
            result = self.dispatcher.create_account(*args)
            assert not result.ok
            assert result.error == "validation_error"
        assert "dave" not in self.store

    def test_login_success(self):
        """Test a good login greets the user"""
        result = self.dispatcher.login("alice", "pw-a")
        assert result.ok
        assert result.message == "Hi, Alice Smith"
        assert self.dispatcher.current_username == "alice"

    def test_login_unknown_user(self):
        """Test unknown usernames"""
        result = self.dispatcher.login("ghost", "pw")
        assert not result.ok
        assert result.error == "not_found"

    def test_begin_login_checks_username(self):
        """Test unknown usernames are rejected before any password"""
        result = self.dispatcher.begin_login("ghost")
        assert not result.ok
        assert result.error == "not_found"

        assert self.dispatcher.begin_login("alice").ok
        assert self.dispatcher.login("alice", "wrong").value == 3
        assert self.dispatcher.login("alice", "pw-a").ok

    def test_login_attempt_limit(self):
        """Test wrong passwords count down and the 4th fails the login"""
        remaining = []
        for _ in range(3):
            result = self.dispatcher.login("alice", "wrong")
            assert not result.ok
            assert result.error == "incorrect_password"
            remaining.append(result.value)
        assert remaining == [3, 2, 1]

        result = self.dispatcher.login("alice", "wrong")
        assert result.error == "exceeded_attempts"

        # Fresh login after the failure works
        assert self.dispatcher.login("alice", "pw-a").ok

    def test_commands_require_login(self):
        """Test ledger commands before login"""
        for result in [
            self.dispatcher.deposit("10"),
            self.dispatcher.withdraw("10"),
            self.dispatcher.transfer("bob", "10"),
            self.dispatcher.list_transactions(0, None),
            self.dispatcher.account_info(),
            self.dispatcher.logout(),
            self.dispatcher.delete_account(True, True),
        ]:
            assert not result.ok
            assert result.error == "not_authenticated"

    def test_money_commands(self):
        """Test deposit, withdraw and transfer results"""
        self.dispatcher.login("alice", "pw-a")

        deposit = self.dispatcher.deposit("200")
        assert deposit.ok
        assert deposit.message == "200.00 successfully deposited to your account"
        assert deposit.value.closing_balance == Decimal("1200.00")

        withdrawal = self.dispatcher.withdraw("1500")
        assert withdrawal.ok
        assert withdrawal.value.closing_balance == Decimal("-300.00")

        transfer = self.dispatcher.transfer("bob", "100")
        assert not transfer.ok
        assert transfer.error == "insufficient_funds"
        assert self.store.get("bob").balance == Decimal("1000.00")

        self.dispatcher.deposit("500")
        transfer = self.dispatcher.transfer("bob", "100")
        assert transfer.ok
        assert transfer.message == "100.00 successfully sent to bob"
        debit, credit = transfer.value
        assert debit.timestamp == credit.timestamp
        assert self.store.get("bob").balance == Decimal("1100.00")

    def test_invalid_amount_reported(self):
        """Test validation errors come back as results"""
        self.dispatcher.login("alice", "pw-a")
        result = self.dispatcher.deposit("-1")
        assert not result.ok
        assert result.error == "validation_error"
        assert self.store.get("alice").transactions == []

    def test_transfer_to_unknown_receiver(self):
        """Test a missing receiver"""
        self.dispatcher.login("alice", "pw-a")
        result = self.dispatcher.transfer("ghost", "1")
        assert result.error == "not_found"

    def test_history_and_info(self):
        """Test listing commands"""
        self.dispatcher.login("alice", "pw-a")
        self.dispatcher.deposit("1")
        self.dispatcher.deposit("2")

        listed = self.dispatcher.list_transactions(0, None)
        assert listed.ok
        assert [t.amount for t in listed.value] == [Decimal("2.00"), Decimal("1.00")]

        info = self.dispatcher.account_info()
        assert isinstance(info.value, AccountInfo)
        assert info.value.balance == Decimal("1003.00")

    def test_delete_account(self):
        """Test cancelled and confirmed deletion"""
        self.dispatcher.login("alice", "pw-a")

        cancelled = self.dispatcher.delete_account(True, False)
        assert cancelled.ok and cancelled.value is False
        assert "alice" in self.store

        deleted = self.dispatcher.delete_account(True, True)
        assert deleted.ok and deleted.value is True
        assert "alice" not in self.store
        assert self.dispatcher.current_username is None

    def test_logout(self):
        """Test logging out"""
        self.dispatcher.login("alice", "pw-a")
        assert self.dispatcher.logout().ok
        assert self.dispatcher.current_username is None

    def test_exit_runs_save_hook(self):
        """Test exit reports code 0 after saving"""
        result = self.dispatcher.exit()
        assert result.ok
        assert result.value == 0
        assert self.exits == [True]
