"""
Ledger Operations Module

Deposits, withdrawals, transfers and account deletion for the logged in
account. Every operation validates first and then applies its effects inside
AccountStore.atomic(), so a failure never leaves a half-applied change.

Withdrawals have no overdraft check and may take the balance below zero,
while transfers require sufficient funds. Both behaviours are deliberate.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from .models import Transaction, TransactionDirection, parse_amount, quantize
from .store import AccountStore
from .session import SessionManager
from .exceptions import InsufficientFundsError, ValidationError
from .logging_config import get_logger, log_action


DEPOSIT_MESSAGE = "credited via cash deposit"
WITHDRAWAL_MESSAGE = "debited via cash withdrawal"
DEFAULT_RECENT_TRANSACTIONS = 5


@dataclass
class AccountInfo:
    """Snapshot shown to the user after login and on request"""
    full_name: str
    username: str
    balance: Decimal
    previous_login_at: Optional[datetime]
    recent_transactions: List[Transaction] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _closing_balance(balance: Decimal, change: Decimal) -> Decimal:
    """Balance after change, rejected when it no longer fits in cents"""
    try:
        return quantize(balance + change)
    except InvalidOperation:
        raise ValidationError("amount too large for this account")


class LedgerOperations:
    """
    Balance mutations for the account bound to a SessionManager
    """

    def __init__(
        self,
        store: AccountStore,
        sessions: SessionManager,
        clock: Callable[[], datetime] = _utcnow,
        recent_transactions: int = DEFAULT_RECENT_TRANSACTIONS
    ):
        self.store = store
        self.sessions = sessions
        self.clock = clock
        self.recent_transactions = recent_transactions
        self.logger = get_logger("pocket_bank.operations")

    def deposit(self, amount: Any) -> Transaction:
        """Credit cash to the active account"""
        account = self.sessions.require_account()
        amount = parse_amount(amount)

        with self.store.atomic():
            record = Transaction(
                timestamp=self.clock(),
                amount=amount,
                closing_balance=_closing_balance(account.balance, amount),
                message=DEPOSIT_MESSAGE,
                direction=TransactionDirection.CREDIT
            )
            self.store.append_transaction(account.username, record)

        log_action(
            self.logger, "info", "Cash deposited",
            username=account.username, action="deposit",
            extra={"amount": str(amount), "closing_balance": str(record.closing_balance)}
        )
        return record

    def withdraw(self, amount: Any) -> Transaction:
        """Debit cash from the active account; the balance may go negative"""
        account = self.sessions.require_account()
        amount = parse_amount(amount)

        with self.store.atomic():
            record = Transaction(
                timestamp=self.clock(),
                amount=amount,
                closing_balance=_closing_balance(account.balance, -amount),
                message=WITHDRAWAL_MESSAGE,
                direction=TransactionDirection.DEBIT
            )
            self.store.append_transaction(account.username, record)

        if record.closing_balance < 0:
            log_action(
                self.logger, "warning", "Withdrawal left account overdrawn",
                username=account.username, action="withdraw",
                extra={"closing_balance": str(record.closing_balance)}
            )
        log_action(
            self.logger, "info", "Cash withdrawn",
            username=account.username, action="withdraw",
            extra={"amount": str(amount), "closing_balance": str(record.closing_balance)}
        )
        return record

    def transfer(self, receiver_username: str, amount: Any) -> Tuple[Transaction, Transaction]:
        """
        Move money from the active account to another account

        Args:
            receiver_username: Username of the receiving account
            amount: Positive amount to move

        Returns:
            The (debit, credit) pair, sharing one timestamp

        Raises:
            ValidationError: bad amount or a transfer to oneself
            NotFoundError: unknown receiver
            InsufficientFundsError: sender balance below amount
        """
        sender = self.sessions.require_account()
        amount = parse_amount(amount)
        receiver = self.store.get(receiver_username)

        if receiver.username == sender.username:
            raise ValidationError("cannot transfer money to your own account")
        if sender.balance < amount:
            raise InsufficientFundsError("insufficient funds")

        now = self.clock()
        with self.store.atomic():
            debit = Transaction(
                timestamp=now,
                counterparty=receiver.username,
                amount=amount,
                closing_balance=_closing_balance(sender.balance, -amount),
                message=f"transferred to {receiver.username}",
                direction=TransactionDirection.DEBIT
            )
            credit = Transaction(
                timestamp=now,
                counterparty=sender.username,
                amount=amount,
                closing_balance=_closing_balance(receiver.balance, amount),
                message=f"received from {sender.username}",
                direction=TransactionDirection.CREDIT
            )
            self.store.append_transaction(sender.username, debit)
            self.store.append_transaction(receiver.username, credit)

        log_action(
            self.logger, "info", "Transfer completed",
            username=sender.username, action="transfer",
            resource=f"account:{receiver.username}",
            extra={"amount": str(amount), "closing_balance": str(debit.closing_balance)}
        )
        return debit, credit

    def delete_account(self, confirm_first: bool, confirm_second: bool) -> bool:
        """
        Permanently remove the active account after two confirmations.

        Returns:
            True if the account was deleted and the session ended
        """
        account = self.sessions.require_account()
        if not (confirm_first and confirm_second):
            return False

        with self.store.atomic():
            self.store.delete(account.username)
        self.sessions.terminate()

        log_action(self.logger, "info", "Account deleted",
                   username=account.username, action="delete_account")
        return True

    def list_transactions(self, start: int = 0, end: Optional[int] = None) -> List[Transaction]:
        """
        Most-recent-first slice of the active account's history.

        end of None or 0 means "through the oldest transaction".
        """
        account = self.sessions.require_account()
        if start < 0 or (end is not None and end < 0):
            raise ValidationError("transaction range must not be negative")
        if not end:
            end = len(account.transactions)
        return list(account.transactions[start:end])

    def account_info(self, recent: Optional[int] = None) -> AccountInfo:
        """Summary of the active account with its newest transactions"""
        account = self.sessions.require_account()
        count = self.recent_transactions if recent is None else recent
        if count < 0:
            raise ValidationError("transaction count must not be negative")
        return AccountInfo(
            full_name=account.full_name,
            username=account.username,
            balance=account.balance,
            previous_login_at=self.sessions.previous_login_at,
            recent_transactions=list(account.transactions[:count])
        )
