"""
Ledger Data Model

Accounts and their most-recent-first transaction histories. All monetary
values are Decimal quantized to cents, never float; they are stored as
Decimal strings.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import re

from .exceptions import ValidationError


CENTS = Decimal("0.01")

_FRACTION = re.compile(r"\.(\d+)")


def quantize(value: Any) -> Decimal:
    """Convert value to a Decimal rounded to cents"""
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging binary noise along
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """
    Validate a user supplied transaction amount.

    Raises:
        ValidationError: if the value is not a finite number or is not
            strictly positive once rounded to cents
    """
    if isinstance(value, bool):
        raise ValidationError("invalid amount, enter a valid number")
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
        if not amount.is_finite():
            raise ValidationError("invalid amount, enter a valid number")
        # Too many digits for the decimal context once expressed in cents
        amount = quantize(amount)
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid amount, enter a valid number")
    if amount <= 0:
        raise ValidationError("amount should be greater than 0")
    return amount


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; null and the year-one zero time mean 'never'"""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits
    value = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.year == 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TransactionDirection(Enum):
    """Which side of the account a transaction hits"""
    CREDIT = "C"
    DEBIT = "D"


@dataclass
class Transaction:
    """A single entry in an account's history"""
    timestamp: datetime
    amount: Decimal
    closing_balance: Decimal
    message: str
    direction: TransactionDirection
    counterparty: str = ""  # Empty for cash deposits and withdrawals

    def __post_init__(self):
        self.amount = quantize(self.amount)
        self.closing_balance = quantize(self.closing_balance)
        if self.amount <= 0:
            raise ValueError("Transaction amount must be positive")

    @property
    def is_credit(self) -> bool:
        return self.direction == TransactionDirection.CREDIT

    @property
    def is_debit(self) -> bool:
        return self.direction == TransactionDirection.DEBIT

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign of its effect on the balance"""
        return self.amount if self.is_credit else -self.amount

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "time": self.timestamp.isoformat(),
            "counterparty": self.counterparty,
            "amount": str(self.amount),
            "closingBalance": str(self.closing_balance),
            "message": self.message,
            "type": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Create instance from dictionary"""
        return cls(
            timestamp=parse_timestamp(data["time"]) or datetime.min.replace(tzinfo=timezone.utc),
            counterparty=data.get("counterparty") or "",
            amount=quantize(data["amount"]),
            closing_balance=quantize(data["closingBalance"]),
            message=data.get("message") or "",
            direction=TransactionDirection(data["type"]),
        )


@dataclass
class Account:
    """
    Bank account owned by one username.

    The balance always equals the closing balance of the newest transaction,
    or the opening balance while the history is empty.
    """
    username: str
    full_name: str
    password_digest: str
    balance: Decimal = Decimal("0.00")
    last_login_at: Optional[datetime] = None
    transactions: List[Transaction] = field(default_factory=list)

    def __post_init__(self):
        self.balance = quantize(self.balance)

    @property
    def latest_transaction(self) -> Optional[Transaction]:
        return self.transactions[0] if self.transactions else None

    def is_consistent(self) -> bool:
        """Check the balance against the newest closing balance"""
        latest = self.latest_transaction
        return latest is None or latest.closing_balance == self.balance

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "fullName": self.full_name,
            "username": self.username,
            "password": self.password_digest,
            "balance": str(self.balance),
            "lastLogin": self.last_login_at.isoformat() if self.last_login_at else None,
            "transactions": [txn.to_dict() for txn in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create instance from dictionary"""
        return cls(
            username=data["username"],
            full_name=data.get("fullName") or "",
            password_digest=data["password"],
            balance=quantize(data.get("balance", "0")),
            last_login_at=parse_timestamp(data.get("lastLogin")),
            transactions=[Transaction.from_dict(txn) for txn in data.get("transactions") or []],
        )
