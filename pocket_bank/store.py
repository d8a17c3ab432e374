"""
Account Store Module

The authoritative in-memory mapping of username to account. Every mutation
of the ledger goes through this class; readers never see a half-applied
change because multi-step mutations run inside atomic().
"""

from decimal import Decimal
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
import threading

from .models import Account, Transaction, quantize
from .exceptions import ConflictError, NotFoundError
from .logging_config import get_logger


DEFAULT_JOINING_BONUS = Decimal("1000.00")


class AccountStore:
    """
    Username -> Account mapping with atomic multi-step updates
    """

    def __init__(self, joining_bonus: Decimal = DEFAULT_JOINING_BONUS):
        self.joining_bonus = quantize(joining_bonus)
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.RLock()
        self._depth = 0
        # username -> (live account or None, snapshot or None) for the open atomic block
        self._undo: Dict[str, Tuple[Optional[Account], Optional[Account]]] = {}
        self.logger = get_logger("pocket_bank.store")

    @property
    def lock(self) -> threading.RLock:
        """Mutation lock; hold it while serializing the store"""
        return self._lock

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, username: str) -> bool:
        return username in self._accounts

    def usernames(self) -> List[str]:
        with self._lock:
            return list(self._accounts)

    def accounts(self) -> List[Account]:
        with self._lock:
            return list(self._accounts.values())

    def create(self, username: str, full_name: str, password_digest: str) -> Account:
        """
        Create a new account holding the joining bonus

        Raises:
            ConflictError: if the username is already taken
        """
        with self._lock:
            if username in self._accounts:
                raise ConflictError(f"account {username!r} already taken")
            account = Account(
                username=username,
                full_name=full_name,
                password_digest=password_digest,
                balance=self.joining_bonus
            )
            self._remember(username)
            self._accounts[username] = account
        return account

    def add(self, account: Account) -> None:
        """Insert a fully built account, used by loaders"""
        with self._lock:
            if account.username in self._accounts:
                raise ConflictError(f"account {account.username!r} already taken")
            self._remember(account.username)
            self._accounts[account.username] = account

    def find(self, username: str) -> Optional[Account]:
        """Get account by username, None if absent"""
        return self._accounts.get(username)

    def get(self, username: str) -> Account:
        """Get account by username or raise NotFoundError"""
        account = self.find(username)
        if account is None:
            raise NotFoundError(f"user {username!r} not found")
        return account

    def delete(self, username: str) -> bool:
        """Remove an account and its whole history"""
        with self._lock:
            if username not in self._accounts:
                return False
            self._remember(username)
            del self._accounts[username]
        return True

    def append_transaction(self, username: str, record: Transaction) -> Account:
        """Prepend record to the account history and move the balance to match"""
        with self._lock:
            account = self.get(username)
            self._remember(username)
            account.transactions.insert(0, record)
            account.balance = record.closing_balance
        return account

    def check_integrity(self) -> List[str]:
        """Return a description of every account whose balance disagrees with its history"""
        problems = []
        with self._lock:
            for account in self._accounts.values():
                if not account.is_consistent():
                    problems.append(
                        f"{account.username}: balance {account.balance} != "
                        f"closing balance {account.latest_transaction.closing_balance}"
                    )
        return problems

    @contextmanager
    def atomic(self) -> Iterator['AccountStore']:
        """
        Apply a group of mutations all-or-nothing.

        Any exception escaping the block, interrupts included, restores every
        account touched inside it before being re-raised.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                if self._depth == 1:
                    self._rollback()
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._undo.clear()

    def _remember(self, username: str) -> None:
        """Snapshot an account the first time an atomic block touches it"""
        if self._depth == 0 or username in self._undo:
            return
        live = self._accounts.get(username)
        snapshot = replace(live, transactions=list(live.transactions)) if live else None
        self._undo[username] = (live, snapshot)

    def _rollback(self) -> None:
        for username, (live, snapshot) in self._undo.items():
            if snapshot is None:
                self._accounts.pop(username, None)
                continue
            live.balance = snapshot.balance
            live.full_name = snapshot.full_name
            live.password_digest = snapshot.password_digest
            live.last_login_at = snapshot.last_login_at
            live.transactions = snapshot.transactions
            self._accounts[username] = live
        self.logger.warning("Rolled back %d account(s) after failed update", len(self._undo))
