"""
Persistence Gateway Module

Provides an abstract gateway and two backends, a JSON file and SQLite. The
ledger lives in memory for the whole run: load() fills an AccountStore at
startup and save() writes it back on exit or on an interrupt signal. Changes
made after the last save are lost if the process dies without saving.

A lock marker next to the data file, created with O_CREAT | O_EXCL, keeps a
second process from opening the same ledger.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import errno
import json
import os
import sqlite3
import tempfile

from .models import Account
from .store import AccountStore, DEFAULT_JOINING_BONUS
from .exceptions import ConcurrencyError, ConflictError, PersistenceError
from .config import PocketBankConfig
from .logging_config import get_logger, log_action


logger = get_logger("pocket_bank.persistence")


class LockFile:
    """Advisory process-level lock backed by an exclusively created file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.held = False

    def acquire(self) -> None:
        """
        Raises:
            ConcurrencyError: if the marker already exists
            PersistenceError: if the marker cannot be created
        """
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            raise ConcurrencyError(
                f"database lock {self.path} present, maybe an instance is already running?"
            )
        except OSError as e:
            raise PersistenceError(f"cannot create lock {self.path}: {e}")
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self.held = True

    def release(self) -> None:
        if not self.held:
            return
        try:
            os.remove(self.path)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise PersistenceError(f"cannot remove lock {self.path}: {e}")
        self.held = False


class PersistenceGateway(ABC):
    """Abstract interface for durable ledger storage"""

    def __init__(self, path: Union[str, Path], lock_path: Optional[Union[str, Path]] = None,
                 joining_bonus: Decimal = DEFAULT_JOINING_BONUS):
        self.path = Path(path)
        self.lock = LockFile(lock_path or f"{self.path}.lock")
        self.joining_bonus = joining_bonus

    def acquire_exclusive_access(self) -> LockFile:
        """Take the lock marker before anything is loaded"""
        self.lock.acquire()
        log_action(logger, "debug", "Acquired data file lock", resource=str(self.lock.path))
        return self.lock

    def release(self) -> None:
        """Remove the lock marker (idempotent)"""
        self.lock.release()

    def load(self) -> AccountStore:
        """
        Build an AccountStore from durable storage.

        Missing or empty storage gives an empty store. Undecodable records are
        logged and skipped.
        """
        store = AccountStore(joining_bonus=self.joining_bonus)
        for account in self._read_accounts():
            try:
                store.add(account)
            except ConflictError:
                logger.warning("Skipping duplicate account %r in %s", account.username, self.path)

        for problem in store.check_integrity():
            logger.warning("Inconsistent account loaded: %s", problem)

        log_action(logger, "info", f"Loaded {len(store)} account(s)", resource=str(self.path))
        return store

    def save(self, store: AccountStore) -> None:
        """
        Replace durable storage with the whole store, then release the lock.

        Raises:
            PersistenceError: if the write fails; the lock is kept
        """
        with store.lock:
            accounts = store.accounts()
            try:
                self._write_accounts(accounts)
            except (OSError, sqlite3.Error, TypeError, ValueError) as e:
                logger.error("Saving %s failed: %s", self.path, e)
                raise PersistenceError(f"cannot save {self.path}: {e}")

        log_action(logger, "info", f"Saved {len(accounts)} account(s)", resource=str(self.path))
        self.release()

    @abstractmethod
    def _read_accounts(self) -> List[Account]:
        """Decode every recoverable account"""
        pass

    @abstractmethod
    def _write_accounts(self, accounts: List[Account]) -> None:
        """Overwrite durable storage with accounts in one step"""
        pass


class JsonFileGateway(PersistenceGateway):
    """JSON object of accounts keyed by username"""

    def _read_accounts(self) -> List[Account]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Cannot read %s: %s", self.path, e)
            return []
        except UnicodeDecodeError as e:
            logger.error("Error while decoding %s: %s", self.path, e)
            return []

        if not text.strip():
            return []

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Error while decoding %s: %s", self.path, e)
            return []

        if not isinstance(raw, dict):
            logger.error("Error while decoding %s: expected an object of accounts", self.path)
            return []

        accounts = []
        for username, data in raw.items():
            try:
                account = Account.from_dict(data)
            except Exception as e:
                logger.error("Skipping undecodable account %r: %s", username, e)
                continue
            if account.username != username:
                logger.warning("Account key %r does not match username %r", username, account.username)
            accounts.append(account)
        return accounts

    def _write_accounts(self, accounts: List[Account]) -> None:
        data: Dict[str, Any] = {account.username: account.to_dict() for account in accounts}
        payload = json.dumps(data, indent="\t")

        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise


class SQLiteGateway(PersistenceGateway):
    """Relational storage with accounts and transactions tables"""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS accounts (
            username TEXT PRIMARY KEY,
            full_name TEXT NOT NULL,
            password_digest TEXT NOT NULL,
            balance TEXT NOT NULL,
            last_login TEXT
        );
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL REFERENCES accounts(username) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            time TEXT NOT NULL,
            counterparty TEXT NOT NULL,
            amount TEXT NOT NULL,
            closing_balance TEXT NOT NULL,
            message TEXT NOT NULL,
            type TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_transactions_username
            ON transactions(username, position);
    """

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.path))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _read_accounts(self) -> List[Account]:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return []

        try:
            connection = self._connect()
        except sqlite3.Error as e:
            logger.error("Cannot open %s: %s", self.path, e)
            return []

        accounts = []
        try:
            account_rows = connection.execute(
                "SELECT username, full_name, password_digest, balance, last_login FROM accounts"
            ).fetchall()
            for row in account_rows:
                try:
                    txn_rows = connection.execute("""
                        SELECT time, counterparty, amount, closing_balance, message, type
                        FROM transactions WHERE username = ? ORDER BY position
                    """, (row["username"],)).fetchall()
                    accounts.append(Account.from_dict({
                        "username": row["username"],
                        "fullName": row["full_name"],
                        "password": row["password_digest"],
                        "balance": row["balance"],
                        "lastLogin": row["last_login"],
                        "transactions": [{
                            "time": txn["time"],
                            "counterparty": txn["counterparty"],
                            "amount": txn["amount"],
                            "closingBalance": txn["closing_balance"],
                            "message": txn["message"],
                            "type": txn["type"],
                        } for txn in txn_rows],
                    }))
                except Exception as e:
                    logger.error("Skipping undecodable account %r: %s", row["username"], e)
        except sqlite3.Error as e:
            logger.error("Error while reading %s: %s", self.path, e)
        finally:
            connection.close()
        return accounts

    def _write_accounts(self, accounts: List[Account]) -> None:
        connection = self._connect()
        try:
            connection.executescript(self.SCHEMA)
            # The connection context manager commits on success and rolls back on error
            with connection:
                connection.execute("DELETE FROM transactions")
                connection.execute("DELETE FROM accounts")
                for account in accounts:
                    data = account.to_dict()
                    connection.execute("""
                        INSERT INTO accounts (username, full_name, password_digest, balance, last_login)
                        VALUES (?, ?, ?, ?, ?)
                    """, (data["username"], data["fullName"], data["password"],
                          data["balance"], data["lastLogin"]))
                    connection.executemany("""
                        INSERT INTO transactions
                            (username, position, time, counterparty, amount,
                             closing_balance, message, type)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """, [
                        (account.username, position, txn["time"], txn["counterparty"],
                         txn["amount"], txn["closingBalance"], txn["message"], txn["type"])
                        for position, txn in enumerate(data["transactions"])
                    ])
        finally:
            connection.close()


def create_gateway(config: PocketBankConfig) -> PersistenceGateway:
    """Pick the backend named by config.storage_backend"""
    backends = {
        "json": JsonFileGateway,
        "sqlite": SQLiteGateway,
    }
    backend = backends.get(config.storage_backend.lower())
    if backend is None:
        raise ValueError(f"Unknown storage backend: {config.storage_backend}")
    return backend(
        config.storage_path,
        lock_path=config.lock_path,
        joining_bonus=Decimal(config.joining_bonus)
    )
