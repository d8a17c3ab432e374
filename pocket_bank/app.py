"""
Application Module

Wires configuration, logging, persistence and the command dispatcher
together, and owns the process lifecycle: lock, load, run, save once.
"""

from contextlib import contextmanager
from typing import Iterator, Optional
import signal

from .config import PocketBankConfig, get_config
from .store import AccountStore
from .persistence import PersistenceGateway, create_gateway
from .commands import CommandDispatcher
from .logging_config import get_logger, log_action


EXIT_OK = 0
EXIT_INTERRUPTED = 1
EXIT_LOCKED = 2
EXIT_PERSISTENCE_ERROR = 3

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownRequested(BaseException):
    """
    Raised in the main thread when an interrupt or termination signal arrives.

    Derives from BaseException like KeyboardInterrupt so ordinary error
    handling never swallows it; an atomic store update in flight is rolled
    back as it propagates.
    """

    def __init__(self, signum: int):
        super().__init__(f"received signal {signum}")
        self.signum = signum


class BankApplication:
    """
    Core ledger system with all components initialized
    """

    def __init__(self, config: Optional[PocketBankConfig] = None,
                 gateway: Optional[PersistenceGateway] = None):
        self.config = config or get_config()
        self.gateway = gateway or create_gateway(self.config)
        self.store: Optional[AccountStore] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self._saved = False
        self.logger = get_logger("pocket_bank.app")

    def start(self) -> CommandDispatcher:
        """
        Take the lock and load the ledger.

        Raises:
            ConcurrencyError: if another instance holds the lock
        """
        self.gateway.acquire_exclusive_access()
        try:
            self.store = self.gateway.load()
        except BaseException:
            # Nothing loaded, so nothing to save; just let go of the lock
            self.gateway.release()
            raise
        self.dispatcher = CommandDispatcher(
            self.store,
            on_exit=self.shutdown,
            max_password_retries=self.config.max_password_retries,
            recent_transactions=self.config.recent_transactions
        )
        log_action(self.logger, "info", "Pocket Bank started", action="start",
                   extra={"backend": self.config.storage_backend, "accounts": len(self.store)})
        return self.dispatcher

    def shutdown(self) -> None:
        """
        Save the ledger exactly once; later calls do nothing.

        Raises:
            PersistenceError: if the save fails
        """
        if self._saved or self.store is None:
            return
        self._saved = True
        self.gateway.save(self.store)
        log_action(self.logger, "info", "Pocket Bank stopped", action="stop")

    @property
    def saved(self) -> bool:
        return self._saved

    @contextmanager
    def signal_handlers(self) -> Iterator[None]:
        """Turn SIGINT/SIGTERM into ShutdownRequested for the duration of the block"""
        def handler(signum, frame):
            # Ignore repeats once the final save has started
            if self._saved:
                return
            raise ShutdownRequested(signum)

        previous = {}
        for signum in SHUTDOWN_SIGNALS:
            previous[signum] = signal.signal(signum, handler)
        try:
            yield
        finally:
            for signum, old in previous.items():
                signal.signal(signum, old)
