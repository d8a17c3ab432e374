"""
Error taxonomy for the ledger engine.

Validation, lookup, authentication and conflict errors leave state untouched
and are reported back to the caller. Concurrency and save errors are fatal.
"""


class BankError(Exception):
    """Base class for all ledger errors"""
    code = "bank_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BankError):
    """Bad amount or malformed input"""
    code = "validation_error"


class InsufficientFundsError(ValidationError):
    code = "insufficient_funds"


class NotFoundError(BankError):
    """Unknown username"""
    code = "not_found"


class AuthError(BankError):
    code = "auth_error"


class IncorrectPasswordError(AuthError):
    code = "incorrect_password"


class ExceededAttemptsError(AuthError):
    """Too many wrong passwords; the login must restart from the username"""
    code = "exceeded_attempts"


class NotAuthenticatedError(AuthError):
    code = "not_authenticated"


class SessionStateError(AuthError):
    """Operation not allowed in the current session state"""
    code = "session_state"


class ConflictError(BankError):
    """Username already taken"""
    code = "conflict"


class ConcurrencyError(BankError):
    """Another process holds the data file lock"""
    code = "concurrency_error"


class PersistenceError(BankError):
    code = "persistence_error"
