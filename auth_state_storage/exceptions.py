"""
Custom exceptions for auth state storage.

All record stores raise these exceptions so callers get consistent
error handling regardless of the backend in use.
"""


class AuthStateError(Exception):
    """Base exception for all auth state storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(AuthStateError):
    """Raised when a store cannot be opened with the given configuration.

    Covers missing connection parameters and storage locations that conflict
    with something already on disk. Always fatal at open time.
    """

    def __init__(self, message: str, field: str | None = None, path: str | None = None):
        details = {}
        if field:
            details["field"] = field
        if path:
            details["path"] = path
        super().__init__(message, details)
        self.field = field
        self.path = path


class DecryptionError(AuthStateError):
    """Raised when an encrypted envelope cannot be opened.

    Either the secret does not match or the envelope is corrupted.
    """

    def __init__(self, reason: str, cause: Exception | None = None):
        details = {"reason": reason}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Decryption failed: {reason}", details)
        self.reason = reason
        self.cause = cause


class StorageIOError(AuthStateError):
    """Raised when a single storage operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(AuthStateError):
    """Raised when connection to a database backend fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(AuthStateError):
    """Raised when authentication to a database backend fails."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class ValidationError(AuthStateError):
    """Raised when data validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class BatchOperationError(AuthStateError):
    """Raised when more than one write or removal in a batch fails."""

    def __init__(self, failures: dict[str, Exception]):
        details = {key: str(error) for key, error in failures.items()}
        super().__init__(
            f"{len(failures)} record operations failed: {', '.join(sorted(failures))}",
            details,
        )
        self.failures = failures


# Name used by the storage contract for per-operation failures
TransientStorageError = StorageIOError
