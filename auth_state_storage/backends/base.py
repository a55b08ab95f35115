"""
Abstract base class for record stores.

All record stores (directory, SQLite, Cosmos) implement this interface. A
record store persists opaque values under string keys; the auth state
facade builds credential and key-record semantics on top of it.

Subclasses implement ``_read``, ``_write`` and ``_remove`` and let them raise.
The public ``read``, ``write`` and ``remove`` methods apply one failure policy
to every operation of a store instance:

- reads never raise: any failure is logged and reported as a missing record
- writes and removals raise under ``FailurePolicy.SURFACE`` and are logged
  and dropped under ``FailurePolicy.BEST_EFFORT``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import AuthStateError
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..types import FailurePolicy

# Failures a single record operation may produce once drivers have been
# wrapped: storage errors, plus codec errors from values that do not
# serialize or stored text that does not parse.
RECORD_ERRORS = (AuthStateError, OSError, TypeError, ValueError)


class RecordStore(ABC):
    """Keyed record persistence with a uniform failure policy."""

    backend_name = "base"

    def __init__(self, failure_policy: FailurePolicy, location: str):
        self.failure_policy = FailurePolicy(failure_policy)
        self.location = location
        self.logger = StorageLoggerAdapter(
            get_storage_logger(self.backend_name),
            {"backend": self.backend_name, "location": location},
        )
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the underlying storage. Safe to call more than once.

        Raises:
            ConfigurationError: The configured location cannot be used
            StorageConnectionError: A database backend is unreachable
        """

    async def close(self) -> None:
        """Release any underlying connection."""
        self._initialized = False

    async def __aenter__(self) -> RecordStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Backend operations
    # =========================================================================

    @abstractmethod
    async def _read(self, key: str) -> Any | None:
        """Return the stored value, or None if there is no record."""

    @abstractmethod
    async def _write(self, key: str, value: Any) -> None:
        """Create or fully replace the record."""

    @abstractmethod
    async def _remove(self, key: str) -> None:
        """Delete the record; a missing record is not an error."""

    # =========================================================================
    # Policy-applying operations
    # =========================================================================

    async def read(self, key: str) -> Any | None:
        """Read a record. Returns None when it is missing or unreadable."""
        try:
            return await self._read(key)
        except RECORD_ERRORS as e:
            self.logger.warning(
                "Unreadable record treated as absent",
                extra={"key": key, "error": str(e), "error_type": type(e).__name__},
            )
            return None

    async def write(self, key: str, value: Any) -> None:
        """Create or replace a record."""
        try:
            await self._write(key, value)
        except RECORD_ERRORS as e:
            self._handle_failure("write", key, e)

    async def remove(self, key: str) -> None:
        """Remove a record if present."""
        try:
            await self._remove(key)
        except RECORD_ERRORS as e:
            self._handle_failure("remove", key, e)

    def _handle_failure(self, operation: str, key: str, error: Exception) -> None:
        if self.failure_policy is FailurePolicy.SURFACE:
            raise error
        self.logger.error(
            f"Record {operation} failed, continuing",
            extra={"key": key, "operation": operation, "error": str(error)},
        )
