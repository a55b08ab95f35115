"""
Shared test configuration and fixtures.

Provides temporary folders for the directory store and an in-memory
record store whose operations can be made to fail per key.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Any

import pytest

from auth_state_storage.backends.base import RecordStore
from auth_state_storage.exceptions import StorageIOError
from auth_state_storage.types import FailurePolicy


class MemoryRecordStore(RecordStore):
    """Dict-backed record store with injectable per-key failures."""

    backend_name = "memory"

    def __init__(
        self,
        failure_policy: FailurePolicy = FailurePolicy.SURFACE,
        failing_keys: set[str] | None = None,
    ):
        super().__init__(failure_policy, location="memory")
        self.records: dict[str, Any] = {}
        self.failing_keys = failing_keys or set()
        self.closed = False

    async def initialize(self) -> None:
        self._initialized = True

    async def close(self) -> None:
        self.closed = True
        await super().close()

    async def _read(self, key: str) -> Any | None:
        await asyncio.sleep(0)
        if key in self.failing_keys:
            raise StorageIOError("read", key)
        return self.records.get(key)

    async def _write(self, key: str, value: Any) -> None:
        await asyncio.sleep(0)
        if key in self.failing_keys:
            raise StorageIOError("write", key)
        self.records[key] = value

    async def _remove(self, key: str) -> None:
        await asyncio.sleep(0)
        if key in self.failing_keys:
            raise StorageIOError("remove", key)
        self.records.pop(key, None)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def memory_store() -> MemoryRecordStore:
    """In-memory record store with the surface policy."""
    return MemoryRecordStore()


@pytest.fixture
def make_memory_store():
    """Factory for in-memory record stores with custom policy or failures."""
    return MemoryRecordStore
