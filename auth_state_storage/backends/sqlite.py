"""
SQLite record store.

Keeps every record as a row of a single table:

    key TEXT PRIMARY KEY   - 'creds' or '{category}-{id}', undecorated
    data TEXT NOT NULL     - buffer-preserving JSON
    updated_at TIMESTAMP

Writes are upserts, so a record is created or replaced in one statement.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from .. import buffer_json
from ..exceptions import ConfigurationError, StorageConnectionError, StorageIOError
from ..local.file_ops import ensure_directory
from ..types import FailurePolicy, parse_failure_policy
from .base import RecordStore

DEFAULT_TABLE_NAME = "auth_state"
MEMORY_DB = ":memory:"

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path
    table_name: str = DEFAULT_TABLE_NAME
    failure_policy: FailurePolicy = FailurePolicy.SURFACE

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        db_path = os.environ.get("AUTH_STATE_SQLITE_PATH")
        if not db_path:
            raise ConfigurationError(
                "AUTH_STATE_SQLITE_PATH environment variable not set", field="db_path"
            )

        return cls(
            db_path=db_path,
            table_name=os.environ.get("AUTH_STATE_SQLITE_TABLE", DEFAULT_TABLE_NAME),
            failure_policy=parse_failure_policy(os.environ.get("AUTH_STATE_FAILURE_POLICY")),
        )


class SQLiteRecordStore(RecordStore):
    """Record store backed by one SQLite table."""

    backend_name = "sqlite"

    def __init__(self, config: SQLiteConfig):
        if not config.db_path:
            raise ConfigurationError("Database path is required", field="db_path")
        if not _TABLE_NAME_RE.match(config.table_name or ""):
            raise ConfigurationError(
                f"Invalid table name: {config.table_name!r}", field="table_name"
            )

        super().__init__(config.failure_policy, location=str(config.db_path))
        self.config = config
        self.table = config.table_name
        self.conn: aiosqlite.Connection | None = None

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteRecordStore:
        """Create and initialize a SQLite store."""
        if config is None:
            config = SQLiteConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the connection and create the table."""
        if self._initialized:
            return

        db_path = str(self.config.db_path)
        if db_path != MEMORY_DB:
            await ensure_directory(Path(db_path).parent)

        try:
            self.conn = await aiosqlite.connect(db_path)
            await self.conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await self.conn.commit()
        except (aiosqlite.Error, OSError) as e:
            if self.conn is not None:
                await self.conn.close()
                self.conn = None
            raise StorageConnectionError(db_path, e) from e

        self._initialized = True
        self.logger.info("SQLite store ready", extra={"table": self.table})

    async def close(self) -> None:
        """Close the database connection."""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
        await super().close()

    def _connection(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError(
                operation, str(self.config.db_path), RuntimeError("Database not initialized")
            )
        return self.conn

    async def _read(self, key: str) -> Any | None:
        conn = self._connection("read")
        try:
            async with conn.execute(
                f"SELECT data FROM {self.table} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("read", key, e) from e

        if not row or not row[0]:
            return None
        return buffer_json.loads(row[0])

    async def _write(self, key: str, value: Any) -> None:
        conn = self._connection("write")
        serialized = buffer_json.dumps(value)
        try:
            await conn.execute(
                f"""
                INSERT INTO {self.table} (key, data, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (key, serialized),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("write", key, e) from e

    async def _remove(self, key: str) -> None:
        conn = self._connection("remove")
        try:
            await conn.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("remove", key, e) from e

    async def count(self) -> int:
        """Number of stored records, credential bundle included."""
        conn = self._connection("count")
        async with conn.execute(f"SELECT COUNT(*) FROM {self.table}") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
