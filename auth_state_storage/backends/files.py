"""
Directory record store.

One file per record inside a single folder:

    {folder}/creds.json                  - credential bundle
    {folder}/{category}-{id}.json        - key records ('/' -> '__', ':' -> '-')

Every read, write and removal of a file holds the process-wide lock for
that file's path, and writes go through temp file + replace, so a reader
never sees a partially written record. With an encryption secret the file
holds the base64 envelope instead of the JSON text.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import buffer_json
from ..crypto import EnvelopeCipher
from ..exceptions import ConfigurationError, StorageIOError
from ..local.file_ops import (
    ensure_directory,
    fix_file_name,
    read_text,
    remove_file,
    write_text_atomic,
)
from ..local.keyed_lock import KeyedLock, file_locks
from ..types import FailurePolicy, parse_failure_policy
from .base import RecordStore

DEFAULT_EXTENSION = ".json"


@dataclass
class FileConfig:
    """Configuration for the directory record store.

    Attributes:
        folder: Directory holding the record files (created if missing)
        encryption_key: Secret enabling envelope encryption of every record
        authenticated_encryption: Use AES-GCM envelopes instead of AES-CTR
        failure_policy: How write/remove failures are handled
        file_extension: Suffix appended to every record name
    """

    folder: str | Path
    encryption_key: str | None = field(default=None, repr=False)
    authenticated_encryption: bool = False
    failure_policy: FailurePolicy = FailurePolicy.SURFACE
    file_extension: str = DEFAULT_EXTENSION

    @classmethod
    def from_env(cls) -> FileConfig:
        """Create config from environment variables.

        Expected environment variables:
        - AUTH_STATE_FOLDER: Directory for record files (required)
        - AUTH_STATE_ENCRYPTION_KEY: Encryption secret (optional)
        - AUTH_STATE_AUTHENTICATED_ENCRYPTION: 'true' for AES-GCM envelopes
        - AUTH_STATE_FAILURE_POLICY: 'surface' (default) or 'best_effort'
        """
        folder = os.environ.get("AUTH_STATE_FOLDER")
        if not folder:
            raise ConfigurationError(
                "AUTH_STATE_FOLDER environment variable not set", field="folder"
            )

        return cls(
            folder=folder,
            encryption_key=os.environ.get("AUTH_STATE_ENCRYPTION_KEY") or None,
            authenticated_encryption=os.environ.get(
                "AUTH_STATE_AUTHENTICATED_ENCRYPTION", "false"
            ).lower()
            == "true",
            failure_policy=parse_failure_policy(os.environ.get("AUTH_STATE_FAILURE_POLICY")),
        )


class FileRecordStore(RecordStore):
    """Record store keeping one (optionally encrypted) JSON file per record."""

    backend_name = "files"

    def __init__(self, config: FileConfig, locks: KeyedLock | None = None):
        """
        Initialize the directory store.

        Args:
            config: Directory store configuration
            locks: Lock map for file paths (defaults to the process-wide map)
        """
        if not config.folder:
            raise ConfigurationError("Folder path is required", field="folder")

        super().__init__(config.failure_policy, location=str(config.folder))
        self.config = config
        self.folder = Path(config.folder)
        self._locks = locks if locks is not None else file_locks
        self._cipher = (
            EnvelopeCipher(config.encryption_key, authenticated=config.authenticated_encryption)
            if config.encryption_key
            else None
        )

    @classmethod
    async def create(cls, config: FileConfig | None = None) -> FileRecordStore:
        """Create and initialize a directory store."""
        if config is None:
            config = FileConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    @property
    def encrypted(self) -> bool:
        return self._cipher is not None

    async def initialize(self) -> None:
        """Create the folder if needed; refuse a path that is not a directory."""
        if self._initialized:
            return

        created = await ensure_directory(self.folder)
        self._initialized = True
        self.logger.info(
            "Directory store ready",
            extra={"created": created, "encrypted": self.encrypted},
        )

    def path_for(self, key: str) -> Path:
        """Physical file path of a record."""
        return self.folder / fix_file_name(key + self.config.file_extension)

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise StorageIOError(
                operation, str(self.folder), RuntimeError("Store not initialized")
            )

    @staticmethod
    def _lock_key(path: Path) -> str:
        return str(path.absolute())

    async def _read(self, key: str) -> Any | None:
        self._require_initialized("read")
        path = self.path_for(key)

        async with self._locks.acquire(self._lock_key(path)):
            text = await read_text(path)

        if text is None:
            return None
        if self._cipher is not None:
            text = await self._cipher.decrypt_async(text)
        return buffer_json.loads(text)

    async def _write(self, key: str, value: Any) -> None:
        self._require_initialized("write")
        path = self.path_for(key)
        text = buffer_json.dumps(value)

        # Encrypt while holding the lock so same-path writes land in call order
        async with self._locks.acquire(self._lock_key(path)):
            if self._cipher is not None:
                text = await self._cipher.encrypt_async(text)
            await write_text_atomic(path, text)

    async def _remove(self, key: str) -> None:
        self._require_initialized("remove")
        path = self.path_for(key)

        async with self._locks.acquire(self._lock_key(path)):
            await remove_file(path)
