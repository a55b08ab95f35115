"""
Auth state facade.

Turns a record store into the authentication state a messaging client
session consumes:

- ``state.creds``: the credential bundle, mutated in place by the client
- ``state.keys``: batched get/set over key records grouped by category
- ``save_creds()``: persist the current credential bundle

Usage:

    >>> auth = await use_multi_file_auth_state("./auth_info", encryption_key=secret)
    >>> keys = await auth.state.keys.get("pre-key", ["1", "2"])
    >>> await auth.state.keys.set({"pre-key": {"1": None}})
    >>> auth.state.creds["registered"] = True
    >>> await auth.save_creds()
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .backends.base import RecordStore
from .backends.files import FileConfig, FileRecordStore
from .backends.sqlite import DEFAULT_TABLE_NAME, SQLiteConfig, SQLiteRecordStore
from .creds import init_auth_creds
from .exceptions import BatchOperationError, ValidationError
from .types import (
    APP_STATE_SYNC_KEY,
    CREDS_KEY,
    KEY_CATEGORIES,
    AppStateSyncKeyData,
    FailurePolicy,
    record_key,
)

if TYPE_CHECKING:
    from .backends.cosmos import CosmosConfig

logger = logging.getLogger(__name__)

CredsFactory = Callable[[], dict[str, Any]]


# Unknown categories already reported, so each is logged once per process
_reported_categories: set[str] = set()


def _check_category(category: str) -> None:
    if not isinstance(category, str) or not category:
        raise ValidationError("category", "must be a non-empty string", repr(category))
    if category not in KEY_CATEGORIES and category not in _reported_categories:
        _reported_categories.add(category)
        logger.warning(
            "Unrecognized key category, storing it as given",
            extra={"category": category},
        )


class SignalKeyStore(ABC):
    """Batched access to key records."""

    @abstractmethod
    async def get(self, category: str, ids: Iterable[str]) -> dict[str, Any | None]:
        """Fetch records of one category. Every requested id is in the result."""

    @abstractmethod
    async def set(self, data: Mapping[str, Mapping[str, Any | None]]) -> None:
        """Write non-None values and remove records whose value is None."""


class RecordKeyStore(SignalKeyStore):
    """Key store issuing one record operation per id, concurrently."""

    def __init__(self, store: RecordStore):
        self._store = store

    async def get(self, category: str, ids: Iterable[str]) -> dict[str, Any | None]:
        _check_category(category)
        ids = list(ids)

        async def fetch(record_id: str) -> Any | None:
            value = await self._store.read(record_key(category, record_id))
            if category == APP_STATE_SYNC_KEY and value is not None:
                try:
                    value = AppStateSyncKeyData.from_object(value)
                except (TypeError, ValueError) as e:
                    logger.warning(
                        "Malformed app state sync key treated as absent",
                        extra={"record_id": record_id, "error": str(e)},
                    )
                    value = None
            return value

        values = await asyncio.gather(*(fetch(record_id) for record_id in ids))
        return dict(zip(ids, values))

    async def set(self, data: Mapping[str, Mapping[str, Any | None]]) -> None:
        for category in data:
            _check_category(category)
            if not isinstance(data[category], Mapping):
                raise ValidationError(
                    f"records[{category}]",
                    "must map record ids to values",
                    type(data[category]).__name__,
                )

        keys: list[str] = []
        operations = []
        for category, records in data.items():
            for record_id, value in records.items():
                key = record_key(category, record_id)
                keys.append(key)
                if value is None:
                    operations.append(self._store.remove(key))
                else:
                    operations.append(self._store.write(key, value))

        # Let the whole batch settle before reporting failures
        results = await asyncio.gather(*operations, return_exceptions=True)
        failures = {
            key: result
            for key, result in zip(keys, results)
            if isinstance(result, BaseException)
        }
        if not failures:
            return
        if len(failures) == 1:
            raise next(iter(failures.values()))
        raise BatchOperationError(failures)


@dataclass
class AuthenticationState:
    """Credential bundle plus key store."""

    creds: dict[str, Any]
    keys: SignalKeyStore


class AuthState:
    """Open auth state: ``state``, ``save_creds()`` and ``close()``."""

    def __init__(self, store: RecordStore, state: AuthenticationState):
        self.store = store
        self.state = state

    async def save_creds(self) -> None:
        """Persist the in-memory credential bundle."""
        await self.store.write(CREDS_KEY, self.state.creds)

    async def close(self) -> None:
        """Release the store's connection (no-op for the directory store)."""
        await self.store.close()

    async def __aenter__(self) -> AuthState:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def open_auth_state(
    store: RecordStore,
    creds_factory: CredsFactory = init_auth_creds,
) -> AuthState:
    """
    Open auth state on top of a record store.

    Initializes the store, then loads the credential bundle or creates a
    fresh one when none is stored. The fresh bundle is not persisted until
    ``save_creds`` is called.

    Raises:
        ConfigurationError: The store location cannot be used
        StorageConnectionError: A database backend is unreachable
    """
    await store.initialize()

    creds = await store.read(CREDS_KEY)
    if creds is None:
        creds = creds_factory()
        store.logger.info("No stored credentials, created a fresh bundle")

    return AuthState(store, AuthenticationState(creds=creds, keys=RecordKeyStore(store)))


async def use_multi_file_auth_state(
    folder: str | Path,
    encryption_key: str | None = None,
    *,
    authenticated_encryption: bool = False,
    failure_policy: FailurePolicy = FailurePolicy.SURFACE,
    creds_factory: CredsFactory = init_auth_creds,
) -> AuthState:
    """
    Open auth state stored as one file per record in ``folder``.

    Args:
        folder: Directory for record files; created if missing
        encryption_key: Secret enabling encryption of every record
        authenticated_encryption: Use AES-GCM envelopes instead of AES-CTR
        failure_policy: How write/remove failures are handled
        creds_factory: Builds the credential bundle for a fresh store

    Raises:
        ConfigurationError: ``folder`` exists but is not a directory
    """
    config = FileConfig(
        folder=folder,
        encryption_key=encryption_key,
        authenticated_encryption=authenticated_encryption,
        failure_policy=failure_policy,
    )
    return await open_auth_state(FileRecordStore(config), creds_factory)


async def use_sqlite_auth_state(
    config: SQLiteConfig | str | Path,
    table_name: str = DEFAULT_TABLE_NAME,
    *,
    creds_factory: CredsFactory = init_auth_creds,
) -> AuthState:
    """
    Open auth state stored in a SQLite table.

    Args:
        config: SQLite configuration, or a database path
        table_name: Table name when ``config`` is a path
        creds_factory: Builds the credential bundle for a fresh store
    """
    if not isinstance(config, SQLiteConfig):
        config = SQLiteConfig(db_path=config, table_name=table_name)
    return await open_auth_state(SQLiteRecordStore(config), creds_factory)


async def use_cosmos_auth_state(
    config: CosmosConfig | str,
    database_name: str | None = None,
    container_name: str | None = None,
    *,
    key: str | None = None,
    creds_factory: CredsFactory = init_auth_creds,
) -> AuthState:
    """
    Open auth state stored in a Cosmos DB container.

    Args:
        config: ``CosmosConfig``, or an account endpoint URL
        database_name: Database name when ``config`` is an endpoint
        container_name: Container name when ``config`` is an endpoint
        key: Account key when ``config`` is an endpoint (default credential otherwise)
        creds_factory: Builds the credential bundle for a fresh store
    """
    from .backends.cosmos import (
        AUTH_DEFAULT_CREDENTIAL,
        AUTH_KEY,
        DEFAULT_CONTAINER_NAME,
        CosmosConfig,
        CosmosRecordStore,
    )

    if not isinstance(config, CosmosConfig):
        config = CosmosConfig(
            endpoint=config,
            database_name=database_name or "",
            container_name=container_name or DEFAULT_CONTAINER_NAME,
            auth_method=AUTH_KEY if key else AUTH_DEFAULT_CREDENTIAL,
            key=key,
        )

    return await open_auth_state(CosmosRecordStore(config), creds_factory)
