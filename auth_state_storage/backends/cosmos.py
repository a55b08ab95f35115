"""
Cosmos DB record store.

Stores each record as one document in a single container:

    {
        "id": "<key, with / \\ ? # % percent-encoded>",
        "key": "creds" | "{category}-{id}",
        "data": <buffer-preserving JSON structure>,
        "updated_at": "<ISO timestamp>"
    }

The container is partitioned on /id, so every operation is a point
read/write against its own logical partition.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from .. import buffer_json
from ..exceptions import (
    AuthenticationError,
    ConfigurationError,
    StorageConnectionError,
    StorageIOError,
)
from ..types import FailurePolicy, parse_failure_policy
from .base import RecordStore

DEFAULT_CONTAINER_NAME = "whatsapp_auth"
PARTITION_KEY_PATH = "/id"

# Auth methods
AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

# Characters Cosmos DB does not accept in document ids ('%' first, so the
# encoding stays reversible)
_ID_ESCAPES = (("%", "%25"), ("/", "%2F"), ("\\", "%5C"), ("?", "%3F"), ("#", "%23"))


def document_id(key: str) -> str:
    """Cosmos document id for a record key."""
    for char, escaped in _ID_ESCAPES:
        key = key.replace(char, escaped)
    return key


@dataclass
class CosmosConfig:
    """Configuration for Cosmos DB storage.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        database_name: Name of the database
        container_name: Container holding the records of one session
        auth_method: Authentication method ('key' or 'default_credential')
        key: Cosmos DB account key (only needed if auth_method='key')
        failure_policy: How write/remove failures are handled
    """

    endpoint: str
    database_name: str
    container_name: str = DEFAULT_CONTAINER_NAME
    auth_method: str = AUTH_DEFAULT_CREDENTIAL
    key: str | None = field(default=None, repr=False)
    failure_policy: FailurePolicy = FailurePolicy.BEST_EFFORT

    @classmethod
    def from_env(cls) -> CosmosConfig:
        """Create config from environment variables.

        Expected environment variables:
        - AUTH_STATE_COSMOS_ENDPOINT: Cosmos DB account endpoint
        - AUTH_STATE_COSMOS_DATABASE: Database name
        - AUTH_STATE_COSMOS_CONTAINER: Container name (default: whatsapp_auth)
        - AUTH_STATE_COSMOS_AUTH_METHOD: 'key' or 'default_credential' (default)
        - AUTH_STATE_COSMOS_KEY: Account key (only if auth_method='key')
        - AUTH_STATE_FAILURE_POLICY: 'best_effort' (default) or 'surface'
        """
        endpoint = os.environ.get("AUTH_STATE_COSMOS_ENDPOINT")
        database = os.environ.get("AUTH_STATE_COSMOS_DATABASE")
        auth_method = os.environ.get("AUTH_STATE_COSMOS_AUTH_METHOD", AUTH_DEFAULT_CREDENTIAL)
        key = os.environ.get("AUTH_STATE_COSMOS_KEY")

        if not endpoint:
            raise ConfigurationError(
                "AUTH_STATE_COSMOS_ENDPOINT environment variable not set", field="endpoint"
            )
        if not database:
            raise ConfigurationError(
                "AUTH_STATE_COSMOS_DATABASE environment variable not set", field="database_name"
            )

        return cls(
            endpoint=endpoint,
            database_name=database,
            container_name=os.environ.get("AUTH_STATE_COSMOS_CONTAINER", DEFAULT_CONTAINER_NAME),
            auth_method=auth_method,
            key=key,
            failure_policy=parse_failure_policy(
                os.environ.get("AUTH_STATE_FAILURE_POLICY"), FailurePolicy.BEST_EFFORT
            ),
        )


class CosmosRecordStore(RecordStore):
    """Record store backed by a Cosmos DB container."""

    backend_name = "cosmos"

    def __init__(self, config: CosmosConfig, container: ContainerProxy | None = None):
        """
        Initialize the Cosmos store.

        Args:
            config: Cosmos configuration
            container: Pre-built container proxy; skips client creation when given
        """
        if not config.endpoint:
            raise ConfigurationError("Cosmos endpoint is required", field="endpoint")
        if not config.database_name:
            raise ConfigurationError("Database name is required", field="database_name")
        if config.auth_method == AUTH_KEY and not config.key:
            raise ConfigurationError("Key required when auth_method='key'", field="key")

        super().__init__(config.failure_policy, location=config.endpoint)
        self.config = config
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._container: ContainerProxy | None = container

    @classmethod
    async def create(cls, config: CosmosConfig | None = None) -> CosmosRecordStore:
        """Create and initialize a Cosmos store."""
        if config is None:
            config = CosmosConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Connect and make sure the database and container exist."""
        if self._initialized:
            return

        if self._container is None:
            try:
                if self.config.auth_method == AUTH_KEY:
                    self._client = CosmosClient(self.config.endpoint, credential=self.config.key)
                else:
                    self._credential = DefaultAzureCredential()
                    self._client = CosmosClient(
                        self.config.endpoint, credential=self._credential
                    )

                self._database = await self._client.create_database_if_not_exists(
                    id=self.config.database_name
                )
                self._container = await self._database.create_container_if_not_exists(
                    id=self.config.container_name,
                    partition_key=PartitionKey(path=PARTITION_KEY_PATH),
                )
            except CosmosHttpResponseError as e:
                await self._release()
                if e.status_code in (401, 403):
                    raise AuthenticationError(self.config.endpoint, str(e)) from e
                raise StorageConnectionError(self.config.endpoint, e) from e
            except Exception as e:
                await self._release()
                raise StorageConnectionError(self.config.endpoint, e) from e

        self._initialized = True
        self.logger.info(
            "Cosmos store ready",
            extra={
                "database": self.config.database_name,
                "container": self.config.container_name,
            },
        )

    async def _release(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._credential is not None:
            await self._credential.close()
            self._credential = None
        self._database = None

    async def close(self) -> None:
        """Close Cosmos connections."""
        await self._release()
        self._container = None
        await super().close()

    def _require_container(self, operation: str) -> ContainerProxy:
        if self._container is None:
            raise StorageIOError(operation, cause=RuntimeError("Container not initialized"))
        return self._container

    async def _read(self, key: str) -> Any | None:
        container = self._require_container("read")
        doc_id = document_id(key)
        try:
            item = await container.read_item(item=doc_id, partition_key=doc_id)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StorageIOError("read", key, e) from e

        data = item.get("data")
        if data is None:
            return None
        return buffer_json.from_document(data)

    async def _write(self, key: str, value: Any) -> None:
        container = self._require_container("write")
        doc_id = document_id(key)
        body = {
            "id": doc_id,
            "key": key,
            "data": buffer_json.to_document(value),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            await container.upsert_item(body)
        except CosmosResourceExistsError:
            # Unique-key conflict on insert: retry once as an in-place update
            try:
                await container.replace_item(item=doc_id, body=body)
            except CosmosHttpResponseError as e:
                raise StorageIOError("write", key, e) from e
        except CosmosHttpResponseError as e:
            raise StorageIOError("write", key, e) from e

    async def _remove(self, key: str) -> None:
        container = self._require_container("remove")
        doc_id = document_id(key)
        try:
            await container.delete_item(item=doc_id, partition_key=doc_id)
        except CosmosResourceNotFoundError:
            pass
        except CosmosHttpResponseError as e:
            raise StorageIOError("remove", key, e) from e
