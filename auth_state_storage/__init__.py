"""
Auth State Storage

Persists the credential bundle and key records of a messaging client
session across restarts.

Provides:
- Directory store with per-record files, optional encryption and per-path locking
- SQLite and Cosmos DB stores behind the same interface
- Buffer-preserving JSON so binary key material survives a text round trip

Usage:

    >>> from auth_state_storage import use_multi_file_auth_state
    >>> auth = await use_multi_file_auth_state("auth_info", encryption_key="s3cret")
    >>> sessions = await auth.state.keys.get("session", ["123.0"])
    >>> await auth.state.keys.set({"pre-key": {"1": None}})
    >>> await auth.save_creds()

Backend Selection:

    # Directory of files
    from auth_state_storage import use_multi_file_auth_state

    # SQLite for embedded applications
    from auth_state_storage import use_sqlite_auth_state

    # Cosmos DB for hosted deployments (requires the cosmos extra)
    from auth_state_storage import use_cosmos_auth_state

    # Chosen by settings.yaml or environment
    from auth_state_storage import StoreSettings, open_from_settings
"""

from .auth_state import (
    AuthenticationState,
    AuthState,
    RecordKeyStore,
    SignalKeyStore,
    open_auth_state,
    use_cosmos_auth_state,
    use_multi_file_auth_state,
    use_sqlite_auth_state,
)
from .backends import (
    FileConfig,
    FileRecordStore,
    RecordStore,
    SQLiteConfig,
    SQLiteRecordStore,
)
from .config import StoreSettings, create_record_store, open_from_settings
from .creds import init_auth_creds
from .crypto import EnvelopeCipher

# Exceptions
from .exceptions import (
    AuthenticationError,
    AuthStateError,
    BatchOperationError,
    ConfigurationError,
    DecryptionError,
    StorageConnectionError,
    StorageIOError,
    TransientStorageError,
    ValidationError,
)
from .types import (
    APP_STATE_SYNC_KEY,
    CREDS_KEY,
    KEY_CATEGORIES,
    AppStateSyncKeyData,
    AppStateSyncKeyFingerprint,
    FailurePolicy,
)

# Conditional import for the optional Cosmos backend
try:
    from .backends.cosmos import CosmosConfig, CosmosRecordStore  # noqa: F401

    _has_cosmos = True
except ImportError:
    _has_cosmos = False


__all__ = [
    # Facade
    "AuthState",
    "AuthenticationState",
    "SignalKeyStore",
    "RecordKeyStore",
    "open_auth_state",
    "use_multi_file_auth_state",
    "use_sqlite_auth_state",
    "use_cosmos_auth_state",
    "init_auth_creds",
    # Stores
    "RecordStore",
    "FileConfig",
    "FileRecordStore",
    "SQLiteConfig",
    "SQLiteRecordStore",
    "EnvelopeCipher",
    # Settings
    "StoreSettings",
    "create_record_store",
    "open_from_settings",
    # Types
    "CREDS_KEY",
    "KEY_CATEGORIES",
    "APP_STATE_SYNC_KEY",
    "AppStateSyncKeyData",
    "AppStateSyncKeyFingerprint",
    "FailurePolicy",
    # Exceptions
    "AuthStateError",
    "ConfigurationError",
    "DecryptionError",
    "StorageIOError",
    "TransientStorageError",
    "StorageConnectionError",
    "AuthenticationError",
    "ValidationError",
    "BatchOperationError",
]

if _has_cosmos:
    __all__.extend(["CosmosConfig", "CosmosRecordStore"])

__version__ = "0.1.0"
