"""
Store selection from a settings file or the environment.

Configuration in settings.yaml:

```yaml
auth_state:
  backend: files            # files | sqlite | cosmos
  folder: ./auth_info
  encryption_key: "..."     # optional
  failure_policy: surface   # surface | best_effort
```

or for a database backend:

```yaml
auth_state:
  backend: sqlite
  db_path: ./auth_state.db
  table_name: auth_state
```

Without a file, ``StoreSettings.from_env()`` reads AUTH_STATE_BACKEND and
the backend's own environment variables.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .auth_state import AuthState, CredsFactory, open_auth_state
from .backends.base import RecordStore
from .backends.files import FileConfig, FileRecordStore
from .backends.sqlite import SQLiteConfig, SQLiteRecordStore
from .creds import init_auth_creds
from .exceptions import ConfigurationError
from .types import FailurePolicy, parse_failure_policy

BACKEND_FILES = "files"
BACKEND_SQLITE = "sqlite"
BACKEND_COSMOS = "cosmos"

BACKENDS = (BACKEND_FILES, BACKEND_SQLITE, BACKEND_COSMOS)

SETTINGS_SECTION = "auth_state"


def _config_type(backend: str) -> type:
    if backend == BACKEND_FILES:
        return FileConfig
    if backend == BACKEND_SQLITE:
        return SQLiteConfig
    if backend == BACKEND_COSMOS:
        from .backends.cosmos import CosmosConfig

        return CosmosConfig
    raise ConfigurationError(
        f"Unknown backend: {backend!r} (expected one of {', '.join(BACKENDS)})",
        field="backend",
    )


def build_backend_config(backend: str, options: dict[str, Any]) -> Any:
    """Build a backend config dataclass from plain options."""
    config_type = _config_type(backend)
    known = {f.name: f for f in dataclasses.fields(config_type)}

    unknown = sorted(set(options) - set(known))
    if unknown:
        raise ConfigurationError(
            f"Unknown {backend} option(s): {', '.join(unknown)}", field=unknown[0]
        )

    values = dict(options)
    if "failure_policy" in values:
        default = known["failure_policy"].default
        values["failure_policy"] = parse_failure_policy(values["failure_policy"], default)

    try:
        return config_type(**values)
    except TypeError as e:
        raise ConfigurationError(f"Incomplete {backend} configuration: {e}") from e


@dataclass
class StoreSettings:
    """Which backend to use and how it is configured."""

    backend: str
    config: Any

    @classmethod
    def from_env(cls) -> StoreSettings:
        """Create settings from environment variables."""
        backend = os.environ.get("AUTH_STATE_BACKEND", BACKEND_FILES).lower()
        return cls(backend=backend, config=_config_type(backend).from_env())

    @classmethod
    def from_yaml(cls, path: str | Path) -> StoreSettings:
        """Load settings from the ``auth_state`` section of a YAML file."""
        path = Path(path)
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except FileNotFoundError as e:
            raise ConfigurationError(
                f"Settings file not found: {path}", path=str(path)
            ) from e
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot read settings file {path}: {e}", path=str(path)
            ) from e

        section = content.get(SETTINGS_SECTION) if isinstance(content, dict) else None
        if not isinstance(section, dict):
            raise ConfigurationError(
                f"Missing '{SETTINGS_SECTION}' section in {path}", path=str(path)
            )

        options = dict(section)
        backend = str(options.pop("backend", BACKEND_FILES)).lower()
        return cls(backend=backend, config=build_backend_config(backend, options))

    @property
    def failure_policy(self) -> FailurePolicy:
        return self.config.failure_policy


def create_record_store(settings: StoreSettings) -> RecordStore:
    """Instantiate (but do not initialize) the configured record store."""
    if settings.backend == BACKEND_FILES:
        return FileRecordStore(settings.config)
    if settings.backend == BACKEND_SQLITE:
        return SQLiteRecordStore(settings.config)
    if settings.backend == BACKEND_COSMOS:
        from .backends.cosmos import CosmosRecordStore

        return CosmosRecordStore(settings.config)
    raise ConfigurationError(f"Unknown backend: {settings.backend!r}", field="backend")


async def open_from_settings(
    settings: StoreSettings | None = None,
    creds_factory: CredsFactory = init_auth_creds,
) -> AuthState:
    """Open auth state on the configured backend (environment if no settings)."""
    if settings is None:
        settings = StoreSettings.from_env()
    return await open_auth_state(create_record_store(settings), creds_factory)
