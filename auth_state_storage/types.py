"""
Data types shared by all record stores.

Key records are opaque to this package with one exception: values in the
``app-state-sync-key`` category are handed back as ``AppStateSyncKeyData``
instances instead of the raw decoded JSON object.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import ConfigurationError

# Fixed logical key of the credential bundle
CREDS_KEY = "creds"

# Key record categories
PRE_KEY = "pre-key"
SESSION = "session"
SENDER_KEY = "sender-key"
SENDER_KEY_MEMORY = "sender-key-memory"
APP_STATE_SYNC_KEY = "app-state-sync-key"
APP_STATE_SYNC_VERSION = "app-state-sync-version"
LID_MAPPING = "lid-mapping"
DEVICE_LIST = "device-list"
TC_TOKEN = "tctoken"
IDENTITY_KEY = "identity-key"

KEY_CATEGORIES = frozenset(
    {
        PRE_KEY,
        SESSION,
        SENDER_KEY,
        SENDER_KEY_MEMORY,
        APP_STATE_SYNC_KEY,
        APP_STATE_SYNC_VERSION,
        LID_MAPPING,
        DEVICE_LIST,
        TC_TOKEN,
        IDENTITY_KEY,
    }
)


class FailurePolicy(str, Enum):
    """How a store reacts when a write or removal fails.

    SURFACE raises the error to the caller; BEST_EFFORT logs it and carries on.
    Reads never raise: a failed read returns None under either policy.
    """

    SURFACE = "surface"
    BEST_EFFORT = "best_effort"


def parse_failure_policy(
    value: str | FailurePolicy | None, default: FailurePolicy = FailurePolicy.SURFACE
) -> FailurePolicy:
    """Parse a failure policy from configuration text."""
    if value is None or value == "":
        return default
    try:
        return FailurePolicy(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown failure policy: {value!r} (expected 'surface' or 'best_effort')",
            field="failure_policy",
        ) from None


def record_key(category: str, record_id: str) -> str:
    """Logical key of a key record."""
    return f"{category}-{record_id}"


def _to_bytes(value: Any) -> bytes | None:
    """Coerce a protobuf bytes field from its decoded forms."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return base64.b64decode(value)
    if isinstance(value, dict) and "data" in value:
        # Tagged buffer that skipped the reviver
        return _to_bytes(value["data"])
    return bytes(value)


def _to_int(value: Any) -> int | None:
    """Coerce a protobuf integer field, including Long-style objects."""
    if value is None:
        return None
    if isinstance(value, dict):
        low = int(value.get("low", 0)) & 0xFFFFFFFF
        high = int(value.get("high", 0))
        if value.get("unsigned"):
            high &= 0xFFFFFFFF
        return (high << 32) | low
    return int(value)


def _pick(obj: dict[str, Any], camel: str, snake: str) -> Any:
    if camel in obj:
        return obj[camel]
    return obj.get(snake)


@dataclass
class AppStateSyncKeyFingerprint:
    """Fingerprint identifying an app state sync key."""

    raw_id: int | None = None
    current_index: int | None = None
    device_indexes: list[int] = field(default_factory=list)

    @classmethod
    def from_object(cls, obj: Any) -> AppStateSyncKeyFingerprint:
        if isinstance(obj, cls):
            return obj
        return cls(
            raw_id=_to_int(_pick(obj, "rawId", "raw_id")),
            current_index=_to_int(_pick(obj, "currentIndex", "current_index")),
            device_indexes=[int(i) for i in _pick(obj, "deviceIndexes", "device_indexes") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"deviceIndexes": list(self.device_indexes)}
        if self.raw_id is not None:
            data["rawId"] = self.raw_id
        if self.current_index is not None:
            data["currentIndex"] = self.current_index
        return data


@dataclass
class AppStateSyncKeyData:
    """Protocol representation of an app state sync key.

    Built from the decoded JSON object with ``from_object`` and turned back
    into that shape with ``to_dict``.
    """

    key_data: bytes | None = None
    fingerprint: AppStateSyncKeyFingerprint | None = None
    timestamp: int | None = None

    @classmethod
    def from_object(cls, obj: Any) -> AppStateSyncKeyData:
        """Build from a decoded object (camelCase or snake_case keys)."""
        if isinstance(obj, cls):
            return obj
        if not isinstance(obj, dict):
            raise TypeError(f"Cannot build AppStateSyncKeyData from {type(obj).__name__}")

        fingerprint = obj.get("fingerprint")
        return cls(
            key_data=_to_bytes(_pick(obj, "keyData", "key_data")),
            fingerprint=(
                AppStateSyncKeyFingerprint.from_object(fingerprint)
                if fingerprint is not None
                else None
            ),
            timestamp=_to_int(obj.get("timestamp")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.key_data is not None:
            data["keyData"] = self.key_data
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint.to_dict()
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data
