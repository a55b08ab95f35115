"""
Buffer-preserving JSON codec.

Key material is mostly binary, but every backend persists JSON text. Binary
values are written as a tagged object::

    {"type": "Buffer", "data": "<base64>"}

and turned back into ``bytes`` when read. The reader also accepts the
integer-list form (``{"type": "Buffer", "data": [1, 2, 3]}``) and the
``{"buffer": true, "value": ...}`` variant, so files written by other
clients of the same format load too.

``replacer`` and ``reviver`` are pure functions; ``dumps`` and ``loads``
thread them through the standard ``json`` calls.
"""

from __future__ import annotations

import base64
import json
from typing import Any

BUFFER_TYPE = "Buffer"


def replacer(obj: Any) -> Any:
    """Map a value ``json`` cannot serialize to a JSON-safe form.

    Used as the ``default`` hook of ``json.dumps``.
    """
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return {"type": BUFFER_TYPE, "data": base64.b64encode(bytes(obj)).decode("ascii")}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def reviver(obj: dict[str, Any]) -> Any:
    """Rebuild ``bytes`` from a tagged object.

    Used as the ``object_hook`` of ``json.loads``; other objects pass through.
    """
    if obj.get("type") == BUFFER_TYPE or obj.get("buffer") is True:
        value = obj.get("data") or obj.get("value")
        if isinstance(value, str):
            return base64.b64decode(value)
        return bytes(value or [])
    return obj


def dumps(value: Any) -> str:
    """Serialize a record value to JSON text."""
    return json.dumps(value, default=replacer, separators=(",", ":"))


def loads(text: str | bytes) -> Any:
    """Parse JSON text produced by ``dumps``."""
    return json.loads(text, object_hook=reviver)


def to_document(value: Any) -> Any:
    """Convert a record value to a JSON-compatible structure.

    Document databases store structures rather than text; this is the
    structural equivalent of ``dumps``.
    """
    return json.loads(dumps(value))


def from_document(document: Any) -> Any:
    """Rebuild a record value from a stored structure."""
    return loads(json.dumps(document))
