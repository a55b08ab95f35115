"""
Filesystem primitives for the directory record store.

- fix_file_name: record name to file name
- KeyedLock / file_locks: per-path mutual exclusion
- Atomic write, read and remove helpers
"""

from .file_ops import (
    ensure_directory,
    fix_file_name,
    read_text,
    remove_file,
    write_text_atomic,
)
from .keyed_lock import KeyedLock, file_locks

__all__ = [
    "KeyedLock",
    "file_locks",
    "fix_file_name",
    "ensure_directory",
    "read_text",
    "write_text_atomic",
    "remove_file",
]
