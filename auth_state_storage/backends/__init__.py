"""
Record store backends.

Every backend implements the same RecordStore interface, so the auth state
facade works unchanged on a directory, a SQLite table or a Cosmos container.
The Cosmos backend lives in ``backends.cosmos`` and needs the ``cosmos`` extra.
"""

from .base import RecordStore
from .files import FileConfig, FileRecordStore
from .sqlite import SQLiteConfig, SQLiteRecordStore

__all__ = [
    "RecordStore",
    "FileConfig",
    "FileRecordStore",
    "SQLiteConfig",
    "SQLiteRecordStore",
]
