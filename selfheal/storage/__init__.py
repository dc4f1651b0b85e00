"""Storage for selfheal.

Two kinds of files live in the data directory:

- JSON-lines record logs (``JSONLLog``): append-only, bounded by rotation
- Whole JSON documents (``DocumentBackend``): replaced atomically

``RecordStore`` ties them together for one data directory.

Usage:
    from selfheal.storage import RecordStore

    store = RecordStore(config)
    store.append_error(record)
"""

from .base import DocumentBackend
from .filesystem import FileSystemDocument
from .jsonl import JSONLLog
from .store import RecordStore

__all__ = [
    "DocumentBackend",
    "FileSystemDocument",
    "JSONLLog",
    "RecordStore",
]
