"""Base protocol for single-document storage backends.

Documents are small JSON objects that are always replaced wholesale: the
derived pattern report, the pending-correlation state. Append-only record
logs live in ``jsonl.py``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DocumentBackend(Protocol):
    """Protocol for whole-document storage.

    Design Principles:
    - Three operations only: load, save and clear
    - Backend owns atomicity (a reader never sees a half-written document)
    - Absence is not an error: load returns an empty dict

    Example implementation:
        class MemoryBackend:
            def __init__(self):
                self._data = {}

            def load(self) -> dict[str, Any]:
                return dict(self._data)

            def save(self, data: dict[str, Any]) -> None:
                self._data = dict(data)

            def clear(self) -> None:
                self._data = {}
    """

    def load(self) -> dict[str, Any]:
        """Load the document, or an empty dict if none exists."""
        ...

    def save(self, data: dict[str, Any]) -> None:
        """Replace the document atomically."""
        ...

    def clear(self) -> None:
        """Remove the document. Clearing a missing document is a no-op."""
        ...
