"""Filesystem document backend.

Stores one JSON document per file with atomic writes. Used for the derived
pattern report, pending-correlation state and the failure counter.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str, prefix: str = ".selfheal_") -> None:
    """Write ``text`` to ``path`` via a temp file in the same directory + rename.

    Raises OSError on failure; the original file is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(text)
        Path(tmp_path).replace(path)
    except Exception:
        try:
            Path(tmp_path).unlink()
        except OSError:
            pass
        raise


class FileSystemDocument:
    """Filesystem-backed JSON document using atomic writes.

    Characteristics:
    - Persists to a single JSON file
    - Atomic writes via temp file + rename (POSIX)
    - Creates parent directories on first save
    - Returns empty dict if file doesn't exist, is corrupted or is not an object

    Args:
        path: Path to the JSON file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to load document from %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object document in %s", self._path)
            return {}
        return data

    def save(self, data: dict[str, Any]) -> None:
        """Replace the document. Failures are logged, never raised."""
        try:
            atomic_write_text(self._path, json.dumps(data, indent=2))
        except OSError as e:
            logger.warning("Failed to save document to %s: %s", self._path, e)

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove %s: %s", self._path, e)
