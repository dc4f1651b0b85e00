"""Append-only JSON-lines log with bounded rotation.

One record per line. Positions are 1-based line numbers, counted over every
line in the file (corrupt ones included) so a position read earlier still
points at the same line until the file is rewritten.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .filesystem import atomic_write_text

logger = logging.getLogger(__name__)


def _parse(line: str) -> dict[str, Any] | None:
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _is_resolved(data: dict[str, Any]) -> bool:
    return data.get("fixed") is True


class JSONLLog:
    """A JSON-lines file of records.

    Characteristics:
    - ``append`` is one ``write`` on a file opened in append mode
    - Rewrites (rotation, in-place update) build the new content in memory
      and swap it in atomically
    - Missing file reads as empty; lines that fail to parse are skipped by
      readers and dropped by rotation

    Args:
        path: Path to the .jsonl file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def lines(self) -> list[str]:
        """Raw lines, without newlines. Empty list when the file is missing."""
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8", errors="replace") as f:
                return [line.rstrip("\n") for line in f if line.strip()]
        except OSError as e:
            logger.warning("Failed to read %s: %s", self._path, e)
            return []

    def count(self) -> int:
        return len(self.lines())

    def entries(self) -> list[tuple[int, dict[str, Any]]]:
        """(position, record) pairs for every line that parses."""
        result = []
        for position, line in enumerate(self.lines(), start=1):
            data = _parse(line)
            if data is not None:
                result.append((position, data))
        return result

    def records(self) -> list[dict[str, Any]]:
        return [data for _, data in self.entries()]

    def tail(self, n: int) -> list[dict[str, Any]]:
        """Last ``n`` parseable records among the last ``n`` lines."""
        if n <= 0:
            return []
        parsed = (_parse(line) for line in self.lines()[-n:])
        return [data for data in parsed if data is not None]

    def append(self, record: dict[str, Any]) -> int:
        """Append one record and return its 1-based position."""
        line = json.dumps(record, ensure_ascii=False) + "\n"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(line)
        return self.count()

    def rewrite(self, lines: list[str]) -> None:
        """Atomically replace the whole file with ``lines``."""
        text = "".join(line + "\n" for line in lines)
        atomic_write_text(self._path, text, prefix=".selfheal_log_")

    def rotate(self, ceiling: int) -> bool:
        """Bound the log to ``ceiling`` records, sparing unresolved ones.

        Unresolved records always survive. Resolved records fill whatever
        budget is left, most recent first. File order is preserved. If the
        survivors still exceed the ceiling (too many unresolved), only the
        most recent ``ceiling`` are kept.

        Returns True when the file was rewritten.
        """
        lines = self.lines()
        if len(lines) <= ceiling:
            return False

        parsed = [(line, _parse(line)) for line in lines]
        valid = [(line, data) for line, data in parsed if data is not None]
        unresolved = sum(1 for _, data in valid if not _is_resolved(data))
        budget = max(ceiling - unresolved, 0)

        resolved_indexes = [i for i, (_, data) in enumerate(valid) if _is_resolved(data)]
        keep_resolved = set(resolved_indexes[-budget:]) if budget else set()

        kept = [
            line
            for i, (line, data) in enumerate(valid)
            if not _is_resolved(data) or i in keep_resolved
        ]
        if len(kept) > ceiling:
            kept = kept[-ceiling:]

        self.rewrite(kept)
        logger.debug("Rotated %s: %d -> %d records", self._path, len(lines), len(kept))
        return True

    def update_at(self, position: int, mutate: Callable[[dict[str, Any]], bool]) -> bool:
        """Apply ``mutate`` to the record at ``position`` and rewrite the file.

        ``mutate`` returns False to veto the change (e.g. the line is not the
        record the caller expected). Returns True when the file was rewritten.
        """
        lines = self.lines()
        if position < 1 or position > len(lines):
            return False
        data = _parse(lines[position - 1])
        if data is None or not mutate(data):
            return False
        lines[position - 1] = json.dumps(data, ensure_ascii=False)
        self.rewrite(lines)
        return True

    def update_last(
        self,
        match: Callable[[dict[str, Any]], bool],
        mutate: Callable[[dict[str, Any]], Any],
    ) -> bool:
        """Mutate the most recent record satisfying ``match``."""
        lines = self.lines()
        for index in range(len(lines) - 1, -1, -1):
            data = _parse(lines[index])
            if data is None or not match(data):
                continue
            mutate(data)
            lines[index] = json.dumps(data, ensure_ascii=False)
            self.rewrite(lines)
            return True
        return False

    def filter(self, keep: Callable[[dict[str, Any]], bool]) -> int:
        """Drop records for which ``keep`` is False. Returns how many were removed."""
        lines = self.lines()
        kept = []
        for line in lines:
            data = _parse(line)
            if data is not None and keep(data):
                kept.append(line)
        removed = len(lines) - len(kept)
        if removed:
            self.rewrite(kept)
        return removed

    def delete(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
