"""RecordStore: the only owner of the on-disk data directory.

Layout (under ``HealConfig.data_dir``):

    errors.jsonl                   global ErrorRecords, rotated at max_errors
    fixes.jsonl                    FixRecords (append-only, unbounded)
    project-contexts/<hash>.jsonl  per-project ErrorRecords, rotated at max_project_errors
    patterns.json                  derived PatternReport, replaced wholesale
    pending/<hash>.json            PendingCorrelation for one project scope
    .preload_done                  seed knowledge marker
    .error_count                   running count of recorded failures

Rotation and in-place updates are read-modify-write without locking; two
activations racing on the same file can lose an update. That window is
accepted for a single-user local tool.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import HealConfig
from ..heal.models import (
    ErrorRecord,
    FixRecord,
    PatternReport,
    PendingCorrelation,
    RecordPosition,
)
from .base import DocumentBackend
from .filesystem import FileSystemDocument
from .jsonl import JSONLLog

logger = logging.getLogger(__name__)

DocumentFactory = Callable[[Path], DocumentBackend]


class RecordStore:
    """Append-only, bounded storage for error and fix records.

    Args:
        config: Storage layout and limits. Defaults to ``HealConfig()``.
        document_factory: Builds the backend for each whole JSON document
            (patterns, pending state, counters) from its path. Defaults to
            ``FileSystemDocument``.
    """

    def __init__(
        self,
        config: HealConfig | None = None,
        document_factory: DocumentFactory | None = None,
    ):
        self.config = config or HealConfig()
        self._document = document_factory or FileSystemDocument
        self.errors_log = JSONLLog(self.config.errors_file)
        self.fixes_log = JSONLLog(self.config.fixes_file)
        self.patterns_doc: DocumentBackend = self._document(self.config.patterns_file)
        self.counter_doc: DocumentBackend = self._document(self.config.counter_file)

    # -------------------------------------------------------------------------
    # Scopes
    # -------------------------------------------------------------------------

    def project_log(self, project_hash: str) -> JSONLLog:
        return JSONLLog(self.config.project_file(project_hash))

    def pending_doc(self, project_hash: str) -> DocumentBackend:
        return self._document(self.config.pending_file(project_hash))

    def project_hashes(self) -> list[str]:
        """Hashes of every project with a context log."""
        contexts = self.config.contexts_dir
        if not contexts.is_dir():
            return []
        return sorted(p.stem for p in contexts.glob("*.jsonl"))

    # -------------------------------------------------------------------------
    # Reads (corrupt lines skipped, missing files empty)
    # -------------------------------------------------------------------------

    def errors(self) -> list[ErrorRecord]:
        return [ErrorRecord.from_dict(d) for d in self.errors_log.records()]

    def project_errors(self, project_hash: str) -> list[ErrorRecord]:
        return [ErrorRecord.from_dict(d) for d in self.project_log(project_hash).records()]

    def fixes(self) -> list[FixRecord]:
        return [FixRecord.from_dict(d) for d in self.fixes_log.records()]

    def error_count(self) -> int:
        return self.errors_log.count()

    def recorded_count(self) -> int:
        """Failures recorded since the last reset. Rotation never lowers it.

        Before the first tracked append the current log length stands in.
        """
        total = self.counter_doc.load().get("recorded")
        if isinstance(total, int) and not isinstance(total, bool):
            return total
        return self.errors_log.count()

    def is_duplicate(self, session: str, command: str) -> bool:
        """Was this (session, command) failure among the last few global records?"""
        for data in self.errors_log.tail(self.config.dedup_window):
            if data.get("session") == session and data.get("command") == command:
                return True
        return False

    # -------------------------------------------------------------------------
    # Appends
    # -------------------------------------------------------------------------

    def append_error(self, record: ErrorRecord) -> RecordPosition:
        """Append to the global and project logs, rotate both, return positions.

        The new record is unresolved and last in file order, and rotation
        keeps unresolved records in order, so after rotation it is the final
        line of each log.
        """
        payload = record.to_dict()
        project_log = self.project_log(record.project_hash)
        recorded = self.recorded_count() + 1

        self.errors_log.append(payload)
        project_log.append(payload)

        self.errors_log.rotate(self.config.max_errors)
        project_log.rotate(self.config.max_project_errors)
        self.counter_doc.save({"recorded": recorded})

        return RecordPosition(
            errors_line=self.errors_log.count(),
            project_line=project_log.count(),
            recorded=recorded,
        )

    def append_fix(self, record: FixRecord) -> None:
        self.fixes_log.append(record.to_dict())

    # -------------------------------------------------------------------------
    # In-place resolution
    # -------------------------------------------------------------------------

    def resolve(
        self,
        pending: PendingCorrelation,
        project_hash: str,
        fix_description: str,
        marker: str = "auto",
    ) -> bool:
        """Mark the pending failure as fixed in both logs.

        The remembered line position is tried first; if that line is no
        longer the pending record, the most recent unresolved record with the
        same timestamp and command is resolved instead.
        """

        def is_target(data: dict[str, Any]) -> bool:
            return (
                data.get("command") == pending.command
                and data.get("ts") == pending.ts
                and data.get("fixed") is not True
            )

        def apply(data: dict[str, Any]) -> bool:
            if not is_target(data):
                return False
            data["fixed"] = True
            data["fix_command"] = marker
            data["fix_description"] = fix_description
            return True

        resolved = False
        for log, position in (
            (self.errors_log, pending.errors_line),
            (self.project_log(project_hash), pending.project_line),
        ):
            if log.update_at(position, apply) or log.update_last(is_target, apply):
                resolved = True
            else:
                logger.debug("Pending record no longer present in %s", log.path)
        return resolved

    # -------------------------------------------------------------------------
    # Pending correlation
    # -------------------------------------------------------------------------

    def load_pending(self, project_hash: str) -> PendingCorrelation | None:
        data = self.pending_doc(project_hash).load()
        return PendingCorrelation.from_dict(data) if data else None

    def save_pending(self, project_hash: str, pending: PendingCorrelation) -> None:
        self.pending_doc(project_hash).save(pending.to_dict())

    def clear_pending(self, project_hash: str) -> None:
        self.pending_doc(project_hash).clear()

    # -------------------------------------------------------------------------
    # Derived artifact
    # -------------------------------------------------------------------------

    def load_patterns(self) -> PatternReport:
        data = self.patterns_doc.load()
        if not data:
            return PatternReport()
        try:
            return PatternReport.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed pattern report: %s", e)
            return PatternReport()

    def save_patterns(self, report: PatternReport) -> None:
        self.patterns_doc.save(report.to_dict())

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def purge_resolved(self, cutoff: datetime) -> dict[str, int]:
        """Drop resolved records older than ``cutoff`` from every error log.

        Returns removed counts keyed by log name. Empty project logs are
        deleted.
        """

        def keep(data: dict[str, Any]) -> bool:
            if data.get("fixed") is not True:
                return True
            moment = ErrorRecord.from_dict(data).timestamp
            return moment is None or moment >= cutoff

        removed = {"errors.jsonl": self.errors_log.filter(keep)}
        for project_hash in self.project_hashes():
            log = self.project_log(project_hash)
            count = log.filter(keep)
            if count:
                removed[log.path.name] = count
            if log.count() == 0:
                log.delete()
        return removed

    def reset(self) -> None:
        """Delete every data file. The data directory itself is kept."""
        self.patterns_doc.clear()
        self.counter_doc.clear()
        for path in (
            self.config.errors_file,
            self.config.fixes_file,
            self.config.preload_marker,
        ):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
        for directory in (self.config.contexts_dir, self.config.pending_dir):
            shutil.rmtree(directory, ignore_errors=True)
