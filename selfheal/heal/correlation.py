"""Correlation engine: turns tool events into error records and fixes.

Per project scope the engine is a two-state machine:

    Idle ──(shell command fails)──────────────▶ AwaitingFix
    AwaitingFix ──(Edit/Write succeeds)───────▶ AwaitingFix  (operation tracked)
    AwaitingFix ──(another command fails)─────▶ AwaitingFix  (old target dropped)
    AwaitingFix ──(same command succeeds)─────▶ Idle         (fix recorded)

The state lives in the store as a PendingCorrelation document, read at the
start of every activation and rewritten or cleared at its end.

A fix is inferred purely from command equality after whitespace
normalization: if the command passes for an unrelated reason (a flaky
network, say), the interim edits still get the credit. The engine records
best-effort correlations, not proof of causality.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..storage import RecordStore
from .classifier import Classifier, severity_for
from .models import (
    CaptureOutcome,
    CaptureResult,
    ErrorCategory,
    ErrorRecord,
    FixProvenance,
    FixRecord,
    PendingCorrelation,
    ToolEvent,
    format_ts,
    utc_now,
)
from .snippets import (
    ADVISORY_CHARS,
    BASH_SNIPPET_CHARS,
    BASH_SNIPPET_LINES,
    EDIT_SNIPPET_CHARS,
    EDIT_SNIPPET_LINES,
    FIX_SNIPPET_CHARS,
    OPERATION_EXCERPT_CHARS,
    bounded,
    error_lines,
    extract_files,
    extract_stack_locations,
    has_error_indicator,
    normalize_command,
    project_hash,
    tail_snippet,
)
from .trigger import AnalysisTrigger, should_analyze, spawn_analysis

logger = logging.getLogger(__name__)

_SHELL_TOOLS = frozenset({"Bash", "bash"})
_EDIT_TOOLS = frozenset({"Edit", "MultiEdit", "Write", "edit", "write"})

_MAX_INSTANT_FIXES = 5
_MAX_CATEGORY_FIXES = 3

_ADVISORY_PREFIX = "[Self-Healing]"


class CorrelationEngine:
    """Decides whether an event is a new failure, a duplicate, an interim edit or a fix."""

    def __init__(
        self,
        store: RecordStore,
        classifier: Classifier | None = None,
        trigger: AnalysisTrigger | None = spawn_analysis,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.classifier = classifier or Classifier()
        self.trigger = trigger
        self.now = now

    def handle(self, event: ToolEvent | None) -> CaptureResult:
        """Process one tool event. Never raises."""
        if event is None:
            return CaptureResult(CaptureOutcome.IGNORED)
        try:
            return self._dispatch(event)
        except Exception:
            logger.debug("Capture failed for %s event", event.tool_name, exc_info=True)
            return CaptureResult(CaptureOutcome.IGNORED)

    def _dispatch(self, event: ToolEvent) -> CaptureResult:
        if not event.project_dir:
            return CaptureResult(CaptureOutcome.IGNORED)
        scope = project_hash(event.project_dir)

        if event.tool_name in _EDIT_TOOLS:
            return self._handle_edit(event, scope)

        if event.tool_name in _SHELL_TOOLS:
            if event.failed and event.command.strip():
                return self._record_failure(event, scope)
            if not event.failed:
                return self._detect_fix(event, scope)

        return CaptureResult(CaptureOutcome.IGNORED)

    # =========================================================================
    # Idle/AwaitingFix → AwaitingFix: a shell command failed
    # =========================================================================

    def _record_failure(self, event: ToolEvent, scope: str) -> CaptureResult:
        command = event.command
        if self.store.is_duplicate(event.session_id, command):
            return CaptureResult(CaptureOutcome.DUPLICATE)

        snippet = tail_snippet(event.tool_output, BASH_SNIPPET_LINES, BASH_SNIPPET_CHARS)
        classification = self.classifier.classify(snippet, command)

        record = ErrorRecord(
            ts=format_ts(self.now()),
            session=event.session_id,
            project=event.project_dir,
            project_hash=scope,
            tool=event.tool_name,
            command=command,
            exit_code=event.exit_code,
            error_snippet=snippet,
            error_category=classification.category,
            error_sub_category=classification.sub_category,
            framework=classification.framework,
            severity=classification.severity,
            context_files=extract_files(f"{command} {snippet}", 5),
            stack_locations=extract_stack_locations(snippet, 3),
        )
        position = self.store.append_error(record)

        # Any previous pending failure is superseded here
        self.store.save_pending(
            scope,
            PendingCorrelation(
                command=command,
                ts=record.ts,
                errors_line=position.errors_line,
                project_line=position.project_line,
                error_category=record.error_category,
                error_sub_category=record.error_sub_category,
                framework=record.framework,
                severity=record.severity,
                error_snippet=snippet,
            ),
        )
        logger.debug("Recorded %s failure for %r", "/".join(record.category_key), command)

        self._maybe_analyze(position.recorded)

        advisories = self._instant_fixes(record) + self._regression_warning(record)
        return CaptureResult(CaptureOutcome.RECORDED, advisories=advisories, record=record)

    def _maybe_analyze(self, recorded: int) -> None:
        if self.trigger is None:
            return
        if should_analyze(recorded, self.store.config.analyze_interval):
            self.trigger(self.store.config.data_dir)

    def _instant_fixes(self, record: ErrorRecord) -> list[str]:
        """Known solutions for the same category/sub-category, most recent first."""
        fixes = [f for f in reversed(self.store.fixes()) if f.is_useful]

        known: list[str] = []
        if record.error_sub_category:
            known = _distinct(
                f.fix_description
                for f in fixes
                if f.error_category == record.error_category
                and f.error_sub_category == record.error_sub_category
            )[:_MAX_INSTANT_FIXES]
        if not known:
            known = _distinct(
                f.fix_description for f in fixes if f.error_category == record.error_category
            )[:_MAX_CATEGORY_FIXES]
        if not known:
            return []

        lines = [f"{_ADVISORY_PREFIX} Known {len(known)} solution(s) for this error type:"]
        lines.extend(f"  -> {bounded(fix, ADVISORY_CHARS)}" for fix in known)
        return lines

    def _regression_warning(self, record: ErrorRecord) -> list[str]:
        """Warn when this exact failure was resolved before."""
        previous = None
        for candidate in self.store.errors():
            if (
                candidate.fixed
                and candidate.command == record.command
                and candidate.category_key == record.category_key
            ):
                previous = candidate
        if previous is None:
            return []
        return [
            f"{_ADVISORY_PREFIX} REGRESSION WARNING: This error was previously resolved!",
            f"  Previous solution: {bounded(previous.fix_description or '(no info)', ADVISORY_CHARS)}",
            "  The same solution can be reapplied or a permanent fix may be needed.",
        ]

    # =========================================================================
    # Edit/Write: interim operations, or edit failures of their own
    # =========================================================================

    def _handle_edit(self, event: ToolEvent, scope: str) -> CaptureResult:
        path = event.file_path
        if not path:
            return CaptureResult(CaptureOutcome.IGNORED)

        if event.failed:
            snippet = tail_snippet(event.tool_output, EDIT_SNIPPET_LINES, EDIT_SNIPPET_CHARS)
            return self._record_edit_failure(event, scope, snippet)
        # The path itself may contain words like "error"
        output = event.tool_output.replace(path, "")
        if has_error_indicator(output):
            snippet = error_lines(output, EDIT_SNIPPET_LINES, EDIT_SNIPPET_CHARS)
            return self._record_edit_failure(event, scope, snippet)

        pending = self.store.load_pending(scope)
        if pending is None:
            return CaptureResult(CaptureOutcome.IGNORED)
        pending.track(_operation_summary(event))
        self.store.save_pending(scope, pending)
        return CaptureResult(CaptureOutcome.OPERATION_TRACKED)

    def _record_edit_failure(self, event: ToolEvent, scope: str, snippet: str) -> CaptureResult:
        """Edit/Write failures are remembered but never become correlation targets."""
        path = event.file_path
        if self.store.is_duplicate(event.session_id, path):
            return CaptureResult(CaptureOutcome.DUPLICATE)

        is_write = event.tool_name.lower() == "write"
        record = ErrorRecord(
            ts=format_ts(self.now()),
            session=event.session_id,
            project=event.project_dir,
            project_hash=scope,
            tool=event.tool_name,
            command=path,
            exit_code=event.exit_code or 1,
            error_snippet=snippet,
            error_category=ErrorCategory.EDIT.value,
            error_sub_category="write_failed" if is_write else "edit_failed",
            severity=severity_for(ErrorCategory.EDIT),
            context_files=[path],
        )
        position = self.store.append_error(record)
        self._maybe_analyze(position.recorded)
        return CaptureResult(CaptureOutcome.RECORDED, record=record)

    # =========================================================================
    # AwaitingFix → Idle: the failing command now succeeds
    # =========================================================================

    def _detect_fix(self, event: ToolEvent, scope: str) -> CaptureResult:
        pending = self.store.load_pending(scope)
        if pending is None:
            return CaptureResult(CaptureOutcome.IGNORED)

        command = normalize_command(event.command)
        if not command or command != normalize_command(pending.command):
            return CaptureResult(CaptureOutcome.IGNORED)

        description = pending.fix_description()
        self.store.resolve(pending, scope, description, marker="auto")

        fix = FixRecord(
            ts=format_ts(self.now()),
            session=event.session_id,
            project=event.project_dir,
            project_hash=scope,
            command=event.command,
            original_error_ts=pending.ts,
            error_category=pending.error_category,
            error_sub_category=pending.error_sub_category,
            framework=pending.framework,
            severity=pending.severity,
            error_snippet=bounded(pending.error_snippet, FIX_SNIPPET_CHARS),
            fix_description=description,
            fix_files=extract_files("\n".join(pending.operations), 10),
            type=FixProvenance.AUTO.value,
        )
        self.store.append_fix(fix)
        self.store.clear_pending(scope)
        logger.debug("Fix detected for %r: %s", pending.command, description)
        return CaptureResult(CaptureOutcome.FIXED, fix=fix)


# =============================================================================
# Helpers
# =============================================================================


def _operation_summary(event: ToolEvent) -> str:
    """One-line description of a successful Edit/Write."""
    path = event.file_path
    old = event.tool_input.get("old_string")
    new = event.tool_input.get("new_string")
    if event.tool_name.lower() == "edit" and isinstance(old, str) and old:
        new = new if isinstance(new, str) else ""
        old_text = bounded(normalize_command(old), OPERATION_EXCERPT_CHARS)
        new_text = bounded(normalize_command(new), OPERATION_EXCERPT_CHARS)
        return f"{event.tool_name}: {path} ({old_text} -> {new_text})"
    return f"{event.tool_name}: {path}"


def _distinct(values) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
