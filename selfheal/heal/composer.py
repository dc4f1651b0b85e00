"""Session-start digest: what the agent should know before it starts working.

Output is plain text, every section capped to a fixed number of lines, so the
digest stays small no matter how large the store grows. Resolved records
older than the decay window are never shown; open ones are shown at any age.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from ..storage import RecordStore
from .models import (
    ErrorRecord,
    FixProvenance,
    FixRecord,
    PatternReport,
    severity_rank,
    utc_now,
)
from .snippets import bounded, first_line, project_hash

logger = logging.getLogger(__name__)

_HEADER = "[Self-Healing Context]"
_FOOTER = "[/Self-Healing Context]"

# Section caps
_MAX_OPEN_ISSUES = 7
_MAX_KNOWN_FIXES = 2
_MAX_RECENTLY_RESOLVED = 3
_MAX_CROSS_PROJECT = 5
_MAX_FRAMEWORK_NOTES = 3
_MAX_LESSONS = 3
_MAX_PRIORITY = 3
_MAX_DISTRIBUTION = 5
_MAX_FRAMEWORK_DISTRIBUTION = 3
_MAX_RECURRING = 3

_SNIPPET_CHARS = 120
_COMMAND_CHARS = 80
_FIX_CHARS = 180
_PRIORITY_CHARS = 80

_SEVERITY_ICONS = {"critical": "[!!!]", "high": "[!!]", "medium": "[!]"}


class ContextComposer:
    """Renders the bounded digest for one project."""

    def __init__(
        self,
        store: RecordStore,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.now = now

    def compose(self, project_dir: str) -> str:
        """Digest text for ``project_dir``; empty string when there is nothing to say."""
        try:
            lines = self._compose(project_dir)
        except Exception:
            logger.debug("Failed to compose context for %s", project_dir, exc_info=True)
            return ""
        return "\n".join(lines)

    def _compose(self, project_dir: str) -> list[str]:
        scope = project_hash(project_dir)
        global_records = self.store.errors()
        project_records = self.store.project_errors(scope)

        if not global_records and not project_records:
            return []

        self._cutoff = self.now() - timedelta(days=self.store.config.decay_days)
        name = _project_name(project_dir)
        patterns = self.store.load_patterns()
        unresolved = [r for r in project_records if not r.fixed]

        if not project_records:
            return self._no_history(name, global_records)
        if not unresolved:
            return self._health_summary(name, project_records, patterns)
        return self._detailed(
            project_dir, scope, project_records, unresolved, patterns, global_records
        )

    # =========================================================================
    # Short forms
    # =========================================================================

    def _no_history(self, name: str, global_records: list[ErrorRecord]) -> list[str]:
        lines = [f"[Self-Healing] No project-specific history for {name} yet."]
        severe = Counter(
            first_line(r.error_snippet, _PRIORITY_CHARS)
            for r in global_records
            if not r.fixed and severity_rank(r.severity) <= 2 and r.error_snippet
        )
        for snippet, count in severe.most_common(_MAX_PRIORITY):
            lines.append(f"  Priority elsewhere: ({count}x) {snippet}")
        return lines

    def _health_summary(
        self, name: str, records: list[ErrorRecord], patterns: PatternReport
    ) -> list[str]:
        total = len(records)
        fixed = sum(1 for r in records if r.fixed)
        lines = [
            f"[Self-Healing] {name}: {total} past errors, {fixed}/{total} fixed "
            f"({fixed * 100 // total}%) - no open issues."
        ]
        frameworks = {r.framework for r in records if r.framework}
        lines.extend(_format_framework_notes(patterns, frameworks))
        return lines

    # =========================================================================
    # Detailed digest
    # =========================================================================

    def _detailed(
        self,
        project_dir: str,
        scope: str,
        records: list[ErrorRecord],
        unresolved: list[ErrorRecord],
        patterns: PatternReport,
        global_records: list[ErrorRecord],
    ) -> list[str]:
        fixes = [
            f for f in reversed(self.store.fixes()) if f.is_useful and not self._decayed_fix(f)
        ]
        ordered = _rank_by_severity(unresolved)
        ranked = ordered[:_MAX_OPEN_ISSUES]

        lines = [_HEADER, f"Open issues from past sessions in this project ({project_dir}):"]
        for index, record in enumerate(ranked, start=1):
            lines.append(f"{index}. {_format_record(record)}")
            for fix in _known_fixes(fixes, record)[:_MAX_KNOWN_FIXES]:
                lines.append(f"   Known fix: {bounded(fix, _FIX_CHARS)}")

        resolved = [r for r in reversed(records) if r.fixed and not self._decayed(r)]
        if resolved:
            lines.append("Recently resolved:")
            for record in resolved[:_MAX_RECENTLY_RESOLVED]:
                lines.append(
                    f"  - [{_category_label(record)}] `{bounded(record.command, _COMMAND_CHARS)}`"
                    f" -> {bounded(record.fix_description or '', _FIX_CHARS)}"
                )

        total = len(records)
        fixed = total - len(unresolved)
        lines.append(
            f"History: {total} errors, {fixed} fixed ({fixed * 100 // total}%), "
            f"{len(unresolved)} open"
        )
        lines.extend(_distribution(records))
        lines.extend(_recurring(global_records))

        cross = self._cross_project(scope, ordered)
        if cross:
            lines.append("Lessons from other projects:")
            lines.extend(cross)

        frameworks = {r.framework for r in unresolved if r.framework}
        notes = _format_framework_notes(patterns, frameworks)
        if notes:
            lines.append("Framework notes:")
            lines.extend(notes)

        if patterns.global_insights:
            lines.append("Learned lessons (pattern analysis):")
            lines.extend(f"  - {i}" for i in patterns.global_insights[:_MAX_LESSONS])

        lines.extend(self._weekly_trend(records))
        lines.append(_FOOTER)
        return lines

    def _cross_project(self, scope: str, unresolved: list[ErrorRecord]) -> list[str]:
        """One resolved example per open (category, sub-category) from other projects."""
        wanted: list[tuple[str, str]] = []
        for record in unresolved:
            if record.category_key not in wanted:
                wanted.append(record.category_key)
        if not wanted:
            return []

        examples: dict[tuple[str, str], ErrorRecord] = {}
        for other in self.store.project_hashes():
            if other == scope:
                continue
            for record in self.store.project_errors(other):
                if (
                    record.fixed
                    and record.fix_description
                    and record.category_key in wanted
                    and not self._decayed(record)
                ):
                    current = examples.get(record.category_key)
                    if current is None or record.ts >= current.ts:
                        examples[record.category_key] = record

        lines = []
        for key in wanted:
            example = examples.get(key)
            if example is None:
                continue
            lines.append(
                f"  - [{_category_label(example)}] fixed in {_project_name(example.project)}: "
                f"{bounded(example.fix_description or '', _FIX_CHARS)}"
            )
            if len(lines) >= _MAX_CROSS_PROJECT:
                break
        return lines

    def _weekly_trend(self, records: list[ErrorRecord]) -> list[str]:
        now = self.now()
        week_ago = now - timedelta(days=7)
        two_weeks_ago = now - timedelta(days=14)

        this_week = [r for r in records if r.timestamp and r.timestamp >= week_ago]
        last_week = [
            r for r in records if r.timestamp and two_weeks_ago <= r.timestamp < week_ago
        ]
        if not this_week and not last_week:
            return []

        current, previous = len(this_week), len(last_week)
        if not previous:
            trend = f"this week {current} errors (no data for last week)"
        elif current < previous:
            pct = (previous - current) * 100 // previous
            trend = f"this week {current}, last week {previous} ({pct}% decrease - improving)"
        elif current > previous:
            pct = (current - previous) * 100 // previous
            trend = (
                f"this week {current}, last week {previous} "
                f"({pct}% increase - attention needed)"
            )
        else:
            trend = f"this week {current}, last week {previous} (no change)"

        lines = [f"Weekly trend: {trend}"]
        if current:
            fixed = sum(1 for r in this_week if r.fixed)
            lines.append(f"  This week's fix rate: {fixed * 100 // current}%")
        return lines

    # =========================================================================
    # Decay
    # =========================================================================

    def _decayed(self, record: ErrorRecord) -> bool:
        """Resolved and older than the decay window. Open records never decay."""
        if not record.fixed:
            return False
        moment = record.timestamp
        return moment is not None and moment < self._cutoff

    def _decayed_fix(self, fix: FixRecord) -> bool:
        if fix.type == FixProvenance.PRELOADED.value:
            return False
        moment = fix.timestamp
        return moment is not None and moment < self._cutoff


# =============================================================================
# Formatting helpers
# =============================================================================


def _rank_by_severity(records: list[ErrorRecord]) -> list[ErrorRecord]:
    """critical > high > medium > low > unknown; newest first within a level."""
    indexed = list(enumerate(records))
    indexed.sort(key=lambda item: (severity_rank(item[1].severity), -item[0]))
    return [record for _, record in indexed]


def _known_fixes(fixes: list[FixRecord], record: ErrorRecord) -> list[str]:
    if record.error_category == "unknown":
        return []
    seen: list[str] = []
    for fix in fixes:
        if (
            fix.error_category == record.error_category
            and fix.error_sub_category == record.error_sub_category
            and fix.fix_description not in seen
        ):
            seen.append(fix.fix_description)
    return seen


def _format_record(record: ErrorRecord) -> str:
    icon = _SEVERITY_ICONS.get(record.severity, "[-]")
    framework = f" ({record.framework})" if record.framework else ""
    locations = ", ".join(record.stack_locations[:2])
    where = f" @ {locations}" if locations else ""
    return (
        f"{icon} [{_category_label(record)}]{framework} "
        f"`{bounded(record.command, _COMMAND_CHARS)}`{where} -> "
        f"{first_line(record.error_snippet, _SNIPPET_CHARS) or '?'}"
    )


def _distribution(records: list[ErrorRecord]) -> list[str]:
    """Top (category, severity) pairs and frameworks for one project."""
    pairs = Counter((r.error_category, r.severity) for r in records)
    lines = ["Error distribution:"]
    lines.extend(
        f"  - {category} ({severity}): {count}x"
        for (category, severity), count in pairs.most_common(_MAX_DISTRIBUTION)
    )
    frameworks = Counter(r.framework for r in records if r.framework)
    if frameworks:
        lines.append("  Framework distribution:")
        lines.extend(
            f"    - {framework}: {count} errors"
            for framework, count in frameworks.most_common(_MAX_FRAMEWORK_DISTRIBUTION)
        )
    return lines


def _recurring(records: list[ErrorRecord]) -> list[str]:
    """Open snippets seen more than once anywhere."""
    snippets = Counter(
        first_line(r.error_snippet, _PRIORITY_CHARS)
        for r in records
        if not r.fixed and r.error_snippet
    )
    repeated = [(s, n) for s, n in snippets.most_common() if n > 1][:_MAX_RECURRING]
    if not repeated:
        return []
    return ["Recurring unresolved errors:"] + [f"  - ({n}x) {s}" for s, n in repeated]


def _format_framework_notes(patterns: PatternReport, frameworks: set[str]) -> list[str]:
    notes = [
        f"  - {insight.message}"
        for insight in patterns.framework_insights
        if insight.framework in frameworks and insight.message
    ]
    return notes[:_MAX_FRAMEWORK_NOTES]


def _category_label(record: ErrorRecord) -> str:
    if record.error_sub_category:
        return f"{record.error_category}/{record.error_sub_category}"
    return record.error_category


def _project_name(project_dir: str) -> str:
    return os.path.basename(project_dir.rstrip("/")) or project_dir or "?"
