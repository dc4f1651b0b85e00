"""Pattern analysis: aggregate raw records into recurring signatures and insights.

The report is rebuilt from scratch on every run and written wholesale to
patterns.json. Raw records are only read, never changed.
"""

from __future__ import annotations

import logging
import os
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime

from ..storage import RecordStore
from .models import (
    ErrorRecord,
    FixRecord,
    FrameworkInsight,
    Pattern,
    PatternReport,
    Severity,
    format_ts,
    utc_now,
)
from .snippets import FIX_SNIPPET_CHARS, bounded, normalize_snippet

logger = logging.getLogger(__name__)

# Patterns kept per run, and the minimum group size to count as a pattern
_MAX_PATTERNS = 20
_MIN_FREQUENCY = 2
_MAX_ALTERNATIVE_FIXES = 5
_MAX_AFFECTED_PROJECTS = 5
_COMMON_FIX_CHARS = 200

# Global fix-rate commentary thresholds
_HIGH_FIX_RATE = 0.7
_LOW_FIX_RATE = 0.3

# Advisory triggers (strictly greater than)
_SEVERE_THRESHOLD = 5
_CATEGORY_THRESHOLD = 5
_SUB_CATEGORY_THRESHOLD = 3
_CROSS_CATEGORY_THRESHOLD = 3

# Only projects with at least this many records get a health score
_MIN_PROJECT_RECORDS = 3

_CATEGORY_ADVICE = {
    "runtime": "Runtime errors are frequent - use optional chaining and null checks",
    "type": "TypeScript type errors are frequent - review interface/type definitions",
}

_SUB_CATEGORY_ADVICE = {
    "null_reference": (
        "null_reference errors keep recurring - values coming from data flow lack null checks"
    ),
    "module_not_found": (
        "Module not found errors are frequent - check import paths and package dependencies"
    ),
}

_FRAMEWORK_ADVICE = {
    "nextjs": ("Next.js", "watch SSR/RSC boundaries and API route errors"),
    "react": ("React", "check state management and the rules of hooks"),
    "prisma": ("Prisma", "check schema sync and migration state"),
    "docker": ("Docker", "check the Dockerfile and compose configuration"),
    "python": ("Python", "watch for venv and dependency conflicts"),
}

_TEST_FRAMEWORKS = frozenset({"jest", "vitest"})


class PatternAnalyzer:
    """Builds a PatternReport from everything in a RecordStore."""

    def __init__(self, store: RecordStore, now: Callable[[], datetime] = utc_now):
        self.store = store
        self.now = now

    def analyze(self) -> PatternReport:
        errors = self.store.errors()
        now = self.now()
        report = PatternReport(analyzed_at=format_ts(now))
        if not errors:
            return report

        report.total_errors = len(errors)
        report.total_fixed = sum(1 for r in errors if r.fixed)

        # Phase 1: Recurring signatures
        report.patterns = _extract_patterns(errors, self.store.fixes(), now)

        # Phase 2: Insights at three zoom levels
        report.global_insights = _global_insights(errors)
        report.framework_insights = _framework_insights(errors)
        report.cross_project_insights = _cross_project_insights(self.store)

        return report

    def run(self) -> PatternReport:
        """Analyze and replace patterns.json. Nothing is written for an empty store."""
        report = self.analyze()
        if report.total_errors:
            self.store.save_patterns(report)
            logger.debug(
                "Wrote %d patterns to %s", len(report.patterns), self.store.config.patterns_file
            )
        return report


# =============================================================================
# Pattern Extraction
# =============================================================================


def _extract_patterns(
    errors: list[ErrorRecord], fixes: list[FixRecord], now: datetime
) -> list[Pattern]:
    """Group records by normalized snippet; keep the most frequent recurring ones."""
    groups: dict[str, list[ErrorRecord]] = defaultdict(list)
    for record in errors:
        signature = normalize_snippet(record.error_snippet)
        if signature:
            groups[signature].append(record)

    ranked = sorted(groups.items(), key=lambda item: -len(item[1]))
    recurring = [(sig, members) for sig, members in ranked if len(members) >= _MIN_FREQUENCY]

    return [
        _build_pattern(signature, members, fixes, now)
        for signature, members in recurring[:_MAX_PATTERNS]
    ]


def _build_pattern(
    signature: str, members: list[ErrorRecord], fixes: list[FixRecord], now: datetime
) -> Pattern:
    total = len(members)
    fixed = [r for r in members if r.fixed]

    last = _latest(members)
    last_moment = last.timestamp if last else None

    common_fix = next((r.fix_description for r in fixed if r.fix_description), "") or ""

    # FixRecords carry a truncated snippet, so compare truncated signatures
    fix_signatures = {
        normalize_snippet(bounded(r.error_snippet, FIX_SNIPPET_CHARS)) for r in members
    }
    alternatives = _distinct(
        f.fix_description
        for f in fixes
        if f.is_useful and normalize_snippet(f.error_snippet) in fix_signatures
    )

    return Pattern(
        error_pattern=signature,
        frequency=total,
        fix_rate=round(len(fixed) / total, 2),
        affected_projects=sorted({r.project for r in members if r.project})[
            :_MAX_AFFECTED_PROJECTS
        ],
        last_seen=last_moment.strftime("%Y-%m-%d") if last_moment else "unknown",
        recency_days=(now - last_moment).days if last_moment else None,
        framework=_dominant(r.framework for r in members if r.framework),
        severity=_dominant(r.severity for r in members) or Severity.MEDIUM.value,
        common_fix=bounded(common_fix, _COMMON_FIX_CHARS),
        alternative_fixes=alternatives[:_MAX_ALTERNATIVE_FIXES],
    )


# =============================================================================
# Global Insights
# =============================================================================


def _global_insights(errors: list[ErrorRecord]) -> list[str]:
    insights: list[str] = []
    total = len(errors)
    categories = Counter(r.error_category for r in errors)
    sub_categories = Counter(r.error_sub_category for r in errors if r.error_sub_category)
    severities = Counter(r.severity for r in errors)

    top_category, top_count = categories.most_common(1)[0]
    insights.append(f"Most frequent error category: {top_category} ({top_count} times)")

    fix_rate = sum(1 for r in errors if r.fixed) / total
    if fix_rate > _HIGH_FIX_RATE:
        insights.append(
            f"High fix rate ({_percent(fix_rate)}%) - errors are usually being resolved"
        )
    elif fix_rate < _LOW_FIX_RATE:
        insights.append(
            f"Low fix rate ({_percent(fix_rate)}%) - unresolved errors may be piling up"
        )

    severe = severities[Severity.CRITICAL.value] + severities[Severity.HIGH.value]
    if severe > _SEVERE_THRESHOLD:
        insights.append(
            f"Critical/high severity share: {severe * 100 // total}% ({severe}/{total})"
            " - needs priority attention"
        )

    for category, advice in _CATEGORY_ADVICE.items():
        if categories[category] > _CATEGORY_THRESHOLD:
            insights.append(advice)

    for sub_category, advice in _SUB_CATEGORY_ADVICE.items():
        if sub_categories[sub_category] > _SUB_CATEGORY_THRESHOLD:
            insights.append(advice)

    return insights


# =============================================================================
# Framework Insights
# =============================================================================


def _framework_insights(errors: list[ErrorRecord]) -> list[FrameworkInsight]:
    by_framework: dict[str, list[ErrorRecord]] = defaultdict(list)
    for record in errors:
        if record.framework:
            by_framework[record.framework].append(record)

    insights = []
    for framework, members in sorted(by_framework.items(), key=lambda item: -len(item[1])):
        count = len(members)
        if count < 2:
            continue
        fix_rate = sum(1 for r in members if r.fixed) / count
        insights.append(
            FrameworkInsight(
                framework=framework,
                count=count,
                fix_rate=round(fix_rate, 2),
                message=_framework_message(framework, members, fix_rate),
            )
        )
    return insights


def _framework_message(framework: str, members: list[ErrorRecord], fix_rate: float) -> str:
    count = len(members)
    pct = _percent(fix_rate)
    if framework in _FRAMEWORK_ADVICE:
        label, advice = _FRAMEWORK_ADVICE[framework]
        return f"{label}: {count} errors ({pct}% fixed) - {advice}"
    if framework in _TEST_FRAMEWORKS:
        return f"{framework}: {count} test errors ({pct}% fixed) - review mocks and assertions"
    top_sub = _dominant(r.error_sub_category for r in members if r.error_sub_category)
    suffix = f" - most common: {top_sub}" if top_sub else ""
    return f"{framework}: {count} errors ({pct}% fixed){suffix}"


# =============================================================================
# Cross-Project Insights
# =============================================================================


def _cross_project_insights(store: RecordStore) -> list[str]:
    """Shared categories and best/worst project health. Needs 2+ projects."""
    hashes = store.project_hashes()
    if len(hashes) < 2:
        return []

    insights: list[str] = []
    per_project = {h: store.project_errors(h) for h in hashes}

    categories = Counter(r.error_category for records in per_project.values() for r in records)
    if categories:
        top_category, top_count = categories.most_common(1)[0]
        if top_count > _CROSS_CATEGORY_THRESHOLD:
            insights.append(
                f"Common error across {len(hashes)} projects: {top_category} "
                f"({top_count} times) - may need a systematic fix"
            )

    best: tuple[str, int] | None = None
    worst: tuple[str, int] | None = None
    best_score, worst_score = 0, 100
    for records in per_project.values():
        if len(records) < _MIN_PROJECT_RECORDS:
            continue
        score = sum(1 for r in records if r.fixed) * 100 // len(records)
        name = os.path.basename(records[0].project.rstrip("/")) or records[0].project_hash
        if score > best_score:
            best_score, best = score, (name, score)
        if score < worst_score:
            worst_score, worst = score, (name, score)

    if best and worst and best[0] != worst[0]:
        insights.append(
            f"Best fix rate: {best[0]} ({best[1]}%), lowest: {worst[0]} ({worst[1]}%)"
        )
    return insights


# =============================================================================
# Helpers
# =============================================================================


def _latest(records: list[ErrorRecord]) -> ErrorRecord | None:
    dated = [r for r in records if r.timestamp is not None]
    if not dated:
        return None
    return max(dated, key=lambda r: r.timestamp)


def _dominant(values: Iterable[str]) -> str:
    counts = Counter(values)
    if not counts:
        return ""
    return counts.most_common(1)[0][0]


def _distinct(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _percent(rate: float) -> int:
    return int(round(rate * 100))
