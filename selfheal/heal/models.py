"""Data models for selfheal: records, correlation state and derived patterns.

Every persisted model serializes to a flat dict whose keys are the on-disk
field names. ``from_dict`` is tolerant: missing keys fall back to defaults so
an older or partially written line still loads.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Fix description used when no Edit/Write happened between failure and fix
NO_OPERATIONS_SENTINEL = "(intermediate operations not recorded)"

# =============================================================================
# Classification Vocabulary
# =============================================================================


class ErrorCategory(str, Enum):
    """Closed set of top-level failure categories."""

    RUNTIME = "runtime"
    TYPE = "type"
    BUILD = "build"
    DEPENDENCY = "dependency"
    MODULE = "module"
    TEST = "test"
    LINT = "lint"
    PERMISSION = "permission"
    SYNTAX = "syntax"
    NETWORK = "network"
    CONFIG = "config"
    DOCKER = "docker"
    EDIT = "edit"
    GIT = "git"
    DATABASE = "database"
    MEMORY = "memory"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Ordinal urgency tag."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_SEVERITY_RANK = {"critical": 1, "high": 2, "medium": 3, "low": 4}


def severity_rank(value: str) -> int:
    """Sort key for a stored severity string; unknown values sort last."""
    return _SEVERITY_RANK.get(value, 5)


class FixProvenance(str, Enum):
    """How a fix was discovered."""

    AUTO = "auto_fix_detected"
    PRELOADED = "preloaded"


class CaptureOutcome(str, Enum):
    """What the correlation engine did with one tool event."""

    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    RECORDED = "recorded"
    OPERATION_TRACKED = "operation_tracked"
    FIXED = "fixed"


@dataclass(frozen=True)
class Classification:
    """Classifier output for one failure."""

    category: str
    sub_category: str = ""
    framework: str = ""
    severity: str = Severity.MEDIUM.value


# =============================================================================
# Time helpers
# =============================================================================


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_ts(value: str) -> datetime | None:
    """Parse a stored timestamp; ``None`` when absent or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


# =============================================================================
# Host Event
# =============================================================================


@dataclass
class ToolEvent:
    """A single tool execution reported by the agent host."""

    tool_name: str
    exit_code: int
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_output: str = ""
    session_id: str = ""
    project_dir: str = ""

    @property
    def command(self) -> str:
        value = self.tool_input.get("command", "")
        return value if isinstance(value, str) else ""

    @property
    def file_path(self) -> str:
        value = self.tool_input.get("file_path", "")
        return value if isinstance(value, str) else ""

    @property
    def failed(self) -> bool:
        return self.exit_code != 0


# =============================================================================
# Persisted Records
# =============================================================================


@dataclass
class ErrorRecord:
    """One observed failure."""

    ts: str
    session: str
    project: str
    project_hash: str
    tool: str
    command: str
    exit_code: int = 1
    error_snippet: str = ""
    error_category: str = ErrorCategory.UNKNOWN.value
    error_sub_category: str = ""
    framework: str = ""
    severity: str = Severity.MEDIUM.value
    context_files: list[str] = field(default_factory=list)
    stack_locations: list[str] = field(default_factory=list)
    fixed: bool = False
    fix_command: str | None = None
    fix_description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorRecord:
        return cls(
            ts=str(data.get("ts") or ""),
            session=str(data.get("session") or ""),
            project=str(data.get("project") or ""),
            project_hash=str(data.get("project_hash") or ""),
            tool=str(data.get("tool") or ""),
            command=str(data.get("command") or ""),
            exit_code=_as_int(data.get("exit_code"), 1),
            error_snippet=str(data.get("error_snippet") or ""),
            error_category=str(data.get("error_category") or ErrorCategory.UNKNOWN.value),
            error_sub_category=str(data.get("error_sub_category") or ""),
            framework=str(data.get("framework") or ""),
            severity=str(data.get("severity") or Severity.MEDIUM.value),
            context_files=_as_str_list(data.get("context_files")),
            stack_locations=_as_str_list(data.get("stack_locations")),
            fixed=data.get("fixed") is True,
            fix_command=data.get("fix_command"),
            fix_description=data.get("fix_description"),
        )

    @property
    def timestamp(self) -> datetime | None:
        return parse_ts(self.ts)

    @property
    def category_key(self) -> tuple[str, str]:
        return (self.error_category, self.error_sub_category)


@dataclass
class FixRecord:
    """One observed remediation, denormalized from its error."""

    ts: str
    session: str
    project: str
    project_hash: str
    command: str
    original_error_ts: str = ""
    error_category: str = ErrorCategory.UNKNOWN.value
    error_sub_category: str = ""
    framework: str = ""
    severity: str = Severity.MEDIUM.value
    error_snippet: str = ""
    fix_description: str = ""
    fix_files: list[str] = field(default_factory=list)
    type: str = FixProvenance.AUTO.value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixRecord:
        return cls(
            ts=str(data.get("ts") or ""),
            session=str(data.get("session") or ""),
            project=str(data.get("project") or ""),
            project_hash=str(data.get("project_hash") or ""),
            command=str(data.get("command") or ""),
            original_error_ts=str(data.get("original_error_ts") or ""),
            error_category=str(data.get("error_category") or ErrorCategory.UNKNOWN.value),
            error_sub_category=str(data.get("error_sub_category") or ""),
            framework=str(data.get("framework") or ""),
            severity=str(data.get("severity") or Severity.MEDIUM.value),
            error_snippet=str(data.get("error_snippet") or ""),
            fix_description=str(data.get("fix_description") or ""),
            fix_files=_as_str_list(data.get("fix_files")),
            type=str(data.get("type") or FixProvenance.AUTO.value),
        )

    @property
    def is_useful(self) -> bool:
        """Has a real description (not empty, not the no-operations sentinel)."""
        return bool(self.fix_description) and self.fix_description != NO_OPERATIONS_SENTINEL

    @property
    def timestamp(self) -> datetime | None:
        return parse_ts(self.ts)


@dataclass(frozen=True)
class RecordPosition:
    """1-based line positions of one ErrorRecord in the global and project logs.

    ``recorded`` is the running failure count after this append.
    """

    errors_line: int
    project_line: int
    recorded: int = 0


# =============================================================================
# Correlation State
# =============================================================================

# How many operation summaries are kept verbatim
MAX_PENDING_OPERATIONS = 5


@dataclass
class PendingCorrelation:
    """The single outstanding failure a project scope is waiting to see fixed."""

    command: str
    ts: str
    errors_line: int
    project_line: int
    error_category: str = ErrorCategory.UNKNOWN.value
    error_sub_category: str = ""
    framework: str = ""
    severity: str = Severity.MEDIUM.value
    error_snippet: str = ""
    operations: list[str] = field(default_factory=list)
    operation_count: int = 0

    def track(self, summary: str) -> None:
        """Remember an interim Edit/Write; only the first few are kept verbatim."""
        self.operation_count += 1
        if len(self.operations) < MAX_PENDING_OPERATIONS:
            self.operations.append(summary)

    def fix_description(self) -> str:
        """Describe the fix from the operations seen since the failure."""
        if not self.operations:
            return NO_OPERATIONS_SENTINEL
        if self.operation_count <= MAX_PENDING_OPERATIONS:
            return "; ".join(self.operations)
        shown = self.operations[:3]
        remaining = self.operation_count - len(shown)
        return "; ".join(shown) + f"; ... and {remaining} more operations"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingCorrelation | None:
        command = data.get("command")
        if not isinstance(command, str) or not command:
            return None
        operations = _as_str_list(data.get("operations"))
        return cls(
            command=command,
            ts=str(data.get("ts") or ""),
            errors_line=_as_int(data.get("errors_line"), 0),
            project_line=_as_int(data.get("project_line"), 0),
            error_category=str(data.get("error_category") or ErrorCategory.UNKNOWN.value),
            error_sub_category=str(data.get("error_sub_category") or ""),
            framework=str(data.get("framework") or ""),
            severity=str(data.get("severity") or Severity.MEDIUM.value),
            error_snippet=str(data.get("error_snippet") or ""),
            operations=operations,
            operation_count=max(_as_int(data.get("operation_count"), 0), len(operations)),
        )


@dataclass
class CaptureResult:
    """Outcome of one capture activation, plus advisory lines for stdout."""

    outcome: CaptureOutcome
    advisories: list[str] = field(default_factory=list)
    record: ErrorRecord | None = None
    fix: FixRecord | None = None


# =============================================================================
# Analysis Output Models
# =============================================================================


@dataclass
class Pattern:
    """A recurring normalized error signature."""

    error_pattern: str
    frequency: int
    fix_rate: float
    affected_projects: list[str] = field(default_factory=list)
    last_seen: str = ""
    recency_days: int | None = None
    framework: str = ""
    severity: str = Severity.MEDIUM.value
    common_fix: str = ""
    alternative_fixes: list[str] = field(default_factory=list)


@dataclass
class FrameworkInsight:
    """Per-framework aggregate with a canned advisory."""

    framework: str
    count: int
    fix_rate: float
    message: str


@dataclass
class PatternReport:
    """Complete output of one analysis run (the patterns.json document)."""

    patterns: list[Pattern] = field(default_factory=list)
    global_insights: list[str] = field(default_factory=list)
    framework_insights: list[FrameworkInsight] = field(default_factory=list)
    cross_project_insights: list[str] = field(default_factory=list)
    total_errors: int = 0
    total_fixed: int = 0
    analyzed_at: str = ""

    @property
    def global_fix_rate(self) -> float:
        if not self.total_errors:
            return 0.0
        return round(self.total_fixed / self.total_errors, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "patterns": [asdict(p) for p in self.patterns],
            "global_insights": list(self.global_insights),
            "framework_insights": [asdict(f) for f in self.framework_insights],
            "cross_project_insights": list(self.cross_project_insights),
            "stats": {
                "total_errors": self.total_errors,
                "total_fixed": self.total_fixed,
                "global_fix_rate": self.global_fix_rate,
                "analyzed_at": self.analyzed_at,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternReport:
        """Rebuild a report from patterns.json; unknown shapes are dropped."""
        report = cls()
        for item in data.get("patterns") or []:
            if isinstance(item, dict) and item.get("error_pattern"):
                report.patterns.append(
                    Pattern(
                        error_pattern=str(item["error_pattern"]),
                        frequency=_as_int(item.get("frequency"), 0),
                        fix_rate=float(item.get("fix_rate") or 0.0),
                        affected_projects=_as_str_list(item.get("affected_projects")),
                        last_seen=str(item.get("last_seen") or ""),
                        recency_days=item.get("recency_days"),
                        framework=str(item.get("framework") or ""),
                        severity=str(item.get("severity") or Severity.MEDIUM.value),
                        common_fix=str(item.get("common_fix") or ""),
                        alternative_fixes=_as_str_list(item.get("alternative_fixes")),
                    )
                )
        report.global_insights = _as_str_list(data.get("global_insights"))
        for item in data.get("framework_insights") or []:
            if isinstance(item, dict) and item.get("framework"):
                report.framework_insights.append(
                    FrameworkInsight(
                        framework=str(item["framework"]),
                        count=_as_int(item.get("count"), 0),
                        fix_rate=float(item.get("fix_rate") or 0.0),
                        message=str(item.get("message") or ""),
                    )
                )
        report.cross_project_insights = _as_str_list(data.get("cross_project_insights"))
        stats = data.get("stats") or {}
        if isinstance(stats, dict):
            report.total_errors = _as_int(stats.get("total_errors"), 0)
            report.total_fixed = _as_int(stats.get("total_fixed"), 0)
            report.analyzed_at = str(stats.get("analyzed_at") or "")
        return report


# =============================================================================
# Helpers
# =============================================================================


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]
