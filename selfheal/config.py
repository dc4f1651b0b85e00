"""Central configuration for selfheal.

This is the SINGLE SOURCE OF TRUTH for storage locations and limits. Change
values here to change them across the whole package.

Usage:
    from selfheal.config import HEAL_DEFAULTS

    data_dir = HEAL_DEFAULTS.data_dir

    # Or use environment variables to override at runtime:
    # SELFHEAL_DATA_DIR=/tmp/heal
    # SELFHEAL_MAX_ERRORS=1000
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass
class HealConfig:
    """Storage layout and limits for the error/fix memory.

    Environment variables can override any default:
    - SELFHEAL_DATA_DIR
    - SELFHEAL_MAX_ERRORS
    - SELFHEAL_MAX_PROJECT_ERRORS
    - SELFHEAL_ANALYZE_INTERVAL
    - SELFHEAL_DECAY_DAYS

    Attributes:
        data_dir: Root directory for every persisted file.
            Default: ~/.claude/self-healing

        max_errors: Rotation ceiling (in records) for the global error log.

        max_project_errors: Rotation ceiling for each per-project error log.

        analyze_interval: Background analysis fires whenever the running
            count of recorded failures is an exact multiple of this value.

        decay_days: Resolved records older than this are hidden from the
            session digest (they stay on disk).

        dedup_window: How many trailing global records are checked for a
            duplicate (session, command) failure.
    """

    data_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("SELFHEAL_DATA_DIR", "~/.claude/self-healing")
        ).expanduser()
    )
    max_errors: int = field(default_factory=lambda: _env_int("SELFHEAL_MAX_ERRORS", 500))
    max_project_errors: int = field(
        default_factory=lambda: _env_int("SELFHEAL_MAX_PROJECT_ERRORS", 200)
    )
    analyze_interval: int = field(
        default_factory=lambda: _env_int("SELFHEAL_ANALYZE_INTERVAL", 20)
    )
    decay_days: int = field(default_factory=lambda: _env_int("SELFHEAL_DECAY_DAYS", 30))
    dedup_window: int = 5

    @property
    def errors_file(self) -> Path:
        return self.data_dir / "errors.jsonl"

    @property
    def fixes_file(self) -> Path:
        return self.data_dir / "fixes.jsonl"

    @property
    def patterns_file(self) -> Path:
        return self.data_dir / "patterns.json"

    @property
    def contexts_dir(self) -> Path:
        return self.data_dir / "project-contexts"

    @property
    def pending_dir(self) -> Path:
        return self.data_dir / "pending"

    @property
    def preload_marker(self) -> Path:
        return self.data_dir / ".preload_done"

    @property
    def counter_file(self) -> Path:
        return self.data_dir / ".error_count"

    def project_file(self, project_hash: str) -> Path:
        """Per-project error log for a project hash."""
        return self.contexts_dir / f"{project_hash}.jsonl"

    def pending_file(self, project_hash: str) -> Path:
        """Pending-correlation document for a project hash."""
        return self.pending_dir / f"{project_hash}.json"


# Singleton instance - import this to get defaults
HEAL_DEFAULTS = HealConfig()
