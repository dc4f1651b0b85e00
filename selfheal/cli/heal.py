"""CLI commands for selfheal: hook entry points and maintenance."""

from __future__ import annotations

import logging
import os
import sys
from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from ..config import HealConfig
    from ..heal.models import PatternReport
    from ..storage import RecordStore

from .main import main

logger = logging.getLogger(__name__)


def _store(config: HealConfig) -> RecordStore:
    from ..storage import RecordStore

    return RecordStore(config)


# =============================================================================
# Hook entry points (must never fail the host)
# =============================================================================


@main.command()
@click.pass_obj
def capture(config: HealConfig) -> None:
    """Record one tool event read from stdin (PostToolUse hook).

    Prints known fixes and regression warnings for new failures. Always
    exits 0.
    """
    try:
        from ..heal.correlation import CorrelationEngine
        from ..heal.hooks import parse_hook_event

        raw = sys.stdin.read()
        result = CorrelationEngine(_store(config)).handle(parse_hook_event(raw))
    except Exception:
        logger.debug("capture failed", exc_info=True)
        return

    for line in result.advisories:
        click.echo(line)


@main.command()
@click.option(
    "--project",
    type=click.Path(file_okay=False),
    default=None,
    help="Project directory. Defaults to $CLAUDE_PROJECT_DIR or the current directory.",
)
@click.pass_obj
def inject(config: HealConfig, project: str | None) -> None:
    """Print the session-start digest for a project (SessionStart hook).

    Loads the seed knowledge on first use. Always exits 0.
    """
    from ..heal.composer import ContextComposer
    from ..heal.hooks import resolve_project_dir

    if project:
        project_dir = os.path.abspath(os.path.expanduser(project))
    else:
        project_dir = resolve_project_dir()

    store = _store(config)
    try:
        _ensure_preloaded(store)
    except OSError as e:
        logger.debug("Seed knowledge could not be loaded: %s", e)

    text = ContextComposer(store).compose(project_dir)
    if text:
        click.echo(text)


def _ensure_preloaded(store: RecordStore) -> None:
    from ..heal.analyzer import PatternAnalyzer
    from ..heal.preload import is_preloaded, preload

    if not is_preloaded(store) and preload(store):
        PatternAnalyzer(store).run()


# =============================================================================
# Analysis and seed knowledge
# =============================================================================


@main.command()
@click.pass_obj
def analyze(config: HealConfig) -> None:
    """Rebuild patterns.json from the recorded errors and fixes."""
    from ..heal.analyzer import PatternAnalyzer

    store = _store(config)
    report = PatternAnalyzer(store).run()
    if not report.total_errors:
        click.echo("No error records yet.")
        return
    _echo_report(report)
    click.echo(f"\nWrote {config.patterns_file}")


def _echo_report(report: PatternReport) -> None:
    click.echo(
        f"Errors: {report.total_errors}  |  "
        f"Fixed: {report.total_fixed} ({report.global_fix_rate:.0%})  |  "
        f"Patterns: {len(report.patterns)}"
    )

    for pattern in report.patterns[:5]:
        click.echo(
            f"  ({pattern.frequency}x, {pattern.fix_rate:.0%} fixed) "
            f"{pattern.error_pattern[:80]}"
        )

    sections = [
        ("Insights", report.global_insights),
        ("Frameworks", [i.message for i in report.framework_insights]),
        ("Cross-project", report.cross_project_insights),
    ]
    for title, lines in sections:
        if lines:
            click.echo(f"\n{title}:")
            for line in lines:
                click.echo(f"  - {line}")


@main.command(name="preload")
@click.pass_obj
def preload_command(config: HealConfig) -> None:
    """Load the common error/fix pairs (once)."""
    from ..heal.analyzer import PatternAnalyzer
    from ..heal.preload import preload

    store = _store(config)
    loaded = preload(store)
    if not loaded:
        click.echo("Seed knowledge already loaded.")
        return
    PatternAnalyzer(store).run()
    click.echo(f"Loaded {loaded} error/fix pairs.")


# =============================================================================
# Maintenance
# =============================================================================


@main.command()
@click.pass_obj
def stats(config: HealConfig) -> None:
    """Show what is stored in the data directory."""
    _echo_stats(config)


def _echo_stats(config: HealConfig) -> None:
    click.echo("=== Self-Healing Statistics ===\n")
    if not config.data_dir.is_dir():
        click.echo(f"No data directory: {config.data_dir}")
        return

    store = _store(config)
    errors = store.errors()
    if errors:
        fixed = sum(1 for r in errors if r.fixed)
        click.echo(f"Errors ({config.errors_file.name}):")
        click.echo(f"  Total: {len(errors)} ({_human_size(config.errors_file.stat().st_size)})")
        click.echo(f"  Resolved: {fixed}")
        click.echo(f"  Unresolved: {len(errors) - fixed}")
        click.echo("  Top categories:")
        for category, count in Counter(r.error_category for r in errors).most_common(5):
            click.echo(f"    - {category}: {count}")
    else:
        click.echo("Errors: no records yet")
    click.echo()

    if config.fixes_file.exists():
        size = _human_size(config.fixes_file.stat().st_size)
        click.echo(f"Fixes ({config.fixes_file.name}): {store.fixes_log.count()} records ({size})")
    else:
        click.echo("Fixes: no records yet")

    if config.patterns_file.exists():
        report = store.load_patterns()
        click.echo(
            f"Patterns: {len(report.patterns)} "
            f"(last analysis: {report.analyzed_at or '?'})"
        )
    else:
        click.echo("Patterns: not analyzed yet")
    click.echo()

    hashes = store.project_hashes()
    click.echo(f"Project contexts: {len(hashes)} projects")
    for project_hash in hashes:
        records = store.project_errors(project_hash)
        if not records:
            continue
        name = os.path.basename(records[0].project.rstrip("/")) or project_hash
        fixed = sum(1 for r in records if r.fixed)
        click.echo(f"  - {name}: {len(records)} errors, {fixed} resolved")
    click.echo()

    total = sum(p.stat().st_size for p in config.data_dir.rglob("*") if p.is_file())
    click.echo(f"Total disk usage: {_human_size(total)}")


def _human_size(size: float) -> str:
    for unit in ("B", "K", "M", "G"):
        if size < 1024 or unit == "G":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"


@main.command()
@click.option(
    "--old",
    is_flag=True,
    default=False,
    help="Delete resolved errors older than --days (default: show stats).",
)
@click.option(
    "--days",
    type=click.IntRange(min=0),
    default=None,
    help="Age cutoff in days. Defaults to the decay window (30).",
)
@click.pass_obj
def cleanup(config: HealConfig, old: bool, days: int | None) -> None:
    """Purge aged resolved errors. Unresolved errors are always kept."""
    if not old:
        _echo_stats(config)
        return

    from ..heal.models import utc_now

    days = config.decay_days if days is None else days
    store = _store(config)
    if not config.errors_file.exists():
        click.echo("Nothing to clean up.")
        return

    click.echo(f"Deleting resolved errors older than {days} days...")
    removed = store.purge_resolved(utc_now() - timedelta(days=days))
    click.echo(f"Done: {removed.pop('errors.jsonl', 0)} records removed from errors.jsonl")
    for name, count in removed.items():
        click.echo(f"  {name}: {count} records removed")


@main.command()
@click.option("--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_obj
def reset(config: HealConfig, yes: bool) -> None:
    """Delete all recorded errors, fixes, patterns and pending state."""
    if not yes:
        click.echo("WARNING: all self-healing data will be deleted:")
        click.echo("  - errors.jsonl, fixes.jsonl, patterns.json")
        click.echo("  - project-contexts/, pending/")
        click.echo("  - the seed knowledge marker")
        if not click.confirm("Continue?", default=False):
            click.echo("Cancelled.")
            return

    _store(config).reset()
    click.echo("All data deleted. Learning starts from scratch.")
