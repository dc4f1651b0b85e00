"""Tests for the correlation engine: failure capture, fix inference, advisories.

Covers the full capture loop end to end against a real on-disk store:
failure → interim edits → same command passes → fix recorded.
"""

from __future__ import annotations

from datetime import datetime, timezone

from selfheal.config import HealConfig
from selfheal.heal.correlation import CorrelationEngine
from selfheal.heal.models import NO_OPERATIONS_SENTINEL, CaptureOutcome, ToolEvent
from selfheal.heal.snippets import project_hash
from selfheal.storage import RecordStore

SHOP = "/work/shop"
BLOG = "/work/blog"

NULL_REF_OUTPUT = (
    "> shop@1.0.0 build\n"
    "TypeError: Cannot read properties of undefined (reading 'map')\n"
    "    at Page (app/page.tsx:12:5)\n"
)


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _engine(store: RecordStore, **kwargs) -> CorrelationEngine:
    kwargs.setdefault("trigger", None)
    return CorrelationEngine(store, now=_now, **kwargs)


def _bash(
    command: str,
    exit_code: int = 0,
    output: str = "",
    session: str = "s1",
    project: str = SHOP,
) -> ToolEvent:
    return ToolEvent(
        tool_name="Bash",
        exit_code=exit_code,
        tool_input={"command": command},
        tool_output=output,
        session_id=session,
        project_dir=project,
    )


def _edit(
    path: str,
    old: str = "items.map(",
    new: str = "items?.map(",
    output: str = "The file has been updated successfully.",
    exit_code: int = 0,
    tool: str = "Edit",
    project: str = SHOP,
) -> ToolEvent:
    tool_input = {"file_path": path}
    if tool == "Edit":
        tool_input.update(old_string=old, new_string=new)
    return ToolEvent(
        tool_name=tool,
        exit_code=exit_code,
        tool_input=tool_input,
        tool_output=output,
        session_id="s1",
        project_dir=project,
    )


def _fail_fix(engine: CorrelationEngine, command: str = "npm run build", project: str = SHOP):
    engine.handle(_bash(command, exit_code=1, output=NULL_REF_OUTPUT, project=project))
    engine.handle(_edit("app/page.tsx", project=project))
    return engine.handle(_bash(command, project=project))


class TestFailureCapture:
    def test_failure_is_recorded_and_classified(self, store):
        result = _engine(store).handle(_bash("npm run build", 1, NULL_REF_OUTPUT))

        assert result.outcome == CaptureOutcome.RECORDED
        record = store.errors()[0]
        assert record.error_category == "runtime"
        assert record.error_sub_category == "null_reference"
        assert record.severity == "high"
        assert record.fixed is False
        assert record.ts == "2026-03-01T12:00:00Z"
        assert "app/page.tsx" in record.context_files
        assert record.stack_locations
        assert store.project_errors(project_hash(SHOP))[0].command == "npm run build"

    def test_snippet_is_bounded_tail(self, store):
        output = "\n".join(f"line {i}" for i in range(20))
        _engine(store).handle(_bash("make", 2, output))
        record = store.errors()[0]
        assert record.error_snippet.split("\n") == [f"line {i}" for i in range(15, 20)]
        assert record.exit_code == 2

    def test_failure_sets_pending(self, store):
        _engine(store).handle(_bash("npm test", 1, "FAIL src/a.test.ts"))
        pending = store.load_pending(project_hash(SHOP))
        assert pending is not None
        assert pending.command == "npm test"
        assert pending.errors_line == 1

    def test_duplicate_in_same_session(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        result = engine.handle(_bash("npm test", 1, "FAIL a"))
        assert result.outcome == CaptureOutcome.DUPLICATE
        assert store.error_count() == 1

    def test_same_command_other_session_is_recorded(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a", session="s1"))
        result = engine.handle(_bash("npm test", 1, "FAIL a", session="s2"))
        assert result.outcome == CaptureOutcome.RECORDED
        assert store.error_count() == 2

    def test_blank_command_ignored(self, store):
        result = _engine(store).handle(_bash("   ", 1, "boom"))
        assert result.outcome == CaptureOutcome.IGNORED
        assert store.error_count() == 0


class TestFixDetection:
    def test_fail_edit_pass_records_fix(self, store):
        result = _fail_fix(_engine(store))

        assert result.outcome == CaptureOutcome.FIXED
        record = store.errors()[0]
        assert record.fixed is True
        assert record.fix_command == "auto"
        assert record.fix_description == "Edit: app/page.tsx (items.map( -> items?.map()"
        assert store.project_errors(project_hash(SHOP))[0].fixed is True

        fixes = store.fixes()
        assert len(fixes) == 1
        assert fixes[0].type == "auto_fix_detected"
        assert fixes[0].fix_files == ["app/page.tsx"]
        assert fixes[0].original_error_ts == record.ts
        assert fixes[0].error_sub_category == "null_reference"
        assert store.load_pending(project_hash(SHOP)) is None

    def test_fix_is_recorded_exactly_once(self, store):
        engine = _engine(store)
        _fail_fix(engine)
        again = engine.handle(_bash("npm run build"))
        assert again.outcome == CaptureOutcome.IGNORED
        assert len(store.fixes()) == 1

    def test_whitespace_insensitive_command_match(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm  run   build", 1, "Failed to compile"))
        result = engine.handle(_bash("npm run build"))
        assert result.outcome == CaptureOutcome.FIXED

    def test_other_command_passing_is_not_a_fix(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm run build", 1, "Failed to compile"))
        assert engine.handle(_bash("ls")).outcome == CaptureOutcome.IGNORED
        assert store.load_pending(project_hash(SHOP)) is not None

    def test_no_operations_uses_sentinel(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        result = engine.handle(_bash("npm test"))
        assert result.fix.fix_description == NO_OPERATIONS_SENTINEL

    def test_many_operations_are_summarized(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        for i in range(7):
            engine.handle(_edit(f"src/f{i}.ts", tool="Write"))
        result = engine.handle(_bash("npm test"))
        assert result.fix.fix_description == (
            "Write: src/f0.ts; Write: src/f1.ts; Write: src/f2.ts; ... and 4 more operations"
        )


class TestSupersession:
    def test_newer_failure_replaces_pending(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        engine.handle(_bash("npm run lint", 1, "eslint: 3 problems"))

        assert engine.handle(_bash("npm test")).outcome == CaptureOutcome.IGNORED
        assert engine.handle(_bash("npm run lint")).outcome == CaptureOutcome.FIXED

        by_command = {r.command: r.fixed for r in store.errors()}
        assert by_command == {"npm test": False, "npm run lint": True}

    def test_projects_do_not_share_pending(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a", project=SHOP))

        assert engine.handle(_edit("src/x.ts", project=BLOG)).outcome == CaptureOutcome.IGNORED
        assert engine.handle(_bash("npm test", project=BLOG)).outcome == CaptureOutcome.IGNORED
        assert store.load_pending(project_hash(SHOP)) is not None


class TestEdits:
    def test_successful_edit_tracked_while_pending(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        result = engine.handle(_edit("src/a.ts"))
        assert result.outcome == CaptureOutcome.OPERATION_TRACKED
        pending = store.load_pending(project_hash(SHOP))
        assert pending.operations == ["Edit: src/a.ts (items.map( -> items?.map()"]

    def test_successful_edit_ignored_when_idle(self, store):
        assert _engine(store).handle(_edit("src/a.ts")).outcome == CaptureOutcome.IGNORED

    def test_failed_edit_is_recorded_without_pending(self, store):
        result = _engine(store).handle(
            _edit("src/a.ts", exit_code=1, output="Error: String to replace not found in file.")
        )
        assert result.outcome == CaptureOutcome.RECORDED
        record = store.errors()[0]
        assert (record.error_category, record.error_sub_category) == ("edit", "edit_failed")
        assert record.severity == "low"
        assert record.command == "src/a.ts"
        assert store.load_pending(project_hash(SHOP)) is None

    def test_error_text_in_zero_exit_output_is_a_failure(self, store):
        result = _engine(store).handle(
            _edit("notes.md", tool="Write", output="Write failed: disk full")
        )
        assert result.outcome == CaptureOutcome.RECORDED
        assert store.errors()[0].error_sub_category == "write_failed"

    def test_path_containing_error_is_not_a_failure(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        result = engine.handle(
            _edit("src/errors.ts", output="The file src/errors.ts has been updated.")
        )
        assert result.outcome == CaptureOutcome.OPERATION_TRACKED

    def test_edit_failures_deduplicated_by_path(self, store):
        engine = _engine(store)
        failing = _edit("src/a.ts", exit_code=1, output="Error: not unique")
        engine.handle(failing)
        assert engine.handle(failing).outcome == CaptureOutcome.DUPLICATE


class TestAdvisories:
    def test_instant_fix_for_same_error_type(self, store):
        engine = _engine(store)
        _fail_fix(engine)

        result = engine.handle(
            _bash("npm run dev", 1, NULL_REF_OUTPUT, session="s2", project=BLOG)
        )

        assert result.advisories == [
            "[Self-Healing] Known 1 solution(s) for this error type:",
            "  -> Edit: app/page.tsx (items.map( -> items?.map()",
        ]

    def test_regression_warning(self, store):
        engine = _engine(store)
        _fail_fix(engine)

        result = engine.handle(_bash("npm run build", 1, NULL_REF_OUTPUT, session="s2"))

        assert "[Self-Healing] REGRESSION WARNING: This error was previously resolved!" in (
            result.advisories
        )
        assert any("Previous solution: Edit: app/page.tsx" in a for a in result.advisories)

    def test_sentinel_fixes_never_advised(self, store):
        engine = _engine(store)
        engine.handle(_bash("npm test", 1, "FAIL a"))
        engine.handle(_bash("npm test"))

        result = engine.handle(_bash("npx jest", 1, "FAIL b", session="s2"))
        assert result.advisories == []

    def test_category_fallback(self, store):
        engine = _engine(store)
        _fail_fix(engine)

        # runtime/type_error: no sub-category match, category match
        result = engine.handle(_bash("node x.js", 1, "TypeError: boom", session="s2"))
        assert result.advisories[0] == "[Self-Healing] Known 1 solution(s) for this error type:"


class TestRobustness:
    def test_none_event(self, store):
        assert _engine(store).handle(None).outcome == CaptureOutcome.IGNORED

    def test_missing_project_dir(self, store):
        event = _bash("npm test", 1, "FAIL", project="")
        assert _engine(store).handle(event).outcome == CaptureOutcome.IGNORED

    def test_other_tools_ignored(self, store):
        event = ToolEvent(tool_name="Read", exit_code=1, project_dir=SHOP)
        assert _engine(store).handle(event).outcome == CaptureOutcome.IGNORED

    def test_internal_failure_is_swallowed(self, store):
        class Broken:
            def classify(self, snippet, command=""):
                raise RuntimeError("boom")

        engine = _engine(store, classifier=Broken())
        result = engine.handle(_bash("npm test", 1, "FAIL"))
        assert result.outcome == CaptureOutcome.IGNORED


class TestAnalysisTrigger:
    def test_fires_on_interval(self, tmp_path):
        store = RecordStore(HealConfig(data_dir=tmp_path, analyze_interval=2))
        calls = []
        engine = _engine(store, trigger=calls.append)

        engine.handle(_bash("a", 1, "x"))
        assert calls == []
        engine.handle(_bash("b", 1, "x"))
        assert calls == [tmp_path]

    def test_interval_counts_past_the_rotation_ceiling(self, tmp_path):
        store = RecordStore(HealConfig(data_dir=tmp_path, max_errors=40, analyze_interval=20))
        calls = []
        engine = _engine(store, trigger=calls.append)

        for i in range(80):
            engine.handle(_bash(f"cmd {i}", 1, "x"))

        assert store.error_count() == 40
        assert store.recorded_count() == 80
        assert len(calls) == 4

    def test_edit_failure_can_reach_the_interval(self, tmp_path):
        store = RecordStore(HealConfig(data_dir=tmp_path, analyze_interval=2))
        calls = []
        engine = _engine(store, trigger=calls.append)

        engine.handle(_bash("npm test", 1, "FAIL a"))
        engine.handle(_edit("src/a.ts", exit_code=1, output="Error: not unique"))

        assert calls == [tmp_path]
