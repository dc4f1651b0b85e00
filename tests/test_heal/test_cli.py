"""Tests for the selfheal CLI: hook entry points and maintenance commands."""

from __future__ import annotations

import json
import warnings
from datetime import timedelta

from click.testing import CliRunner

from selfheal.cli import main
from selfheal.config import HealConfig
from selfheal.heal.models import ErrorRecord, format_ts, utc_now
from selfheal.heal.snippets import project_hash
from selfheal.storage import RecordStore


def _invoke(data_dir, *args, input=None, env=None):
    runner = CliRunner()
    return runner.invoke(main, ["--data-dir", str(data_dir), *args], input=input, env=env)


def _hook(command: str, exit_code: int, output: str, project: str, session: str = "s1") -> str:
    return json.dumps(
        {
            "tool_name": "Bash",
            "session_id": session,
            "cwd": project,
            "tool_input": {"command": command},
            "tool_output": output,
            "exit_code": exit_code,
        }
    )


class TestCapture:
    def test_records_failure_quietly(self, tmp_path):
        data_dir = tmp_path / "data"
        result = _invoke(
            data_dir, "capture", input=_hook("npm test", 1, "FAIL a.test.ts", "/work/shop")
        )

        assert result.exit_code == 0
        assert result.output == ""
        assert len(RecordStore(HealConfig(data_dir=data_dir)).errors()) == 1

    def test_reads_stdin_without_deprecation_warnings(self, tmp_path):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = _invoke(
                tmp_path, "capture", input=_hook("npm test", 1, "FAIL a.test.ts", "/work/shop")
            )

        assert result.exit_code == 0
        assert len(RecordStore(HealConfig(data_dir=tmp_path)).errors()) == 1

    def test_garbage_input_is_a_no_op(self, tmp_path):
        result = _invoke(tmp_path, "capture", input="{not json")
        assert result.exit_code == 0
        assert result.output == ""

    def test_prints_known_fixes(self, tmp_path):
        _invoke(tmp_path, "preload")
        result = _invoke(
            tmp_path,
            "capture",
            input=_hook("npm run build", 1, "Failed to compile", "/work/shop"),
        )
        assert result.exit_code == 0
        assert "[Self-Healing] Known" in result.output


class TestInject:
    def test_first_run_preloads(self, tmp_path):
        data_dir = tmp_path / "data"
        project = tmp_path / "shop"

        result = _invoke(data_dir, "inject", "--project", str(project))

        assert result.exit_code == 0
        assert result.output.strip() == "[Self-Healing] No project-specific history for shop yet."
        assert (data_dir / ".preload_done").exists()
        assert (data_dir / "patterns.json").exists()

    def test_digest_for_project_with_open_errors(self, tmp_path):
        data_dir = tmp_path / "data"
        project = str(tmp_path / "shop")
        _invoke(data_dir, "capture", input=_hook("npm run build", 1, "Failed to compile", project))

        result = _invoke(data_dir, "inject", "--project", project)

        assert result.exit_code == 0
        assert "[Self-Healing Context]" in result.output
        assert "`npm run build`" in result.output

    def test_subdirectory_failures_reach_the_project_digest(self, tmp_path):
        data_dir = tmp_path / "data"
        project = str(tmp_path / "shop")
        env = {"CLAUDE_PROJECT_DIR": project}
        _invoke(
            data_dir,
            "capture",
            input=_hook("npm run build", 1, "Failed to compile", f"{project}/frontend"),
            env=env,
        )

        result = _invoke(data_dir, "inject", env=env)

        assert "[Self-Healing Context]" in result.output
        assert f"in this project ({project})" in result.output
        assert "`npm run build`" in result.output


class TestAnalyzeAndPreload:
    def test_analyze_empty(self, tmp_path):
        result = _invoke(tmp_path, "analyze")
        assert result.exit_code == 0
        assert "No error records yet." in result.output

    def test_analyze_prints_summary(self, tmp_path):
        _invoke(tmp_path, "preload")
        result = _invoke(tmp_path, "analyze")
        assert result.exit_code == 0
        assert "Errors: 30" in result.output
        assert "Most frequent error category: runtime" in result.output

    def test_preload_once(self, tmp_path):
        first = _invoke(tmp_path, "preload")
        second = _invoke(tmp_path, "preload")
        assert "Loaded 30 error/fix pairs." in first.output
        assert "Seed knowledge already loaded." in second.output


class TestMaintenance:
    def test_stats_without_data(self, tmp_path):
        result = _invoke(tmp_path / "missing", "stats")
        assert result.exit_code == 0
        assert "No data directory" in result.output

    def test_stats_with_data(self, tmp_path):
        _invoke(tmp_path, "preload")
        result = _invoke(tmp_path, "stats")
        assert result.exit_code == 0
        assert "Total: 30" in result.output
        assert "Resolved: 30" in result.output
        assert "Fixes (fixes.jsonl): 30 records" in result.output

    def test_cleanup_old(self, tmp_path):
        store = RecordStore(HealConfig(data_dir=tmp_path))
        old = format_ts(utc_now() - timedelta(days=45))
        for command, fixed in (("old fixed", True), ("old open", False)):
            store.append_error(
                ErrorRecord(
                    ts=old,
                    session="s1",
                    project="/work/shop",
                    project_hash=project_hash("/work/shop"),
                    tool="Bash",
                    command=command,
                    fixed=fixed,
                )
            )

        result = _invoke(tmp_path, "cleanup", "--old")

        assert result.exit_code == 0
        assert "Done: 1 records removed from errors.jsonl" in result.output
        assert [r.command for r in store.errors()] == ["old open"]

    def test_cleanup_custom_days_keeps_recent(self, tmp_path):
        store = RecordStore(HealConfig(data_dir=tmp_path))
        store.append_error(
            ErrorRecord(
                ts=format_ts(utc_now() - timedelta(days=10)),
                session="s1",
                project="/work/shop",
                project_hash=project_hash("/work/shop"),
                tool="Bash",
                command="recent fix",
                fixed=True,
            )
        )
        result = _invoke(tmp_path, "cleanup", "--old", "--days", "60")
        assert "Done: 0 records removed" in result.output
        assert len(store.errors()) == 1

    def test_reset_asks_first(self, tmp_path):
        _invoke(tmp_path, "preload")
        result = _invoke(tmp_path, "reset", input="n\n")
        assert "Cancelled." in result.output
        assert (tmp_path / "errors.jsonl").exists()

    def test_reset_yes(self, tmp_path):
        _invoke(tmp_path, "preload")
        result = _invoke(tmp_path, "reset", "--yes")
        assert result.exit_code == 0
        assert not (tmp_path / "errors.jsonl").exists()
        assert not (tmp_path / ".preload_done").exists()
