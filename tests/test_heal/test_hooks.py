"""Tests for hook payload parsing."""

import json
import os

from selfheal.heal.hooks import parse_hook_event, resolve_project_dir


def _payload(**fields) -> str:
    data = {
        "tool_name": "Bash",
        "session_id": "abc",
        "cwd": "/work/shop",
        "tool_input": {"command": "npm test"},
        "tool_output": "FAIL src/a.test.ts",
        "exit_code": 1,
    }
    data.update(fields)
    return json.dumps(data)


class TestParseHookEvent:
    def test_full_payload(self):
        event = parse_hook_event(_payload(), environ={})
        assert event.tool_name == "Bash"
        assert event.exit_code == 1
        assert event.command == "npm test"
        assert event.tool_output == "FAIL src/a.test.ts"
        assert event.session_id == "abc"
        assert event.project_dir == "/work/shop"

    def test_structured_tool_response(self):
        raw = json.dumps(
            {
                "tool_name": "Bash",
                "cwd": "/work/shop",
                "tool_input": {"command": "make"},
                "tool_response": {"stdout": "building", "stderr": "boom", "interrupted": False},
                "exit_code": 2,
            }
        )
        event = parse_hook_event(raw, environ={"CLAUDE_SESSION_ID": "env-session"})
        assert event.tool_output == "building\nboom"
        assert event.session_id == "env-session"

    def test_environment_fallbacks(self):
        raw = json.dumps({"tool_input": {"command": "npm test"}})
        env = {
            "TOOL_NAME": "Bash",
            "TOOL_EXIT_CODE": "3",
            "CLAUDE_SESSION_ID": "s9",
            "CLAUDE_PROJECT_DIR": "/work/blog",
        }
        event = parse_hook_event(raw, environ=env)
        assert event.tool_name == "Bash"
        assert event.exit_code == 3
        assert event.session_id == "s9"
        assert event.project_dir == "/work/blog"

    def test_project_dir_wins_over_payload_cwd(self):
        raw = _payload(cwd="/work/shop/frontend")
        event = parse_hook_event(raw, environ={"CLAUDE_PROJECT_DIR": "/work/shop"})
        assert event.project_dir == "/work/shop"

    def test_resolver_shared_with_inject(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_project_dir("/work/shop", environ={}) == "/work/shop"
        assert resolve_project_dir(None, environ={"CLAUDE_PROJECT_DIR": "/work/blog"}) == "/work/blog"
        assert os.path.realpath(resolve_project_dir(None, environ={})) == os.path.realpath(tmp_path)

    def test_defaults_when_nothing_given(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        event = parse_hook_event("", environ={})
        assert event.tool_name == "unknown"
        assert event.exit_code == 0
        assert os.path.realpath(event.project_dir) == os.path.realpath(tmp_path)
        assert event.session_id.isdigit()

    def test_malformed_json(self):
        assert parse_hook_event("{not json", environ={}) is None

    def test_non_object_payload(self):
        assert parse_hook_event("[1, 2]", environ={}) is None

    def test_non_integer_exit_code(self):
        assert parse_hook_event(_payload(exit_code="oops"), environ={}) is None
        assert parse_hook_event(_payload(exit_code=True), environ={}) is None

    def test_non_dict_tool_input(self):
        event = parse_hook_event(_payload(tool_input="npm test"), environ={})
        assert event.tool_input == {}
        assert event.command == ""
