"""Host hook payload → ToolEvent.

The agent host runs ``selfheal capture`` after every tool call with a JSON
payload on stdin. Fields missing from the payload fall back to the
environment variables the host exports for hooks.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Mapping
from typing import Any

from .models import ToolEvent

logger = logging.getLogger(__name__)

# Text-bearing keys of a structured tool response, in output order
_RESPONSE_TEXT_KEYS = ("stdout", "stderr", "output", "error", "content")


def parse_hook_event(raw: str, environ: Mapping[str, str] | None = None) -> ToolEvent | None:
    """Parse one hook payload. Returns None for anything malformed."""
    env = os.environ if environ is None else environ

    payload: dict[str, Any] = {}
    if raw.strip():
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("Ignoring unparseable hook payload: %s", e)
            return None
        if not isinstance(data, dict):
            logger.debug("Ignoring non-object hook payload")
            return None
        payload = data

    exit_code = _exit_code(payload.get("exit_code", env.get("TOOL_EXIT_CODE", 0)))
    if exit_code is None:
        logger.debug("Ignoring hook payload with non-integer exit code")
        return None

    tool_input = payload.get("tool_input")
    return ToolEvent(
        tool_name=str(payload.get("tool_name") or env.get("TOOL_NAME") or "unknown"),
        exit_code=exit_code,
        tool_input=tool_input if isinstance(tool_input, dict) else {},
        tool_output=_output_text(payload),
        session_id=str(
            payload.get("session_id") or env.get("CLAUDE_SESSION_ID") or int(time.time())
        ),
        project_dir=resolve_project_dir(payload.get("cwd"), env),
    )


def resolve_project_dir(cwd: Any = None, environ: Mapping[str, str] | None = None) -> str:
    """Project root used as the scope key by both capture and inject.

    ``CLAUDE_PROJECT_DIR`` wins over the hook's ``cwd``, which follows the
    agent's shell into subdirectories.
    """
    env = os.environ if environ is None else environ
    return str(env.get("CLAUDE_PROJECT_DIR") or cwd or os.getcwd())


def _exit_code(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _output_text(payload: dict[str, Any]) -> str:
    """Tool output as text; structured responses are flattened."""
    output = payload.get("tool_output")
    if output is None:
        output = payload.get("tool_response")
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, dict):
        parts = [
            output[key]
            for key in _RESPONSE_TEXT_KEYS
            if isinstance(output.get(key), str) and output[key]
        ]
        return "\n".join(parts)
    return str(output)
