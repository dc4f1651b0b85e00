"""Snippet operations: every truncation and normalization has a name here.

Records only ever hold bounded text. The caps below are the single place
those bounds are defined; the rest of the package calls these helpers
instead of slicing strings ad hoc.
"""

from __future__ import annotations

import hashlib
import re

# Failure snippets for shell commands: last 5 lines, at most 500 chars
BASH_SNIPPET_LINES = 5
BASH_SNIPPET_CHARS = 500

# Failure snippets for Edit/Write: 3 lines, at most 300 chars
EDIT_SNIPPET_LINES = 3
EDIT_SNIPPET_CHARS = 300

# Snippet copied into a FixRecord
FIX_SNIPPET_CHARS = 200

# old_string/new_string excerpts inside an operation summary
OPERATION_EXCERPT_CHARS = 50

# One advisory line on stdout
ADVISORY_CHARS = 200

_EDIT_ERROR_RE = re.compile(r"error|failed|not found|not unique|BLOCKED", re.I)

_WHITESPACE_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"[0-9]+")
_SINGLE_QUOTED_RE = re.compile(r"'[^']*'")
_DOUBLE_QUOTED_RE = re.compile(r'"[^"]*"')

_FILE_RE = re.compile(
    r"[a-zA-Z0-9_./-]+\.(?:tsx|ts|jsx|js|py|go|rs|sh|json|yaml|yml|md|css|scss|vue|svelte)\b"
)
_STACK_RE = re.compile(r"(?:at [^ ]+ \()?[a-zA-Z0-9_./-]+\.[a-z]+:[0-9]+(?::[0-9]+)?")


def bounded(text: str, limit: int) -> str:
    """Prefix of ``text`` holding at most ``limit`` characters."""
    if not text:
        return ""
    return text[:limit]


def tail_snippet(output: str, lines: int, limit: int) -> str:
    """Last ``lines`` lines of ``output``, bounded to ``limit`` chars."""
    if not output:
        return ""
    tail = output.rstrip("\n").split("\n")[-lines:]
    return bounded("\n".join(tail), limit)


def error_lines(output: str, lines: int, limit: int) -> str:
    """First ``lines`` lines that look like an edit failure, bounded."""
    if not output:
        return ""
    matches = [line for line in output.split("\n") if _EDIT_ERROR_RE.search(line)]
    return bounded("\n".join(matches[:lines]), limit)


def has_error_indicator(output: str) -> bool:
    """Does a successful-looking Edit/Write output still report a failure?"""
    return bool(output) and _EDIT_ERROR_RE.search(output) is not None


def normalize_command(command: str) -> str:
    """Collapse whitespace runs so `npm  test` and `npm test` compare equal."""
    if not command:
        return ""
    return _WHITESPACE_RE.sub(" ", command).strip()


def normalize_snippet(snippet: str) -> str:
    """Reduce a snippet to its signature: no digits, no quoted literals."""
    if not snippet:
        return ""
    text = _DIGITS_RE.sub("", snippet)
    text = _SINGLE_QUOTED_RE.sub("'...'", text)
    text = _DOUBLE_QUOTED_RE.sub('"..."', text)
    return text.strip()


def first_line(text: str, limit: int) -> str:
    if not text:
        return ""
    return bounded(text.strip().split("\n")[0], limit)


def extract_files(text: str, limit: int) -> list[str]:
    """Sorted distinct source-like file paths mentioned in ``text``."""
    if not text:
        return []
    return sorted(set(_FILE_RE.findall(text)))[:limit]


def extract_stack_locations(text: str, limit: int = 3) -> list[str]:
    """``file:line[:col]`` locations in order of appearance."""
    if not text:
        return []
    return _STACK_RE.findall(text)[:limit]


def project_hash(project_dir: str) -> str:
    """Stable 12-hex-char scope key for a project path."""
    return hashlib.sha256(project_dir.encode("utf-8")).hexdigest()[:12]
