"""Failure classification: snippet + command → category, framework, severity.

Both tables are ordered and first-match-wins. They are plain data: pass your
own lists to ``Classifier`` to extend or replace the policy without touching
the correlation engine.
"""

from __future__ import annotations

import re

from .models import Classification, ErrorCategory, Severity

CategoryRule = tuple[re.Pattern, ErrorCategory, str]
FrameworkRule = tuple[re.Pattern, str]

# =============================================================================
# Category / sub-category rules (applied to the error snippet)
# =============================================================================

DEFAULT_CATEGORY_RULES: list[CategoryRule] = [
    # Runtime
    (
        re.compile(r"Cannot read prop|of undefined|of null|is not defined"),
        ErrorCategory.RUNTIME,
        "null_reference",
    ),
    (re.compile(r"TypeError"), ErrorCategory.RUNTIME, "type_error"),
    (re.compile(r"ReferenceError"), ErrorCategory.RUNTIME, "reference_error"),
    (re.compile(r"is not a function"), ErrorCategory.RUNTIME, "not_function"),
    (re.compile(r"Maximum call stack|stack overflow"), ErrorCategory.RUNTIME, "stack_overflow"),
    (re.compile(r"RangeError"), ErrorCategory.RUNTIME, "range_error"),
    # TypeScript
    (re.compile(r"TS2322"), ErrorCategory.TYPE, "type_mismatch"),
    (re.compile(r"TS2345"), ErrorCategory.TYPE, "argument_type"),
    (re.compile(r"TS2339"), ErrorCategory.TYPE, "property_missing"),
    (re.compile(r"TS2304"), ErrorCategory.TYPE, "not_found"),
    (re.compile(r"TS2307"), ErrorCategory.TYPE, "module_not_found"),
    (re.compile(r"TS2531|TS2532|TS18047|TS18048"), ErrorCategory.TYPE, "possibly_null"),
    (re.compile(r"TS7006"), ErrorCategory.TYPE, "implicit_any"),
    (re.compile(r"TS\d{4}|is not assignable|Type '"), ErrorCategory.TYPE, "other"),
    # Syntax
    (
        re.compile(r"SyntaxError|Unexpected token|Parse error|Unexpected end"),
        ErrorCategory.SYNTAX,
        "parse_error",
    ),
    # Modules and files
    (re.compile(r"ENOENT|No such file"), ErrorCategory.MODULE, "file_not_found"),
    (
        re.compile(r"MODULE_NOT_FOUND|Cannot find module|Module not found|ModuleNotFoundError"),
        ErrorCategory.MODULE,
        "module_not_found",
    ),
    (re.compile(r"Cannot resolve"), ErrorCategory.MODULE, "resolve_error"),
    # Dependencies
    (
        re.compile(r"ERESOLVE|peer dep|dependency conflict|ResolutionImpossible"),
        ErrorCategory.DEPENDENCY,
        "resolution",
    ),
    # Tests
    (re.compile(r"FAIL|test fail|Test failed|tests failed"), ErrorCategory.TEST, "test_failure"),
    (re.compile(r"assert|expect\(|toBe|toEqual"), ErrorCategory.TEST, "assertion"),
    (re.compile(r"Timeout.*test|exceeded timeout"), ErrorCategory.TEST, "timeout"),
    # Build
    (
        re.compile(r"Build fail|build error|compilation|Failed to compile"),
        ErrorCategory.BUILD,
        "compilation",
    ),
    (re.compile(r"webpack.*error|Module build failed"), ErrorCategory.BUILD, "bundler"),
    # Permission
    (re.compile(r"Permission denied|EACCES"), ErrorCategory.PERMISSION, "access"),
    # Network
    (re.compile(r"ECONNREFUSED"), ErrorCategory.NETWORK, "connection_refused"),
    (re.compile(r"ETIMEDOUT|timeout|timed out"), ErrorCategory.NETWORK, "timeout"),
    (re.compile(r"fetch failed|network error"), ErrorCategory.NETWORK, "fetch"),
    # Database
    (
        re.compile(r"relation.*does not exist|table.*not found"),
        ErrorCategory.DATABASE,
        "missing_table",
    ),
    (re.compile(r"unique constraint|duplicate key"), ErrorCategory.DATABASE, "constraint"),
    (re.compile(r"deadlock"), ErrorCategory.DATABASE, "deadlock"),
    (re.compile(r"connection.*refused"), ErrorCategory.DATABASE, "connection"),
    # Memory
    (re.compile(r"ENOMEM|out of memory|heap"), ErrorCategory.MEMORY, "oom"),
    # Docker
    (
        re.compile(r"Cannot connect to the Docker daemon|failed to solve|no such image"),
        ErrorCategory.DOCKER,
        "daemon",
    ),
    # Config
    (
        re.compile(r"Invalid configuration|config(?:uration)? error|missing environment variable"),
        ErrorCategory.CONFIG,
        "invalid",
    ),
    # Lint
    (re.compile(r"eslint|ESLint|prettier|Prettier"), ErrorCategory.LINT, "style"),
    # Git
    (re.compile(r"merge conflict|CONFLICT"), ErrorCategory.GIT, "conflict"),
    (re.compile(r"rejected|non-fast-forward"), ErrorCategory.GIT, "push_rejected"),
]

# =============================================================================
# Framework rules (applied to snippet + command)
# =============================================================================

DEFAULT_FRAMEWORK_RULES: list[FrameworkRule] = [
    (
        re.compile(
            r"next|Next|NEXT|\.next/|getServerSideProps|getStaticProps|app/api/|middleware\.ts"
        ),
        "nextjs",
    ),
    (re.compile(r"react|React|useState|useEffect|jsx|JSX|component|Component"), "react"),
    (re.compile(r"prisma|Prisma"), "prisma"),
    (re.compile(r"express|Express|app\.get|app\.post|router\.|middleware"), "express"),
    (re.compile(r"vite|Vite"), "vite"),
    (re.compile(r"webpack|Webpack"), "webpack"),
    (re.compile(r"jest|Jest|describe\(|\bit\(|expect\("), "jest"),
    (re.compile(r"vitest|Vitest"), "vitest"),
    (re.compile(r"docker|Docker"), "docker"),
    (re.compile(r"supabase|Supabase"), "supabase"),
    (re.compile(r"tailwind|Tailwind|@apply"), "tailwind"),
    (re.compile(r"python|Python|pip|pytest|\.py:|Traceback"), "python"),
    (re.compile(r"\bgo (?:build|run|test|mod)\b|\.go:\d"), "go"),
    (re.compile(r"rust|cargo|\.rs:|Cargo\.toml"), "rust"),
]

# =============================================================================
# Severity
# =============================================================================

_SEVERITY_BY_CATEGORY: dict[str, Severity] = {
    ErrorCategory.BUILD.value: Severity.CRITICAL,
    ErrorCategory.DATABASE.value: Severity.CRITICAL,
    ErrorCategory.MEMORY.value: Severity.CRITICAL,
    ErrorCategory.RUNTIME.value: Severity.HIGH,
    ErrorCategory.TYPE.value: Severity.HIGH,
    ErrorCategory.PERMISSION.value: Severity.HIGH,
    ErrorCategory.TEST.value: Severity.MEDIUM,
    ErrorCategory.MODULE.value: Severity.MEDIUM,
    ErrorCategory.SYNTAX.value: Severity.MEDIUM,
    ErrorCategory.NETWORK.value: Severity.MEDIUM,
    ErrorCategory.LINT.value: Severity.LOW,
    ErrorCategory.GIT.value: Severity.LOW,
    ErrorCategory.EDIT.value: Severity.LOW,
}


def severity_for(category: str | ErrorCategory) -> str:
    """Severity of a category. Total: unknown categories are medium."""
    key = category.value if isinstance(category, ErrorCategory) else str(category)
    return _SEVERITY_BY_CATEGORY.get(key, Severity.MEDIUM).value


# =============================================================================
# Classifier
# =============================================================================

# Only the head of very long snippets is scanned
_SCAN_LIMIT = 2000


class Classifier:
    """Pure first-match-wins classifier over injectable rule tables."""

    def __init__(
        self,
        category_rules: list[CategoryRule] | None = None,
        framework_rules: list[FrameworkRule] | None = None,
    ):
        self.category_rules = (
            category_rules if category_rules is not None else DEFAULT_CATEGORY_RULES
        )
        self.framework_rules = (
            framework_rules if framework_rules is not None else DEFAULT_FRAMEWORK_RULES
        )

    def classify(self, snippet: str, command: str = "") -> Classification:
        category, sub_category = self.categorize(snippet)
        return Classification(
            category=category,
            sub_category=sub_category,
            framework=self.detect_framework(snippet, command),
            severity=severity_for(category),
        )

    def categorize(self, snippet: str) -> tuple[str, str]:
        text = (snippet or "")[:_SCAN_LIMIT]
        for pattern, category, sub_category in self.category_rules:
            if pattern.search(text):
                return category.value, sub_category
        return ErrorCategory.UNKNOWN.value, ""

    def detect_framework(self, snippet: str, command: str = "") -> str:
        text = f"{(snippet or '')[:_SCAN_LIMIT]} {command or ''}"
        for pattern, framework in self.framework_rules:
            if pattern.search(text):
                return framework
        return ""


_DEFAULT_CLASSIFIER = Classifier()


def classify(snippet: str, command: str = "") -> Classification:
    """Classify with the default rule tables."""
    return _DEFAULT_CLASSIFIER.classify(snippet, command)
