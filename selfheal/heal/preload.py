"""Seed knowledge: common JavaScript/TypeScript failures with known fixes.

Loaded once so instant fixes and the digest are useful from the first
session. Seeds are written as resolved global records (never into a project
log) together with a ``preloaded`` FixRecord each; preloaded fixes are exempt
from decay.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import NamedTuple

from ..storage import RecordStore
from ..storage.filesystem import atomic_write_text
from .models import ErrorRecord, FixProvenance, FixRecord, format_ts, utc_now

logger = logging.getLogger(__name__)

PRELOADED_SCOPE = "preloaded"
PRELOADED_PROJECT = "global"
PRELOADED_COMMAND = "(preloaded)"


class Seed(NamedTuple):
    snippet: str
    category: str
    sub_category: str
    framework: str
    severity: str
    fix: str


SEEDS: list[Seed] = [
    # JavaScript/TypeScript runtime
    Seed(
        "Cannot read properties of undefined (reading 'map')",
        "runtime", "null_reference", "react", "high",
        "Add optional chaining: items?.map() or a default value: (items || []).map()",
    ),
    Seed(
        "Cannot read properties of null",
        "runtime", "null_reference", "", "high",
        "Add a null check: if (obj !== null) or optional chaining: obj?.property",
    ),
    Seed(
        "X is not a function",
        "runtime", "not_function", "", "high",
        "Check the import: verify the right export/import is used, default vs named export",
    ),
    Seed(
        "Maximum call stack size exceeded",
        "runtime", "stack_overflow", "", "high",
        "Recursive function is missing a base case or useEffect loops forever;"
        " check the dependency array",
    ),
    Seed(
        "X is not defined",
        "runtime", "reference_error", "", "high",
        "Define or import the variable and check its scope",
    ),
    Seed(
        "Assignment to constant variable",
        "runtime", "type_error", "", "high",
        "Use let instead of const or assign to a new variable",
    ),
    # TypeScript
    Seed(
        "TS2322: Type X is not assignable to type Y",
        "type", "type_mismatch", "", "high",
        "Update the interface/type definition or use a type assertion (as Type)",
    ),
    Seed(
        "TS2345: Argument of type X is not assignable to parameter of type Y",
        "type", "argument_type", "", "high",
        "Update the parameter type or convert the value being passed",
    ),
    Seed(
        "TS2339: Property X does not exist on type Y",
        "type", "property_missing", "", "high",
        "Add the missing property to the interface or use a type guard",
    ),
    Seed(
        "TS2531: Object is possibly null",
        "type", "possibly_null", "", "high",
        "Add a non-null assertion (!), optional chaining (?.) or an if null check",
    ),
    Seed(
        "TS2307: Cannot find module X",
        "type", "module_not_found", "", "medium",
        "npm install the missing package, install its @types/ package or fix the import path",
    ),
    # Module/import
    Seed(
        "Module not found: Can't resolve X",
        "module", "module_not_found", "webpack", "medium",
        "Install the package with npm install or fix the import path (relative vs absolute)",
    ),
    Seed(
        "ENOENT: no such file or directory",
        "module", "file_not_found", "", "medium",
        "Check the file path and its letter case, and verify the file exists",
    ),
    Seed(
        "ERR_MODULE_NOT_FOUND",
        "module", "module_not_found", "", "medium",
        "Spell out the file extension (.js), add type:module to package.json"
        " or fix the require/import mismatch",
    ),
    # React/Next.js
    Seed(
        "Hydration failed because the server rendered HTML didn't match the client",
        "runtime", "null_reference", "nextjs", "high",
        "Add suppressHydrationWarning, use a dynamic import with ssr:false"
        " or render client-only content inside useEffect",
    ),
    Seed(
        "useState/useEffect can only be called inside a function component",
        "runtime", "not_function", "react", "high",
        "Add the 'use client' directive at the top of the file (Next.js App Router)",
    ),
    Seed(
        "Each child in a list should have a unique key prop",
        "runtime", "type_error", "react", "medium",
        "Give every element inside map() a unique key prop: key={item.id}",
    ),
    Seed(
        "Too many re-renders. React limits the number of renders",
        "runtime", "stack_overflow", "react", "high",
        "Use onClick={() => fn()} instead of onClick={fn()} and move state updates into useEffect",
    ),
    Seed(
        "'use client' directive must be at the top of the file",
        "syntax", "parse_error", "nextjs", "medium",
        "Move the 'use client' line to the very top of the file, before the imports",
    ),
    Seed(
        "Error: Dynamic server usage",
        "build", "compilation", "nextjs", "critical",
        "Add export const dynamic = 'force-dynamic' or pass cache: 'no-store' to fetch",
    ),
    # Build/dependency
    Seed(
        "ERESOLVE unable to resolve dependency tree",
        "dependency", "module_not_found", "", "medium",
        "Use npm install --legacy-peer-deps or align the conflicting dependency versions",
    ),
    Seed(
        "Failed to compile",
        "build", "compilation", "", "critical",
        "Go to the file and line in the error message and fix the syntax/type error",
    ),
    Seed(
        "Missing script: X",
        "build", "compilation", "", "medium",
        "Add the missing script to the scripts section of package.json",
    ),
    Seed(
        "npm ERR! peer dep missing",
        "dependency", "module_not_found", "", "medium",
        "Install the missing peer dependency: npm install X",
    ),
    # Tests
    Seed(
        "Expected X to equal Y / toBe / toEqual",
        "test", "assertion", "jest", "medium",
        "Update the expected value or fix the output of the function under test",
    ),
    Seed(
        "Exceeded timeout of 5000 ms for a test",
        "test", "timeout", "jest", "medium",
        "Use jest.setTimeout(30000) or make sure the test calls its done() callback",
    ),
    Seed(
        "Cannot find module from test file",
        "test", "test_failure", "jest", "medium",
        "Check moduleNameMapper or roots in jest.config and that tsconfig paths match",
    ),
    # Database
    Seed(
        "Unique constraint failed / duplicate key value",
        "database", "constraint", "prisma", "critical",
        "Use upsert or check for an existing row before inserting",
    ),
    Seed(
        "ECONNREFUSED 127.0.0.1:5432",
        "database", "connection", "", "critical",
        "Make sure the database is running: docker compose up -d"
        " or brew services start postgresql",
    ),
    # Git/permission
    Seed(
        "Permission denied (publickey)",
        "permission", "access", "git", "medium",
        "Check the SSH key: ssh-add ~/.ssh/id_ed25519, or use the HTTPS URL",
    ),
]


def is_preloaded(store: RecordStore) -> bool:
    return store.config.preload_marker.exists()


def preload(store: RecordStore, now: Callable[[], datetime] = utc_now) -> int:
    """Write the seed set once. Returns the number of seeds written (0 if already done)."""
    if is_preloaded(store):
        logger.debug("Seed knowledge already loaded")
        return 0

    ts = format_ts(now())
    for seed in SEEDS:
        store.errors_log.append(_seed_error(seed, ts).to_dict())
        store.append_fix(_seed_fix(seed, ts))
    store.errors_log.rotate(store.config.max_errors)

    atomic_write_text(
        store.config.preload_marker, f"preloaded_at={ts}\nentries={len(SEEDS)}\n"
    )
    logger.debug("Loaded %d seed error/fix pairs", len(SEEDS))
    return len(SEEDS)


def _seed_error(seed: Seed, ts: str) -> ErrorRecord:
    return ErrorRecord(
        ts=ts,
        session=PRELOADED_SCOPE,
        project=PRELOADED_PROJECT,
        project_hash=PRELOADED_SCOPE,
        tool="Bash",
        command=PRELOADED_COMMAND,
        exit_code=1,
        error_snippet=seed.snippet,
        error_category=seed.category,
        error_sub_category=seed.sub_category,
        framework=seed.framework,
        severity=seed.severity,
        fixed=True,
        fix_command="preloaded",
        fix_description=seed.fix,
    )


def _seed_fix(seed: Seed, ts: str) -> FixRecord:
    return FixRecord(
        ts=ts,
        session=PRELOADED_SCOPE,
        project=PRELOADED_PROJECT,
        project_hash=PRELOADED_SCOPE,
        command=PRELOADED_COMMAND,
        original_error_ts=ts,
        error_category=seed.category,
        error_sub_category=seed.sub_category,
        framework=seed.framework,
        severity=seed.severity,
        error_snippet=seed.snippet,
        fix_description=seed.fix,
        type=FixProvenance.PRELOADED.value,
    )
