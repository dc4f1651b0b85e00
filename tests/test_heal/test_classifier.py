"""Tests for failure classification: categories, frameworks, severity."""

import re

import pytest

from selfheal.heal.classifier import Classifier, classify, severity_for
from selfheal.heal.models import ErrorCategory


class TestCategories:
    @pytest.mark.parametrize(
        "snippet, category, sub_category",
        [
            ("TypeError: Cannot read properties of undefined (reading 'map')", "runtime", "null_reference"),
            ("ReferenceError: foo", "runtime", "reference_error"),
            ("error TS2322: Type 'string' is not assignable to type 'number'.", "type", "type_mismatch"),
            ("error TS2307: Cannot find module './x'", "type", "module_not_found"),
            ("SyntaxError: Unexpected token '<'", "syntax", "parse_error"),
            ("Error: Cannot find module 'lodash'", "module", "module_not_found"),
            ("npm ERR! ERESOLVE unable to resolve dependency tree", "dependency", "resolution"),
            ("FAIL src/app.test.ts", "test", "test_failure"),
            ("Failed to compile.", "build", "compilation"),
            ("bash: ./deploy.sh: Permission denied", "permission", "access"),
            ("connect ECONNREFUSED 127.0.0.1:5432", "network", "connection_refused"),
            ("FATAL ERROR: JavaScript heap out of memory", "memory", "oom"),
            ("CONFLICT (content): Merge conflict in README.md", "git", "conflict"),
        ],
    )
    def test_category_table(self, snippet, category, sub_category):
        result = classify(snippet)
        assert (result.category, result.sub_category) == (category, sub_category)

    def test_first_match_wins(self):
        # Matches both the null_reference and the TypeError rule
        result = classify("TypeError: Cannot read properties of null")
        assert result.sub_category == "null_reference"

    def test_unmatched_is_unknown(self):
        result = classify("something odd happened")
        assert result.category == "unknown"
        assert result.sub_category == ""

    def test_empty_snippet(self):
        assert classify("").category == "unknown"


class TestFrameworks:
    def test_detects_from_snippet(self):
        assert classify("Error in prisma client").framework == "prisma"

    def test_detects_from_command(self):
        assert classify("exit status 1", "cargo build").framework == "rust"

    def test_ordered_nextjs_before_react(self):
        assert classify("Error in .next/server, React component").framework == "nextjs"

    def test_none_detected(self):
        assert classify("exit status 1", "make").framework == ""


class TestSeverity:
    @pytest.mark.parametrize(
        "category, severity",
        [
            ("build", "critical"),
            ("database", "critical"),
            ("memory", "critical"),
            ("runtime", "high"),
            ("type", "high"),
            ("permission", "high"),
            ("test", "medium"),
            ("module", "medium"),
            ("lint", "low"),
            ("edit", "low"),
        ],
    )
    def test_mapping(self, category, severity):
        assert severity_for(category) == severity

    def test_total_over_every_category(self):
        for category in ErrorCategory:
            assert severity_for(category) in {"critical", "high", "medium", "low"}

    def test_unknown_category_is_medium(self):
        assert severity_for("something-new") == "medium"

    def test_classification_carries_severity(self):
        assert classify("Failed to compile").severity == "critical"


class TestCustomRules:
    def test_injected_tables_replace_defaults(self):
        classifier = Classifier(
            category_rules=[(re.compile(r"quota"), ErrorCategory.NETWORK, "quota")],
            framework_rules=[(re.compile(r"terraform"), "terraform")],
        )
        result = classifier.classify("quota exceeded", "terraform apply")
        assert result.category == "network"
        assert result.sub_category == "quota"
        assert result.framework == "terraform"
        assert classifier.categorize("TypeError") == ("unknown", "")
