"""Tests for template, selector and condition resolution."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from rpa_dfs.traverser.context import UserContext, stringify
from rpa_dfs.traverser.resolver import TemplateResolver
from rpa_dfs.traverser.selectors import SelectorRegistry, DEFAULT_SELECTORS
from rpa_dfs.traverser.types import DataCheck


@pytest.fixture
def resolver():
    context = UserContext({
        "name": "Ada",
        "age": 36,
        "score": 7.0,
        "active": True,
        "missing_value": None,
        "tags": ["a", "b"],
        "user.email": "ada@example.com",
        "user": {"age": 16, "website": "https://example.com"},
        "title": "Senior Engineer",
    })
    return TemplateResolver(context)


class TestTemplateResolution:
    """Test {{key}} substitution."""

    def test_substitutes_known_keys(self, resolver):
        assert resolver.resolve("Hello {{name}}, age {{age}}") == "Hello Ada, age 36"

    def test_trims_whitespace_inside_braces(self, resolver):
        assert resolver.resolve("{{  name }}") == "Ada"

    def test_text_without_placeholders_is_unchanged(self, resolver):
        text = "plain text with { braces } and }} stray"
        assert resolver.resolve(text) == text
        assert resolver.resolve(resolver.resolve(text)) == text
        assert resolver.diagnostics == []

    def test_empty_input(self, resolver):
        assert resolver.resolve("") == ""

    def test_missing_key_keeps_placeholder(self, resolver):
        assert resolver.resolve("{{missing}}") == "{{missing}}"
        assert resolver.resolve("a {{missing}} b {{name}}") == "a {{missing}} b Ada"

        kinds = [d.kind for d in resolver.diagnostics]
        assert kinds == ["resolution_miss", "resolution_miss"]
        assert resolver.diagnostics[0].detail == "missing"

    def test_dotted_key_is_a_single_key(self, resolver):
        """Dotted names are looked up verbatim, not traversed."""
        assert resolver.resolve("{{user.email}}") == "ada@example.com"
        assert resolver.resolve("{{user.age}}") == "{{user.age}}"

    def test_dotted_paths_enabled(self):
        context = UserContext({
            "user": {"age": 16, "langs": ["go", "python"]},
            "user.age": "flat wins",
        })
        resolver = TemplateResolver(context, dotted_paths=True)

        assert resolver.resolve("{{user.age}}") == "flat wins"
        assert resolver.resolve("{{user.langs.1}}") == "python"
        assert resolver.resolve("{{user.langs.5}}") == "{{user.langs.5}}"
        assert resolver.resolve("{{user.name}}") == "{{user.name}}"

    def test_value_rendering(self, resolver):
        assert resolver.resolve("{{score}}") == "7"
        assert resolver.resolve("{{active}}") == "true"
        assert resolver.resolve("[{{missing_value}}]") == "[]"
        assert resolver.resolve("{{tags}}") == '["a","b"]'

    def test_stringify(self):
        assert stringify(1.5) == "1.5"
        assert stringify(False) == "false"
        assert stringify({"k": 1}) == '{"k":1}'


class TestSelectorResolution:
    """Test selector constants and registry lookups."""

    def test_constant_is_mapped(self, resolver):
        assert resolver.resolve_selector("LOGIN_SUBMIT") == "#loginButton"
        assert resolver.diagnostics == []

    def test_plain_selector_passes_through(self, resolver):
        assert resolver.resolve_selector("#email") == "#email"
        assert resolver.resolve_selector("input[name='{{name}}']") == "input[name='Ada']"

    def test_unknown_constant_records_diagnostic(self, resolver):
        assert resolver.resolve_selector("NOT_REGISTERED") == "NOT_REGISTERED"
        assert resolver.diagnostics[0].kind == "selector_miss"

    def test_mapped_selector_is_template_resolved(self):
        registry = SelectorRegistry({"USER_ROW": "tr[data-user='{{name}}']"})
        resolver = TemplateResolver(UserContext({"name": "ada"}), selectors=registry)

        assert resolver.resolve_selector("USER_ROW") == "tr[data-user='ada']"

    def test_lowercase_is_not_a_constant(self):
        assert SelectorRegistry.is_constant("LOGIN_2")
        assert not SelectorRegistry.is_constant("Login")
        assert not SelectorRegistry.is_constant("")
        assert not SelectorRegistry.is_constant("#ID")


class TestSelectorRegistry:
    """Test the registry's runtime mutation."""

    def test_defaults(self):
        registry = SelectorRegistry()
        assert len(registry) == len(DEFAULT_SELECTORS) == 25
        assert registry.get("SUBMIT_BUTTON") == "button[type='submit']"

    def test_add_remove(self):
        registry = SelectorRegistry()
        registry.add("SAVE_BUTTON", "#save")
        assert registry.has("SAVE_BUTTON")
        assert "SAVE_BUTTON" in registry

        registry.remove("SAVE_BUTTON")
        assert registry.get("SAVE_BUTTON") is None

    def test_registries_are_independent(self):
        first = SelectorRegistry()
        first.add("ONLY_HERE", "#x")
        first.remove("CHECKBOX")

        second = SelectorRegistry()
        assert not second.has("ONLY_HERE")
        assert second.has("CHECKBOX")
        assert "ONLY_HERE" not in DEFAULT_SELECTORS

    def test_add_rejects_non_constant(self):
        with pytest.raises(ValueError):
            SelectorRegistry().add("lower_case", "#x")


class TestConditions:
    """Test condition expression evaluation."""

    @pytest.mark.parametrize("expression, expected", [
        ("{{age}} > 18", True),
        ("{{age}} < 18", False),
        ("{{age}} >= 36", True),
        ("{{age}} <= 35", False),
        ("{{name}} == Ada", True),
        ("{{name}} == 'Ada'", True),
        ("{{name}} != Bob", True),
        ("{{name}} == ada", False),
        ("{{title}} contains 'Engineer'", True),
        ("'{{title}}' contains \"Senior\"", True),
        ("{{title}} contains Manager", False),
    ])
    def test_operators(self, resolver, expression, expected):
        assert resolver.evaluate_condition(expression) is expected

    def test_non_numeric_operands_are_false(self, resolver):
        assert resolver.evaluate_condition("{{name}} > 3") is False
        assert resolver.diagnostics[-1].kind == "condition_unparseable"

    def test_unresolved_placeholder_in_numeric_comparison(self, resolver):
        assert resolver.evaluate_condition("{{user.age}} >= 18") is False

    def test_no_operator_is_false(self, resolver):
        assert resolver.evaluate_condition("{{active}}") is False
        assert resolver.diagnostics[-1].kind == "condition_unparseable"

    def test_operator_needs_surrounding_spaces(self, resolver):
        assert resolver.evaluate_condition("{{age}}>18") is False


class TestDataChecks:
    """Test structured question checks."""

    def test_equals(self, resolver):
        assert resolver.evaluate_data_check(DataCheck("name", "equals", "Ada"))
        assert resolver.evaluate_data_check(DataCheck("age", "equals", 36))
        assert not resolver.evaluate_data_check(DataCheck("name", "equals", "Bob"))

    def test_greater_than(self, resolver):
        assert resolver.evaluate_data_check(DataCheck("age", "greaterThan", 18))
        assert resolver.evaluate_data_check(DataCheck("age", "greaterThan", "35.5"))
        assert not resolver.evaluate_data_check(DataCheck("age", "greaterThan", 36))

    def test_greater_than_parse_failure(self, resolver):
        assert not resolver.evaluate_data_check(DataCheck("name", "greaterThan", 1))
        assert resolver.diagnostics[-1].kind == "condition_unparseable"

    def test_contains(self, resolver):
        assert resolver.evaluate_data_check(DataCheck("title", "contains", "Senior"))
        assert resolver.evaluate_data_check(DataCheck("tags", "contains", '"b"'))

    def test_missing_path_is_false(self, resolver):
        assert not resolver.evaluate_data_check(DataCheck("nope", "equals", ""))
        assert resolver.diagnostics == []

    def test_unknown_operator(self, resolver):
        assert not resolver.evaluate_data_check(DataCheck("name", "startsWith", "A"))
        assert resolver.diagnostics[-1].kind == "condition_unparseable"

    def test_no_check(self, resolver):
        assert resolver.evaluate_data_check(None) is False


class TestUserContext:
    """Test the run-scoped data store."""

    def test_from_json(self):
        context = UserContext.from_json('{"name": "Ada", "langs": ["go"]}')
        assert context.keys() == ["name", "langs"]
        assert "name" in context
        assert len(context) == 2

        with pytest.raises(ValueError):
            UserContext.from_json("[1]")

    def test_snapshot_is_independent(self):
        context = UserContext({"langs": ["go"]})
        snapshot = context.snapshot()
        context.get("langs").append("python")

        assert snapshot == {"langs": ["go"]}

    def test_clear_keeps_key(self):
        context = UserContext({"row": 1})
        context.clear("row")

        assert context.lookup("row") == (True, None)
        assert context.lookup("other") == (False, None)
