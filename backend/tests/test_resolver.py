"""Tests for dot-path resolution and template substitution."""

import pytest

from workflow.resolver import UNDEFINED, find_placeholders, resolve_path, stringify, substitute


CONTEXT = {
    "trigger": {"body": {"user": {"name": "Ada", "email": "ada@example.com"}, "tags": ["a", "b"]}},
    "step-3": {"rows": [{"email": "first@example.com"}], "empty": None},
}


@pytest.mark.unit
class TestResolvePath:

    def test_nested_mapping(self):
        assert resolve_path(CONTEXT, "trigger.body.user.name") == "Ada"

    def test_list_index(self):
        assert resolve_path(CONTEXT, "step-3.rows.0.email") == "first@example.com"

    def test_index_out_of_range(self):
        assert resolve_path(CONTEXT, "step-3.rows.5.email") is UNDEFINED

    def test_missing_key(self):
        assert resolve_path(CONTEXT, "trigger.body.user.phone") is UNDEFINED

    def test_resolved_none_is_not_undefined(self):
        assert resolve_path(CONTEXT, "step-3.empty") is None

    def test_walk_through_none(self):
        assert resolve_path(CONTEXT, "step-3.empty.field") is UNDEFINED

    def test_walk_through_scalar(self):
        assert resolve_path(CONTEXT, "trigger.body.user.name.first") is UNDEFINED

    def test_empty_path(self):
        assert resolve_path(CONTEXT, "") is UNDEFINED

    def test_undefined_is_falsy(self):
        assert not UNDEFINED


@pytest.mark.unit
class TestSubstitute:

    def test_replaces_placeholder(self):
        assert substitute("Hello {{ trigger.body.user.name }}!", CONTEXT) == "Hello Ada!"

    def test_placeholder_without_spaces(self):
        assert substitute("{{trigger.body.user.email}}", CONTEXT) == "ada@example.com"

    def test_unresolved_placeholder_kept_verbatim(self):
        template = "Dear {{ trigger.body.user.nickname }},"
        assert substitute(template, CONTEXT) == template

    def test_none_renders_as_null(self):
        assert substitute("value={{step-3.empty}}", CONTEXT) == "value=null"

    def test_list_renders_as_json(self):
        assert substitute("{{trigger.body.tags}}", CONTEXT) == '["a","b"]'

    def test_several_placeholders(self):
        result = substitute("{{trigger.body.user.name}} <{{trigger.body.user.email}}>", CONTEXT)
        assert result == "Ada <ada@example.com>"

    def test_non_string_template_unchanged(self):
        assert substitute(42, CONTEXT) == 42

    def test_find_placeholders(self):
        assert find_placeholders("{{ a.b }} and {{c}}") == ["a.b", "c"]


@pytest.mark.unit
class TestStringify:

    @pytest.mark.parametrize("value,expected", [
        (None, "null"),
        (True, "true"),
        (False, "false"),
        (5, "5"),
        (2.0, "2"),
        (2.5, "2.5"),
        ({"a": 1}, '{"a":1}'),
    ])
    def test_values(self, value, expected):
        assert stringify(value) == expected
