"""Tests for the Mustache token tree."""

import pytest

from schemaplate.exceptions import TemplateValidationError
from schemaplate.templates.tokens import (
    InvertedSection,
    Partial,
    Section,
    Text,
    Variable,
    clean_template_text,
    first_comment,
    parse,
)


class TestParse:
    """Test folding of the tag stream into a tree."""

    def test_text_and_variable(self):
        assert parse("Hello {{name}}") == [Text("Hello "), Variable("name")]

    def test_unescaped_variables_are_variables(self):
        tokens = parse("{{&a}} {{{b}}}")
        assert [t for t in tokens if isinstance(t, Variable)] == [Variable("a"), Variable("b")]

    def test_nested_sections(self):
        tokens = parse("{{#outer}}{{^inner}}{{x}}{{/inner}}{{/outer}}")

        assert tokens == [
            Section("outer", (InvertedSection("inner", (Variable("x"),)),)),
        ]

    def test_partial(self):
        assert parse("{{> footer}}") == [Partial("footer")]

    def test_comments_are_dropped(self):
        assert parse("{{! note }}{{x}}") == [Variable("x")]

    def test_empty_template(self):
        assert parse("") == []

    def test_unclosed_section(self):
        with pytest.raises(TemplateValidationError):
            parse("{{#items}}{{name}}")

    def test_mismatched_section(self):
        with pytest.raises(TemplateValidationError):
            parse("{{#a}}{{/b}}")


class TestTaggedKeys:
    """Test splitting of ``name:schema:type`` keys."""

    def test_bare_name(self):
        assert Variable("name").parts == ("name", None, None)

    def test_full_annotation(self):
        token = Variable("port:f5:port")
        assert token.name == "port"
        assert token.schema_source == "f5"
        assert token.type_name == "port"

    def test_type_without_schema(self):
        assert Section("items::array").parts == ("items", None, "array")


class TestTextHelpers:
    """Test comment extraction and text cleaning."""

    def test_first_comment(self):
        assert first_comment("{{! A friendly greeting }}Hello {{! second }}") == "A friendly greeting"

    def test_no_comment(self):
        assert first_comment("Hello {{name}}") is None

    def test_clean_strips_annotations(self):
        text = "{{port:f5:port}} {{#pool:f5:pool}}{{name}}{{/pool}}"
        assert clean_template_text(text) == "{{&port}} {{#pool}}{{&name}}{{/pool}}"

    def test_clean_keeps_other_tags(self):
        text = "{{> footer}} {{{raw}}} {{&plain}} {{^off}}x{{/off}} {{! c }}"
        assert clean_template_text(text) == text

    def test_clean_follows_set_delimiters(self):
        text = "{{a}} {{=<% %>=}}<%b%> <%port:f5:port%> <%={{ }}=%>{{c}}"
        assert clean_template_text(text) == (
            "{{&a}} {{=<% %>=}}<%&b%> <%&port%> <%={{ }}=%>{{&c}}"
        )
