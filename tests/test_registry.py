"""Tests for the definition and partial registry."""

from schemaplate.templates.inference import SchemaInferrer
from schemaplate.templates.registry import (
    PartialRegistry,
    compile_definitions,
    split_explicit_dependencies,
)
from schemaplate.templates.tokens import parse


class TestSplitExplicitDependencies:
    def test_dependencies_removed(self):
        definitions = {"cert": {"type": "string", "dependencies": ["use_tls"]}, "name": {}}

        cleaned, explicit = split_explicit_dependencies(definitions)

        assert cleaned == {"cert": {"type": "string"}, "name": {}}
        assert explicit == {"cert": ["use_tls"]}
        assert definitions["cert"]["dependencies"] == ["use_tls"]


class TestCompileDefinitions:
    def test_partials_and_fragments(self):
        definitions = {
            "footer": {"template": "{{company}} {{year::integer}}"},
            "port": {"type": "integer", "default": 80},
        }
        inferrer = SchemaInferrer(definitions)

        registry = compile_definitions(inferrer, definitions)

        assert "footer" in registry
        assert registry.bodies["footer"] == "{{&company}} {{&year}}"
        assert registry.schemas["footer"]["required"] == ["company", "year"]
        assert inferrer.type_definitions["port"] == {"type": "integer", "default": 80}
        assert inferrer.type_definitions["footer"] == registry.schemas["footer"]

    def test_partial_may_use_earlier_partial(self):
        definitions = {
            "inner": {"template": "{{a}}"},
            "outer": {"template": "{{> inner}} {{b}}"},
        }
        inferrer = SchemaInferrer(definitions)
        registry = compile_definitions(inferrer, definitions)

        assert set(registry.schemas["outer"]["properties"]) == {"a", "b"}

    def test_root_sees_partials(self):
        definitions = {"footer": {"template": "{{company}}"}}
        inferrer = SchemaInferrer(definitions)
        compile_definitions(inferrer, definitions)

        schema = inferrer.infer(parse("{{title}}\n{{> footer}}"))
        assert schema["required"] == ["title", "company"]


def test_registry_register():
    registry = PartialRegistry()
    registry.register("x", {"type": "string"}, "text")

    assert "x" in registry
    assert "y" not in registry
