"""Tests for content type strategies."""

import json

import yaml

from schemaplate.templates.strategies import (
    get_merge_strategy,
    get_transform_strategy,
    json_merge,
    json_post_process,
    json_transform,
    merge_strategies,
    plain_text_merge,
    plain_text_transform,
    post_process_strategies,
    transform_strategies,
    yaml_merge,
    yaml_post_process,
)


class TestTransforms:
    def test_plain_text_is_identity(self):
        assert plain_text_transform({"type": "array"}, [1, 2]) == [1, 2]

    def test_json_serializes_arrays(self):
        assert json_transform({"type": "array"}, ["a", "b"]) == '["a", "b"]'

    def test_json_empty_array(self):
        assert json_transform({"type": "array"}, None) == "[]"

    def test_json_keeps_section_arrays(self):
        value = [{"name": "a"}]
        assert json_transform({"type": "array", "skip_xform": True}, value) is value

    def test_json_serializes_objects(self):
        assert json_transform({"type": "object"}, {"a": 1}) == '{"a": 1}'
        assert json_transform({"type": "object"}, None) == "{}"

    def test_json_keeps_section_objects(self):
        value = {"a": 1}
        assert json_transform({"type": "object", "skip_xform": True}, value) is value

    def test_json_encodes_text(self):
        assert json_transform({"type": "string", "format": "text"}, 'say "hi"\n') == '"say \\"hi\\"\\n"'

    def test_json_leaves_strings(self):
        assert json_transform({"type": "string"}, "plain") == "plain"


class TestMerges:
    def test_plain_text(self):
        assert plain_text_merge("a", "b") == "a\nb"

    def test_json_deep_merge(self):
        merged = json.loads(json_merge('{"x": 1, "l": [1, 2]}', '{"y": 2, "l": [3]}'))
        assert merged == {"x": 1, "y": 2, "l": [3]}

    def test_yaml_deep_merge(self):
        merged = yaml.safe_load(yaml_merge("a:\n  b: 1\n", "a:\n  c: 2\n"))
        assert merged == {"a": {"b": 1, "c": 2}}


class TestPostProcess:
    def test_json_pretty_prints(self):
        assert json_post_process('{"a":1}') == '{\n  "a": 1\n}'

    def test_json_blank(self):
        assert json_post_process("   ") == '""'

    def test_yaml_redump(self):
        assert yaml_post_process("a:   1\nb: [1,2]") == "a: 1\nb:\n- 1\n- 2\n"


class TestTables:
    def test_yaml_content_types(self):
        for content_type in ("application/yaml", "application/x-yaml", "text/x-yaml"):
            assert merge_strategies[content_type] is yaml_merge
            assert post_process_strategies[content_type] is yaml_post_process

    def test_fallbacks(self):
        assert get_transform_strategy("text/plain") is plain_text_transform
        assert get_merge_strategy("text/plain") is plain_text_merge
        assert "text/plain" not in post_process_strategies

    def test_json(self):
        assert transform_strategies["application/json"] is json_transform
        assert get_merge_strategy("application/json") is json_merge
