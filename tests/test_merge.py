"""Tests for recursive merge helpers."""

from schemaplate.templates.merge import deep_merge, deep_merge_all, unique


class TestDeepMerge:
    def test_nested_dicts(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        override = {"a": {"y": 3, "z": 4}}

        assert deep_merge(base, override) == {"a": {"x": 1, "y": 3, "z": 4}, "b": 1}

    def test_arrays_replaced_by_default(self):
        assert deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}

    def test_arrays_concatenated(self):
        assert deep_merge({"a": [1, 2]}, {"a": [3]}, concat_arrays=True) == {"a": [1, 2, 3]}

    def test_inputs_untouched(self):
        base = {"a": {"x": [1]}}
        override = {"a": {"y": 2}}
        result = deep_merge(base, override)
        result["a"]["x"].append(5)

        assert base == {"a": {"x": [1]}}
        assert override == {"a": {"y": 2}}

    def test_merge_all(self):
        assert deep_merge_all([{"a": 1}, {"b": 2}, {"a": 3}]) == {"a": 3, "b": 2}


def test_unique_keeps_order():
    assert unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
