from mbee.utils.merge import deep_merge


def test_nested_dicts_merge_key_by_key():
    base = {"a": 1, "nested": {"x": 1, "y": 2}}
    merged = deep_merge(base, {"nested": {"y": 3, "z": 4}, "b": 2})
    assert merged == {"a": 1, "b": 2, "nested": {"x": 1, "y": 3, "z": 4}}


def test_non_dict_values_replace():
    assert deep_merge({"tags": [1, 2]}, {"tags": [3]}) == {"tags": [3]}
    assert deep_merge({"v": {"x": 1}}, {"v": "flat"}) == {"v": "flat"}


def test_inputs_are_not_mutated():
    base = {"nested": {"x": 1}}
    updates = {"nested": {"y": [1]}}
    merged = deep_merge(base, updates)
    merged["nested"]["y"].append(2)
    assert base == {"nested": {"x": 1}}
    assert updates == {"nested": {"y": [1]}}


def test_empty_inputs():
    assert deep_merge(None, None) == {}
    assert deep_merge({"a": 1}, None) == {"a": 1}
