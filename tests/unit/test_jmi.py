import pytest

from mbee.utils.jmi import convert, to_jmi2, to_jmi3

ELEMENTS = [
    {"id": "model", "parent": None},
    {"id": "a", "parent": "model"},
    {"id": "b", "parent": "a"},
    {"id": "loose", "parent": "elsewhere"},
]


def test_jmi1_is_the_list_itself():
    assert convert(ELEMENTS) is ELEMENTS


def test_jmi2_keys_by_id():
    keyed = to_jmi2(ELEMENTS)
    assert list(keyed) == ["model", "a", "b", "loose"]
    assert keyed["b"] == {"id": "b", "parent": "a"}


def test_jmi2_rejects_duplicate_ids():
    with pytest.raises(ValueError):
        to_jmi2([{"id": "a"}, {"id": "a"}])


def test_jmi3_nests_under_parents_in_the_result():
    tree = to_jmi3(ELEMENTS)
    assert sorted(tree) == ["loose", "model"]
    assert tree["model"]["contains"]["a"]["contains"]["b"]["contains"] == {}
    assert tree["loose"]["contains"] == {}
    # inputs are left untouched
    assert "contains" not in ELEMENTS[0]


def test_unknown_format():
    with pytest.raises(ValueError):
        convert(ELEMENTS, "jmi9")
