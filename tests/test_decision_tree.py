from __future__ import annotations

import pytest

from hybrid_jit.core.decision_tree import DecisionTree
from hybrid_jit.core.types import DiscreteKey, symbol

X = DiscreteKey(symbol("m", 0), 2)
Y = DiscreteKey(symbol("m", 1), 2)
Z = DiscreteKey(symbol("m", 2), 2)


def concat(a: str, b: str) -> str:
    return a + b


def test_leaf_tree_has_no_keys():
    t = DecisionTree.leaf("only")
    assert t.is_leaf()
    assert t.discrete_keys() == ()
    assert t.num_leaves() == 1
    assert t({}) == "only"


def test_from_values_is_row_major():
    """
    Two binary keys (X, Y): the flat list is indexed by 2*X + Y,
    i.e. the last key varies fastest.
    """
    t = DecisionTree.from_values([X, Y], ["a00", "a01", "a10", "a11"])

    assert t.discrete_keys() == (X, Y)
    assert t.num_leaves() == 4
    assert t({X.key: 1, Y.key: 0}) == "a10"
    assert t({X.key: 0, Y.key: 1}) == "a01"
    assert t.leaves() == ["a00", "a01", "a10", "a11"]


def test_from_values_checks_count():
    with pytest.raises(ValueError):
        DecisionTree.from_values([X, Y], ["a", "b", "c"])


def test_evaluation_requires_every_branching_key():
    t = DecisionTree.from_values([X], ["a0", "a1"])
    with pytest.raises(KeyError):
        t({Y.key: 0})


def test_apply_maps_leaves_and_keeps_shape():
    t = DecisionTree.from_values([X], [1, 2])
    doubled = t.apply(lambda v: 2 * v)

    assert doubled.discrete_keys() == (X,)
    assert doubled.leaves() == [2, 4]
    # Original is untouched
    assert t.leaves() == [1, 2]


def test_apply2_disjoint_supports_gives_union():
    """Trees over X and over Y zip into a tree over (X, Y) with 4 leaves."""
    a = DecisionTree.from_values([X], ["a0", "a1"])
    b = DecisionTree.from_values([Y], ["b0", "b1"])

    c = a.apply2(b, concat)

    assert c.discrete_keys() == (X, Y)
    assert c.num_leaves() == 4
    for x in range(2):
        for y in range(2):
            assert c({X.key: x, Y.key: y}) == f"a{x}b{y}"


def test_apply2_shared_key_does_not_multiply_leaves():
    a = DecisionTree.from_values([X], ["a0", "a1"])
    b = DecisionTree.from_values([X], ["b0", "b1"])

    c = a.apply2(b, concat)

    assert c.num_leaves() == 2
    assert c.leaves() == ["a0b0", "a1b1"]


def test_apply2_partial_overlap():
    """(X, Y) zipped with (Y, Z) yields 8 consistent leaves over (X, Y, Z)."""
    a = DecisionTree.from_values([X, Y], ["a00", "a01", "a10", "a11"])
    b = DecisionTree.from_values([Y, Z], ["b00", "b01", "b10", "b11"])

    c = a.apply2(b, concat)

    assert set(c.discrete_keys()) == {X, Y, Z}
    assert c.num_leaves() == 8
    assert c({X.key: 1, Y.key: 0, Z.key: 1}) == "a10b01"
    assert c({X.key: 0, Y.key: 1, Z.key: 0}) == "a01b10"


def test_apply2_other_branching_order():
    """The second operand may branch on shared keys in a different order."""
    a = DecisionTree.from_values([X, Y], ["a00", "a01", "a10", "a11"])
    b = DecisionTree.from_values([Y, X], ["b00", "b01", "b10", "b11"])

    c = a.apply2(b, concat)

    assert c.num_leaves() == 4
    # b is indexed (Y, X)
    assert c({X.key: 1, Y.key: 0}) == "a10b01"


def test_apply2_with_leaf_broadcasts():
    a = DecisionTree.leaf("s")
    b = DecisionTree.from_values([X], ["b0", "b1"])

    assert a.apply2(b, concat).leaves() == ["sb0", "sb1"]
    assert b.apply2(a, concat).leaves() == ["b0s", "b1s"]


def test_apply2_rejects_cardinality_mismatch():
    a = DecisionTree.from_values([X], ["a0", "a1"])
    b = DecisionTree.from_values([DiscreteKey(X.key, 3)], ["b0", "b1", "b2"])

    with pytest.raises(ValueError):
        a.apply2(b, concat)


def test_restrict_fixes_keys():
    t = DecisionTree.from_values([X, Y], ["a00", "a01", "a10", "a11"])
    r = t.restrict({X.key: 1, Z.key: 0})

    assert r.discrete_keys() == (Y,)
    assert r.leaves() == ["a10", "a11"]


def test_out_of_range_values_are_rejected():
    t = DecisionTree.from_values([X], ["a0", "a1"])

    with pytest.raises(ValueError):
        t({X.key: -1})
    with pytest.raises(ValueError):
        t({X.key: 2})
    with pytest.raises(ValueError):
        t.restrict({X.key: -1})
    with pytest.raises(ValueError):
        t.restrict({X.key: 2})


def test_equals_ignores_branching_order():
    def fn(a):
        return 10 * a[X.key] + a[Y.key]

    t1 = DecisionTree.from_function([X, Y], fn)
    t2 = DecisionTree.from_function([Y, X], fn)
    t3 = t1.apply(lambda v: v + 1)

    assert t1.equals(t2)
    assert not t1.equals(t3)
    assert not t1.equals(DecisionTree.from_function([X], lambda a: 0))


def test_items_report_path_assignments():
    t = DecisionTree.from_values([X], ["a0", "a1"])
    items = list(t.items())

    assert [dict(a) for a, _ in items] == [{X.key: 0}, {X.key: 1}]
    assert [v for _, v in items] == ["a0", "a1"]


def test_to_string_uses_key_formatter():
    t = DecisionTree.from_values([X], ["a0", "a1"])
    text = t.to_string("tree")

    assert text.splitlines()[0] == "tree"
    assert "Choice(m0)" in text
    assert "0 Leaf a0" in text
    assert "1 Leaf a1" in text

    custom = t.to_string("", key_formatter=lambda k: "MODE")
    assert "Choice(MODE)" in custom
