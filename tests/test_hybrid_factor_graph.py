from __future__ import annotations

import jax.numpy as jnp
import pytest

from hybrid_jit.core.decision_tree import DecisionTree
from hybrid_jit.core.factor_graph import UnroutedFactorError
from hybrid_jit.core.types import DiscreteKey, symbol
from hybrid_jit.discrete.discrete_factor import DiscreteFactor
from hybrid_jit.discrete.discrete_factor_graph import DiscreteFactorGraph
from hybrid_jit.hybrid.dc_factor import DCGaussianMixtureFactor, DCMixtureFactor
from hybrid_jit.hybrid.hybrid_factor_graph import (
    GaussianHybridFactorGraph,
    HybridFactorGraph,
    MixtureTypeError,
    NonlinearHybridFactorGraph,
)
from hybrid_jit.linear.gaussian_factor import JacobianFactor
from hybrid_jit.linear.gaussian_factor_graph import GaussianFactorGraph
from hybrid_jit.nonlinear.nonlinear_factor import NonlinearFactor
from hybrid_jit.nonlinear.nonlinear_factor_graph import NonlinearFactorGraph
from hybrid_jit.slam.measurements import odom_residual, prior_residual

x0 = symbol("x", 0)
x1 = symbol("x", 1)
A = DiscreteKey(symbol("m", 0), 2)
B = DiscreteKey(symbol("m", 1), 2)
C = DiscreteKey(symbol("m", 2), 2)


def unary(key, b: float) -> JacobianFactor:
    return JacobianFactor([key], [jnp.array([[1.0]])], jnp.array([b]))


def gaussian_mixture(dkeys, key=x0) -> DCGaussianMixtureFactor:
    n = 1
    for dk in dkeys:
        n *= dk.cardinality
    return DCGaussianMixtureFactor([key], dkeys, [unary(key, float(i)) for i in range(n)])


def table(dkeys) -> DiscreteFactor:
    n = 1
    for dk in dkeys:
        n *= dk.cardinality
    return DiscreteFactor(dkeys, jnp.ones(n))


def prior(key, target: float) -> NonlinearFactor:
    return NonlinearFactor([key], prior_residual, {"target": jnp.array([target])}, name="prior")


def nonlinear_mixture() -> DCMixtureFactor:
    return DCMixtureFactor(
        [x0, x1],
        [A],
        [
            NonlinearFactor([x0, x1], odom_residual, {"measurement": jnp.array([1.0])}),
            NonlinearFactor([x0, x1], odom_residual, {"measurement": jnp.array([0.0]), "weight": 1e-6}),
        ],
    )


# --- Routing ---


def test_push_back_routes_by_kind():
    g = NonlinearHybridFactorGraph()
    g.push_back(prior(x0, 0.0))
    g.push_back(table([A]))
    g.push_back(nonlinear_mixture())

    assert len(g) == 3
    assert g.nr_continuous_factors() == 1
    assert g.nr_discrete_factors() == 1
    assert g.nr_dc_factors() == 1
    assert isinstance(g.continuous_graph(), NonlinearFactorGraph)
    assert g.continuous_graph()[0] is g[0]
    assert g.dc_graph()[0] is g[2]


def test_push_back_accepts_graphs_and_iterables():
    g = GaussianHybridFactorGraph()
    g.push_back(DiscreteFactorGraph([table([A]), table([B])]))
    g.push_back([gaussian_mixture([A]), unary(x0, 0.0)])

    assert g.nr_discrete_factors() == 2
    assert g.nr_dc_factors() == 1
    assert g.nr_continuous_factors() == 1


def test_plain_hybrid_graph_has_no_continuous_slot():
    g = HybridFactorGraph()
    with pytest.raises(UnroutedFactorError):
        g.push_back(unary(x0, 0.0))
    with pytest.raises(UnroutedFactorError):
        g.push_continuous(unary(x0, 0.0))
    assert g.empty()


def test_wrong_continuous_representation_is_rejected():
    with pytest.raises(UnroutedFactorError):
        GaussianHybridFactorGraph().push_back(prior(x0, 0.0))
    with pytest.raises(UnroutedFactorError):
        NonlinearHybridFactorGraph().push_back(unary(x0, 0.0))


def test_non_factor_is_rejected():
    g = HybridFactorGraph()
    with pytest.raises(UnroutedFactorError):
        g.push_back(42)
    with pytest.raises(UnroutedFactorError):
        g.push_discrete(gaussian_mixture([A]))
    with pytest.raises(UnroutedFactorError):
        g.push_dc(table([A]))


def test_unrouted_error_is_a_type_error():
    assert issubclass(UnroutedFactorError, TypeError)


def test_same_factor_twice_is_kept_twice():
    g = HybridFactorGraph()
    f = table([A])
    g.push_back(f)
    g.push_back(f)

    assert g.size() == 2
    assert g.nr_discrete_factors() == 2


def test_emplace_returns_constructed_factor():
    g = GaussianHybridFactorGraph()
    d = g.emplace_discrete(DiscreteFactor, [A], [0.3, 0.7])
    m = g.emplace_dc(DCGaussianMixtureFactor, [x0], [A], [unary(x0, 0.0), unary(x0, 1.0)])
    c = g.emplace_continuous(JacobianFactor, [x0], [jnp.eye(1)], jnp.zeros(1))

    assert list(g) == [d, m, c]
    assert g.discrete_graph()[0] is d


def test_constructor_takes_sub_graphs():
    g = GaussianHybridFactorGraph(
        continuous_graph=GaussianFactorGraph([unary(x0, 0.0)]),
        discrete_graph=[table([A])],
        dc_graph=[gaussian_mixture([B])],
    )
    assert (g.nr_continuous_factors(), g.nr_discrete_factors(), g.nr_dc_factors()) == (1, 1, 1)


# --- Discrete keys ---


def test_discrete_keys_union():
    g = HybridFactorGraph()
    g.push_back(table([A, B]))
    g.push_back(gaussian_mixture([B, C]))

    assert g.discrete_keys() == (A, B, C)


def test_discrete_keys_independent_of_insertion_order():
    g = HybridFactorGraph()
    g.push_back(gaussian_mixture([B, C]))
    g.push_back(table([A, B]))

    assert set(g.discrete_keys()) == {A, B, C}
    assert len(g.discrete_keys()) == 3


def test_discrete_keys_cardinality_conflict():
    g = HybridFactorGraph()
    g.push_back(table([A]))
    g.push_back(gaussian_mixture([DiscreteKey(A.key, 3)]))
    with pytest.raises(ValueError):
        g.discrete_keys()


def test_empty_graph_has_no_discrete_keys():
    assert HybridFactorGraph().discrete_keys() == ()


# --- Sum ---


def test_sum_of_empty_graph_is_single_empty_leaf():
    total = HybridFactorGraph().sum()
    assert total.is_leaf()
    assert total.leaves()[0].empty()


def test_sum_over_disjoint_keys():
    g = HybridFactorGraph()
    m1 = gaussian_mixture([A])
    m2 = gaussian_mixture([B])
    g.push_back(m1)
    g.push_back(m2)

    total = g.sum()
    assert total.num_leaves() == 4
    assert [dk.key for dk in total.discrete_keys()] == [A.key, B.key]

    for a in range(2):
        for b in range(2):
            leaf = total({A.key: a, B.key: b})
            assert len(leaf) == 2
            assert leaf[0] is m1.factor({A.key: a})
            assert leaf[1] is m2.factor({B.key: b})


def test_sum_order_follows_insertion_not_keys():
    g = HybridFactorGraph()
    m1 = gaussian_mixture([B])
    m2 = gaussian_mixture([A], key=x1)
    g.push_back(m1)
    g.push_back(m2)

    total = g.sum()
    assert total.num_leaves() == 4
    assert [dk.key for dk in total.discrete_keys()] == [B.key, A.key]

    for a in range(2):
        for b in range(2):
            leaf = total({A.key: a, B.key: b})
            assert len(leaf) == 2
            assert leaf[0] is m1.factor({B.key: b})
            assert leaf[1] is m2.factor({A.key: a})


def test_sum_over_shared_key():
    g = HybridFactorGraph()
    g.push_back(gaussian_mixture([A]))
    g.push_back(gaussian_mixture([A], key=x1))

    total = g.sum()
    assert total.num_leaves() == 2
    assert all(len(leaf) == 2 for leaf in total.leaves())


def test_sum_over_three_keys():
    g = HybridFactorGraph()
    g.push_back(gaussian_mixture([A, B]))
    g.push_back(gaussian_mixture([C]))

    total = g.sum()
    assert total.num_leaves() == 8


def test_sum_ignores_discrete_factors():
    g = HybridFactorGraph()
    g.push_back(table([A, B, C]))
    g.push_back(gaussian_mixture([A]))

    assert g.sum().num_leaves() == 2


def test_sum_rejects_nonlinear_mixture():
    g = NonlinearHybridFactorGraph()
    g.push_back(nonlinear_mixture())

    with pytest.raises(MixtureTypeError, match="DCGaussianMixtureFactors"):
        g.sum()
    assert issubclass(MixtureTypeError, TypeError)


def test_sum_stops_at_first_nonlinear_mixture():
    g = NonlinearHybridFactorGraph()
    g.push_back(gaussian_mixture([B]))
    g.push_back(nonlinear_mixture())
    g.push_back(gaussian_mixture([C]))

    total = None
    with pytest.raises(MixtureTypeError, match="DCMixtureFactor"):
        total = g.sum()
    assert total is None
    assert g.nr_dc_factors() == 3


def test_sum_branches_on_keys_a_component_tree_skips():
    # Components only depend on A, but the mixture is declared over A and B
    tree = DecisionTree.from_values([A], [unary(x0, 0.0), unary(x0, 1.0)])
    m = DCGaussianMixtureFactor([x0], [A, B], tree)
    g = HybridFactorGraph()
    g.push_back(m)

    total = g.sum()
    assert set(g.discrete_keys()) == {A, B}
    assert total.num_leaves() == 4
    assert set(total.discrete_keys()) == {A, B}
    for a in range(2):
        for b in range(2):
            leaf = total({A.key: a, B.key: b})
            assert len(leaf) == 1
            assert leaf[0] is m.factor({A.key: a})


def test_sum_include_continuous():
    g = GaussianHybridFactorGraph()
    c = unary(x1, 3.0)
    m = gaussian_mixture([A])
    g.push_back(c)
    g.push_back(m)

    plain = g.sum()
    assert all(len(leaf) == 1 for leaf in plain.leaves())

    full = g.sum(include_continuous=True)
    leaf = full({A.key: 1})
    assert len(leaf) == 2
    assert leaf[0] is m.factor({A.key: 1})
    assert leaf[1] is c


def test_sum_does_not_mutate_graph():
    g = HybridFactorGraph()
    g.push_back(gaussian_mixture([A]))
    before = g.to_string()
    g.sum()
    g.sum()
    assert g.to_string() == before
    assert len(g) == 1


# --- Linearize ---


def build_nonlinear_graph() -> NonlinearHybridFactorGraph:
    g = NonlinearHybridFactorGraph()
    g.push_back(prior(x0, 0.0))
    g.push_back(table([A]))
    g.push_back(nonlinear_mixture())
    g.push_back(gaussian_mixture([B]))
    return g


VALUES = {x0: jnp.array([0.0]), x1: jnp.array([0.8])}


def test_linearize_produces_gaussian_hybrid_graph():
    g = build_nonlinear_graph()
    lin = g.linearize(VALUES)

    assert isinstance(lin, GaussianHybridFactorGraph)
    assert len(lin) == len(g)
    assert isinstance(lin[0], JacobianFactor)
    assert lin[1] is g[1]
    assert isinstance(lin[2], DCGaussianMixtureFactor)
    # An existing Gaussian mixture is carried over unchanged
    assert lin[3] is g[3]
    assert lin.discrete_keys() == g.discrete_keys()


def test_linearize_is_pure_and_deterministic():
    g = build_nonlinear_graph()
    before = g.to_string()

    first = g.linearize(VALUES)
    second = g.linearize(VALUES)

    assert g.to_string() == before
    assert first.equals(second, tol=0.0)


def test_linearized_graph_can_be_summed():
    lin = build_nonlinear_graph().linearize(VALUES)
    total = lin.sum(include_continuous=True)

    assert total.num_leaves() == 4
    assert all(len(leaf) == 3 for leaf in total.leaves())


# --- Clear / equals / print ---


def test_clear_is_idempotent():
    g = build_nonlinear_graph()
    g.clear()
    assert g.empty()
    assert g.nr_continuous_factors() == g.nr_discrete_factors() == g.nr_dc_factors() == 0
    assert g.discrete_keys() == ()
    g.clear()
    assert g.size() == 0

    g.push_back(table([A]))
    assert g.size() == 1


def test_equals_with_tolerance():
    g1 = GaussianHybridFactorGraph()
    g1.push_back(unary(x0, 1.0))
    g1.push_back(gaussian_mixture([A]))
    g2 = GaussianHybridFactorGraph()
    g2.push_back(unary(x0, 1.0001))
    g2.push_back(gaussian_mixture([A]))

    assert g1.equals(g1, tol=0.0)
    assert g1.equals(g2, tol=1e-3)
    assert not g1.equals(g2, tol=1e-5)


def test_equals_is_structural():
    g1 = HybridFactorGraph()
    g1.push_back(table([A]))
    g1.push_back(gaussian_mixture([A]))
    g2 = HybridFactorGraph()
    g2.push_back(gaussian_mixture([A]))
    g2.push_back(table([A]))
    g3 = GaussianHybridFactorGraph()
    g3.push_back(table([A]))
    g3.push_back(gaussian_mixture([A]))

    assert not g1.equals(g2)
    assert not g1.equals(g3)
    assert not g1.equals(HybridFactorGraph())


def test_print_lists_sub_graphs(capsys):
    g = HybridFactorGraph()
    g.push_back(table([A]))
    g.push_back(gaussian_mixture([A]))
    g.print()
    out = capsys.readouterr().out

    assert out.startswith("HybridFactorGraph.size: 2\n")
    assert "HybridFactorGraph.DiscreteFactorGraph\nsize: 1" in out
    assert "HybridFactorGraph.DCFactorGraph\nsize: 1" in out
    assert "factor 0: DiscreteFactor(m0:2)" in out


def test_print_with_custom_label_and_formatter(capsys):
    g = GaussianHybridFactorGraph()
    g.push_back(unary(x0, 0.0))
    g.print("G", key_formatter=lambda k: f"<{k & 0xFF}>")
    out = capsys.readouterr().out

    assert out.startswith("G.size: 1\n")
    assert "G.GaussianFactorGraph" in out
    assert "JacobianFactor(<0>)" in out
