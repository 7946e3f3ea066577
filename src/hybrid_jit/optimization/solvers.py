# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Dense linear solvers for Gaussian factor graphs.

The hybrid core stops at producing, for every discrete hypothesis, the
Gaussian factor graph that hypothesis induces (a :data:`Sum` tree). This
module provides the small amount of linear algebra needed to *use* such a
tree in demos, tests and benchmarks:

solve_gaussian_graph(graph, cfg)
    Stack the graph into ``(A, b)`` and solve the damped normal equations

        (AᵀA + λI) δ = Aᵀb

    returning the minimizer as a ``Key -> array`` dict together with the
    remaining error ``0.5 · ||Aδ − b||²``.

solve_sum(sum, cfg)
    Apply ``solve_gaussian_graph`` to every leaf of a sum tree, giving a
    tree of :class:`LeafSolution`.

best_assignment(solutions)
    The leaf assignment with the lowest error.

Notes
-----
These are intentionally minimal dense solvers. Proper hybrid elimination
(which would exploit sparsity and discrete structure) is out of scope.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import jax.numpy as jnp

from ..core.decision_tree import DecisionTree
from ..core.types import Assignment, Key
from ..linear.gaussian_factor_graph import GaussianFactorGraph


@dataclass
class SolveConfig:
    damping: float = 0.0  # LM-style diagonal damping


@dataclass
class LeafSolution:
    values: Dict[Key, jnp.ndarray]
    error: float


def solve_gaussian_graph(graph: GaussianFactorGraph, cfg: Optional[SolveConfig] = None) -> LeafSolution:
    """
    Least-squares solution of a Gaussian factor graph.

    Raises ``ValueError`` for an empty graph, which has nothing to solve.
    """
    cfg = cfg or SolveConfig()
    if graph.empty():
        raise ValueError("Cannot solve an empty GaussianFactorGraph")
    A, b, index = graph.jacobian()

    n = A.shape[1]
    H = A.T @ A + cfg.damping * jnp.eye(n)
    g = A.T @ b
    delta = jnp.linalg.solve(H, g)

    values = graph.unpack_state(delta, index)
    return LeafSolution(values=values, error=graph.error(values))


def solve_sum(total: DecisionTree[GaussianFactorGraph], cfg: Optional[SolveConfig] = None) -> DecisionTree[LeafSolution]:
    return total.apply(lambda graph: solve_gaussian_graph(graph, cfg))


def best_assignment(solutions: DecisionTree[LeafSolution]) -> Tuple[Assignment, LeafSolution]:
    """Lowest-error leaf; ties go to the first leaf in depth-first order."""
    return min(solutions.items(), key=lambda item: item[1].error)
