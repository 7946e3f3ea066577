# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Gaussian factor graph: an ordered collection of :class:`JacobianFactor`.

Besides the container behaviour inherited from
:class:`~hybrid_jit.core.factor_graph.FactorGraph`, the graph can

- evaluate its total error at a set of values, and
- stack itself into one dense system ``(A, b)`` for a given variable
  ordering, which is what the solvers in ``optimization.solvers`` consume.

In hybrid inference a ``GaussianFactorGraph`` is also the payload of every
leaf of a :data:`~hybrid_jit.hybrid.dc_factor.Sum` tree.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import jax.numpy as jnp

from ..core.factor_graph import FactorGraph
from ..core.types import FactorKind, Key
from .gaussian_factor import JacobianFactor

StateIndex = Dict[Key, Tuple[int, int]]


@dataclass(eq=False)
class GaussianFactorGraph(FactorGraph[JacobianFactor]):
    """Linear factor graph. All factors are whitened Jacobian factors."""

    accepts = FactorKind.CONTINUOUS
    element_type = JacobianFactor

    def error(self, values: Mapping[Key, jnp.ndarray]) -> float:
        return sum(f.error(values) for f in self.factors)

    def dims(self) -> Dict[Key, int]:
        """Dimension of every variable, checked for consistency across factors."""
        dims: Dict[Key, int] = {}
        for f in self.factors:
            for k, d in zip(f.keys(), f.dims()):
                if dims.setdefault(k, d) != d:
                    raise ValueError(f"Variable {k} has dimension {dims[k]} and {d} in different factors")
        return dims

    def build_state_index(self, ordering: Optional[Sequence[Key]] = None) -> StateIndex:
        """
        Returns a mapping: Key -> (start_column, dim)
        following ``ordering`` (default: first-seen key order).
        """
        dims = self.dims()
        if ordering is None:
            ordering = self.keys()
        index: StateIndex = {}
        offset = 0
        for k in ordering:
            if k not in dims:
                raise KeyError(f"Variable {k} does not appear in this graph")
            index[k] = (offset, dims[k])
            offset += dims[k]
        return index

    def jacobian(self, ordering: Optional[Sequence[Key]] = None) -> Tuple[jnp.ndarray, jnp.ndarray, StateIndex]:
        """
        Stack every factor into a dense system.

        Returns (A, b, index), with A of shape (sum of rows, sum of dims) and
        index mapping each key to its column block.
        """
        index = self.build_state_index(ordering)
        n = sum(d for _, d in index.values())
        row_blocks = []
        rhs = []
        for f in self.factors:
            row = jnp.zeros((f.rows(), n))
            for k, A in zip(f.keys(), f.blocks):
                start, dim = index[k]
                row = row.at[:, start:start + dim].set(A)
            row_blocks.append(row)
            rhs.append(f.b)
        if not row_blocks:
            return jnp.zeros((0, n)), jnp.zeros((0,)), index
        return jnp.concatenate(row_blocks, axis=0), jnp.concatenate(rhs), index

    def unpack_state(self, x: jnp.ndarray, index: StateIndex) -> Dict[Key, jnp.ndarray]:
        result: Dict[Key, jnp.ndarray] = {}
        for k, (start, dim) in index.items():
            result[k] = x[start:start + dim]
        return result
