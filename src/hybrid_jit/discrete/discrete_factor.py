# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Discrete factors: non-negative tables over discrete variables.

A :class:`DiscreteFactor` over discrete keys ``(d_1, ..., d_n)`` stores a
JAX array of shape ``(card(d_1), ..., card(d_n))``; the value at index
``(v_1, ..., v_n)`` is the (unnormalized) potential of that joint
assignment. Discrete factors are never linearized and compare exactly.
"""

from __future__ import annotations
from typing import Mapping, Sequence, Tuple

import jax.numpy as jnp
import numpy as np

from ..core.decision_tree import DecisionTree
from ..core.factor_graph import DEFAULT_TOL, Factor
from ..core.types import DiscreteKey, FactorKind, Key, KeyFormatter, default_key_formatter


class DiscreteFactor(Factor):
    """Table factor over discrete keys."""

    kind = FactorKind.DISCRETE

    def __init__(self, discrete_keys: Sequence[DiscreteKey], table) -> None:
        self.discrete_keys = tuple(discrete_keys)
        if len({dk.key for dk in self.discrete_keys}) != len(self.discrete_keys):
            raise ValueError(f"Duplicate discrete keys: {[dk.key for dk in self.discrete_keys]}")

        shape = tuple(dk.cardinality for dk in self.discrete_keys)
        table = jnp.asarray(table, dtype=jnp.float32)
        if table.size != int(np.prod(shape, dtype=int)):
            raise ValueError(f"Table of size {table.size} does not fit discrete keys with shape {shape}")
        table = jnp.reshape(table, shape)
        if bool(jnp.any(table < 0)):
            raise ValueError("Discrete factor table entries must be non-negative")
        self.table = table

    def keys(self) -> Tuple[Key, ...]:
        return tuple(dk.key for dk in self.discrete_keys)

    def __call__(self, assignment: Mapping[int, int]) -> float:
        idx = tuple(dk.check_value(assignment[dk.key]) for dk in self.discrete_keys)
        return float(self.table[idx])

    def to_decision_tree(self) -> DecisionTree[float]:
        return DecisionTree.from_function(self.discrete_keys, self)

    def equals(self, other: Factor, tol: float = DEFAULT_TOL) -> bool:
        # Exact comparison; tol applies to continuous content only.
        if not isinstance(other, DiscreteFactor):
            return False
        if self.discrete_keys != other.discrete_keys:
            return False
        return bool(jnp.array_equal(self.table, other.table))

    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        keys = ", ".join(f"{key_formatter(dk.key)}:{dk.cardinality}" for dk in self.discrete_keys)
        values = np.array2string(np.asarray(self.table).ravel(), precision=6)
        return f"{label}DiscreteFactor({keys})\n  table = {values}"

    def __repr__(self) -> str:
        return f"DiscreteFactor(keys={self.keys()})"
