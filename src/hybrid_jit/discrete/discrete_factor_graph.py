# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Discrete factor graph: an ordered collection of :class:`DiscreteFactor`.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Tuple

from ..core.factor_graph import FactorGraph
from ..core.types import DiscreteKey, FactorKind, unique_discrete_keys
from .discrete_factor import DiscreteFactor


@dataclass(eq=False)
class DiscreteFactorGraph(FactorGraph[DiscreteFactor]):

    accepts = FactorKind.DISCRETE
    element_type = DiscreteFactor

    def discrete_keys(self) -> Tuple[DiscreteKey, ...]:
        """Discrete keys of all factors, deduplicated in first-seen order."""
        return unique_discrete_keys(dk for f in self.factors for dk in f.discrete_keys)

    def __call__(self, assignment: Mapping[int, int]) -> float:
        """Product of all factor values at ``assignment``."""
        value = 1.0
        for f in self.factors:
            value *= f(assignment)
        return value
