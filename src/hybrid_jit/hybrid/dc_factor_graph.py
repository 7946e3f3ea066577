# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
DC factor graph: an ordered collection of :class:`DCFactor`.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from ..core.factor_graph import FactorGraph
from ..core.types import DiscreteKey, FactorKind, unique_discrete_keys
from ..nonlinear.nonlinear_factor import LinearizationConfig, Values
from .dc_factor import DCFactor


@dataclass(eq=False)
class DCFactorGraph(FactorGraph[DCFactor]):

    accepts = FactorKind.DC
    element_type = DCFactor

    def discrete_keys(self) -> Tuple[DiscreteKey, ...]:
        """Discrete keys of all DC factors, deduplicated in first-seen order."""
        return unique_discrete_keys(dk for f in self.factors for dk in f.discrete_keys)

    def linearize(self, values: Values, config: Optional[LinearizationConfig] = None) -> "DCFactorGraph":
        """Linearize every factor; Gaussian mixtures are carried over as they are."""
        return DCFactorGraph([f.linearize(values, config) for f in self.factors])
