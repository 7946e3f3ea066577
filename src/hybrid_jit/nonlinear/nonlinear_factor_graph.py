# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Nonlinear factor graph: an ordered collection of :class:`NonlinearFactor`.

``linearize(values)`` produces a :class:`GaussianFactorGraph` with one
Jacobian factor per nonlinear factor, in the same order.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.factor_graph import FactorGraph
from ..core.types import FactorKind
from ..linear.gaussian_factor_graph import GaussianFactorGraph
from .nonlinear_factor import LinearizationConfig, NonlinearFactor, Values

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class NonlinearFactorGraph(FactorGraph[NonlinearFactor]):

    accepts = FactorKind.CONTINUOUS
    element_type = NonlinearFactor

    def error(self, values: Values) -> float:
        return sum(f.error(values) for f in self.factors)

    def linearize(self, values: Values, config: Optional[LinearizationConfig] = None) -> GaussianFactorGraph:
        logger.debug("Linearizing %d nonlinear factors", len(self.factors))
        return GaussianFactorGraph([f.linearize(values, config) for f in self.factors])
