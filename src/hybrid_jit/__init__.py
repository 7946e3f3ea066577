# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
HybridJIT: hybrid (discrete + continuous) factor graphs on JAX.

The central object is :class:`NonlinearHybridFactorGraph`: insert
continuous, discrete and discrete-continuous (DC) factors, linearize it at
a continuous point, and ``sum()`` the resulting Gaussian mixtures into a
decision tree with one Gaussian factor graph per discrete hypothesis.
"""

from .core.decision_tree import DecisionTree
from .core.factor_graph import DEFAULT_TOL, Factor, FactorGraph, UnroutedFactorError
from .core.types import (
    Assignment,
    DiscreteKey,
    FactorKind,
    Key,
    default_key_formatter,
    symbol,
)
from .discrete.discrete_factor import DiscreteFactor
from .discrete.discrete_factor_graph import DiscreteFactorGraph
from .hybrid.dc_factor import (
    DCFactor,
    DCGaussianMixtureFactor,
    DCMixtureFactor,
    Sum,
    add_gaussian_factor,
    add_mixture,
    empty_sum,
)
from .hybrid.dc_factor_graph import DCFactorGraph
from .hybrid.hybrid_factor_graph import (
    GaussianHybridFactorGraph,
    HybridFactorGraph,
    MixtureTypeError,
    NonlinearHybridFactorGraph,
)
from .linear.gaussian_factor import JacobianFactor
from .linear.gaussian_factor_graph import GaussianFactorGraph
from .nonlinear.nonlinear_factor import LinearizationConfig, NonlinearFactor
from .nonlinear.nonlinear_factor_graph import NonlinearFactorGraph
