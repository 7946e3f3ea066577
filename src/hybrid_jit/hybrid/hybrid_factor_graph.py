# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Hybrid factor graph engine for HybridJIT.

A hybrid factor graph holds three categories of factors side by side:

    • continuous factors   (nonlinear residuals, or Gaussian after linearization)
    • discrete factors     (tables over discrete variables)
    • DC factors           (continuous components selected by discrete variables)

Storage
-------
All factors live in one ordered arena (``self._factors``) in insertion
order. Three index lists point into the arena, one per category, and the
typed sub-graphs returned by ``continuous_graph()``, ``discrete_graph()``
and ``dc_graph()`` are materialized from those indices on demand. A factor
is stored once even if its kind routes it to several categories.

Routing
-------
Every factor class carries a :class:`~hybrid_jit.core.types.FactorKind`
flag. ``push_back`` reads it once and files the factor under every
matching category. A factor matching no category (or a continuous factor
of the wrong representation for this graph) raises
:class:`UnroutedFactorError`; nothing is dropped silently.

Variants
--------
HybridFactorGraph
    Discrete and DC factors only; it has no continuous slot.

NonlinearHybridFactorGraph
    Continuous slot holds :class:`NonlinearFactor`.
    ``linearize(values)`` returns a new :class:`GaussianHybridFactorGraph`.

GaussianHybridFactorGraph
    Continuous slot holds :class:`JacobianFactor`.

Primary Methods
---------------
sum()
    Fold every DC Gaussian mixture into one decision tree of Gaussian
    factor graphs (see ``hybrid.dc_factor``). Any other DC factor is a
    :class:`MixtureTypeError`: the graph was not linearized first.

discrete_keys()
    Deduplicated union of discrete keys from the discrete and DC factors,
    in first-seen order.

equals(other, tol) / print(label, key_formatter)
    Structural comparison and printing, delegated to the sub-graphs.

Notes
-----
``linearize`` and ``sum`` never mutate the receiver. Factors themselves
are immutable and may be shared between graphs; the graph only owns its
arena and index lists.
"""

from __future__ import annotations
import logging
from collections import abc
from typing import ClassVar, Generic, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar, Union

from ..core.factor_graph import DEFAULT_TOL, Factor, FactorGraph, UnroutedFactorError
from ..core.types import DiscreteKey, FactorKind, KeyFormatter, default_key_formatter, unique_discrete_keys
from ..discrete.discrete_factor import DiscreteFactor
from ..discrete.discrete_factor_graph import DiscreteFactorGraph
from ..linear.gaussian_factor_graph import GaussianFactorGraph
from ..nonlinear.nonlinear_factor import LinearizationConfig, Values
from ..nonlinear.nonlinear_factor_graph import NonlinearFactorGraph
from .dc_factor import DCFactor, DCGaussianMixtureFactor, Sum, add_gaussian_factor, add_mixture, empty_sum
from .dc_factor_graph import DCFactorGraph

logger = logging.getLogger(__name__)

FG = TypeVar("FG", bound=FactorGraph)


class MixtureTypeError(TypeError):
    """``sum()`` met a DC factor that is not a Gaussian mixture."""


class HybridFactorGraph(Generic[FG]):
    """
    Container of continuous, discrete and DC factors.

    - continuous_graph_type: graph class used for the continuous slot
      (plain ``FactorGraph`` here, which accepts nothing)
    """

    continuous_graph_type: ClassVar[Type[FactorGraph]] = FactorGraph

    def __init__(
        self,
        continuous_graph: Optional[Iterable[Factor]] = None,
        discrete_graph: Optional[Iterable[DiscreteFactor]] = None,
        dc_graph: Optional[Iterable[DCFactor]] = None,
    ) -> None:
        self._factors: List[Factor] = []
        self._continuous: List[int] = []
        self._discrete: List[int] = []
        self._dc: List[int] = []

        for f in continuous_graph or ():
            self.push_continuous(f)
        for f in discrete_graph or ():
            self.push_discrete(f)
        for f in dc_graph or ():
            self.push_dc(f)

    # --- Insertion ---

    def _accepts_continuous(self, factor: Factor) -> bool:
        graph_type = self.continuous_graph_type
        kind = getattr(factor, "kind", FactorKind.NONE)
        return bool(kind & graph_type.accepts) and isinstance(factor, graph_type.element_type)

    def _insert(self, factor: Factor, targets: List[List[int]]) -> None:
        idx = len(self._factors)
        self._factors.append(factor)
        for t in targets:
            t.append(idx)

    def push_back(self, factor: Union[Factor, Iterable[Factor]]) -> None:
        """
        Add a factor, routing it by its kind flag, or add every factor of an
        iterable (including another factor graph) in order.
        """
        if not isinstance(factor, Factor):
            if not isinstance(factor, abc.Iterable):
                raise UnroutedFactorError(f"'{type(factor).__name__}' is not a factor")
            for f in factor:
                self.push_back(f)
            return

        kind = factor.kind
        targets: List[List[int]] = []
        if kind & FactorKind.CONTINUOUS:
            if not self._accepts_continuous(factor):
                raise UnroutedFactorError(
                    f"{type(self).__name__} has no continuous slot for '{type(factor).__name__}'"
                )
            targets.append(self._continuous)
        if kind & FactorKind.DISCRETE and isinstance(factor, DiscreteFactor):
            targets.append(self._discrete)
        if kind & FactorKind.DC and isinstance(factor, DCFactor):
            targets.append(self._dc)
        if not targets:
            raise UnroutedFactorError(
                f"Factor of type '{type(factor).__name__}' (kind {kind}) matches no sub-graph"
            )
        logger.debug("Routing %s (kind %s) to %d sub-graph(s)", type(factor).__name__, kind, len(targets))
        self._insert(factor, targets)

    def push_continuous(self, factor: Factor) -> None:
        if not self._accepts_continuous(factor):
            raise UnroutedFactorError(
                f"{type(self).__name__} cannot hold continuous factor '{type(factor).__name__}'"
            )
        self._insert(factor, [self._continuous])

    def push_discrete(self, factor: DiscreteFactor) -> None:
        kind = getattr(factor, "kind", FactorKind.NONE)
        if not (kind & FactorKind.DISCRETE and isinstance(factor, DiscreteFactor)):
            raise UnroutedFactorError(f"'{type(factor).__name__}' is not a discrete factor")
        self._insert(factor, [self._discrete])

    def push_dc(self, factor: DCFactor) -> None:
        kind = getattr(factor, "kind", FactorKind.NONE)
        if not (kind & FactorKind.DC and isinstance(factor, DCFactor)):
            raise UnroutedFactorError(f"'{type(factor).__name__}' is not a DC factor")
        self._insert(factor, [self._dc])

    def emplace_continuous(self, factor_cls: Type[Factor], *args, **kwargs) -> Factor:
        factor = factor_cls(*args, **kwargs)
        self.push_continuous(factor)
        return factor

    def emplace_discrete(self, factor_cls: Type[DiscreteFactor], *args, **kwargs) -> DiscreteFactor:
        """Construct a discrete factor from ``args`` and add it."""
        factor = factor_cls(*args, **kwargs)
        self.push_discrete(factor)
        return factor

    def emplace_dc(self, factor_cls: Type[DCFactor], *args, **kwargs) -> DCFactor:
        """Construct a DC factor from ``args`` and add it."""
        factor = factor_cls(*args, **kwargs)
        self.push_dc(factor)
        return factor

    # --- Accessors ---

    def continuous_graph(self) -> FG:
        return self.continuous_graph_type([self._factors[i] for i in self._continuous])

    def discrete_graph(self) -> DiscreteFactorGraph:
        return DiscreteFactorGraph([self._factors[i] for i in self._discrete])

    def dc_graph(self) -> DCFactorGraph:
        return DCFactorGraph([self._factors[i] for i in self._dc])

    def __len__(self) -> int:
        return len(self._factors)

    def __iter__(self) -> Iterator[Factor]:
        return iter(self._factors)

    def __getitem__(self, i: int) -> Factor:
        return self._factors[i]

    def size(self) -> int:
        return len(self._factors)

    def empty(self) -> bool:
        return not self._factors

    def nr_continuous_factors(self) -> int:
        return len(self._continuous)

    def nr_discrete_factors(self) -> int:
        return len(self._discrete)

    def nr_dc_factors(self) -> int:
        return len(self._dc)

    def clear(self) -> None:
        self._factors = []
        self._continuous = []
        self._discrete = []
        self._dc = []

    def discrete_keys(self) -> Tuple[DiscreteKey, ...]:
        """All discrete keys, from discrete factors first, then DC factors."""
        from_discrete = (dk for i in self._discrete for dk in self._factors[i].discrete_keys)
        from_dc = (dk for i in self._dc for dk in self._factors[i].discrete_keys)
        return unique_discrete_keys(list(from_discrete) + list(from_dc))

    # --- Summation ---

    def sum(self) -> Sum:
        """
        Sum all Gaussian mixtures into a decision tree of GaussianFactorGraphs.

        Each leaf holds, in insertion order, the component every mixture
        selects for that leaf's joint assignment.
        """
        total = empty_sum()
        for i in self._dc:
            factor = self._factors[i]
            if not isinstance(factor, DCGaussianMixtureFactor):
                raise MixtureTypeError(
                    f"HybridFactorGraph.sum can only handle DCGaussianMixtureFactors, "
                    f"got '{type(factor).__name__}'"
                )
            total = add_mixture(total, factor)
        logger.debug("Summed %d mixture factors into %d leaves", len(self._dc), total.num_leaves())
        return total

    # --- Comparison / printing ---

    def equals(self, other: "HybridFactorGraph", tol: float = DEFAULT_TOL) -> bool:
        if type(self) is not type(other) or len(self) != len(other):
            return False
        if (self._continuous, self._discrete, self._dc) != (other._continuous, other._discrete, other._dc):
            return False
        return (
            self.continuous_graph().equals(other.continuous_graph(), tol)
            and self.discrete_graph().equals(other.discrete_graph(), tol)
            and self.dc_graph().equals(other.dc_graph(), tol)
        )

    def to_string(
        self,
        label: str = "HybridFactorGraph",
        key_formatter: KeyFormatter = default_key_formatter,
    ) -> str:
        prefix = f"{label}." if label else ""
        parts = [f"{prefix}size: {self.size()}"]
        if self.continuous_graph_type.accepts:
            parts.append(
                self.continuous_graph().to_string(prefix + self.continuous_graph_type.__name__, key_formatter)
            )
        parts.append(self.discrete_graph().to_string(prefix + "DiscreteFactorGraph", key_formatter))
        parts.append(self.dc_graph().to_string(prefix + "DCFactorGraph", key_formatter))
        return "\n".join(parts)

    def print(
        self,
        label: str = "HybridFactorGraph",
        key_formatter: KeyFormatter = default_key_formatter,
    ) -> None:
        print(self.to_string(label, key_formatter))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(continuous={self.nr_continuous_factors()}, "
            f"discrete={self.nr_discrete_factors()}, dc={self.nr_dc_factors()})"
        )


class GaussianHybridFactorGraph(HybridFactorGraph[GaussianFactorGraph]):
    """Hybrid graph whose continuous factors are already linear."""

    continuous_graph_type = GaussianFactorGraph

    def sum(self, include_continuous: bool = False) -> Sum:
        """
        As :meth:`HybridFactorGraph.sum`. With ``include_continuous`` the
        plain Gaussian factors are appended to every leaf as well, after the
        mixture components.
        """
        total = super().sum()
        if include_continuous:
            for i in self._continuous:
                total = add_gaussian_factor(total, self._factors[i])
        return total


class NonlinearHybridFactorGraph(HybridFactorGraph[NonlinearFactorGraph]):
    """Hybrid graph whose continuous factors are nonlinear residuals."""

    continuous_graph_type = NonlinearFactorGraph

    def linearize(
        self,
        values: Values,
        config: Optional[LinearizationConfig] = None,
    ) -> GaussianHybridFactorGraph:
        """
        Linearize at ``values`` into a new GaussianHybridFactorGraph.

        Continuous factors are linearized, DC factors become Gaussian
        mixtures (mixtures that already are one are kept as they are), and
        discrete factors are carried over. Insertion order is preserved.
        """
        result = GaussianHybridFactorGraph()
        for factor in self._factors:
            if factor.kind & (FactorKind.CONTINUOUS | FactorKind.DC):
                result.push_back(factor.linearize(values, config))
            else:
                result.push_back(factor)
        logger.debug(
            "Linearized %d continuous and %d DC factors",
            self.nr_continuous_factors(),
            self.nr_dc_factors(),
        )
        return result
