# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Discrete-continuous (DC) factors and the mixture-sum algebra.

A DC factor depends on a set of continuous keys *and* a set of discrete
keys: for each joint assignment of the discrete keys it selects one
continuous component. Components are stored in a
:class:`~hybrid_jit.core.decision_tree.DecisionTree` indexed by the
discrete keys.

Classes
-------
DCFactor
    Abstract interface: ``keys()`` (continuous), ``discrete_keys``,
    ``factor(assignment)``, ``linearize(values)``.

DCMixtureFactor
    Components are :class:`NonlinearFactor`. Linearizing it linearizes
    every component at the same continuous point.

DCGaussianMixtureFactor
    Components are :class:`JacobianFactor`. It is already linear, so
    ``linearize`` returns the factor itself, and it is the only DC factor
    that can be summed.

Sum algebra
-----------
:data:`Sum` is a ``DecisionTree[GaussianFactorGraph]``. Folding mixtures
into a sum uses the tree's union-of-supports zip:

    sum = empty_sum()
    for m in mixtures:
        sum = add_mixture(sum, m)

After the fold every leaf holds, for its joint assignment, the Gaussian
component selected from each mixture, in the order the mixtures were
added. ``add_gaussian_factor`` appends a plain Gaussian factor to every
leaf.
"""

from __future__ import annotations
from abc import abstractmethod
from typing import Mapping, Optional, Sequence, Tuple, Union

from ..core.decision_tree import DecisionTree
from ..core.factor_graph import DEFAULT_TOL, Factor
from ..core.types import DiscreteKey, FactorKind, Key, KeyFormatter, default_key_formatter
from ..linear.gaussian_factor import JacobianFactor
from ..linear.gaussian_factor_graph import GaussianFactorGraph
from ..nonlinear.nonlinear_factor import LinearizationConfig, NonlinearFactor, Values

Sum = DecisionTree[GaussianFactorGraph]


class DCFactor(Factor):
    """
    Abstract discrete-continuous factor.

    - keys: continuous keys shared by all components
    - discrete_keys: discrete keys selecting the component
    - components: decision tree of continuous factors
    """

    kind = FactorKind.DC
    component_type: type = Factor

    def __init__(
        self,
        keys: Sequence[Key],
        discrete_keys: Sequence[DiscreteKey],
        components: Union[Sequence[Factor], DecisionTree],
    ) -> None:
        self._keys = tuple(Key(int(k)) for k in keys)
        self.discrete_keys = tuple(discrete_keys)
        if len({dk.key for dk in self.discrete_keys}) != len(self.discrete_keys):
            raise ValueError(f"Duplicate discrete keys: {[dk.key for dk in self.discrete_keys]}")

        if isinstance(components, DecisionTree):
            tree = components
            allowed = set(self.discrete_keys)
            extra = [dk for dk in tree.discrete_keys() if dk not in allowed]
            if extra:
                raise ValueError(
                    f"Component tree branches on keys {[dk.key for dk in extra]} "
                    f"that are not discrete keys of this factor"
                )
        else:
            tree = DecisionTree.from_values(self.discrete_keys, components)

        allowed_keys = set(self._keys)
        for _, f in tree.items():
            if not isinstance(f, self.component_type):
                raise ValueError(
                    f"{type(self).__name__} components must be {self.component_type.__name__}, "
                    f"got {type(f).__name__}"
                )
            if not set(f.keys()) <= allowed_keys:
                raise ValueError(
                    f"Component keys {f.keys()} are not a subset of the factor keys {self._keys}"
                )
        self.components = tree

    def keys(self) -> Tuple[Key, ...]:
        return self._keys

    def factor(self, assignment: Mapping[int, int]) -> Factor:
        """Continuous component selected by ``assignment``."""
        return self.components(assignment)

    def nr_components(self) -> int:
        return self.components.num_leaves()

    def error(self, values: Values, assignment: Mapping[int, int]) -> float:
        return self.factor(assignment).error(values)

    @abstractmethod
    def linearize(
        self,
        values: Values,
        config: Optional[LinearizationConfig] = None,
    ) -> "DCGaussianMixtureFactor":
        ...

    def equals(self, other: Factor, tol: float = DEFAULT_TOL) -> bool:
        if type(self) is not type(other):
            return False
        if self._keys != other._keys or self.discrete_keys != other.discrete_keys:
            return False
        return self.components.equals(other.components, lambda a, b: a.equals(b, tol))

    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        keys = ", ".join(key_formatter(k) for k in self._keys)
        dkeys = ", ".join(f"{key_formatter(dk.key)}:{dk.cardinality}" for dk in self.discrete_keys)
        header = f"{label}{type(self).__name__}([{keys}]; [{dkeys}])"
        tree = self.components.to_string(
            "",
            key_formatter,
            lambda f: f.to_string("", key_formatter).replace("\n", "\n    "),
        )
        return header + "\n" + "\n".join("  " + line for line in tree.splitlines())

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(keys={self._keys}, "
            f"discrete_keys={[dk.key for dk in self.discrete_keys]})"
        )


class DCMixtureFactor(DCFactor):
    """DC factor with one nonlinear component per discrete assignment."""

    component_type = NonlinearFactor

    def linearize(
        self,
        values: Values,
        config: Optional[LinearizationConfig] = None,
    ) -> "DCGaussianMixtureFactor":
        linear = self.components.apply(lambda f: f.linearize(values, config))
        return DCGaussianMixtureFactor(self._keys, self.discrete_keys, linear)


class DCGaussianMixtureFactor(DCFactor):
    """DC factor with one Gaussian (Jacobian) component per discrete assignment."""

    component_type = JacobianFactor

    def linearize(
        self,
        values: Values,
        config: Optional[LinearizationConfig] = None,
    ) -> "DCGaussianMixtureFactor":
        # Already linear in the continuous variables.
        return self

    def as_sum(self) -> Sum:
        """
        Decision tree whose leaves are single-factor Gaussian graphs, branching
        on every declared discrete key even where the components do not.
        """
        return DecisionTree.from_function(
            self.discrete_keys,
            lambda a: GaussianFactorGraph([self.components(a)]),
        )


def empty_sum() -> Sum:
    return DecisionTree.leaf(GaussianFactorGraph())


def add_mixture(total: Sum, mixture: DCGaussianMixtureFactor) -> Sum:
    """Zip ``mixture`` into ``total``, appending its component to every leaf."""
    return total.apply2(mixture.as_sum(), lambda graph, single: graph + single)


def add_gaussian_factor(total: Sum, factor: JacobianFactor) -> Sum:
    """Append a plain Gaussian factor to every leaf of ``total``."""
    single = GaussianFactorGraph([factor])
    return total.apply(lambda graph: graph + single)


def sums_equal(a: Sum, b: Sum, tol: float = DEFAULT_TOL) -> bool:
    return a.equals(b, lambda g, h: g.equals(h, tol))
