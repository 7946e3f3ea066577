"""
Generic factor and factor-graph containers for HybridJIT.

Every concrete graph in the package (nonlinear, Gaussian, discrete, DC)
is an ordered list of factors that share one routing kind. This module
holds the pieces they have in common:

Factor
    Abstract base class. A factor declares its :class:`FactorKind` as a
    class attribute, exposes the keys it touches, and knows how to compare
    and print itself.

FactorGraph
    Ordered container of factors of one kind. Insertion checks the kind
    flag once and otherwise keeps the factor untouched; the same factor
    object may live in several graphs because factors are never mutated.

Primary Methods
---------------
push_back(factor | iterable)
    Append one factor, or every factor of an iterable in order.

keys()
    Deduplicated, first-seen union of the keys of all factors.

equals(other, tol)
    Pairwise factor comparison with a numeric tolerance.

to_string(label, key_formatter) / print(...)
    Human-readable dump, one line block per factor.

Notes
-----
Graphs are deliberately plain Python objects. Numerical work (residuals,
Jacobians, tables) lives in the factors and is done with JAX.
"""


from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Generic, Iterable, Iterator, List, Tuple, TypeVar, Union

from .types import FactorKind, Key, KeyFormatter, default_key_formatter

DEFAULT_TOL = 1e-9


class UnroutedFactorError(TypeError):
    """A factor was offered to a graph that has no slot for its kind."""


class Factor(ABC):
    """
    Abstract factor.

    Subclasses set ``kind`` to the capability they provide and implement
    :meth:`keys`, :meth:`equals` and :meth:`to_string`.
    """

    kind: ClassVar[FactorKind] = FactorKind.NONE

    @abstractmethod
    def keys(self) -> Tuple[Key, ...]:
        ...

    @abstractmethod
    def equals(self, other: "Factor", tol: float = DEFAULT_TOL) -> bool:
        ...

    @abstractmethod
    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        ...

    def print(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        print(self.to_string(label, key_formatter))

    def size(self) -> int:
        return len(self.keys())


F = TypeVar("F", bound=Factor)


@dataclass(eq=False)
class FactorGraph(Generic[F]):
    """
    Ordered collection of factors of one kind.

    - factors: the factors, in insertion order
    - accepts: class-level kind flag a factor must carry to be inserted
    - element_type: class-level factor base class, for graphs whose kind is
      shared by several representations (nonlinear vs. Gaussian)
    """
    factors: List[F] = field(default_factory=list)

    accepts: ClassVar[FactorKind] = FactorKind.NONE
    element_type: ClassVar[type] = Factor

    def __post_init__(self) -> None:
        initial = list(self.factors)
        self.factors = []
        self.push_back(initial)

    def push_back(self, factor: Union[F, Iterable[F]]) -> None:
        if isinstance(factor, Factor):
            self._push_one(factor)
            return
        for f in factor:
            self._push_one(f)

    def _push_one(self, factor: F) -> None:
        kind = getattr(factor, "kind", FactorKind.NONE)
        if not kind & self.accepts or not isinstance(factor, self.element_type):
            raise UnroutedFactorError(
                f"{type(self).__name__} cannot hold factor of type "
                f"'{type(factor).__name__}' (kind {kind})"
            )
        self.factors.append(factor)

    # --- Container protocol ---

    def __len__(self) -> int:
        return len(self.factors)

    def __iter__(self) -> Iterator[F]:
        return iter(self.factors)

    def __getitem__(self, i: int) -> F:
        return self.factors[i]

    def size(self) -> int:
        return len(self.factors)

    def empty(self) -> bool:
        return not self.factors

    def clear(self) -> None:
        self.factors = []

    def __add__(self, other: "FactorGraph[F]") -> "FactorGraph[F]":
        """Concatenation: a new graph holding this graph's factors, then ``other``'s."""
        return type(self)(self.factors + list(other))

    def keys(self) -> Tuple[Key, ...]:
        seen = {}
        for f in self.factors:
            for k in f.keys():
                seen.setdefault(k, None)
        return tuple(seen)

    # --- Comparison / printing ---

    def equals(self, other: "FactorGraph", tol: float = DEFAULT_TOL) -> bool:
        if type(self) is not type(other) or len(self) != len(other):
            return False
        return all(a.equals(b, tol) for a, b in zip(self.factors, other.factors))

    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [label] if label else []
        lines.append(f"size: {len(self)}")
        for i, f in enumerate(self.factors):
            lines.append(f.to_string(f"factor {i}: ", key_formatter))
        return "\n".join(lines)

    def print(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        print(self.to_string(label, key_formatter))
