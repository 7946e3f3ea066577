# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Core typed data structures for HybridJIT.

This module defines the lightweight value types shared by every graph in
the package. They carry only identity and structure; all numerical work
happens in the factor classes (JAX arrays) and in the decision-tree
algebra built on top of them.

Classes and helpers
-------------------
Key
    Plain integer identifier of a variable (continuous or discrete).

symbol / symbol_chr / symbol_index
    Pack a character and an index into a single Key, so that ``x1``,
    ``m0`` etc. can be used as readable variable names. The character
    lives in the top 8 bits of a 64 bit integer.

DiscreteKey
    A Key plus its cardinality (number of values the variable can take).

Assignment
    Immutable, hashable mapping ``Key -> int`` describing a (partial)
    joint assignment of discrete variables.

FactorKind
    Flag enum carried by every factor class. The hybrid graph routes a
    factor by reading this flag once, never by probing its type.

default_key_formatter
    Turns a Key into a short symbolic string (``x1``) when it was built
    with :func:`symbol`, or into its decimal form otherwise.

Notes
-----
All of these objects are immutable so that factors and decision trees can
share them freely across graphs.
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Flag, auto
from typing import Callable, Dict, Iterable, Iterator, NewType, Optional, Tuple

Key = NewType("Key", int)
KeyFormatter = Callable[[int], str]

_CHR_BITS = 8
_INDEX_BITS = 64 - _CHR_BITS
_CHR_MASK = ((1 << _CHR_BITS) - 1) << _INDEX_BITS
_INDEX_MASK = ~_CHR_MASK & ((1 << 64) - 1)


def symbol(c: str, index: int) -> Key:
    """Build a Key from a one-character tag and an index, e.g. ``symbol("x", 1)``."""
    if len(c) != 1:
        raise ValueError(f"Symbol tag must be a single character, got '{c}'")
    if index < 0 or index > _INDEX_MASK:
        raise ValueError(f"Symbol index out of range: {index}")
    return Key((ord(c) << _INDEX_BITS) | index)


def symbol_chr(key: int) -> str:
    return chr((key & _CHR_MASK) >> _INDEX_BITS)


def symbol_index(key: int) -> int:
    return key & _INDEX_MASK


def default_key_formatter(key: int) -> str:
    """
    Format a key as ``<chr><index>`` if its tag byte is a printable letter,
    otherwise as the plain integer.
    """
    c = symbol_chr(key)
    if c.isalpha():
        return f"{c}{symbol_index(key)}"
    return str(key)


@dataclass(frozen=True)
class DiscreteKey:
    """A discrete variable: its key and how many values it can take."""
    key: Key
    cardinality: int

    def __post_init__(self) -> None:
        if self.cardinality < 1:
            raise ValueError(
                f"Cardinality of discrete key {self.key} must be >= 1, got {self.cardinality}"
            )

    def check_value(self, value: int) -> int:
        """Return ``value`` if it lies in ``[0, cardinality)``, else raise ``ValueError``."""
        if not 0 <= value < self.cardinality:
            raise ValueError(
                f"Value {value} out of range for discrete key {self.key} "
                f"with cardinality {self.cardinality}"
            )
        return value


def unique_discrete_keys(keys: Iterable[DiscreteKey]) -> Tuple[DiscreteKey, ...]:
    """
    Deduplicate discrete keys, preserving the order in which they are first
    seen. Two entries with the same key but different cardinalities are a
    modelling error.
    """
    seen: Dict[Key, DiscreteKey] = {}
    for dk in keys:
        prev = seen.get(dk.key)
        if prev is None:
            seen[dk.key] = dk
        elif prev.cardinality != dk.cardinality:
            raise ValueError(
                f"Discrete key {dk.key} used with cardinalities "
                f"{prev.cardinality} and {dk.cardinality}"
            )
    return tuple(seen.values())


class Assignment(Mapping):
    """
    Immutable assignment of values to discrete keys.

    Behaves like a read-only ``dict`` and is hashable, so it can be used as
    a dictionary key when enumerating decision-tree leaves.
    """

    __slots__ = ("_values", "_hash")

    def __init__(self, values: Optional[Mapping] = None) -> None:
        data = dict(values or {})
        for k, v in data.items():
            if int(v) < 0:
                raise ValueError(f"Negative value {v} assigned to key {k}")
        self._values: Dict[Key, int] = {Key(int(k)): int(v) for k, v in data.items()}
        self._hash = None

    def __getitem__(self, key: int) -> int:
        return self._values[key]

    def __iter__(self) -> Iterator[Key]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._values.items()))
        return self._hash

    def __eq__(self, other) -> bool:
        if isinstance(other, Assignment):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Assignment({self._values!r})"

    def is_compatible(self, other: Mapping) -> bool:
        """True if both assignments agree on every key they share."""
        return all(self._values[k] == other[k] for k in self._values if k in other)

    def merge(self, other: Mapping) -> "Assignment":
        """Union of two assignments. Raises ``ValueError`` on disagreement."""
        if not self.is_compatible(other):
            raise ValueError(f"Cannot merge incompatible assignments {self!r} and {other!r}")
        merged = dict(self._values)
        merged.update(other)
        return Assignment(merged)


class FactorKind(Flag):
    """Routing capability carried by every factor class."""
    NONE = 0
    CONTINUOUS = auto()
    DISCRETE = auto()
    DC = auto()
