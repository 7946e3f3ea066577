# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Decision trees over discrete assignments.

A :class:`DecisionTree` is an immutable tree whose internal nodes branch on
a discrete variable (one child per value) and whose leaves hold an
arbitrary payload. Every root-to-leaf path is a partial joint assignment
of the discrete variables, and no path branches on the same key twice.

In HybridJIT the payload is usually a ``GaussianFactorGraph``: a tree of
graphs indexes, for every discrete hypothesis, the linear system that
hypothesis induces.

Key Operations
--------------
DecisionTree.leaf(value)
    A tree with no discrete keys and a single leaf.

DecisionTree.from_values(discrete_keys, values)
    One leaf per joint assignment, enumerated row-major: the first key is
    the root and the last key varies fastest.

DecisionTree.from_function(discrete_keys, fn)
    Same layout, with leaves computed as ``fn(assignment)``.

apply(fn)
    Map every leaf through ``fn``; the shape of the tree is unchanged.

apply2(other, fn)
    Zip two trees with possibly different discrete supports. The result
    branches on the union of both supports: first on this tree's keys, then
    on the keys only ``other`` has. Where one operand does not depend on a
    key, its sub-leaf is reused for every value of that key.

restrict(assignment) / __call__(assignment)
    Partial and full evaluation.

Notes
-----
Nodes are frozen dataclasses and subtrees are shared structurally, so
``apply2`` never copies a branch that the restriction did not touch.
"""

from __future__ import annotations
import itertools
import operator
from dataclasses import dataclass
from typing import (
    Any, Callable, Dict, Generic, Iterator, List, Mapping, Sequence, Tuple, TypeVar, Union,
)

from .types import Assignment, DiscreteKey, Key, KeyFormatter, default_key_formatter

V = TypeVar("V")
W = TypeVar("W")
U = TypeVar("U")


@dataclass(frozen=True)
class Leaf(Generic[V]):
    value: V


@dataclass(frozen=True)
class Choice(Generic[V]):
    discrete_key: DiscreteKey
    branches: Tuple["Node[V]", ...]


Node = Union[Leaf, Choice]


def _restrict(node: Node, dk: DiscreteKey, value: int) -> Node:
    """Fix ``dk`` to ``value`` everywhere below ``node``."""
    if isinstance(node, Leaf):
        return node
    if node.discrete_key.key == dk.key:
        if node.discrete_key.cardinality != dk.cardinality:
            raise ValueError(
                f"Discrete key {dk.key} has cardinality {node.discrete_key.cardinality} "
                f"in one tree and {dk.cardinality} in another"
            )
        return node.branches[dk.check_value(value)]
    branches = tuple(_restrict(b, dk, value) for b in node.branches)
    if all(new is old for new, old in zip(branches, node.branches)):
        return node
    return Choice(node.discrete_key, branches)


def _apply2(a: Node, b: Node, fn: Callable[[Any, Any], Any]) -> Node:
    if isinstance(a, Choice):
        dk = a.discrete_key
        return Choice(
            dk,
            tuple(
                _apply2(branch, _restrict(b, dk, v), fn)
                for v, branch in enumerate(a.branches)
            ),
        )
    if isinstance(b, Choice):
        return Choice(b.discrete_key, tuple(_apply2(a, branch, fn) for branch in b.branches))
    return Leaf(fn(a.value, b.value))


def _map(node: Node, fn: Callable[[Any], Any]) -> Node:
    if isinstance(node, Leaf):
        return Leaf(fn(node.value))
    return Choice(node.discrete_key, tuple(_map(b, fn) for b in node.branches))


class DecisionTree(Generic[V]):
    """
    Immutable decision tree over discrete assignments.

    Instances are cheap handles around a root :data:`Node`; all operations
    return new trees.
    """

    __slots__ = ("_root",)

    def __init__(self, root: Node) -> None:
        self._root = root

    # --- Construction ---

    @classmethod
    def leaf(cls, value: V) -> "DecisionTree[V]":
        return cls(Leaf(value))

    @classmethod
    def from_function(
        cls,
        discrete_keys: Sequence[DiscreteKey],
        fn: Callable[[Assignment], V],
    ) -> "DecisionTree[V]":
        """Build a full tree over ``discrete_keys`` with leaves ``fn(assignment)``."""
        keys = tuple(discrete_keys)
        if len({dk.key for dk in keys}) != len(keys):
            raise ValueError("Decision tree keys must be distinct")

        def build(depth: int, assignment: Dict[Key, int]) -> Node:
            if depth == len(keys):
                return Leaf(fn(Assignment(assignment)))
            dk = keys[depth]
            return Choice(
                dk,
                tuple(
                    build(depth + 1, {**assignment, dk.key: v})
                    for v in range(dk.cardinality)
                ),
            )

        return cls(build(0, {}))

    @classmethod
    def from_values(
        cls,
        discrete_keys: Sequence[DiscreteKey],
        values: Sequence[V],
    ) -> "DecisionTree[V]":
        """
        Build a full tree from a flat, row-major list of leaf values
        (last key varies fastest).
        """
        keys = tuple(discrete_keys)
        values = list(values)
        expected = 1
        for dk in keys:
            expected *= dk.cardinality
        if len(values) != expected:
            raise ValueError(
                f"Expected {expected} leaf values for keys "
                f"{[dk.key for dk in keys]}, got {len(values)}"
            )
        return cls.from_function(keys, lambda a: values[flat_index(keys, a)])

    # --- Structure ---

    @property
    def root(self) -> Node:
        return self._root

    def is_leaf(self) -> bool:
        return isinstance(self._root, Leaf)

    def discrete_keys(self) -> Tuple[DiscreteKey, ...]:
        """Keys the tree branches on, in depth-first first-seen order."""
        seen: Dict[Key, DiscreteKey] = {}
        stack: List[Node] = [self._root]
        while stack:
            node = stack.pop()
            if isinstance(node, Choice):
                seen.setdefault(node.discrete_key.key, node.discrete_key)
                stack.extend(reversed(node.branches))
        return tuple(seen.values())

    def items(self) -> Iterator[Tuple[Assignment, V]]:
        """Yield ``(path_assignment, leaf_value)`` pairs in depth-first order."""

        def walk(node: Node, path: Dict[Key, int]):
            if isinstance(node, Leaf):
                yield Assignment(path), node.value
                return
            dk = node.discrete_key
            for v, branch in enumerate(node.branches):
                yield from walk(branch, {**path, dk.key: v})

        return walk(self._root, {})

    def leaves(self) -> List[V]:
        return [value for _, value in self.items()]

    def num_leaves(self) -> int:
        count = 0
        stack: List[Node] = [self._root]
        while stack:
            node = stack.pop()
            if isinstance(node, Leaf):
                count += 1
            else:
                stack.extend(node.branches)
        return count

    # --- Evaluation ---

    def __call__(self, assignment: Mapping[int, int]) -> V:
        node = self._root
        while isinstance(node, Choice):
            dk = node.discrete_key
            if dk.key not in assignment:
                raise KeyError(f"Assignment is missing discrete key {dk.key}")
            node = node.branches[dk.check_value(assignment[dk.key])]
        return node.value

    def restrict(self, assignment: Mapping[int, int]) -> "DecisionTree[V]":
        """Fix the keys in ``assignment``; keys the tree does not use are ignored."""
        node = self._root
        for dk in self.discrete_keys():
            if dk.key in assignment:
                node = _restrict(node, dk, assignment[dk.key])
        return DecisionTree(node)

    # --- Algebra ---

    def apply(self, fn: Callable[[V], W]) -> "DecisionTree[W]":
        return DecisionTree(_map(self._root, fn))

    def apply2(
        self,
        other: "DecisionTree[U]",
        fn: Callable[[V, U], W],
    ) -> "DecisionTree[W]":
        """
        Combine two trees leaf-by-leaf over the union of their supports.

        ``fn(mine, theirs)`` is called once per leaf of the result, with
        this tree's value as the first argument.
        """
        return DecisionTree(_apply2(self._root, other._root, fn))

    # --- Comparison / printing ---

    def equals(
        self,
        other: "DecisionTree",
        leaf_equals: Callable[[Any, Any], bool] = operator.eq,
    ) -> bool:
        """
        Semantic equality: both trees give equal leaves for every joint
        assignment of the union of their keys. Branching order may differ.
        """
        mine = {dk.key: dk for dk in self.discrete_keys()}
        theirs = {dk.key: dk for dk in other.discrete_keys()}
        if set(mine) != set(theirs):
            return False
        if any(mine[k].cardinality != theirs[k].cardinality for k in mine):
            return False
        keys = list(mine.values())
        for values in itertools.product(*(range(dk.cardinality) for dk in keys)):
            a = {dk.key: v for dk, v in zip(keys, values)}
            if not leaf_equals(self(a), other(a)):
                return False
        return True

    def to_string(
        self,
        label: str = "",
        key_formatter: KeyFormatter = default_key_formatter,
        value_formatter: Callable[[V], str] = str,
    ) -> str:
        lines: List[str] = [label] if label else []

        def walk(node: Node, indent: str, prefix: str) -> None:
            if isinstance(node, Leaf):
                lines.append(f"{indent}{prefix}Leaf {value_formatter(node.value)}")
                return
            lines.append(f"{indent}{prefix}Choice({key_formatter(node.discrete_key.key)})")
            for v, branch in enumerate(node.branches):
                walk(branch, indent + "  ", f"{v} ")

        walk(self._root, "", "")
        return "\n".join(lines)

    def print(
        self,
        label: str = "",
        key_formatter: KeyFormatter = default_key_formatter,
        value_formatter: Callable[[V], str] = str,
    ) -> None:
        print(self.to_string(label, key_formatter, value_formatter))

    def __repr__(self) -> str:
        return f"DecisionTree(keys={[dk.key for dk in self.discrete_keys()]}, leaves={self.num_leaves()})"


def flat_index(discrete_keys: Sequence[DiscreteKey], assignment: Mapping[int, int]) -> int:
    """Row-major position of ``assignment`` among all joint values of ``discrete_keys``."""
    index = 0
    for dk in discrete_keys:
        index = index * dk.cardinality + dk.check_value(assignment[dk.key])
    return index
