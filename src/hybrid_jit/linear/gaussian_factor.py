# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Linear (Gaussian) factors in Jacobian form.

A :class:`JacobianFactor` over keys ``k_1 .. k_n`` represents the
Gaussian density

    p(x) ∝ exp(-0.5 · || Σ_i A_i x_{k_i} − b ||²)

with one dense block ``A_i`` of shape ``(m, d_i)`` per key and a
right-hand side ``b`` of shape ``(m,)``. Noise is assumed to be already
whitened into ``A`` and ``b``, which is what linearizing a weighted
residual produces.

Factors are immutable: arrays are converted to JAX arrays once at
construction and never modified.
"""

from __future__ import annotations
from typing import Mapping, Sequence, Tuple

import jax.numpy as jnp
import numpy as np

from ..core.factor_graph import DEFAULT_TOL, Factor
from ..core.types import FactorKind, Key, KeyFormatter, default_key_formatter


def arrays_close(a: jnp.ndarray, b: jnp.ndarray, tol: float) -> bool:
    """Same shape and every entry within ``tol`` in absolute value."""
    a = jnp.asarray(a)
    b = jnp.asarray(b)
    if a.shape != b.shape:
        return False
    if a.size == 0:
        return True
    return bool(jnp.max(jnp.abs(a - b)) <= tol)


def format_array(a: jnp.ndarray) -> str:
    return np.array2string(np.asarray(a), precision=6, suppress_small=True)


class JacobianFactor(Factor):
    """Gaussian factor ``||A x - b||²`` stored as per-key blocks."""

    kind = FactorKind.CONTINUOUS

    def __init__(
        self,
        keys: Sequence[Key],
        blocks: Sequence[jnp.ndarray],
        b: jnp.ndarray,
    ) -> None:
        keys = tuple(Key(int(k)) for k in keys)
        blocks = tuple(jnp.atleast_2d(jnp.asarray(A)) for A in blocks)
        b = jnp.reshape(jnp.asarray(b), (-1,))

        if len(keys) != len(blocks):
            raise ValueError(f"Got {len(keys)} keys but {len(blocks)} Jacobian blocks")
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate keys in JacobianFactor: {keys}")
        for k, A in zip(keys, blocks):
            if A.ndim != 2 or A.shape[0] != b.shape[0]:
                raise ValueError(
                    f"Block for key {k} has shape {A.shape}, expected ({b.shape[0]}, d)"
                )

        self._keys = keys
        self._blocks = blocks
        self._b = b

    def keys(self) -> Tuple[Key, ...]:
        return self._keys

    @property
    def blocks(self) -> Tuple[jnp.ndarray, ...]:
        return self._blocks

    @property
    def b(self) -> jnp.ndarray:
        return self._b

    def rows(self) -> int:
        return int(self._b.shape[0])

    def dims(self) -> Tuple[int, ...]:
        return tuple(int(A.shape[1]) for A in self._blocks)

    def block(self, key: Key) -> jnp.ndarray:
        return self._blocks[self._keys.index(key)]

    def residual(self, values: Mapping[Key, jnp.ndarray]) -> jnp.ndarray:
        r = -self._b
        for k, A in zip(self._keys, self._blocks):
            r = r + A @ jnp.asarray(values[k])
        return r

    def error(self, values: Mapping[Key, jnp.ndarray]) -> float:
        r = self.residual(values)
        return float(0.5 * jnp.sum(r ** 2))

    def equals(self, other: Factor, tol: float = DEFAULT_TOL) -> bool:
        if not isinstance(other, JacobianFactor) or self._keys != other._keys:
            return False
        if not arrays_close(self._b, other._b, tol):
            return False
        return all(arrays_close(a, b, tol) for a, b in zip(self._blocks, other._blocks))

    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{label}JacobianFactor({', '.join(key_formatter(k) for k in self._keys)})"]
        for k, A in zip(self._keys, self._blocks):
            lines.append(f"  A[{key_formatter(k)}] = {format_array(A)}")
        lines.append(f"  b = {format_array(self._b)}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"JacobianFactor(keys={self._keys}, rows={self.rows()})"
