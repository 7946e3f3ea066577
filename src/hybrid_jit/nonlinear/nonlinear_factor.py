# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Nonlinear factors and their linearization.

A :class:`NonlinearFactor` couples an ordered tuple of continuous keys with
a JAX residual function ``r(x; params)`` (see ``slam.measurements``). The
factor's negative log-likelihood is ``0.5 · ||r(x)||²``.

Linearization
-------------
``linearize(values)`` evaluates the residual and its Jacobian at the
stacked values of the factor's keys:

    x0 = [values[k_1], ..., values[k_n]]
    r0 = r(x0),  J = ∂r/∂x (x0)

and returns the Gaussian factor ``||J δx + r0||²`` in Jacobian form, i.e.
``JacobianFactor(keys, blocks=split(J), b=-r0)``.

The Jacobian comes from ``jax.jacfwd`` (default) or ``jax.jacrev``,
optionally wrapped in ``jax.jit``; see :class:`LinearizationConfig`.
Compiled Jacobian functions are cached per residual function, so
relinearizing a graph at every step does not recompile.
"""

from __future__ import annotations
import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp

from ..core.factor_graph import DEFAULT_TOL, Factor
from ..core.types import FactorKind, Key, KeyFormatter, default_key_formatter
from ..linear.gaussian_factor import JacobianFactor, arrays_close

ResidualFn = Callable[[jnp.ndarray, Dict[str, Any]], jnp.ndarray]
Values = Mapping[Key, jnp.ndarray]


@dataclass
class LinearizationConfig:
    mode: str = "fwd"   # "fwd" -> jax.jacfwd, "rev" -> jax.jacrev
    jit: bool = False   # compile the residual/Jacobian pair with jax.jit


@functools.lru_cache(maxsize=256)
def _linearization_fn(residual_fn: ResidualFn, mode: str, use_jit: bool):
    if mode == "fwd":
        jac = jax.jacfwd(residual_fn)
    elif mode == "rev":
        jac = jax.jacrev(residual_fn)
    else:
        raise ValueError(f"Unknown Jacobian mode '{mode}'")

    def value_and_jacobian(x: jnp.ndarray, params: Dict[str, Any]):
        return residual_fn(x, params), jac(x, params)

    if use_jit:
        return jax.jit(value_and_jacobian)
    return value_and_jacobian


def stack_values(keys: Sequence[Key], values: Values) -> Tuple[jnp.ndarray, Tuple[int, ...]]:
    """Concatenate the values of ``keys``; a missing key raises ``KeyError``."""
    chunks = [jnp.atleast_1d(jnp.asarray(values[k])) for k in keys]
    dims = tuple(int(c.shape[0]) for c in chunks)
    return jnp.concatenate(chunks), dims


class NonlinearFactor(Factor):
    """
    Continuous factor defined by a residual function.

    - keys: ordered continuous keys; the residual receives their values
      concatenated in this order
    - residual_fn: r(x, params) -> (m,)
    - params: measurement, weight, etc. passed through to ``residual_fn``
    - name: optional label used when printing (defaults to the function name)
    """

    kind = FactorKind.CONTINUOUS

    def __init__(
        self,
        keys: Sequence[Key],
        residual_fn: ResidualFn,
        params: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> None:
        self._keys = tuple(Key(int(k)) for k in keys)
        if len(set(self._keys)) != len(self._keys):
            raise ValueError(f"Duplicate keys in NonlinearFactor: {self._keys}")
        self.residual_fn = residual_fn
        self.params = dict(params or {})
        self.name = name or getattr(residual_fn, "__name__", "residual")

    def keys(self) -> Tuple[Key, ...]:
        return self._keys

    def residual(self, values: Values) -> jnp.ndarray:
        x, _ = stack_values(self._keys, values)
        return jnp.reshape(self.residual_fn(x, self.params), (-1,))

    def error(self, values: Values) -> float:
        r = self.residual(values)
        return float(0.5 * jnp.sum(r ** 2))

    def linearize(self, values: Values, config: Optional[LinearizationConfig] = None) -> JacobianFactor:
        cfg = config or LinearizationConfig()
        x, dims = stack_values(self._keys, values)
        fn = _linearization_fn(self.residual_fn, cfg.mode, cfg.jit)
        r, J = fn(x, self.params)
        r = jnp.reshape(r, (-1,))
        J = jnp.reshape(J, (r.shape[0], x.shape[0]))

        blocks = []
        offset = 0
        for d in dims:
            blocks.append(J[:, offset:offset + d])
            offset += d
        return JacobianFactor(self._keys, blocks, -r)

    def equals(self, other: Factor, tol: float = DEFAULT_TOL) -> bool:
        if not isinstance(other, NonlinearFactor):
            return False
        if self._keys != other._keys or self.residual_fn is not other.residual_fn:
            return False
        if self.params.keys() != other.params.keys():
            return False
        return all(arrays_close(self.params[k], other.params[k], tol) for k in self.params)

    def to_string(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        keys = ", ".join(key_formatter(k) for k in self._keys)
        return f"{label}NonlinearFactor[{self.name}]({keys})"

    def __repr__(self) -> str:
        return f"NonlinearFactor(name={self.name!r}, keys={self._keys})"
