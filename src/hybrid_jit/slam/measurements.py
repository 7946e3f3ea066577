# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.
"""
Residual models (measurement factors) for HybridJIT.

Each function here implements a residual

    r(x; params) ∈ ℝᵏ

where ``x`` is the concatenation of the values of the factor's variables,
in the order of the factor's keys. Residuals are plain JAX functions, so a
:class:`~hybrid_jit.nonlinear.nonlinear_factor.NonlinearFactor` can
differentiate them with ``jax.jacfwd`` / ``jax.jacrev`` at linearization
time.

Families
--------
1. Priors
    • `prior_residual`:
        r = x − target

2. Relative motion
    • `odom_residual`:
        r = (x_j − x_i) − measurement
      Linear in the state; used for odometry and, inside DC mixtures, for
      switchable loop closures (one component per inlier / outlier
      hypothesis).

3. Range
    • `range_residual`:
        r = ||l − p|| − measurement
      Nonlinear; the Jacobian depends on the linearization point.

Weighting
---------
All residuals pass through `_apply_weight`, which reads an optional
``"weight"`` entry from ``params``:

    - scalar w:  r' = sqrt(w) · r
    - vector w:  r' = w · r          (per-component sqrt-information)

`sigma_to_weight` converts standard deviations into scalar/vector weights.

Notes
-----
To add a new measurement model, write ``my_residual(x, params)`` here and
pass it to ``NonlinearFactor(keys, my_residual, params)``.
"""

from __future__ import annotations
from typing import Dict

import jax.numpy as jnp


def _apply_weight(residual: jnp.ndarray, params: dict, key: str = "weight") -> jnp.ndarray:
    """
    Optional weighting of residuals.

    If params[key] is:
      - missing: no change
      - scalar:  r' = sqrt(w) * r          (scalar weight)
      - vector:  r' = w * r                (per-component sqrt-info)
    """
    w = params.get(key, None)
    if w is None:
        return residual

    w = jnp.asarray(w)

    if w.ndim == 0:
        # scalar weight; use sqrt to interpret as information
        return jnp.sqrt(w) * residual
    else:
        # assume w is already per-component sqrt-info vector
        return w * residual


def sigma_to_weight(sigma):
    """
    Convert standard deviation sigma (or vector of sigmas) to a weight usable
    by _apply_weight.

    For scalar sigma:
        w = 1 / sigma^2

    For vector sigma (per-component std devs):
        w[i] = 1 / sigma[i]^2
    """
    s = jnp.asarray(sigma)
    return 1.0 / (s * s)


def prior_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Simple prior on a single variable:
        residual = x - target
    Works for any vector dimension.
    """
    target = params["target"]
    r = x - target
    return _apply_weight(r, params)


def odom_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Relative displacement between two equally sized variables:

        x = [pose0, pose1]
        residual = (pose1 - pose0) - measurement
    """
    dim = x.shape[0] // 2
    pose0 = x[:dim]
    pose1 = x[dim:]
    meas = params["measurement"]
    return _apply_weight((pose1 - pose0) - meas, params)


def range_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Range between a position and a landmark of the same dimension:

        x = [p, l]
        residual = ||l - p|| - measurement      (shape (1,))
    """
    dim = x.shape[0] // 2
    p = x[:dim]
    l = x[dim:]
    d = jnp.sqrt(jnp.sum((l - p) ** 2))
    r = jnp.reshape(d - params["measurement"], (1,))
    return _apply_weight(r, params)
