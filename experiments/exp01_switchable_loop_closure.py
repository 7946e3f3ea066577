# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.

from __future__ import annotations

import jax.numpy as jnp

from hybrid_jit.core.types import DiscreteKey, symbol
from hybrid_jit.discrete.discrete_factor import DiscreteFactor
from hybrid_jit.hybrid.dc_factor import DCMixtureFactor
from hybrid_jit.hybrid.hybrid_factor_graph import NonlinearHybridFactorGraph
from hybrid_jit.nonlinear.nonlinear_factor import NonlinearFactor
from hybrid_jit.optimization.solvers import best_assignment, solve_sum
from hybrid_jit.slam.measurements import odom_residual, prior_residual, sigma_to_weight


def setup_switchable_world():
    """
    Build a tiny 1D trajectory with one suspicious loop closure:

      - 4 poses along +x, odometry says 1m per step:
          x0 ~ 0, x1 ~ 1, x2 ~ 2, x3 ~ 3

      - loop closure x0 -> x3 claims 1.5m (inconsistent with odometry)

    Factors:
      - prior on x0
      - odom x0->x1, x1->x2, x2->x3 (sigma 0.1)
      - DC mixture on switch m:
          m = 0: loop closure is an inlier (sigma 0.1)
          m = 1: loop closure is an outlier (sigma 1000)
      - discrete prior on m: inliers are more likely a priori
    """
    g = NonlinearHybridFactorGraph()
    xs = [symbol("x", i) for i in range(4)]
    m = DiscreteKey(symbol("m", 0), 2)

    g.push_back(NonlinearFactor([xs[0]], prior_residual, {"target": jnp.zeros(1)}, name="prior"))

    w = sigma_to_weight(0.1)
    for i in range(3):
        g.push_back(
            NonlinearFactor(
                [xs[i], xs[i + 1]],
                odom_residual,
                {"measurement": jnp.array([1.0]), "weight": w},
                name="odom",
            )
        )

    loop = {"measurement": jnp.array([1.5])}
    g.push_back(
        DCMixtureFactor(
            [xs[0], xs[3]],
            [m],
            [
                NonlinearFactor([xs[0], xs[3]], odom_residual, {**loop, "weight": w}, name="loop_inlier"),
                NonlinearFactor(
                    [xs[0], xs[3]],
                    odom_residual,
                    {**loop, "weight": sigma_to_weight(1000.0)},
                    name="loop_outlier",
                ),
            ],
        )
    )
    g.push_back(DiscreteFactor([m], [0.9, 0.1]))

    # Initial guess from dead reckoning
    values = {x: jnp.array([float(i)]) for i, x in enumerate(xs)}
    return g, values, xs, m


def print_solution(label: str, sol, xs):
    print(f"\n=== {label} ===")
    print(f"error: {sol.error:.6f}")
    for i, x in enumerate(xs):
        print(f"x{i}: {float(sol.values[x][0]):.3f}")


def main():
    g, values, xs, m = setup_switchable_world()
    g.print("switchable")

    # Linearize at the dead-reckoning guess and enumerate both hypotheses
    lin = g.linearize(values)
    total = lin.sum(include_continuous=True)
    solutions = solve_sum(total)

    # The Gaussian graphs are in delta coordinates around `values`
    for assignment, sol in solutions.items():
        shifted = type(sol)({x: values[x] + sol.values[x] for x in xs}, sol.error)
        print_solution(f"m = {assignment[m.key]}", shifted, xs)

    assignment, best = best_assignment(solutions)
    print(f"\nBest hypothesis: m = {assignment[m.key]} (error {best.error:.6f})")


if __name__ == "__main__":
    main()
