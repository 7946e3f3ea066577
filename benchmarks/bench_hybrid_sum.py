# Copyright (c) 2025.
# This file is part of HybridJIT, released under the MIT License.

import time
import jax.numpy as jnp

from hybrid_jit.core.types import DiscreteKey, symbol
from hybrid_jit.hybrid.dc_factor import DCMixtureFactor
from hybrid_jit.hybrid.hybrid_factor_graph import NonlinearHybridFactorGraph
from hybrid_jit.nonlinear.nonlinear_factor import LinearizationConfig, NonlinearFactor
from hybrid_jit.slam.measurements import odom_residual, prior_residual


def build_switchable_chain(num_poses: int = 20, num_switches: int = 8):
    """
    1D odometry chain with a handful of switchable loop closures:

        x0 --odom--> x1 --odom--> ... --odom--> x_{N-1}

    - Prior on x0 at 0.
    - Unit odometry between neighbors.
    - ``num_switches`` loop closures x0 -> x_k, each a DC mixture over its
      own binary switch m_i (inlier / outlier). The sum tree therefore has
      2 ** num_switches leaves.
    """
    g = NonlinearHybridFactorGraph()
    xs = [symbol("x", i) for i in range(num_poses)]

    g.push_back(NonlinearFactor([xs[0]], prior_residual, {"target": jnp.zeros(1)}, name="prior"))
    for i in range(num_poses - 1):
        g.push_back(
            NonlinearFactor(
                [xs[i], xs[i + 1]],
                odom_residual,
                {"measurement": jnp.ones(1)},
                name="odom",
            )
        )

    for s in range(num_switches):
        k = 1 + (s * (num_poses - 2)) // max(num_switches - 1, 1)
        m = DiscreteKey(symbol("m", s), 2)
        meas = jnp.array([float(k)])
        g.push_back(
            DCMixtureFactor(
                [xs[0], xs[k]],
                [m],
                [
                    NonlinearFactor([xs[0], xs[k]], odom_residual, {"measurement": meas}),
                    NonlinearFactor([xs[0], xs[k]], odom_residual, {"measurement": meas, "weight": 1e-6}),
                ],
            )
        )

    values = {x: jnp.array([float(i)]) for i, x in enumerate(xs)}
    return g, values


def run_benchmark(num_poses: int = 20, num_switches: int = 8, use_jit: bool = True):
    print("=== Hybrid linearize + sum Benchmark ===")
    print(f"num_poses = {num_poses}, num_switches = {num_switches}, use_jit = {use_jit}")

    g, values = build_switchable_chain(num_poses, num_switches)
    cfg = LinearizationConfig(jit=use_jit)

    # Warmup (forces compilation when use_jit=True)
    g.linearize(values, cfg).sum(include_continuous=True)

    t0 = time.time()
    lin = g.linearize(values, cfg)
    t1 = time.time()
    total = lin.sum(include_continuous=True)
    t2 = time.time()

    print(f"linearize: {(t1 - t0) * 1000.0:.3f} ms")
    print(f"sum:       {(t2 - t1) * 1000.0:.3f} ms")
    print(f"leaves:    {total.num_leaves()}")
    print(f"factors per leaf: {len(total.leaves()[0])}")


if __name__ == "__main__":
    # Example:
    #   python3 benchmarks/bench_hybrid_sum.py
    run_benchmark(num_poses=20, num_switches=8, use_jit=True)
    run_benchmark(num_poses=20, num_switches=8, use_jit=False)
