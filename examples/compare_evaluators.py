"""Cross-compare tiled vs lattice pairwise evaluation and full Heun steps.

Run with:
    python examples/compare_evaluators.py
"""

from __future__ import annotations

import time

import jax
import jax.numpy as jnp
import numpy as np

from benchmark_utils import generate_packed_cluster
from swarmjax import Solver
from swarmjax.reference import spring_interaction


def _sync(value):
    return jax.tree_util.tree_map(
        lambda x: x.block_until_ready() if hasattr(x, "block_until_ready") else x,
        value,
    )


def _time_mean(fn, *args, repeats: int = 3, **kwargs) -> float:
    out = fn(*args, **kwargs)
    _sync(out)
    samples = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        out = fn(*args, **kwargs)
        _sync(out)
        samples.append(time.perf_counter() - t0)
    return float(sum(samples) / len(samples))


def main() -> None:
    interaction = spring_interaction()
    solvers = {
        "tiled": Solver(evaluator="tiled", tile_size=64),
        "lattice": Solver(evaluator="lattice", grid_size=64, max_per_cube=16),
    }

    for num_points in (1_000, 4_000, 16_000):
        points, _ = generate_packed_cluster(num_points, dtype=jnp.float32)
        velocity = jnp.zeros((num_points, 3), dtype=jnp.float32)
        results = {}
        for name, solver in solvers.items():
            pairwise_s = _time_mean(
                solver.compute_pairwise, points, velocity, num_points, interaction
            )
            step_s = _time_mean(
                solver.step, points, velocity, num_points, 0.05, interaction
            )
            results[name] = solver.compute_pairwise(
                points, velocity, num_points, interaction
            )
            print(
                f"[{name:7s}] N={num_points:6d} pairwise={pairwise_s:.4f}s "
                f"step={step_s:.4f}s"
            )
        max_diff = float(
            np.max(
                np.abs(
                    np.asarray(results["tiled"].derivative)
                    - np.asarray(results["lattice"].derivative)
                )
            )
        )
        print(f"          max |tiled - lattice| = {max_diff:.3e}")


if __name__ == "__main__":
    main()
