"""Utility helpers for benchmarking swarmjax evaluators."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp

Array = jax.Array


def _block_until_ready(value: Any) -> Any:
    """Recursively block on JAX arrays to ensure accurate timing."""

    def _maybe_block(x: Any) -> Any:
        if hasattr(x, "block_until_ready"):
            return x.block_until_ready()
        return x

    return jax.tree_util.tree_map(_maybe_block, value)


@dataclass(frozen=True)
class TimingResult:
    """Container summarising repeated runtime measurements."""

    wall_times: Tuple[float, ...]
    mean: float
    std: float
    result: Any

    @property
    def samples(self) -> Tuple[float, ...]:
        return self.wall_times


def time_callable(
    fn: Callable[..., Any],
    *args: Any,
    warmup: int = 1,
    runs: int = 5,
    **kwargs: Any,
) -> TimingResult:
    """Measure execution time for ``fn`` with optional warmup passes."""

    if runs <= 0:
        raise ValueError("runs must be positive")
    if warmup < 0:
        raise ValueError("warmup must be non-negative")

    for _ in range(warmup):
        _block_until_ready(fn(*args, **kwargs))

    samples = []
    result: Any = None
    for _ in range(runs):
        start = time.perf_counter()
        result = _block_until_ready(fn(*args, **kwargs))
        samples.append(time.perf_counter() - start)

    wall_times = tuple(samples)
    return TimingResult(
        wall_times=wall_times,
        mean=float(sum(wall_times) / len(wall_times)),
        std=float(jnp.std(jnp.asarray(wall_times))),
        result=result,
    )


def generate_packed_cluster(
    num_points: int,
    *,
    n_fields: int = 3,
    key: Optional[jax.Array] = None,
    spacing: float = 0.75,
    dtype: jnp.dtype = jnp.float32,
) -> Tuple[Array, jax.Array]:
    """Scatter points in a ball sized for roughly constant density.

    The ball radius grows with ``num_points ** (1/3)`` so the mean number of
    neighbours per point stays bounded, which is the regime where the lattice
    evaluator scales linearly.
    """

    if num_points <= 0:
        raise ValueError("num_points must be positive")
    if n_fields < 3:
        raise ValueError("n_fields must be >= 3")

    if key is None:
        key = jax.random.PRNGKey(0)

    key_dir, key_rad, key_aux, key = jax.random.split(key, 4)
    radius = spacing * (num_points ** (1.0 / 3.0))
    directions = jax.random.normal(key_dir, (num_points, 3), dtype=dtype)
    directions = directions / jnp.linalg.norm(directions, axis=1, keepdims=True)
    radii = radius * jax.random.uniform(key_rad, (num_points, 1), dtype=dtype) ** (
        1.0 / 3.0
    )
    positions = directions * radii
    aux = jax.random.uniform(key_aux, (num_points, n_fields - 3), dtype=dtype)
    return jnp.concatenate([positions, aux], axis=1), key


__all__ = [
    "TimingResult",
    "generate_packed_cluster",
    "time_callable",
]
