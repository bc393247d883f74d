"""Tiled brute-force all-pairs evaluator."""

from __future__ import annotations

from functools import partial
from typing import Any

import jax
import jax.numpy as jnp
from beartype import beartype
from jax import lax
from jaxtyping import Array, jaxtyped

from ..dtypes import INDEX_DTYPE
from ._common import PairwiseFn, PairwiseResult, _accumulate_candidates


def _pad_rows(values: Array, rows: int) -> Array:
    pad = rows - values.shape[0]
    if pad == 0:
        return values
    return jnp.pad(values, ((0, pad),) + ((0, 0),) * (values.ndim - 1))


@partial(
    jax.jit,
    static_argnames=("pairwise_fn", "tile_size", "neighbor_radius"),
)
@jaxtyped(typechecker=beartype)
def compute_tiled_derivatives(
    points: Array,
    previous_velocity: Array,
    n: Array,
    aux: Any = None,
    *,
    pairwise_fn: PairwiseFn,
    tile_size: int = 32,
    neighbor_radius: float = 1.0,
) -> PairwiseResult:
    """Accumulate pairwise derivatives over all live pairs, one tile at a time.

    The source entities are split into tiles of ``tile_size`` rows. Each scan
    step loads one tile and every target entity accumulates that tile's
    contributions into the carried sums, so a tile is fully populated before
    any target reads it and is discarded before the next one is loaded.
    Rows at or beyond ``n`` are inert: they never act as sources and their
    outputs are zero.
    """

    n_max, n_fields = points.shape
    n_tiles = -(-n_max // tile_size)
    padded_rows = n_tiles * tile_size

    row_ids = jnp.arange(padded_rows, dtype=INDEX_DTYPE)
    tiles = (
        _pad_rows(points, padded_rows).reshape(n_tiles, tile_size, n_fields),
        _pad_rows(previous_velocity, padded_rows).reshape(n_tiles, tile_size, -1),
        row_ids.reshape(n_tiles, tile_size),
    )

    targets = row_ids[:n_max]
    target_live = targets < n

    accumulate = partial(
        _accumulate_candidates,
        pairwise_fn=pairwise_fn,
        aux=aux,
        neighbor_radius=neighbor_radius,
    )
    per_target = jax.vmap(accumulate, in_axes=(0, 0, None, None, None, 0))

    def _tile_body(carry, tile):
        derivative, count, velocity_sum = carry
        tile_points, tile_velocity, tile_ids = tile
        tile_live = tile_ids < n
        valid = target_live[:, None] & tile_live[None, :]
        d_tile, c_tile, v_tile = per_target(
            points, targets, tile_points, tile_ids, tile_velocity, valid
        )
        return (derivative + d_tile, count + c_tile, velocity_sum + v_tile), None

    init = (
        jnp.zeros_like(points),
        jnp.zeros((n_max,), dtype=jnp.int32),
        jnp.zeros_like(previous_velocity),
    )
    (derivative, count, velocity_sum), _ = lax.scan(_tile_body, init, tiles)
    return PairwiseResult(
        derivative=derivative,
        neighbor_count=count,
        neighbor_velocity_sum=velocity_sum,
    )


__all__ = ["compute_tiled_derivatives"]
