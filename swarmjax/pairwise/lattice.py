"""Spatial-hash ("lattice") index and the 27-cube pairwise evaluator.

Entities are bucketed into a uniform grid of ``grid_size**3`` cubes centred on
the origin. A sort by bucket id plus per-bucket ``[start, end]`` ranges over
the sorted order let each entity visit only its own cube and the 26 adjacent
ones. The state buffer itself is never reordered: ``point_id`` maps sorted
positions back to buffer rows, so callbacks see the same row indices as with
the tiled evaluator.
"""

from __future__ import annotations

import itertools
from functools import lru_cache, partial
from typing import Any, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, jaxtyped

from ..dtypes import INDEX_DTYPE
from ..points import N_POSITION_FIELDS
from ._common import PairwiseFn, PairwiseResult, _accumulate_candidates

EMPTY_START = -1
EMPTY_END = -2


class LatticeBuild(NamedTuple):
    """Transient bucket structure for one evaluation.

    Attributes
    ----------
    cube_id:
        ``(n_max,)`` linear bucket id per entity row; ``grid_size**3`` for
        padding rows and for live rows outside the grid.
    cube_coords:
        ``(n_max, 3)`` integer bucket coordinates per entity row.
    point_id:
        ``(n_max,)`` entity rows in bucket order.
    cube_start, cube_end:
        ``(grid_size**3,)`` inclusive range of each bucket in ``point_id``;
        empty buckets hold ``(-1, -2)``.
    out_of_domain:
        ``(n_max,)`` live rows whose position falls outside the grid.
    max_occupancy:
        Scalar, largest number of entities in one bucket.
    """

    cube_id: Array
    cube_coords: Array
    point_id: Array
    cube_start: Array
    cube_end: Array
    out_of_domain: Array
    max_occupancy: Array


@lru_cache(maxsize=None)
def neighborhood_offsets(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """Return the 27 Moore-neighbourhood offsets for a grid resolution.

    The first array holds ``(27, 3)`` coordinate offsets, the second the
    matching ``(27,)`` linear-id offsets. The self offset comes first.
    """
    g = int(grid_size)
    steps = sorted(itertools.product((-1, 0, 1), repeat=3), key=lambda s: s != (0, 0, 0))
    coords = np.asarray(steps, dtype=np.int32)
    linear = coords[:, 0] + coords[:, 1] * g + coords[:, 2] * g * g
    coords.setflags(write=False)
    linear.setflags(write=False)
    return coords, linear.astype(np.int32)


def _linear_cube_id(coords: Array, grid_size: int) -> Array:
    return coords[..., 0] + coords[..., 1] * grid_size + coords[..., 2] * (
        grid_size * grid_size
    )


@partial(jax.jit, static_argnames=("grid_size", "cube_size"))
@jaxtyped(typechecker=beartype)
def build_lattice(
    points: Array,
    n: Array,
    *,
    grid_size: int,
    cube_size: float,
) -> LatticeBuild:
    """Bucket live entities, sort them by bucket and derive bucket ranges."""

    n_max = points.shape[0]
    n_cubes = grid_size**3
    positions = points[:, :N_POSITION_FIELDS]

    scaled = jnp.floor(positions / cube_size + 0.5 * grid_size)
    finite = jnp.all(jnp.isfinite(scaled), axis=1)
    in_grid = finite & jnp.all((scaled >= 0) & (scaled < grid_size), axis=1)
    coords = jnp.where(in_grid[:, None], scaled, 0).astype(INDEX_DTYPE)

    rows = jnp.arange(n_max, dtype=INDEX_DTYPE)
    live = rows < n
    bucketed = live & in_grid
    cube_id = jnp.where(bucketed, _linear_cube_id(coords, grid_size), n_cubes)
    cube_id = cube_id.astype(INDEX_DTYPE)

    point_id = jnp.argsort(cube_id, stable=True).astype(INDEX_DTYPE)
    sorted_ids = cube_id[point_id]
    sentinel = jnp.full((1,), n_cubes, dtype=INDEX_DTYPE)
    prev_ids = jnp.concatenate([jnp.full((1,), -1, dtype=INDEX_DTYPE), sorted_ids[:-1]])
    next_ids = jnp.concatenate([sorted_ids[1:], sentinel])

    sorted_live = sorted_ids < n_cubes
    is_start = sorted_live & (sorted_ids != prev_ids)
    is_end = sorted_live & (sorted_ids != next_ids)

    # Non-boundary positions scatter to index n_cubes, which `drop` discards.
    cube_start = jnp.full((n_cubes,), EMPTY_START, dtype=INDEX_DTYPE)
    cube_start = cube_start.at[jnp.where(is_start, sorted_ids, n_cubes)].set(
        rows, mode="drop"
    )
    cube_end = jnp.full((n_cubes,), EMPTY_END, dtype=INDEX_DTYPE)
    cube_end = cube_end.at[jnp.where(is_end, sorted_ids, n_cubes)].set(
        rows, mode="drop"
    )

    occupancy = cube_end - cube_start + 1
    max_occupancy = jnp.maximum(jnp.max(occupancy), 0)

    return LatticeBuild(
        cube_id=cube_id,
        cube_coords=coords,
        point_id=point_id,
        cube_start=cube_start,
        cube_end=cube_end,
        out_of_domain=live & ~in_grid,
        max_occupancy=max_occupancy,
    )


@partial(
    jax.jit,
    static_argnames=("pairwise_fn", "grid_size", "max_per_cube", "neighbor_radius"),
)
@jaxtyped(typechecker=beartype)
def compute_lattice_derivatives(
    points: Array,
    previous_velocity: Array,
    n: Array,
    lattice: LatticeBuild,
    aux: Any = None,
    *,
    pairwise_fn: PairwiseFn,
    grid_size: int,
    max_per_cube: int,
    neighbor_radius: float = 1.0,
) -> PairwiseResult:
    """Accumulate pairwise derivatives over each entity's 27-cube neighbourhood.

    Every bucket contributes at most ``max_per_cube`` candidates; callers must
    make sure ``lattice.max_occupancy`` does not exceed it.
    """

    n_max = points.shape[0]
    coord_offsets, id_offsets = neighborhood_offsets(grid_size)
    coord_offsets = jnp.asarray(coord_offsets, dtype=INDEX_DTYPE)
    id_offsets = jnp.asarray(id_offsets, dtype=INDEX_DTYPE)
    slots = jnp.arange(max_per_cube, dtype=INDEX_DTYPE)

    accumulate = partial(
        _accumulate_candidates,
        pairwise_fn=pairwise_fn,
        aux=aux,
        neighbor_radius=neighbor_radius,
    )

    def _evaluate_target(own: Array, i: Array, coords: Array, live: Array):
        # Offsets are applied to the linear id; the coordinate test masks the
        # ones that would wrap onto the opposite face.
        neighbor_coords = coords[None, :] + coord_offsets
        in_grid = jnp.all((neighbor_coords >= 0) & (neighbor_coords < grid_size), axis=1)
        own_id = _linear_cube_id(coords, grid_size)
        neighbor_ids = jnp.where(in_grid, own_id + id_offsets, 0)
        start = jnp.where(in_grid, lattice.cube_start[neighbor_ids], EMPTY_START)
        end = jnp.where(in_grid, lattice.cube_end[neighbor_ids], EMPTY_END)

        sorted_pos = start[:, None] + slots[None, :]
        valid = live & (sorted_pos <= end[:, None])
        safe_pos = jnp.clip(sorted_pos, 0, n_max - 1)
        cand_ids = lattice.point_id[safe_pos].reshape(-1)
        valid = valid.reshape(-1)

        return accumulate(
            own,
            i,
            points[cand_ids],
            cand_ids,
            previous_velocity[cand_ids],
            valid,
        )

    rows = jnp.arange(n_max, dtype=INDEX_DTYPE)
    live = (rows < n) & ~lattice.out_of_domain
    derivative, count, velocity_sum = jax.vmap(_evaluate_target)(
        points, rows, lattice.cube_coords, live
    )
    return PairwiseResult(
        derivative=derivative,
        neighbor_count=count,
        neighbor_velocity_sum=velocity_sum,
    )


def bucket_members(lattice: LatticeBuild, cube: int) -> np.ndarray:
    """Host-side helper: entity rows stored in bucket ``cube``."""
    start = int(lattice.cube_start[cube])
    end = int(lattice.cube_end[cube])
    if start > end:
        return np.zeros((0,), dtype=np.int32)
    return np.asarray(lattice.point_id[start : end + 1])


__all__ = [
    "EMPTY_END",
    "EMPTY_START",
    "LatticeBuild",
    "bucket_members",
    "build_lattice",
    "compute_lattice_derivatives",
    "neighborhood_offsets",
]
