"""Concurrent growth of the live entity count.

Many entities may divide in the same step. Each one needs a unique new row;
an exclusive prefix sum over the spawn mask hands out the same slots an atomic
fetch-and-add on the live count would, without two spawners ever sharing one.
"""

from __future__ import annotations

from typing import NamedTuple

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .dtypes import INDEX_DTYPE


class SlotClaim(NamedTuple):
    """Rows reserved for newly spawned entities.

    ``slots[i]`` is the new row for spawner ``i`` (``-1`` when ``mask[i]`` is
    false); ``new_count`` is the live count after the claim.
    """

    slots: Array
    new_count: Array


@jax.jit
@jaxtyped(typechecker=beartype)
def claim_slots(n: Array, mask: Array) -> SlotClaim:
    flags = mask.astype(INDEX_DTYPE)
    ranks = jnp.cumsum(flags) - flags
    slots = jnp.where(mask, n + ranks, -1).astype(INDEX_DTYPE)
    return SlotClaim(slots=slots, new_count=(n + jnp.sum(flags)).astype(INDEX_DTYPE))


@jax.jit
@jaxtyped(typechecker=beartype)
def spawn_points(
    points: Array,
    previous_velocity: Array,
    n: Array,
    mask: Array,
    new_states: Array,
) -> tuple[Array, Array, Array]:
    """Append ``new_states[i]`` for every flagged row ``i``.

    ``mask`` and ``new_states`` are indexed like ``points``. Claimed rows past
    the buffer end are dropped, so callers must compare the returned count with
    the capacity before committing. New rows start with zero previous velocity.
    """
    n_max = points.shape[0]
    live = jnp.arange(n_max, dtype=INDEX_DTYPE) < n
    claim = claim_slots(n, mask & live)
    targets = jnp.where(claim.slots >= 0, claim.slots, n_max)
    points = points.at[targets].set(new_states, mode="drop")
    previous_velocity = previous_velocity.at[targets].set(0.0, mode="drop")
    return points, previous_velocity, claim.new_count


__all__ = ["SlotClaim", "claim_slots", "spawn_points"]
