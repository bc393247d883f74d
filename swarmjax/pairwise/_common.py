"""Shared accumulation rule for the pairwise evaluators."""

from __future__ import annotations

from typing import Any, NamedTuple

import jax
import jax.numpy as jnp
from beartype.typing import Callable, Tuple
from jaxtyping import Array

from ..points import N_POSITION_FIELDS

PairwiseFn = Callable[..., Array]


class PairwiseResult(NamedTuple):
    """Per-entity output of one pairwise evaluation.

    Attributes
    ----------
    derivative:
        ``(n_max, n_fields)`` sum of interaction contributions.
    neighbor_count:
        ``(n_max,)`` number of other entities closer than the neighbour radius.
    neighbor_velocity_sum:
        ``(n_max, 3)`` sum of those neighbours' previous positional velocity.
    """

    derivative: Array
    neighbor_count: Array
    neighbor_velocity_sum: Array


def _call_pairwise(
    pairwise_fn: PairwiseFn,
    own: Array,
    separation: Array,
    distance: Array,
    i: Array,
    j: Array,
    aux: Any,
) -> Array:
    if aux is None:
        return pairwise_fn(own, separation, distance, i, j)
    return pairwise_fn(own, separation, distance, i, j, aux)


def _accumulate_candidates(
    own: Array,
    i: Array,
    cand_states: Array,
    cand_ids: Array,
    cand_velocity: Array,
    cand_valid: Array,
    *,
    pairwise_fn: PairwiseFn,
    aux: Any,
    neighbor_radius: float,
) -> Tuple[Array, Array, Array]:
    """Sum contributions of a candidate set onto a single target entity."""

    def _single(state_j: Array, j: Array, velocity_j: Array, valid: Array):
        separation = own - state_j
        pos = separation[:N_POSITION_FIELDS]
        distance = jnp.sqrt(jnp.sum(pos * pos))
        contribution = _call_pairwise(
            pairwise_fn, own, separation, distance, i, j, aux
        )
        # Padding candidates may sit at zero separation; `where` keeps their
        # (possibly singular) value out of the sum.
        contribution = jnp.where(valid, contribution, 0.0)
        is_neighbor = valid & (j != i) & (distance < neighbor_radius)
        velocity = jnp.where(is_neighbor, velocity_j, 0.0)
        return contribution, is_neighbor.astype(jnp.int32), velocity

    contributions, neighbors, velocities = jax.vmap(_single)(
        cand_states, cand_ids, cand_velocity, cand_valid
    )
    return (
        jnp.sum(contributions, axis=0),
        jnp.sum(neighbors, axis=0),
        jnp.sum(velocities, axis=0),
    )


__all__ = ["PairwiseFn", "PairwiseResult"]
