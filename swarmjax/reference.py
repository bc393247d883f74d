"""Reference interaction functions used by tests and benchmarks.

Scenario code normally supplies its own interactions; these cover the two
shapes the engine has to support: a short-range positional force with a
self-pair short circuit, and an auxiliary field exchanged between neighbours
with a per-entity decay applied through the self-pair.
"""

from __future__ import annotations

import jax.numpy as jnp
from jaxtyping import Array

from .pairwise import PairwiseFn
from .points import N_POSITION_FIELDS


def spring_interaction(
    *,
    rest_length: float = 0.8,
    cutoff: float = 1.0,
    stiffness: float = 1.0,
) -> PairwiseFn:
    """Linear spring: repulsive below ``rest_length``, attractive up to ``cutoff``.

    The returned function is zero beyond ``cutoff`` and for the self-pair.
    """
    if not 0.0 < rest_length < cutoff:
        raise ValueError("need 0 < rest_length < cutoff")

    def _interaction(
        own: Array, separation: Array, distance: Array, i: Array, j: Array
    ) -> Array:
        in_range = (i != j) & (distance < cutoff)
        safe_distance = jnp.where(in_range, distance, 1.0)
        strength = stiffness * (rest_length - distance) / safe_distance
        force = jnp.zeros_like(own).at[:N_POSITION_FIELDS].set(
            separation[:N_POSITION_FIELDS] * strength
        )
        return jnp.where(in_range, force, 0.0)

    return _interaction


def field_exchange_interaction(
    field: int,
    *,
    rate: float = 0.5,
    decay: float = 0.1,
    cutoff: float = 1.0,
) -> PairwiseFn:
    """Move the auxiliary ``field`` down its gradient between close neighbours.

    The self-pair (zero separation) contributes ``-decay * own[field]``.
    """
    if field < N_POSITION_FIELDS:
        raise ValueError("field must index an auxiliary column")

    def _interaction(
        own: Array, separation: Array, distance: Array, i: Array, j: Array
    ) -> Array:
        out = jnp.zeros_like(own)
        flux = jnp.where(
            (i != j) & (distance < cutoff), -rate * separation[field], 0.0
        )
        source = jnp.where(i == j, -decay * own[field], 0.0)
        return out.at[field].set(flux + source)

    return _interaction


def combine_interactions(*interactions: PairwiseFn) -> PairwiseFn:
    """Sum several 5-argument interaction functions."""
    if not interactions:
        raise ValueError("need at least one interaction")

    def _interaction(
        own: Array, separation: Array, distance: Array, i: Array, j: Array
    ) -> Array:
        total = interactions[0](own, separation, distance, i, j)
        for interaction in interactions[1:]:
            total = total + interaction(own, separation, distance, i, j)
        return total

    return _interaction


__all__ = ["combine_interactions", "field_exchange_interaction", "spring_interaction"]
