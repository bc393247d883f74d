"""Centralized dtypes for integer indices.

Keep a single source of truth for the index dtype used by bucket ids, sort
permutations and live counts so every kernel agrees on it.
"""

import jax.numpy as jnp
from jaxtyping import DTypeLike

# 32-bit indices match JAX's default (x64 disabled) integer width.
INDEX_DTYPE = jnp.int32


def as_index(x: object) -> jnp.ndarray:
    """Convert a Python or JAX scalar/array to INDEX_DTYPE."""
    return jnp.asarray(x, dtype=INDEX_DTYPE)


def canonical_float_dtype(dtype: DTypeLike) -> jnp.dtype:
    """Return the floating dtype JAX will actually use for ``dtype``."""

    return jnp.asarray(0, dtype=dtype).dtype


__all__ = ["INDEX_DTYPE", "as_index", "canonical_float_dtype"]
