"""Field layout of a point record.

A point is a flat vector of floating-point fields. The first three are always
the positional components ``x, y, z``; named auxiliary fields (concentrations,
orientation angles, ...) follow and are integrated by the same scheme. A
collection of points is a ``(n, n_fields)`` array, so ``+``, ``-`` and scalar
``*`` act component-wise over every field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import jax.numpy as jnp
from jaxtyping import Array, ArrayLike, DTypeLike

POSITION_FIELDS: Tuple[str, str, str] = ("x", "y", "z")
N_POSITION_FIELDS = len(POSITION_FIELDS)


@dataclass(frozen=True)
class PointLayout:
    """Names and order of the fields carried by every entity."""

    aux_fields: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        names = self.field_names
        if len(set(names)) != len(names):
            raise ValueError(f"field names must be unique, got {names}")

    @property
    def field_names(self: "PointLayout") -> Tuple[str, ...]:
        return POSITION_FIELDS + tuple(self.aux_fields)

    @property
    def n_fields(self: "PointLayout") -> int:
        return N_POSITION_FIELDS + len(self.aux_fields)

    def field_index(self: "PointLayout", name: str) -> int:
        """Column of ``name`` in a state array."""
        try:
            return self.field_names.index(name)
        except ValueError:
            raise KeyError(f"unknown field {name!r}") from None

    def zeros(self: "PointLayout", n: int, *, dtype: DTypeLike = jnp.float32) -> Array:
        return jnp.zeros((int(n), self.n_fields), dtype=dtype)

    def from_fields(
        self: "PointLayout",
        x: ArrayLike,
        y: ArrayLike,
        z: ArrayLike,
        *,
        dtype: DTypeLike = jnp.float32,
        **aux: ArrayLike,
    ) -> Array:
        """Stack per-field columns into an ``(n, n_fields)`` state array.

        Auxiliary fields not supplied are zero-filled.
        """
        unknown = sorted(set(aux) - set(self.aux_fields))
        if unknown:
            raise KeyError(f"unknown fields: {', '.join(unknown)}")
        columns = [jnp.asarray(c, dtype=dtype) for c in (x, y, z)]
        n = columns[0].shape[0]
        for name in self.aux_fields:
            if name in aux:
                columns.append(jnp.asarray(aux[name], dtype=dtype))
            else:
                columns.append(jnp.zeros((n,), dtype=dtype))
        if any(c.shape != (n,) for c in columns):
            raise ValueError("all field columns must have shape (n,)")
        return jnp.stack(columns, axis=1)


def positions_of(points: Array) -> Array:
    """Positional ``(n, 3)`` view of a state array."""
    return points[..., :N_POSITION_FIELDS]


__all__ = ["N_POSITION_FIELDS", "POSITION_FIELDS", "PointLayout", "positions_of"]
