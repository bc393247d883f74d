"""Generic (non-pairwise) force hooks.

A hook receives the full state array and the current derivative and returns
the derivative with its own contribution added. It runs once per integrator
stage, after pairwise accumulation and before drift removal, which lets callers
inject forces along externally tracked links without the integrator knowing
about their data structures.
"""

from __future__ import annotations

from beartype.typing import Callable
from jaxtyping import Array

GenericForceFn = Callable[[Array, Array], Array]


def no_generic_force(points: Array, derivative: Array) -> Array:
    del points
    return derivative


def compose_generic_forces(*hooks: GenericForceFn) -> GenericForceFn:
    """Chain several hooks; each sees the derivative left by the previous one."""
    if not hooks:
        return no_generic_force
    if len(hooks) == 1:
        return hooks[0]

    def _composed(points: Array, derivative: Array) -> Array:
        for hook in hooks:
            derivative = hook(points, derivative)
        return derivative

    return _composed


__all__ = ["GenericForceFn", "compose_generic_forces", "no_generic_force"]
