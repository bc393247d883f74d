"""Fatal conditions raised by the store, lattice and integrator."""

from __future__ import annotations


class SwarmError(Exception):
    """Base class for swarmjax runtime failures."""


class CapacityError(SwarmError, ValueError):
    """Live entity count would exceed the store capacity."""


class LatticeDomainError(SwarmError, ValueError):
    """An entity left the region covered by the spatial lattice."""


class LatticeOverflowError(SwarmError, ValueError):
    """A lattice bucket holds more entities than the evaluator reads."""


class NonFiniteDerivativeError(SwarmError, FloatingPointError):
    """A derivative contains NaN or Inf after an evaluation stage."""


__all__ = [
    "CapacityError",
    "LatticeDomainError",
    "LatticeOverflowError",
    "NonFiniteDerivativeError",
    "SwarmError",
]
