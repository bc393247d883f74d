"""Evaluator-first configuration model for swarmjax."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class EvaluatorKind(str, Enum):
    """Pairwise evaluation strategies."""

    TILED = "tiled"
    LATTICE = "lattice"


@dataclass(frozen=True)
class TiledConfig:
    """Brute-force all-pairs evaluator overrides."""

    tile_size: int = 32


@dataclass(frozen=True)
class LatticeConfig:
    """Uniform spatial grid used by the lattice evaluator.

    ``grid_size`` is the number of cubes per axis; the grid is centred on the
    origin so it spans ``[-grid_size * cube_size / 2, grid_size * cube_size / 2)``
    along each axis. ``max_per_cube`` bounds the number of entities read from
    one bucket during evaluation.
    """

    grid_size: int = 50
    cube_size: float = 1.0
    max_per_cube: int = 16

    @property
    def n_cubes(self: "LatticeConfig") -> int:
        return int(self.grid_size) ** 3

    @property
    def half_extent(self: "LatticeConfig") -> float:
        return 0.5 * float(self.grid_size) * float(self.cube_size)


@dataclass(frozen=True)
class IntegratorConfig:
    """Predictor-corrector and diffusion settings."""

    neighbor_radius: float = 1.0
    check_finite: bool = True


@dataclass(frozen=True)
class SolverConfig:
    """Aggregate container for all solver override groups."""

    evaluator: EvaluatorKind = EvaluatorKind.LATTICE
    tiled: TiledConfig = field(default_factory=TiledConfig)
    lattice: LatticeConfig = field(default_factory=LatticeConfig)
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)

    def validate(self: "SolverConfig") -> "SolverConfig":
        """Raise ``ValueError`` for inconsistent settings, return ``self``."""
        if int(self.tiled.tile_size) <= 0:
            raise ValueError("tile_size must be positive")
        if int(self.lattice.grid_size) < 1:
            raise ValueError("grid_size must be >= 1")
        if not float(self.lattice.cube_size) > 0.0:
            raise ValueError("cube_size must be > 0")
        if int(self.lattice.max_per_cube) < 1:
            raise ValueError("max_per_cube must be >= 1")
        if not float(self.integrator.neighbor_radius) > 0.0:
            raise ValueError("neighbor_radius must be > 0")
        if (
            self.evaluator is EvaluatorKind.LATTICE
            and float(self.lattice.cube_size) < float(self.integrator.neighbor_radius)
        ):
            # Neighbours beyond one cube would be missed by the 27-cube search.
            raise ValueError("cube_size must be >= neighbor_radius")
        return self


def normalize_evaluator(evaluator: Union[EvaluatorKind, str]) -> EvaluatorKind:
    """Map a user-facing evaluator name onto :class:`EvaluatorKind`."""
    if isinstance(evaluator, EvaluatorKind):
        return evaluator
    try:
        return EvaluatorKind(str(evaluator).strip().lower())
    except ValueError:
        allowed = ", ".join(kind.value for kind in EvaluatorKind)
        raise ValueError(
            f"evaluator must be one of {allowed}, got {evaluator!r}"
        ) from None


__all__ = [
    "EvaluatorKind",
    "IntegratorConfig",
    "LatticeConfig",
    "SolverConfig",
    "TiledConfig",
    "normalize_evaluator",
]
