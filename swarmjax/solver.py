"""Evaluator-first solver facade for swarmjax."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional, Union

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array

from .config import (
    EvaluatorKind,
    IntegratorConfig,
    LatticeConfig,
    SolverConfig,
    TiledConfig,
    normalize_evaluator,
)
from .dtypes import INDEX_DTYPE
from .errors import CapacityError, LatticeDomainError, LatticeOverflowError
from .hooks import GenericForceFn
from .integrator import HeunIntegrator, StepResult
from .pairwise import (
    LatticeBuild,
    PairwiseFn,
    PairwiseResult,
    build_lattice,
    compute_lattice_derivatives,
    compute_tiled_derivatives,
)

logger = logging.getLogger(__name__)


def _apply_overrides(
    config: SolverConfig,
    *,
    evaluator: Optional[Union[EvaluatorKind, str]],
    tile_size: Optional[int],
    grid_size: Optional[int],
    cube_size: Optional[float],
    max_per_cube: Optional[int],
    neighbor_radius: Optional[float],
    check_finite: Optional[bool],
) -> SolverConfig:
    tiled = config.tiled
    if tile_size is not None:
        tiled = replace(tiled, tile_size=int(tile_size))
    lattice = config.lattice
    if grid_size is not None:
        lattice = replace(lattice, grid_size=int(grid_size))
    if cube_size is not None:
        lattice = replace(lattice, cube_size=float(cube_size))
    if max_per_cube is not None:
        lattice = replace(lattice, max_per_cube=int(max_per_cube))
    integrator = config.integrator
    if neighbor_radius is not None:
        integrator = replace(integrator, neighbor_radius=float(neighbor_radius))
    if check_finite is not None:
        integrator = replace(integrator, check_finite=bool(check_finite))
    return replace(
        config,
        evaluator=normalize_evaluator(
            config.evaluator if evaluator is None else evaluator
        ),
        tiled=tiled,
        lattice=lattice,
        integrator=integrator,
    )


def _checked_count(points: Array, n: Union[int, Array]) -> Array:
    n_arr = jnp.asarray(n, dtype=INDEX_DTYPE)
    count = int(n_arr)
    if not 0 <= count <= points.shape[0]:
        raise CapacityError(
            f"live count {count} outside [0, {points.shape[0]}] for this buffer"
        )
    return n_arr


class Solver:
    """Pairwise evaluator bound to the predictor-corrector integrator.

    The evaluation strategy is fixed at construction: ``"tiled"`` scans all
    pairs, ``"lattice"`` restricts the scan to each entity's 27-cube
    neighbourhood. With the lattice, interactions must vanish beyond one cube
    width; contributions from farther entities are not seen.
    """

    def __init__(
        self,
        *,
        evaluator: Optional[Union[EvaluatorKind, str]] = None,
        config: Optional[SolverConfig] = None,
        tile_size: Optional[int] = None,
        grid_size: Optional[int] = None,
        cube_size: Optional[float] = None,
        max_per_cube: Optional[int] = None,
        neighbor_radius: Optional[float] = None,
        check_finite: Optional[bool] = None,
    ):
        base = SolverConfig() if config is None else config
        self.config = _apply_overrides(
            base,
            evaluator=evaluator,
            tile_size=tile_size,
            grid_size=grid_size,
            cube_size=cube_size,
            max_per_cube=max_per_cube,
            neighbor_radius=neighbor_radius,
            check_finite=check_finite,
        ).validate()
        self.integrator = HeunIntegrator(
            check_finite=self.config.integrator.check_finite
        )
        if self.config.evaluator is EvaluatorKind.TILED:
            self._evaluate = self._compute_tiled
        else:
            self._evaluate = self._compute_lattice
        logger.debug("Solver configured: %s", self.config)

    @property
    def evaluator(self: "Solver") -> EvaluatorKind:
        return self.config.evaluator

    @property
    def tiled_config(self: "Solver") -> TiledConfig:
        return self.config.tiled

    @property
    def lattice_config(self: "Solver") -> LatticeConfig:
        return self.config.lattice

    @property
    def integrator_config(self: "Solver") -> IntegratorConfig:
        return self.config.integrator

    def build_lattice(self: "Solver", points: Array, n: Union[int, Array]) -> LatticeBuild:
        """Build the spatial index and fail on out-of-domain or overfull buckets."""
        cfg = self.config.lattice
        n_arr = jnp.asarray(n, dtype=INDEX_DTYPE)
        lattice = build_lattice(
            points,
            n_arr,
            grid_size=int(cfg.grid_size),
            cube_size=float(cfg.cube_size),
        )

        out_of_domain = np.asarray(lattice.out_of_domain)
        if out_of_domain.any():
            rows = np.flatnonzero(out_of_domain)
            preview = ", ".join(str(int(r)) for r in rows[:8])
            raise LatticeDomainError(
                f"{rows.size} entit{'y' if rows.size == 1 else 'ies'} outside the "
                f"lattice domain |x|,|y|,|z| < {cfg.half_extent:g} (rows {preview}); "
                "increase grid_size or cube_size"
            )

        max_occupancy = int(lattice.max_occupancy)
        if max_occupancy > int(cfg.max_per_cube):
            raise LatticeOverflowError(
                f"a lattice cube holds {max_occupancy} entities but max_per_cube is "
                f"{cfg.max_per_cube}"
            )
        logger.debug(
            "Lattice built for %d entities, max occupancy %d",
            int(n_arr),
            max_occupancy,
        )
        return lattice

    def _compute_tiled(
        self: "Solver",
        points: Array,
        previous_velocity: Array,
        n: Array,
        pairwise_fn: PairwiseFn,
        *,
        aux: Any = None,
    ) -> PairwiseResult:
        return compute_tiled_derivatives(
            points,
            previous_velocity,
            n,
            aux,
            pairwise_fn=pairwise_fn,
            tile_size=int(self.config.tiled.tile_size),
            neighbor_radius=float(self.config.integrator.neighbor_radius),
        )

    def _compute_lattice(
        self: "Solver",
        points: Array,
        previous_velocity: Array,
        n: Array,
        pairwise_fn: PairwiseFn,
        *,
        aux: Any = None,
    ) -> PairwiseResult:
        lattice = self.build_lattice(points, n)
        return compute_lattice_derivatives(
            points,
            previous_velocity,
            n,
            lattice,
            aux,
            pairwise_fn=pairwise_fn,
            grid_size=int(self.config.lattice.grid_size),
            max_per_cube=int(self.config.lattice.max_per_cube),
            neighbor_radius=float(self.config.integrator.neighbor_radius),
        )

    def compute_pairwise(
        self: "Solver",
        points: Array,
        previous_velocity: Array,
        n: Union[int, Array],
        pairwise_fn: PairwiseFn,
        *,
        aux: Any = None,
    ) -> PairwiseResult:
        """Evaluate pairwise derivatives and neighbour sums for live entities."""
        points = jnp.asarray(points)
        if points.ndim != 2 or points.shape[1] < 3:
            raise ValueError("points must have shape (n_max, n_fields >= 3)")
        previous_velocity = jnp.asarray(previous_velocity, dtype=points.dtype)
        if previous_velocity.shape != (points.shape[0], 3):
            raise ValueError("previous_velocity must have shape (n_max, 3)")
        n_arr = _checked_count(points, n)
        return self._evaluate(points, previous_velocity, n_arr, pairwise_fn, aux=aux)

    def step(
        self: "Solver",
        points: Array,
        previous_velocity: Array,
        n: Union[int, Array],
        dt: float,
        pairwise_fn: PairwiseFn,
        generic_fn: Optional[GenericForceFn] = None,
        *,
        aux: Any = None,
    ) -> StepResult:
        """Advance all live entities by one predictor-corrector step.

        Raises :class:`CapacityError` before any kernel runs if ``n`` is
        negative or larger than the buffer.
        """
        points = jnp.asarray(points)
        n_arr = _checked_count(points, n)
        return self.integrator.step(
            self.compute_pairwise,
            points,
            jnp.asarray(previous_velocity, dtype=points.dtype),
            n_arr,
            float(dt),
            pairwise_fn,
            generic_fn,
            aux=aux,
        )


__all__ = ["Solver"]
