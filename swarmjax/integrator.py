"""Two-stage (Euler predict, Heun correct) integrator.

One ``step`` is a fixed sequence of separately dispatched kernels, run twice:

    evaluate pairwise -> generic force -> neighbour diffusion
    -> drift removal -> state update

Host code between kernels performs the finiteness checks, so a failure is
reported for the exact stage that produced it.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple, Optional, Union

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from beartype.typing import Callable
from jaxtyping import Array, jaxtyped

from .dtypes import INDEX_DTYPE
from .errors import NonFiniteDerivativeError
from .hooks import GenericForceFn, no_generic_force
from .pairwise import PairwiseFn, PairwiseResult
from .points import N_POSITION_FIELDS

logger = logging.getLogger(__name__)

PairwiseEvaluator = Callable[..., PairwiseResult]


class StepResult(NamedTuple):
    """Outcome of one predictor-corrector step.

    Attributes
    ----------
    points:
        Updated ``(n_max, n_fields)`` state.
    previous_velocity:
        ``(n_max, 3)`` positional part of the averaged stage derivative,
        consumed by the next step's diffusion term.
    predictor_derivative, corrector_derivative:
        Drift-corrected stage derivatives ``dX0`` and ``dX1``.
    """

    points: Array
    previous_velocity: Array
    predictor_derivative: Array
    corrector_derivative: Array


def _live_mask(n_max: int, n: Array) -> Array:
    return jnp.arange(n_max, dtype=INDEX_DTYPE) < n


@jax.jit
@jaxtyped(typechecker=beartype)
def apply_neighbor_diffusion(
    derivative: Array,
    neighbor_count: Array,
    neighbor_velocity_sum: Array,
) -> Array:
    """Add the mean previous velocity of each entity's neighbours.

    Entities without neighbours receive no diffusion term.
    """
    has_neighbors = neighbor_count > 0
    safe_count = jnp.where(has_neighbors, neighbor_count, 1).astype(derivative.dtype)
    mean_velocity = jnp.where(
        has_neighbors[:, None],
        neighbor_velocity_sum / safe_count[:, None],
        0.0,
    )
    return derivative.at[:, :N_POSITION_FIELDS].add(mean_velocity)


@jax.jit
@jaxtyped(typechecker=beartype)
def remove_drift(derivative: Array, n: Array) -> Array:
    """Subtract the live-entity mean of every field from every live entity."""
    live = _live_mask(derivative.shape[0], n)
    count = jnp.maximum(n, 1).astype(derivative.dtype)
    mean = jnp.sum(jnp.where(live[:, None], derivative, 0.0), axis=0) / count
    return jnp.where(live[:, None], derivative - mean, 0.0)


@jax.jit
@jaxtyped(typechecker=beartype)
def euler_predict(points: Array, derivative: Array, dt: Array, n: Array) -> Array:
    live = _live_mask(points.shape[0], n)
    return jnp.where(live[:, None], points + dt * derivative, points)


@jax.jit
@jaxtyped(typechecker=beartype)
def heun_correct(
    points: Array,
    predictor_derivative: Array,
    corrector_derivative: Array,
    dt: Array,
    n: Array,
) -> tuple[Array, Array]:
    """Trapezoidal update from both stage derivatives.

    Returns the new state and the positional mean velocity for the next step.
    """
    live = _live_mask(points.shape[0], n)
    mean_derivative = 0.5 * (predictor_derivative + corrector_derivative)
    updated = jnp.where(live[:, None], points + dt * mean_derivative, points)
    velocity = jnp.where(live[:, None], mean_derivative[:, :N_POSITION_FIELDS], 0.0)
    return updated, velocity


def ensure_finite(derivative: Array, n: int, *, stage: str, source: str) -> None:
    """Raise :class:`NonFiniteDerivativeError` if a live row is not finite."""
    finite = np.asarray(jnp.all(jnp.isfinite(derivative[:n]), axis=1))
    if finite.all():
        return
    bad_rows = np.flatnonzero(~finite)
    raise NonFiniteDerivativeError(
        f"non-finite derivative after {source} evaluation in {stage} stage "
        f"(first row {int(bad_rows[0])}, {bad_rows.size} row(s) affected)"
    )


class HeunIntegrator:
    """Drives a pairwise evaluator through the predict/correct sequence."""

    def __init__(self, *, check_finite: bool = True):
        self.check_finite = bool(check_finite)

    def _stage(
        self: "HeunIntegrator",
        stage: str,
        evaluate: PairwiseEvaluator,
        points: Array,
        previous_velocity: Array,
        n: Array,
        n_host: int,
        pairwise_fn: PairwiseFn,
        generic_fn: GenericForceFn,
        aux: Any,
    ) -> Array:
        # Accumulators are created fresh by every evaluation.
        result = evaluate(points, previous_velocity, n, pairwise_fn, aux=aux)
        derivative = result.derivative
        if self.check_finite:
            ensure_finite(derivative, n_host, stage=stage, source="pairwise")

        derivative = generic_fn(points, derivative)
        if self.check_finite:
            ensure_finite(derivative, n_host, stage=stage, source="generic force")

        derivative = apply_neighbor_diffusion(
            derivative, result.neighbor_count, result.neighbor_velocity_sum
        )
        return remove_drift(derivative, n)

    def step(
        self: "HeunIntegrator",
        evaluate: PairwiseEvaluator,
        points: Array,
        previous_velocity: Array,
        n: Union[int, Array],
        dt: float,
        pairwise_fn: PairwiseFn,
        generic_fn: Optional[GenericForceFn] = None,
        *,
        aux: Any = None,
    ) -> StepResult:
        """Advance ``points`` by ``dt``.

        ``evaluate`` has the signature of :meth:`Solver.compute_pairwise`.
        """
        hook = no_generic_force if generic_fn is None else generic_fn
        n = jnp.asarray(n, dtype=INDEX_DTYPE)
        n_host = int(n)
        dt_arr = jnp.asarray(dt, dtype=points.dtype)

        d_predict = self._stage(
            "predict", evaluate, points, previous_velocity, n, n_host,
            pairwise_fn, hook, aux,
        )
        predicted = euler_predict(points, d_predict, dt_arr, n)

        d_correct = self._stage(
            "correct", evaluate, predicted, previous_velocity, n, n_host,
            pairwise_fn, hook, aux,
        )
        updated, velocity = heun_correct(points, d_predict, d_correct, dt_arr, n)
        logger.debug("Heun step dt=%g over %d live entities", float(dt), n_host)
        return StepResult(
            points=updated,
            previous_velocity=velocity,
            predictor_derivative=d_predict,
            corrector_derivative=d_correct,
        )


__all__ = [
    "HeunIntegrator",
    "StepResult",
    "apply_neighbor_diffusion",
    "ensure_finite",
    "euler_predict",
    "heun_correct",
    "remove_drift",
]
