"""Dual-resident point state store.

The store keeps the authoritative state on the compute device and a numpy
mirror on the host. The two copies are only ever reconciled by whole-buffer
``sync_to_device`` / ``sync_to_host`` calls; there is no field-level
coherence. Initial conditions are written into :attr:`host_points` before the
first ``sync_to_device``; output sinks read :attr:`host_points` after
``sync_to_host``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, ArrayLike, DTypeLike

from .dtypes import INDEX_DTYPE, canonical_float_dtype
from .errors import CapacityError
from .growth import spawn_points
from .hooks import GenericForceFn
from .integrator import StepResult
from .pairwise import PairwiseFn
from .points import N_POSITION_FIELDS, PointLayout
from .solver import Solver

logger = logging.getLogger(__name__)


class PointStore:
    """Bounded entity buffer with device and host copies.

    Parameters
    ----------
    layout:
        Field layout of each point.
    capacity:
        Maximum number of entities ``n_max``; fixed for the store's lifetime.
    initial_count:
        Live count at construction.
    solver:
        Evaluator/integrator pair used by :meth:`step`. Defaults to a lattice
        solver with default settings.
    dtype:
        Floating dtype of the state.
    """

    def __init__(
        self,
        layout: PointLayout,
        capacity: int,
        initial_count: int = 0,
        *,
        solver: Optional[Solver] = None,
        dtype: DTypeLike = jnp.float32,
    ):
        capacity = int(capacity)
        initial_count = int(initial_count)
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if initial_count < 0:
            raise ValueError("initial_count must be non-negative")
        if initial_count > capacity:
            raise CapacityError(
                f"initial_count {initial_count} exceeds capacity {capacity}"
            )

        self.layout = layout
        self.capacity = capacity
        self.solver = Solver() if solver is None else solver
        self.dtype = canonical_float_dtype(dtype)

        self.host_points = np.zeros((capacity, layout.n_fields), dtype=self.dtype)
        self.host_count = initial_count
        self._points = jnp.zeros((capacity, layout.n_fields), dtype=self.dtype)
        self._previous_velocity = jnp.zeros(
            (capacity, N_POSITION_FIELDS), dtype=self.dtype
        )
        self._count = jnp.asarray(initial_count, dtype=INDEX_DTYPE)
        self._in_step = False

    @property
    def points(self: "PointStore") -> Array:
        """Device-resident state, all ``capacity`` rows."""
        return self._points

    @property
    def previous_velocity(self: "PointStore") -> Array:
        return self._previous_velocity

    @property
    def device_count(self: "PointStore") -> Array:
        return self._count

    def live_count(self: "PointStore") -> int:
        return min(int(self._count), self.capacity)

    def live_points(self: "PointStore") -> Array:
        """Device rows ``0 .. live_count() - 1``."""
        return self._points[: self.live_count()]

    def sync_to_device(self: "PointStore") -> None:
        """Copy the host mirror and count onto the device.

        Rows whose state the host changed, rows that were not live on the
        device, and rows past the new count lose their previous velocity, so
        the next step never diffuses a velocity the entity did not have.
        """
        if self.host_count > self.capacity or self.host_count < 0:
            raise CapacityError(
                f"host count {self.host_count} outside [0, {self.capacity}]"
            )
        host = np.asarray(self.host_points, dtype=self.dtype)
        device = np.asarray(jax.device_get(self._points))
        rows = np.arange(self.capacity)
        stale = (
            np.any(host != device, axis=1)
            | (rows >= int(self._count))
            | (rows >= self.host_count)
        )
        self._points = jax.device_put(host)
        self._previous_velocity = jnp.where(
            jnp.asarray(stale)[:, None], 0.0, self._previous_velocity
        ).astype(self.dtype)
        self._count = jnp.asarray(self.host_count, dtype=INDEX_DTYPE)

    def sync_to_host(self: "PointStore") -> None:
        """Copy the device state and count into the host mirror."""
        count = int(self._count)
        if count > self.capacity:
            raise CapacityError(f"device count {count} exceeds capacity {self.capacity}")
        # np.array copies, so later device updates never alias the mirror.
        self.host_points = np.array(jax.device_get(self._points), dtype=self.dtype)
        self.host_count = count

    def append(self: "PointStore", point: ArrayLike) -> int:
        """Add one entity to the host mirror and return its row.

        The device copy is unchanged until the next :meth:`sync_to_device`.
        """
        self._reject_growth_in_step()
        row = np.asarray(point, dtype=self.dtype)
        if row.shape != (self.layout.n_fields,):
            raise ValueError(f"point must have shape ({self.layout.n_fields},)")
        if self.host_count + 1 > self.capacity:
            logger.warning("append rejected: store is full (%d)", self.capacity)
            raise CapacityError(f"store is full (capacity {self.capacity})")
        index = self.host_count
        self.host_points[index] = row
        self.host_count += 1
        return index

    def spawn(self: "PointStore", mask: ArrayLike, new_states: ArrayLike) -> int:
        """Append ``new_states[i]`` for every live row ``i`` with ``mask[i]``.

        Each spawner receives a unique new row. If the new count would exceed
        the capacity nothing is written and :class:`CapacityError` is raised.
        Returns the new live count.
        """
        self._reject_growth_in_step()
        mask_arr = jnp.asarray(mask, dtype=bool)
        states = jnp.asarray(new_states, dtype=self.dtype)
        if mask_arr.shape != (self.capacity,):
            raise ValueError(f"mask must have shape ({self.capacity},)")
        if states.shape != self._points.shape:
            raise ValueError(f"new_states must have shape {self._points.shape}")

        points, velocity, count = spawn_points(
            self._points, self._previous_velocity, self._count, mask_arr, states
        )
        new_count = int(count)
        if new_count > self.capacity:
            logger.warning(
                "spawn rejected: %d entities requested, capacity %d",
                new_count - self.live_count(),
                self.capacity,
            )
            raise CapacityError(
                f"spawning would raise the live count to {new_count}, "
                f"capacity is {self.capacity}"
            )
        self._points = points
        self._previous_velocity = velocity
        self._count = count
        return new_count

    def step(
        self: "PointStore",
        dt: float,
        pairwise_fn: PairwiseFn,
        generic_fn: Optional[GenericForceFn] = None,
        *,
        aux: Any = None,
    ) -> StepResult:
        """Advance the device state by one predictor-corrector step."""
        self._in_step = True
        try:
            result = self.solver.step(
                self._points,
                self._previous_velocity,
                self._count,
                dt,
                pairwise_fn,
                generic_fn,
                aux=aux,
            )
        finally:
            self._in_step = False
        self._points = result.points
        self._previous_velocity = result.previous_velocity
        return result

    def _reject_growth_in_step(self: "PointStore") -> None:
        if self._in_step:
            raise RuntimeError(
                "the live count cannot change between predictor and corrector stages"
            )


__all__ = ["PointStore"]
