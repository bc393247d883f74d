"""Tests for the predictor-corrector integrator and its kernels."""

import jax.numpy as jnp
import numpy as np
import pytest

from swarmjax import CapacityError, NonFiniteDerivativeError, Solver
from swarmjax.integrator import (
    apply_neighbor_diffusion,
    ensure_finite,
    euler_predict,
    heun_correct,
    remove_drift,
)


def _no_interaction(own, separation, distance, i, j):
    return jnp.zeros_like(own)


def _isolated_points():
    # Spacing well beyond the neighbour radius: no pairwise or diffusion terms.
    return jnp.asarray(
        [
            [0.0, 0.0, 0.0, 1.0],
            [3.0, 0.5, 0.0, 2.0],
            [0.0, 3.0, -1.0, 0.0],
            [-3.0, 0.0, 2.0, 5.0],
            [9.0, 9.0, 9.0, 9.0],
        ],
        dtype=jnp.float32,
    )


def test_remove_drift_zeroes_live_mean_and_dead_rows():
    derivative = jnp.asarray(
        [[1.0, 2.0, 3.0], [3.0, -2.0, 0.0], [5.0, 0.0, 3.0], [7.0, 7.0, 7.0]],
        dtype=jnp.float32,
    )
    out = np.asarray(remove_drift(derivative, jnp.asarray(3)))
    np.testing.assert_allclose(out[:3].sum(axis=0), 0.0, atol=1e-6)
    np.testing.assert_allclose(out[0], [-2.0, 2.0, 1.0], atol=1e-6)
    np.testing.assert_array_equal(out[3], 0.0)


def test_remove_drift_with_no_live_entities_is_zero():
    out = remove_drift(jnp.ones((3, 4), jnp.float32), jnp.asarray(0))
    np.testing.assert_array_equal(np.asarray(out), 0.0)


def test_neighbor_diffusion_adds_mean_velocity_only_with_neighbors():
    derivative = jnp.zeros((3, 4), jnp.float32)
    count = jnp.asarray([2, 0, 1], dtype=jnp.int32)
    velocity_sum = jnp.asarray(
        [[2.0, 4.0, -2.0], [5.0, 5.0, 5.0], [1.0, 0.0, 0.0]], dtype=jnp.float32
    )
    out = np.asarray(apply_neighbor_diffusion(derivative, count, velocity_sum))
    np.testing.assert_allclose(out[0], [1.0, 2.0, -1.0, 0.0])
    np.testing.assert_array_equal(out[1], 0.0)
    np.testing.assert_allclose(out[2], [1.0, 0.0, 0.0, 0.0])


def test_stage_updates_leave_padding_rows_untouched():
    points = _isolated_points()
    derivative = jnp.ones_like(points)
    dt = jnp.asarray(0.5, jnp.float32)
    n = jnp.asarray(3)

    predicted = np.asarray(euler_predict(points, derivative, dt, n))
    np.testing.assert_allclose(predicted[:3], np.asarray(points[:3]) + 0.5)
    np.testing.assert_array_equal(predicted[3:], np.asarray(points[3:]))

    updated, velocity = heun_correct(points, derivative, 3.0 * derivative, dt, n)
    np.testing.assert_allclose(np.asarray(updated[:3]), np.asarray(points[:3]) + 1.0)
    np.testing.assert_array_equal(np.asarray(updated[3:]), np.asarray(points[3:]))
    np.testing.assert_allclose(np.asarray(velocity[:3]), 2.0)
    np.testing.assert_array_equal(np.asarray(velocity[3:]), 0.0)


def test_ensure_finite_names_stage_and_source():
    derivative = jnp.zeros((4, 3), jnp.float32).at[2, 1].set(jnp.inf)
    with pytest.raises(NonFiniteDerivativeError, match="pairwise .* correct stage"):
        ensure_finite(derivative, 4, stage="correct", source="pairwise")
    # Padding rows are not inspected.
    ensure_finite(derivative, 2, stage="correct", source="pairwise")


def test_heun_step_matches_analytic_linear_decay():
    points = _isolated_points()
    n = 4
    dt = 0.1

    def decay(state, derivative):
        return derivative - state

    result = Solver(evaluator="tiled").step(
        points, jnp.zeros((5, 3), jnp.float32), n, dt, _no_interaction, decay
    )

    x = np.asarray(points, dtype=np.float64)
    mean = x[:n].mean(axis=0)
    expected = mean + (x[:n] - mean) * (1.0 - dt + 0.5 * dt * dt)
    np.testing.assert_allclose(np.asarray(result.points[:n]), expected, atol=1e-5)
    np.testing.assert_array_equal(np.asarray(result.points[n:]), x[n:])

    expected_velocity = -(x[:n, :3] - mean[:3]) * (1.0 - 0.5 * dt)
    np.testing.assert_allclose(
        np.asarray(result.previous_velocity[:n]), expected_velocity, atol=1e-5
    )
    np.testing.assert_allclose(
        np.asarray(result.predictor_derivative[:n]).sum(axis=0), 0.0, atol=1e-5
    )
    np.testing.assert_allclose(
        np.asarray(result.corrector_derivative[:n]).sum(axis=0), 0.0, atol=1e-5
    )


def test_generic_hook_runs_once_per_stage_on_stage_state():
    points = _isolated_points()
    seen = []

    def constant_push(state, derivative):
        seen.append(np.asarray(state))
        return derivative.at[0, 0].add(1.0)

    Solver(evaluator="tiled").step(
        points, jnp.zeros((5, 3), jnp.float32), 2, 0.5, _no_interaction, constant_push
    )

    assert len(seen) == 2
    np.testing.assert_array_equal(seen[0], np.asarray(points))
    # Drift removal splits the push: row 0 gets +0.5, row 1 gets -0.5.
    predicted = np.asarray(points).copy()
    predicted[0, 0] += 0.25
    predicted[1, 0] -= 0.25
    np.testing.assert_allclose(seen[1], predicted, atol=1e-6)


def test_previous_velocity_diffuses_between_neighbors():
    points = jnp.asarray([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0]], jnp.float32)
    velocity = jnp.asarray([[1.0, 0.0, 0.0], [0.0, 0.0, 0.0]], jnp.float32)

    result = Solver(evaluator="tiled").step(points, velocity, 2, 0.1, _no_interaction)

    # Entity 0 picks up entity 1's velocity (0) and vice versa (+1); drift
    # removal leaves +/-0.5.
    np.testing.assert_allclose(
        np.asarray(result.predictor_derivative),
        [[-0.5, 0.0, 0.0], [0.5, 0.0, 0.0]],
        atol=1e-6,
    )


def test_non_finite_generic_force_is_reported():
    def broken(state, derivative):
        return derivative.at[1, 2].set(jnp.nan)

    with pytest.raises(NonFiniteDerivativeError, match="generic force"):
        Solver(evaluator="tiled").step(
            _isolated_points(), jnp.zeros((5, 3), jnp.float32), 3, 0.1,
            _no_interaction, broken,
        )


def test_finite_checks_can_be_disabled():
    def broken(state, derivative):
        return derivative.at[1, 2].set(jnp.nan)

    result = Solver(evaluator="tiled", check_finite=False).step(
        _isolated_points(), jnp.zeros((5, 3), jnp.float32), 3, 0.1,
        _no_interaction, broken,
    )
    assert np.isnan(np.asarray(result.points[:3])).any()


@pytest.mark.parametrize("n", [-1, 6])
def test_step_rejects_live_count_outside_buffer(n):
    calls = []

    def recording(state, derivative):
        calls.append(n)
        return derivative

    with pytest.raises(CapacityError, match="outside"):
        Solver(evaluator="tiled").step(
            _isolated_points(), jnp.zeros((5, 3), jnp.float32), n, 0.1,
            _no_interaction, recording,
        )
    assert calls == []


def test_compute_pairwise_rejects_live_count_outside_buffer():
    with pytest.raises(CapacityError):
        Solver(evaluator="lattice").compute_pairwise(
            _isolated_points(), jnp.zeros((5, 3), jnp.float32), 8, _no_interaction
        )


def test_full_buffer_step_stays_drift_free():
    def push_first(state, derivative):
        return derivative.at[0, 0].add(1.0)

    result = Solver(evaluator="tiled").step(
        _isolated_points(), jnp.zeros((5, 3), jnp.float32), 5, 0.1,
        _no_interaction, push_first,
    )
    np.testing.assert_allclose(
        np.asarray(result.predictor_derivative).sum(axis=0), 0.0, atol=1e-6
    )
