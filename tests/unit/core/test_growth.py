"""Tests for concurrent slot claiming and spawning."""

import jax.numpy as jnp
import numpy as np

from swarmjax.growth import claim_slots, spawn_points


def test_claim_slots_hands_out_unique_consecutive_rows():
    mask = jnp.asarray([True, False, True, True, False, True])
    claim = claim_slots(jnp.asarray(10, dtype=jnp.int32), mask)

    assert np.asarray(claim.slots).tolist() == [10, -1, 11, 12, -1, 13]
    assert int(claim.new_count) == 14


def test_claim_slots_with_empty_mask_keeps_count():
    claim = claim_slots(jnp.asarray(3, dtype=jnp.int32), jnp.zeros((4,), dtype=bool))
    assert int(claim.new_count) == 3
    assert np.all(np.asarray(claim.slots) == -1)


def test_spawn_points_appends_after_live_rows():
    points = jnp.arange(24, dtype=jnp.float32).reshape(6, 4)
    velocity = jnp.ones((6, 3), jnp.float32)
    mask = jnp.asarray([True, False, True, False, True, False])
    new_states = -points

    out, out_velocity, count = spawn_points(
        points, velocity, jnp.asarray(3, dtype=jnp.int32), mask, new_states
    )

    # Row 4 is not live, so its flag is ignored.
    assert int(count) == 5
    out = np.asarray(out)
    np.testing.assert_array_equal(out[:3], np.asarray(points[:3]))
    np.testing.assert_array_equal(out[3], -np.asarray(points[0]))
    np.testing.assert_array_equal(out[4], -np.asarray(points[2]))
    np.testing.assert_array_equal(out[5], np.asarray(points[5]))
    np.testing.assert_array_equal(np.asarray(out_velocity[3:5]), 0.0)
    np.testing.assert_array_equal(np.asarray(out_velocity[:3]), 1.0)


def test_spawn_points_reports_count_past_capacity():
    points = jnp.zeros((4, 3), jnp.float32)
    mask = jnp.asarray([True, True, True, False])

    out, _, count = spawn_points(
        points,
        jnp.zeros((4, 3), jnp.float32),
        jnp.asarray(3, dtype=jnp.int32),
        mask,
        jnp.ones((4, 3), jnp.float32),
    )

    assert int(count) == 6
    # Only the one row that fits is written; the rest are dropped.
    np.testing.assert_array_equal(np.asarray(out[3]), 1.0)
