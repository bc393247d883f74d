"""Point layout helpers."""

import jax.numpy as jnp
import numpy as np
import pytest

from swarmjax import PointLayout
from swarmjax.points import positions_of


def test_layout_fields_and_indices():
    layout = PointLayout(aux_fields=("w", "theta"))
    assert layout.field_names == ("x", "y", "z", "w", "theta")
    assert layout.n_fields == 5
    assert layout.field_index("x") == 0
    assert layout.field_index("theta") == 4
    with pytest.raises(KeyError):
        layout.field_index("phi")


def test_layout_rejects_duplicate_names():
    with pytest.raises(ValueError, match="unique"):
        PointLayout(aux_fields=("w", "w"))
    with pytest.raises(ValueError, match="unique"):
        PointLayout(aux_fields=("x",))


def test_from_fields_stacks_columns_and_zero_fills():
    layout = PointLayout(aux_fields=("w", "theta"))
    points = layout.from_fields([0.0, 1.0], [2.0, 3.0], [4.0, 5.0], theta=[0.5, 0.25])
    assert points.shape == (2, 5)
    np.testing.assert_allclose(
        np.asarray(points),
        [[0.0, 2.0, 4.0, 0.0, 0.5], [1.0, 3.0, 5.0, 0.0, 0.25]],
    )
    np.testing.assert_allclose(np.asarray(positions_of(points)), [[0, 2, 4], [1, 3, 5]])


def test_from_fields_validates_input():
    layout = PointLayout(aux_fields=("w",))
    with pytest.raises(KeyError, match="unknown fields"):
        layout.from_fields([0.0], [0.0], [0.0], v=[1.0])
    with pytest.raises(ValueError, match="shape"):
        layout.from_fields([0.0, 1.0], [0.0], [0.0])


def test_zeros_and_componentwise_arithmetic():
    layout = PointLayout(aux_fields=("w",))
    a = layout.zeros(3) + 1.0
    b = layout.zeros(3).at[:, 3].set(2.0)
    combined = a + 0.5 * b - a
    assert combined.dtype == jnp.float32
    np.testing.assert_allclose(np.asarray(combined[:, 3]), [1.0, 1.0, 1.0])
    np.testing.assert_allclose(np.asarray(combined[:, :3]), 0.0)
