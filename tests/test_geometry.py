"""
Tests for macrofem.geometry module.
"""
import pytest
import numpy as np
import jax

from macrofem.errors import UnimplementedError, UsageError
from macrofem.geometry import Circle, TimeDependentCircle

pytestmark = pytest.mark.integration


class TestCircle:
    """Test the static circle and its time history."""

    def test_position(self):
        circle = Circle(1.0, 2.0, 0.5)
        np.testing.assert_allclose(circle.position([0.0]), [1.5, 2.0])
        np.testing.assert_allclose(circle.position([0.5 * np.pi]), [1.0, 2.5], atol=1e-15)

    def test_position_is_double_precision(self):
        circle = Circle(0.0, 0.0, 1.0)
        assert circle.position([0.3]).dtype == np.float64
        assert jax.config.jax_enable_x64

    def test_position_is_differentiable(self):
        circle = Circle(0.0, 0.0, 2.0)
        dx = jax.jacfwd(lambda z: circle.position(z))(np.array([0.0]))
        np.testing.assert_allclose(np.asarray(dx)[:, 0], [0.0, 2.0], atol=1e-14)

    def test_history(self):
        circle = Circle(0.0, 0.0, 1.0, n_prev=1)
        assert circle.n_time_levels == 2
        circle.shift_time_values()
        circle.set_current(r=2.0)
        np.testing.assert_allclose(circle.position([0.0], t=0), [2.0, 0.0])
        np.testing.assert_allclose(circle.position([0.0], t=1), [1.0, 0.0])

    def test_missing_time_level(self):
        with pytest.raises(UsageError):
            Circle(0.0, 0.0, 1.0).position([0.0], t=1)

    def test_invalid_radius(self):
        with pytest.raises(UsageError):
            Circle(0.0, 0.0, 0.0)

    def test_no_continuous_time(self):
        with pytest.raises(UnimplementedError):
            Circle(0.0, 0.0, 1.0).position_at_time(0.5, [0.0])


class TestTimeDependentCircle:
    """Test prescribed motion in continuous time."""

    def test_position_at_time(self):
        circle = TimeDependentCircle(lambda time: (time, 0.0), lambda time: 1.0 + time)
        np.testing.assert_allclose(circle.position_at_time(1.0, [0.0]), [3.0, 0.0])

    def test_advance_keeps_history(self):
        circle = TimeDependentCircle(lambda time: (0.0, 0.0), lambda time: 1.0 + time,
                                     time_history=(0.0, -0.1))
        circle.advance(0.5)
        assert circle.time == pytest.approx(0.5)
        np.testing.assert_allclose(circle.position([0.0], t=0), [1.5, 0.0])
        np.testing.assert_allclose(circle.position([0.0], t=1), [1.0, 0.0])
