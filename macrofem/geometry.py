"""Parametrised geometric objects that describe curved domain boundaries.

A geometric object maps a Lagrangian coordinate ``zeta`` to a position vector.
Domains never own the objects they reference: the same circle can bound
several macro elements, and a time-dependent object is advanced by its owner.

All positions are computed with ``jax.numpy`` so that macro-element maps built
on top of them can be differentiated with ``jax.jacfwd``.

Example:
    >>> from macrofem.geometry import Circle
    >>> circle = Circle(0.0, 0.0, 0.5)
    >>> x = circle.position([0.0])  # (0.5, 0.0)
"""
from abc import ABC, abstractmethod
from typing import Callable, Sequence

import jax.numpy as np
import numpy as onp

import macrofem.fem  # noqa: F401  double precision for all maps
from macrofem.errors import UnimplementedError, UsageError


class GeometricObject(ABC):
    """Abstract parametrised curve or surface.

    Attributes:
        n_lagrangian (int): Number of Lagrangian coordinates ``zeta``.
        n_dim (int): Dimension of the position vector.
    """

    def __init__(self, n_lagrangian, n_dim):
        self.n_lagrangian = n_lagrangian
        self.n_dim = n_dim

    @abstractmethod
    def position(self, zeta, t=0):
        """Position at discrete time level ``t`` (0: current, >0: previous)."""

    def position_at_time(self, time, zeta):
        """Position at a continuous time value."""
        raise UnimplementedError(
            f"{type(self).__name__} has no continuous-time parametrisation",
            operation="GeometricObject.position_at_time",
        )

    @property
    def n_time_levels(self):
        return 1


class Circle(GeometricObject):
    """Circle of radius ``r`` centred at ``(x_c, y_c)``.

    ``zeta`` in [0, 2 pi] sweeps the circumference anticlockwise, starting on
    the positive x-axis. Previous time levels can be kept by passing
    ``n_prev > 0``; :meth:`shift_time_values` then moves the current centre
    and radius into the history.
    """

    def __init__(self, x_c, y_c, r, n_prev=0):
        super().__init__(n_lagrangian=1, n_dim=2)
        if r <= 0.0:
            raise UsageError(f"Circle radius must be positive, got {r}",
                             operation="Circle.__init__")
        n_levels = n_prev + 1
        self.centres = onp.tile(onp.array([x_c, y_c], dtype=onp.float64), (n_levels, 1))
        self.radii = onp.full(n_levels, r, dtype=onp.float64)

    @property
    def n_time_levels(self):
        return self.radii.shape[0]

    @property
    def centre(self):
        return self.centres[0]

    @property
    def radius(self):
        return self.radii[0]

    def set_current(self, x_c=None, y_c=None, r=None):
        """Change the current centre and/or radius."""
        if x_c is not None:
            self.centres[0, 0] = x_c
        if y_c is not None:
            self.centres[0, 1] = y_c
        if r is not None:
            self.radii[0] = r

    def shift_time_values(self):
        """Push the current geometry one level back in the history."""
        self.centres[1:] = self.centres[:-1].copy()
        self.radii[1:] = self.radii[:-1].copy()

    def position(self, zeta, t=0):
        if t >= self.n_time_levels:
            raise UsageError(
                f"Time level {t} not stored, circle has {self.n_time_levels} level(s)",
                operation="Circle.position",
            )
        angle = np.asarray(zeta)[0]
        centre = np.asarray(self.centres[t])
        return centre + self.radii[t] * np.array([np.cos(angle), np.sin(angle)])


class TimeDependentCircle(GeometricObject):
    """Circle whose centre and radius are prescribed functions of time.

    Discrete time levels refer to the times stored in ``time_history``:
    level ``t`` is evaluated at ``time_history[t]``. Calling :meth:`advance`
    shifts the history and sets a new current time.

    Args:
        centre_fn (Callable): ``centre_fn(time) -> (x_c, y_c)``, jax-traceable.
        radius_fn (Callable): ``radius_fn(time) -> r``, jax-traceable.
        time_history (Sequence[float]): Times of the stored levels,
            current time first.
    """

    def __init__(self, centre_fn: Callable, radius_fn: Callable,
                 time_history: Sequence[float] = (0.0,)):
        super().__init__(n_lagrangian=1, n_dim=2)
        self.centre_fn = centre_fn
        self.radius_fn = radius_fn
        self.time_history = [float(time) for time in time_history]

    @property
    def n_time_levels(self):
        return len(self.time_history)

    @property
    def time(self):
        return self.time_history[0]

    def advance(self, dt):
        """Move to ``time + dt``, keeping the number of stored levels."""
        self.time_history = [self.time + dt] + self.time_history[:-1]

    def position_at_time(self, time, zeta):
        angle = np.asarray(zeta)[0]
        centre = np.asarray(self.centre_fn(time))
        return centre + self.radius_fn(time) * np.array([np.cos(angle), np.sin(angle)])

    def position(self, zeta, t=0):
        if t >= self.n_time_levels:
            raise UsageError(
                f"Time level {t} not stored, object has {self.n_time_levels} level(s)",
                operation="TimeDependentCircle.position",
            )
        return self.position_at_time(self.time_history[t], zeta)
