"""Macro elements: analytic local-to-global maps of domain sub-regions.

A macro element parametrises one sub-region of a :class:`~macrofem.fem.domain.Domain`
by a map ``r(t, S)`` from local coordinates ``S in [-1, 1]^dim`` to global
(Eulerian) coordinates. ``t`` is the discrete time level (0: current time,
t > 0: previous time steps). The boundaries of the region are obtained from the
owning domain, which may consult curved geometric objects.

Quadrilateral and hexahedral macro elements blend their boundaries with a
transfinite (Boolean sum) interpolation that reproduces every side exactly.
The Jacobian and second-derivative Jacobian of the map are obtained by
differentiating the blended map with JAX.

Key Classes:
    MacroElement: Abstract base; only the discrete-time map is mandatory.
    QMacroElement2D: Map blended from four boundary curves (N, S, W, E).
    QMacroElement3D: Map blended from six boundary surfaces (L, R, D, U, B, F).

Example:
    >>> domain = RectangleWithHoleDomain(Circle(0.0, 0.0, 0.25), length=1.0)
    >>> macro = domain.macro_element(0)
    >>> r = macro.macro_map(np.array([-1.0, -1.0]))
    >>> jac = macro.macro_to_eulerian_jacobian(np.array([0.0, 0.0]))
"""
import itertools
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

import jax
import jax.numpy as np
import numpy as onp

from macrofem.errors import UnimplementedError, UsageError
from macrofem.fem.directions import direction_for, directions


@runtime_checkable
class CoordinateMap(Protocol):
    """Anything that maps local coordinates to global ones with derivatives."""

    def macro_map(self, s, t=0):
        ...

    def macro_to_eulerian_jacobian(self, s, t=0):
        ...

    def macro_to_eulerian_jacobian2(self, s, t=0):
        ...


class MacroElement(ABC):
    """Base class for macro elements.

    Attributes:
        domain (Domain): Owning domain (back-reference, not owned).
        number (int): Index of this macro element within its domain.
    """

    dim = None

    def __init__(self, domain, number):
        self.domain = domain
        self.number = number

    def __repr__(self):
        return f"{self.__class__.__name__}(number={self.number})"

    @abstractmethod
    def macro_map(self, s, t=0):
        """Global position r(t, s) at discrete time level ``t``."""

    def macro_map_at_time(self, time, s):
        """Global position r(time, s) at a continuous time value."""
        raise UnimplementedError(
            "macro_map_at_time(...) is not implemented for this macro element",
            operation=f"{type(self).__name__}.macro_map_at_time",
        )

    def macro_to_eulerian_jacobian(self, s, t=0):
        """Jacobian ``J[i, j] = d r_j / d s_i`` of the macro map."""
        raise UnimplementedError(
            "macro_to_eulerian_jacobian(...) is not implemented for this macro element",
            operation=f"{type(self).__name__}.macro_to_eulerian_jacobian",
        )

    def macro_to_eulerian_jacobian2(self, s, t=0):
        """Second derivatives of the macro map, one row per index pair."""
        raise UnimplementedError(
            "macro_to_eulerian_jacobian2(...) is not implemented for this macro element",
            operation=f"{type(self).__name__}.macro_to_eulerian_jacobian2",
        )


def second_derivative_pairs(dim):
    """Index pairs for rows of the second-derivative Jacobian.

    The diagonal terms come first, followed by the mixed terms:
    (0,0), (1,1), (0,1) in 2D and (0,0), (1,1), (2,2), (0,1), (0,2), (1,2) in 3D.
    """
    return [(i, i) for i in range(dim)] + list(itertools.combinations(range(dim), 2))


class QMacroElement(MacroElement):
    """Macro element of quadrilateral (2D) or hexahedral (3D) shape.

    The map is the Boolean sum of the linear blending projectors in each local
    direction applied to the domain's side parametrisations::

        r = sum over non-empty axis subsets I of (-1)^(|I|+1)
            sum over corners c in {-1, 1}^I of prod_i phi_{c_i}(s_i) r(s | s_I = c)

    with ``phi_{-1}(x) = (1 - x) / 2`` and ``phi_{+1}(x) = (1 + x) / 2``. The
    term ``r(s | s_I = c)`` lies on a side and is evaluated through the
    domain's boundary of that side. For consistent side data the map
    reproduces each side exactly.
    """

    def __init__(self, domain, number):
        if self.dim not in (2, 3):
            raise UsageError(f"Unsupported macro element dimension {self.dim}",
                             operation="QMacroElement.__init__")
        super().__init__(domain, number)

    def _blend(self, side_fn, s):
        s = np.asarray(s, dtype=np.float64)
        if s.shape != (self.dim,):
            raise UsageError(
                f"Local coordinate must have shape ({self.dim},), got {s.shape}",
                operation=f"{type(self).__name__}.macro_map",
            )
        r = 0.0
        for n_fixed in range(1, self.dim + 1):
            sign = 1.0 if n_fixed % 2 == 1 else -1.0
            for axes in itertools.combinations(range(self.dim), n_fixed):
                for corner in itertools.product((-1.0, 1.0), repeat=n_fixed):
                    weight = 1.0
                    point = s
                    for axis, c in zip(axes, corner):
                        weight = weight * 0.5 * (1.0 + c * s[axis])
                        point = point.at[axis].set(c)
                    # Any fixed axis identifies a side that contains the point
                    axis, c = axes[0], corner[0]
                    face_s = np.concatenate([point[:axis], point[axis + 1:]])
                    r = r + sign * weight * side_fn(direction_for(axis, c, self.dim), face_s)
        return r

    def macro_map(self, s, t=0):
        def side_fn(direction, face_s):
            return self.domain.macro_element_boundary(t, self.number, direction, face_s)

        return self._blend(side_fn, s)

    def macro_map_at_time(self, time, s):
        def side_fn(direction, face_s):
            return self.domain.macro_element_boundary_at_time(time, self.number, direction, face_s)

        return self._blend(side_fn, s)

    def macro_to_eulerian_jacobian(self, s, t=0):
        s = np.asarray(s, dtype=np.float64)
        # jacfwd gives d r_j / d s_i in [j, i]
        jac = jax.jacfwd(lambda x: self.macro_map(x, t))(s)
        return jac.T

    def macro_to_eulerian_jacobian2(self, s, t=0):
        s = np.asarray(s, dtype=np.float64)
        hess = jax.hessian(lambda x: self.macro_map(x, t))(s)
        pairs = second_derivative_pairs(self.dim)
        return np.stack([hess[:, i, j] for i, j in pairs])

    def macro_map_many(self, s_points, t=0):
        """Vectorised :meth:`macro_map` over an array of local coordinates."""
        s_points = np.asarray(s_points, dtype=np.float64)
        return onp.asarray(jax.vmap(lambda x: self.macro_map(x, t))(s_points))

    def output(self, nplot, t=0):
        """Positions on a uniform ``nplot**dim`` grid, s0 varying fastest."""
        axis = onp.linspace(-1.0, 1.0, nplot)
        grid = onp.stack(onp.meshgrid(*([axis] * self.dim), indexing="ij"), axis=-1)
        # meshgrid with "ij" makes the first axis slowest; reverse the columns
        s_points = grid.reshape(-1, self.dim)[:, ::-1]
        return self.macro_map_many(s_points, t)

    def boundary_points(self, nplot, t=0):
        """Positions along every side, keyed by side label.

        In 2D each side gives ``nplot`` points; in 3D ``nplot**2``.
        """
        axis = onp.linspace(-1.0, 1.0, nplot)
        n_face = self.dim - 1
        grid = onp.stack(onp.meshgrid(*([axis] * n_face), indexing="ij"), axis=-1)
        face_points = grid.reshape(-1, n_face)[:, ::-1]
        out = {}
        for direction in directions(self.dim):
            out[direction] = onp.asarray(jax.vmap(
                lambda x: self.domain.macro_element_boundary(t, self.number, direction, x)
            )(np.asarray(face_points)))
        return out


class QMacroElement2D(QMacroElement):
    """Quadrilateral macro element blended from the N, S, W and E boundaries."""

    dim = 2


class QMacroElement3D(QMacroElement):
    """Hexahedral macro element blended from the L, R, D, U, B and F boundaries."""

    dim = 3
