"""Domains: collections of macro elements with analytic boundaries.

A domain owns its macro elements and a :class:`Topology` describing how their
edges are shared and which edges make up each mesh boundary. Boundary
positions are looked up through a table ``(macro index, direction) ->
evaluator`` that every concrete domain fills once in its constructor.

Key Classes:
    Domain: Base class holding the macro elements, boundary table and topology.
    RectangleWithHoleDomain: Square around a curved hole, four macro elements.
    RectangleDomain: Structured grid of straight-sided macro elements.
    BoxDomain: Single hexahedral macro element.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import jax.numpy as np
import numpy as onp

from macrofem.errors import TopologyError, UnimplementedError, UsageError
from macrofem.fem import logger
from macrofem.fem.basis import face_node_indices
from macrofem.fem.directions import E, N, S, W, directions, axis_and_sign
from macrofem.fem.macro_element import QMacroElement2D, QMacroElement3D


class BoundaryTraceable(Protocol):
    """Anything that can position a macro-element side."""

    def position(self, t, s):
        ...

    def position_at_time(self, time, s):
        ...


class FixedPoint:
    """A point that does not move in time."""

    def __init__(self, x):
        self.x = np.asarray(x, dtype=np.float64)

    def position(self, t=0):
        return self.x

    def position_at_time(self, time):
        return self.x


class PointOnObject:
    """The point ``zeta`` of a one-parameter geometric object."""

    def __init__(self, geom_object, zeta):
        self.geom_object = geom_object
        self.zeta = float(zeta)

    def position(self, t=0):
        return self.geom_object.position(np.array([self.zeta]), t)

    def position_at_time(self, time):
        return self.geom_object.position_at_time(time, np.array([self.zeta]))


def _as_point(point):
    if isinstance(point, (FixedPoint, PointOnObject)):
        return point
    return FixedPoint(point)


class StraightEdge:
    """Straight segment from ``start`` (s = -1) to ``end`` (s = +1).

    The end points may be fixed coordinates or points on a geometric object,
    in which case the segment follows the object in time.
    """

    def __init__(self, start, end):
        self.start = _as_point(start)
        self.end = _as_point(end)

    def position(self, t, s):
        a = self.start.position(t)
        b = self.end.position(t)
        return a + 0.5 * (1.0 + s[0]) * (b - a)

    def position_at_time(self, time, s):
        a = self.start.position_at_time(time)
        b = self.end.position_at_time(time)
        return a + 0.5 * (1.0 + s[0]) * (b - a)


class CurvedEdge:
    """Part of a geometric object between ``zeta_start`` and ``zeta_end``."""

    def __init__(self, geom_object, zeta_start, zeta_end):
        self.geom_object = geom_object
        self.zeta_start = float(zeta_start)
        self.zeta_end = float(zeta_end)

    def _zeta(self, s):
        zeta = self.zeta_start + 0.5 * (1.0 + s[0]) * (self.zeta_end - self.zeta_start)
        return np.reshape(zeta, (1,))

    def position(self, t, s):
        return self.geom_object.position(self._zeta(s), t)

    def position_at_time(self, time, s):
        return self.geom_object.position_at_time(time, self._zeta(s))


class ParametricBoundary:
    """Boundary given by a user function ``fn(t, s)``.

    Args:
        fn (Callable): Position at discrete time level, jax-traceable.
        fn_at_time (Callable, optional): Position at continuous time.
    """

    def __init__(self, fn, fn_at_time=None):
        self.fn = fn
        self.fn_at_time = fn_at_time

    def position(self, t, s):
        return self.fn(t, s)

    def position_at_time(self, time, s):
        if self.fn_at_time is None:
            raise UnimplementedError("Boundary has no continuous-time parametrisation",
                                     operation="ParametricBoundary.position_at_time")
        return self.fn_at_time(time, s)


@dataclass(frozen=True)
class SharedEdge:
    """Edge ``edge_b`` of element ``element_b`` coincides with ``edge_a`` of ``element_a``.

    When ``reversed`` is set, node ``n`` of edge b sits on node
    ``np - 1 - n`` of edge a.
    """

    element_a: int
    edge_a: str
    element_b: int
    edge_b: str
    reversed: bool = False


@dataclass(frozen=True)
class BoundarySegment:
    element: int
    edge: str
    reversed: bool = False


@dataclass
class Topology:
    """Edge connectivity of the macro elements of a 2D domain.

    Attributes:
        n_element (int): Number of macro elements.
        shared_edges (List[SharedEdge]): Pairs of coinciding edges.
        boundary_walks (List[List[BoundarySegment]]): For every mesh boundary,
            the element edges that form it, in walking order.
    """

    n_element: int
    shared_edges: List[SharedEdge] = field(default_factory=list)
    boundary_walks: List[List[BoundarySegment]] = field(default_factory=list)

    @property
    def n_boundary(self):
        return len(self.boundary_walks)

    def validate(self):
        """Check index ranges and that no element edge is used twice.

        Raises:
            TopologyError: If the connectivity is malformed.
        """
        used = {}

        def claim(element, edge, owner):
            if not 0 <= element < self.n_element:
                raise TopologyError(f"Element {element} out of range in {owner}",
                                    operation="Topology.validate")
            if edge not in directions(2):
                raise TopologyError(f"Unknown edge {edge!r} in {owner}",
                                    operation="Topology.validate")
            if (element, edge) in used:
                raise TopologyError(
                    f"Edge {edge} of element {element} used by {used[(element, edge)]} and {owner}",
                    operation="Topology.validate",
                )
            used[(element, edge)] = owner

        for shared in self.shared_edges:
            if shared.element_a == shared.element_b:
                raise TopologyError(f"Element shares an edge with itself: {shared}",
                                    operation="Topology.validate")
            claim(shared.element_a, shared.edge_a, shared)
            claim(shared.element_b, shared.edge_b, shared)
        for b, walk in enumerate(self.boundary_walks):
            for segment in walk:
                claim(segment.element, segment.edge, f"boundary {b}")

    def boundary_walk(self, b, nnode_1d):
        """Expand boundary ``b`` into ``(element, local node index)`` pairs.

        Corner nodes shared by consecutive segments appear once per segment.
        """
        if not 0 <= b < self.n_boundary:
            raise UsageError(f"Boundary {b} out of range (n_boundary={self.n_boundary})",
                             operation="Topology.boundary_walk")
        pairs = []
        for segment in self.boundary_walks[b]:
            indices = face_node_indices(segment.edge, nnode_1d)
            if segment.reversed:
                indices = indices[::-1]
            pairs.extend((segment.element, int(l)) for l in indices)
        return pairs


class Domain:
    """Base class for domains built from macro elements.

    Subclasses create their macro elements, register one boundary evaluator
    per macro-element side via :meth:`set_boundary` and set
    :attr:`topology`.

    Attributes:
        dim (int): Spatial dimension.
        topology (Topology): Edge connectivity, None for domains that are
            not meshed by the quadrilateral mesh builder.
    """

    dim = 2

    def __init__(self):
        self._macro_elements = []
        self._boundaries = {}
        self.topology: Optional[Topology] = None

    @property
    def n_macro_element(self):
        return len(self._macro_elements)

    def macro_element(self, i):
        return self._macro_elements[i]

    @property
    def macro_elements(self):
        return list(self._macro_elements)

    def add_macro_element(self, macro_element_cls):
        macro = macro_element_cls(self, len(self._macro_elements))
        self._macro_elements.append(macro)
        return macro

    def set_boundary(self, i_macro, direction, evaluator: BoundaryTraceable):
        axis_and_sign(direction)
        self._boundaries[(i_macro, direction)] = evaluator

    def check_boundaries(self):
        """Ensure every side of every macro element has an evaluator."""
        for i in range(self.n_macro_element):
            for direction in directions(self.dim):
                if (i, direction) not in self._boundaries:
                    raise TopologyError(
                        f"Side {direction} of macro element {i} has no boundary",
                        operation=f"{type(self).__name__}.check_boundaries",
                    )

    def _evaluator(self, i_macro, direction, s):
        try:
            evaluator = self._boundaries[(i_macro, direction)]
        except KeyError:
            raise UsageError(
                f"No boundary {direction!r} for macro element {i_macro}",
                operation=f"{type(self).__name__}.macro_element_boundary",
            ) from None
        s = np.atleast_1d(np.asarray(s, dtype=np.float64))
        if s.shape != (self.dim - 1,):
            raise UsageError(
                f"Side coordinate must have shape ({self.dim - 1},), got {s.shape}",
                operation=f"{type(self).__name__}.macro_element_boundary",
            )
        return evaluator, s

    def macro_element_boundary(self, t, i_macro, direction, s):
        """Position on side ``direction`` of macro element ``i_macro`` at time level ``t``."""
        evaluator, s = self._evaluator(i_macro, direction, s)
        return evaluator.position(t, s)

    def macro_element_boundary_at_time(self, time, i_macro, direction, s):
        """Position on side ``direction`` of macro element ``i_macro`` at continuous time."""
        evaluator, s = self._evaluator(i_macro, direction, s)
        return evaluator.position_at_time(time, s)


class RectangleWithHoleDomain(Domain):
    """Square ``[-L/2, L/2]^2`` with a hole described by a geometric object.

    The hole object is parametrised by an angle-like coordinate
    ``zeta in [0, 2 pi]`` running anticlockwise. The square is split into four
    macro elements, 0 (left), 1 (top), 2 (right) and 3 (bottom), whose inner
    sides follow the hole between ``zeta = 5 pi/4, 3 pi/4, pi/4, -pi/4``.

    Mesh boundaries: 0 bottom, 1 right, 2 top, 3 left, 4 hole.

    Args:
        geom_object (GeometricObject): The hole; referenced, not owned.
        length (float): Side length of the square.
    """

    def __init__(self, geom_object, length=1.0):
        super().__init__()
        if length <= 0.0:
            raise UsageError(f"Length must be positive, got {length}",
                             operation="RectangleWithHoleDomain.__init__")
        self.geom_object = geom_object
        self.length = float(length)
        for _ in range(4):
            self.add_macro_element(QMacroElement2D)

        h = 0.5 * self.length
        ll, lr, ul, ur = (-h, -h), (h, -h), (-h, h), (h, h)
        z_ll, z_ul, z_ur, z_lr = 1.25 * onp.pi, 0.75 * onp.pi, 0.25 * onp.pi, -0.25 * onp.pi
        hole_ll = PointOnObject(geom_object, z_ll)
        hole_ul = PointOnObject(geom_object, z_ul)
        hole_ur = PointOnObject(geom_object, z_ur)
        hole_lr = PointOnObject(geom_object, z_lr)

        # left
        self.set_boundary(0, W, StraightEdge(ll, ul))
        self.set_boundary(0, E, CurvedEdge(geom_object, z_ll, z_ul))
        self.set_boundary(0, S, StraightEdge(ll, hole_ll))
        self.set_boundary(0, N, StraightEdge(ul, hole_ul))
        # top
        self.set_boundary(1, N, StraightEdge(ul, ur))
        self.set_boundary(1, S, CurvedEdge(geom_object, z_ul, z_ur))
        self.set_boundary(1, W, StraightEdge(hole_ul, ul))
        self.set_boundary(1, E, StraightEdge(hole_ur, ur))
        # right
        self.set_boundary(2, E, StraightEdge(lr, ur))
        self.set_boundary(2, W, CurvedEdge(geom_object, z_lr, z_ur))
        self.set_boundary(2, S, StraightEdge(hole_lr, lr))
        self.set_boundary(2, N, StraightEdge(hole_ur, ur))
        # bottom
        self.set_boundary(3, S, StraightEdge(ll, lr))
        self.set_boundary(3, N, CurvedEdge(geom_object, z_ll, z_lr + 2.0 * onp.pi))
        self.set_boundary(3, W, StraightEdge(ll, hole_ll))
        self.set_boundary(3, E, StraightEdge(lr, hole_lr))
        self.check_boundaries()

        self.topology = Topology(
            n_element=4,
            shared_edges=[
                SharedEdge(0, N, 1, W, reversed=True),
                SharedEdge(0, S, 3, W),
                SharedEdge(1, E, 2, N),
                SharedEdge(3, E, 2, S, reversed=True),
            ],
            boundary_walks=[
                [BoundarySegment(3, S)],
                [BoundarySegment(2, E)],
                [BoundarySegment(1, N)],
                [BoundarySegment(0, W)],
                [
                    BoundarySegment(3, N),
                    BoundarySegment(2, W),
                    BoundarySegment(1, S, reversed=True),
                    BoundarySegment(0, E, reversed=True),
                ],
            ],
        )


class RectangleDomain(Domain):
    """Rectangle ``origin + [0, lx] x [0, ly]`` split into ``nx * ny`` macro elements.

    Macro element ``(i, j)`` (column ``i``, row ``j``) has number ``j * nx + i``.
    Mesh boundaries: 0 bottom, 1 right, 2 top, 3 left.
    """

    def __init__(self, nx, ny, lx=1.0, ly=1.0, origin=(0.0, 0.0)):
        super().__init__()
        if nx < 1 or ny < 1:
            raise UsageError(f"Need at least one macro element per direction, got {nx} x {ny}",
                             operation="RectangleDomain.__init__")
        if lx <= 0.0 or ly <= 0.0:
            raise UsageError(f"Side lengths must be positive, got {lx} x {ly}",
                             operation="RectangleDomain.__init__")
        self.nx, self.ny = nx, ny
        self.lx, self.ly = float(lx), float(ly)
        self.origin = onp.asarray(origin, dtype=onp.float64)

        xs = self.origin[0] + onp.linspace(0.0, self.lx, nx + 1)
        ys = self.origin[1] + onp.linspace(0.0, self.ly, ny + 1)
        for j in range(ny):
            for i in range(nx):
                e = self.add_macro_element(QMacroElement2D).number
                ll, lr = (xs[i], ys[j]), (xs[i + 1], ys[j])
                ul, ur = (xs[i], ys[j + 1]), (xs[i + 1], ys[j + 1])
                self.set_boundary(e, S, StraightEdge(ll, lr))
                self.set_boundary(e, N, StraightEdge(ul, ur))
                self.set_boundary(e, W, StraightEdge(ll, ul))
                self.set_boundary(e, E, StraightEdge(lr, ur))
        self.check_boundaries()

        shared = []
        for j in range(ny):
            for i in range(nx):
                if i + 1 < nx:
                    shared.append(SharedEdge(self.element_number(i, j), E,
                                             self.element_number(i + 1, j), W))
                if j + 1 < ny:
                    shared.append(SharedEdge(self.element_number(i, j), N,
                                             self.element_number(i, j + 1), S))
        self.topology = Topology(
            n_element=nx * ny,
            shared_edges=shared,
            boundary_walks=[
                [BoundarySegment(self.element_number(i, 0), S) for i in range(nx)],
                [BoundarySegment(self.element_number(nx - 1, j), E) for j in range(ny)],
                [BoundarySegment(self.element_number(i, ny - 1), N) for i in range(nx)],
                [BoundarySegment(self.element_number(0, j), W) for j in range(ny)],
            ],
        )
        logger.debug(f"RectangleDomain: {nx} x {ny} macro elements, {len(shared)} shared edges")

    def element_number(self, i, j):
        return j * self.nx + i


class BoxDomain(Domain):
    """Box ``origin + [0, lx] x [0, ly] x [0, lz]`` as one hexahedral macro element.

    A face can be replaced by any jax-traceable surface ``fn(t, s_face)``
    through :meth:`set_boundary` before the map is evaluated, which makes
    curved hexahedra possible.
    """

    dim = 3

    def __init__(self, lx=1.0, ly=1.0, lz=1.0, origin=(0.0, 0.0, 0.0)):
        super().__init__()
        self.lengths = np.array([lx, ly, lz], dtype=np.float64)
        self.origin = np.asarray(origin, dtype=np.float64)
        self.add_macro_element(QMacroElement3D)
        for direction in directions(3):
            fn = self._face_fn(direction)
            self.set_boundary(0, direction, ParametricBoundary(
                fn, fn_at_time=lambda time, s, fn=fn: fn(0, s)))
        self.check_boundaries()

    def _face_fn(self, direction):
        axis, sign = axis_and_sign(direction)

        def fn(t, s_face):
            s = np.insert(s_face, axis, float(sign))
            return self.origin + 0.5 * (1.0 + s) * self.lengths

        return fn
