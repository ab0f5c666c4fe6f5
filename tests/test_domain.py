"""
Tests for macrofem.fem.domain module.
"""
import pytest
import numpy as np

from macrofem.errors import TopologyError, UnimplementedError, UsageError
from macrofem.fem.domain import (
    BoundarySegment,
    Domain,
    ParametricBoundary,
    RectangleDomain,
    RectangleWithHoleDomain,
    SharedEdge,
    StraightEdge,
    Topology,
)
from macrofem.fem.macro_element import QMacroElement2D
from macrofem.geometry import TimeDependentCircle

pytestmark = pytest.mark.integration


class TestBoundaryLookup:
    """Dispatch of macro-element side positions."""

    def test_straight_side(self, hole_domain):
        x = hole_domain.macro_element_boundary(0, 0, "W", [0.0])
        np.testing.assert_allclose(x, [-0.5, 0.0])

    def test_curved_side(self, hole_domain):
        x = np.asarray(hole_domain.macro_element_boundary(0, 2, "W", [0.0]))
        np.testing.assert_allclose(x, [0.2, 0.0], atol=1e-15)

    def test_side_coordinate_shape(self, hole_domain):
        with pytest.raises(UsageError):
            hole_domain.macro_element_boundary(0, 0, "W", [0.0, 0.0])

    def test_unknown_side(self, hole_domain):
        with pytest.raises(UsageError):
            hole_domain.macro_element_boundary(0, 7, "W", [0.0])

    def test_unknown_direction(self, hole_domain):
        with pytest.raises(UsageError):
            hole_domain.set_boundary(0, "X", StraightEdge((0.0, 0.0), (1.0, 0.0)))

    def test_continuous_time(self):
        hole = TimeDependentCircle(lambda time: (0.1 * time, 0.0), lambda time: 0.2)
        domain = RectangleWithHoleDomain(hole, length=1.0)
        x = np.asarray(domain.macro_element_boundary_at_time(1.0, 2, "W", [0.0]))
        np.testing.assert_allclose(x, [0.3, 0.0], atol=1e-15)
        # straight sides from hole points follow the hole
        x = np.asarray(domain.macro_element_boundary_at_time(1.0, 2, "S", [-1.0]))
        np.testing.assert_allclose(x, [0.1 + 0.2 * np.cos(0.25 * np.pi), -0.2 * np.sin(0.25 * np.pi)])

    def test_parametric_without_continuous_time(self):
        boundary = ParametricBoundary(lambda t, s: np.array([s[0], 0.0]))
        with pytest.raises(UnimplementedError):
            boundary.position_at_time(0.0, [0.0])

    def test_missing_side_detected(self):
        domain = Domain()
        domain.add_macro_element(QMacroElement2D)
        domain.set_boundary(0, "W", StraightEdge((0.0, 0.0), (0.0, 1.0)))
        with pytest.raises(TopologyError):
            domain.check_boundaries()

    def test_invalid_length(self, circle):
        with pytest.raises(UsageError):
            RectangleWithHoleDomain(circle, length=-1.0)


class TestTopology:
    """Shared edges and boundary walks."""

    def test_hole_domain_is_valid(self, hole_domain):
        topology = hole_domain.topology
        topology.validate()
        assert topology.n_element == 4
        assert topology.n_boundary == 5

    def test_hole_walk(self, hole_domain):
        walk = hole_domain.topology.boundary_walk(4, 3)
        assert len(walk) == 12
        assert walk[:3] == [(3, 6), (3, 7), (3, 8)]
        assert walk[6:9] == [(1, 2), (1, 1), (1, 0)]

    def test_walk_out_of_range(self, hole_domain):
        with pytest.raises(UsageError):
            hole_domain.topology.boundary_walk(5, 3)

    def test_edge_used_twice(self):
        topology = Topology(
            n_element=2,
            shared_edges=[SharedEdge(0, "E", 1, "W")],
            boundary_walks=[[BoundarySegment(0, "E")]],
        )
        with pytest.raises(TopologyError):
            topology.validate()

    def test_element_out_of_range(self):
        topology = Topology(n_element=1, shared_edges=[SharedEdge(0, "E", 1, "W")])
        with pytest.raises(TopologyError):
            topology.validate()

    def test_self_sharing(self):
        topology = Topology(n_element=1, shared_edges=[SharedEdge(0, "E", 0, "W")])
        with pytest.raises(TopologyError):
            topology.validate()

    def test_unknown_edge(self):
        topology = Topology(n_element=1, boundary_walks=[[BoundarySegment(0, "U")]])
        with pytest.raises(TopologyError):
            topology.validate()


class TestRectangleDomain:
    """Structured grids of straight macro elements."""

    def test_numbering_and_topology(self):
        domain = RectangleDomain(3, 2, lx=3.0, ly=2.0)
        assert domain.n_macro_element == 6
        assert domain.element_number(2, 1) == 5
        domain.topology.validate()
        # (nx - 1) * ny vertical plus nx * (ny - 1) horizontal interfaces
        assert len(domain.topology.shared_edges) == 7
        assert [len(walk) for walk in domain.topology.boundary_walks] == [3, 2, 3, 2]

    def test_corners(self):
        domain = RectangleDomain(2, 2, lx=2.0, ly=4.0, origin=(1.0, -1.0))
        macro = domain.macro_element(domain.element_number(1, 1))
        np.testing.assert_allclose(macro.macro_map([1.0, 1.0]), [3.0, 3.0])
        np.testing.assert_allclose(macro.macro_map([-1.0, -1.0]), [2.0, 1.0])

    @pytest.mark.parametrize("args", [(0, 1), (1, 1, 0.0, 1.0)])
    def test_invalid(self, args):
        with pytest.raises(UsageError):
            RectangleDomain(*args)
