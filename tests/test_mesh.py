"""
Tests for macrofem.fem.mesh module.

Checks node stitching across shared macro-element edges, the boundary node
sets and the meshio export.
"""
import pytest
import numpy as np

from macrofem.errors import TopologyError, UsageError
from macrofem.fem.domain import BoxDomain, RectangleWithHoleDomain, SharedEdge
from macrofem.fem.mesh import (
    MacroElementQuadMesh,
    Mesh,
    NodeArena,
    RectangleQuadMesh,
    RectangleWithHoleMesh,
)
from macrofem.fem.node import Node
from macrofem.geometry import Circle

pytestmark = pytest.mark.integration


class TestNodeArena:
    """Slot merging used during assembly."""

    def _node(self, x):
        node = Node(2)
        node.set_position(x)
        return node

    def test_lower_slot_is_kept(self):
        arena = NodeArena()
        a = arena.append(self._node([0.0, 0.0]))
        b = arena.append(self._node([0.0, 0.0]))
        kept = arena.node(a)
        assert arena.supersede(a, b, tol=1e-12) == a
        assert arena.node(b) is kept
        assert arena.canonical_slots() == [a]

    def test_chained_merges(self):
        arena = NodeArena()
        slots = [arena.append(self._node([1.0, 1.0])) for _ in range(3)]
        arena.supersede(slots[2], slots[1])
        arena.supersede(slots[1], slots[0])
        assert arena.find(slots[2]) == slots[0]
        assert arena.is_canonical(slots[0])
        assert not arena.is_canonical(slots[1])

    def test_position_mismatch(self):
        arena = NodeArena()
        a = arena.append(self._node([0.0, 0.0]))
        b = arena.append(self._node([0.0, 1.0]))
        with pytest.raises(TopologyError):
            arena.supersede(b, a, tol=1e-8)


class TestRectangleWithHoleMesh:
    """Four-element mesh around a circular hole."""

    @pytest.mark.parametrize("nnode_1d", [2, 3, 4])
    def test_node_count(self, circle, nnode_1d):
        mesh = RectangleWithHoleMesh(circle, length=1.0, nnode_1d=nnode_1d)
        assert mesh.n_element == 4
        assert mesh.n_node == 4 * nnode_1d ** 2 - 4 * nnode_1d
        assert [node.id for node in mesh.nodes] == list(range(mesh.n_node))

    def test_shared_nodes_are_identical(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        left, top, right, bottom = mesh.elements
        assert left.edge_nodes("N")[::-1] == top.edge_nodes("W")
        assert left.edge_nodes("S") == bottom.edge_nodes("W")
        assert top.edge_nodes("E") == right.edge_nodes("N")
        assert bottom.edge_nodes("E")[::-1] == right.edge_nodes("S")

    def test_boundaries(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        assert mesh.n_boundary == 5
        for b in range(4):
            assert mesh.n_boundary_node(b) == 3
        hole = mesh.boundary_nodes(4)
        assert len(hole) == 8
        for node in hole:
            assert np.linalg.norm(node.x) == pytest.approx(0.2, abs=1e-12)
        bottom = np.array([node.x for node in mesh.boundary_nodes(0)])
        np.testing.assert_allclose(bottom[:, 1], -0.5)

    def test_corner_nodes_on_two_boundaries(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        corner = mesh.elements[0].corner_node((-1, -1))
        np.testing.assert_allclose(corner.x, [-0.5, -0.5])
        assert corner.boundaries == {0, 3}
        interior = mesh.elements[0].nodes[4]
        assert not interior.is_on_boundary()

    def test_add_boundary_node_is_idempotent(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        node = mesh.boundary_nodes(1)[0]
        mesh.add_boundary_node(1, node)
        assert mesh.n_boundary_node(1) == 3
        mesh.remove_boundary_node(1, node)
        assert mesh.n_boundary_node(1) == 2
        assert not node.is_on_boundary(1)
        with pytest.raises(UsageError):
            mesh.add_boundary_node(5, node)

    def test_boundary_element_info(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        info = mesh.boundary_element_info()
        assert len(info[4]) == 4
        assert (mesh.elements[2], "E") in info[1]

    def test_total_area(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=5)
        area = sum(element.size() for element in mesh.elements)
        assert area == pytest.approx(1.0 - np.pi * 0.04, abs=2e-3)

    def test_node_update_follows_hole(self):
        circle = Circle(0.0, 0.0, 0.2, n_prev=1)
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3, n_time_levels=2)
        mesh.shift_time_values()
        circle.shift_time_values()
        circle.set_current(r=0.3)
        mesh.node_update(t=0)
        for node in mesh.boundary_nodes(4):
            assert np.linalg.norm(node.position(0)) == pytest.approx(0.3, abs=1e-12)
            assert np.linalg.norm(node.position(1)) == pytest.approx(0.2, abs=1e-12)

    def test_meshio_export(self, circle):
        mesh = RectangleWithHoleMesh(circle, nnode_1d=3)
        out = mesh.to_meshio()
        assert out.points.shape == (24, 2)
        assert out.cells_dict["quad"].shape == (16, 4)
        assert out.point_data["boundary_4"].sum() == 8


class TestRectangleQuadMesh:
    """Structured meshes of a rectangle."""

    @pytest.mark.parametrize("nx,ny,nnode_1d", [(1, 1, 3), (3, 2, 3), (2, 2, 4)])
    def test_node_count(self, nx, ny, nnode_1d):
        mesh = RectangleQuadMesh(nx, ny, lx=2.0, ly=1.0, nnode_1d=nnode_1d)
        assert mesh.n_element == nx * ny
        assert mesh.n_node == (nx * (nnode_1d - 1) + 1) * (ny * (nnode_1d - 1) + 1)

    def test_positions_unique(self):
        mesh = RectangleQuadMesh(3, 2, nnode_1d=3)
        positions = np.round(mesh.positions(), 10)
        assert len({tuple(x) for x in positions}) == mesh.n_node

    def test_boundary_sizes(self):
        mesh = RectangleQuadMesh(3, 2, nnode_1d=3)
        assert mesh.n_boundary_node(0) == 7
        assert mesh.n_boundary_node(1) == 5
        assert sum(element.size() for element in mesh.elements) == pytest.approx(1.0)


class TestBuilderErrors:
    """Inconsistent input to the mesh builder."""

    def test_3d_domain(self):
        with pytest.raises(UsageError):
            MacroElementQuadMesh(BoxDomain())

    def test_misaligned_shared_edge(self, circle):
        domain = RectangleWithHoleDomain(circle)
        # edge N of element 0 runs against edge W of element 1
        domain.topology.shared_edges[0] = SharedEdge(0, "N", 1, "W", reversed=False)
        with pytest.raises(TopologyError):
            MacroElementQuadMesh(domain)

    def test_base_mesh(self):
        mesh = Mesh(n_boundary=2)
        assert mesh.n_boundary == 2
        mesh.set_n_boundary(3)
        assert mesh.n_boundary == 3
        assert mesh.n_node == 0
