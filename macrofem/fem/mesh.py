"""Meshes assembled from the macro elements of a domain.

One Lagrange element is created per macro element and its nodes are placed
with the macro map. Nodes on edges shared by two macro elements are merged so
that every geometric point carries exactly one :class:`Node`, and the nodes
on each domain boundary are collected in walking order.

The module includes:
    - NodeArena: slot storage used while nodes are being merged
    - Mesh: elements, de-duplicated nodes and boundary node sets
    - MacroElementQuadMesh: generic builder for any 2D domain topology
    - RectangleWithHoleMesh / RectangleQuadMesh: convenience constructors

Example:
    >>> from macrofem.geometry import Circle
    >>> from macrofem.fem.mesh import RectangleWithHoleMesh
    >>> mesh = RectangleWithHoleMesh(Circle(0.0, 0.0, 0.2), length=1.0, nnode_1d=3)
    >>> mesh.n_node
    24
"""
import numpy as onp
import meshio

from macrofem.errors import TopologyError, UsageError
from macrofem.fem import logger
from macrofem.fem.basis import face_node_indices
from macrofem.fem.directions import directions
from macrofem.fem.domain import RectangleDomain, RectangleWithHoleDomain
from macrofem.fem.element import QElement
from macrofem.fem.node import Node


class NodeArena:
    """Slot storage for nodes during mesh assembly.

    Every node created by the builder gets a slot. Merging two slots leaves
    the lower-numbered canonical slot in place and marks the other one as
    superseded; its node is released and must no longer be used.
    """

    def __init__(self):
        self._nodes = []
        self._parent = []

    def __len__(self):
        return len(self._nodes)

    def append(self, node):
        self._nodes.append(node)
        self._parent.append(len(self._parent))
        return len(self._nodes) - 1

    def find(self, slot):
        """Canonical slot that ``slot`` resolves to."""
        root = slot
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[slot] != root:
            self._parent[slot], slot = root, self._parent[slot]
        return root

    def node(self, slot):
        return self._nodes[self.find(slot)]

    def is_canonical(self, slot):
        return self._parent[slot] == slot

    def supersede(self, slot, by, tol=None):
        """Make ``slot`` and ``by`` resolve to the same node.

        Args:
            slot (int): Slot to be replaced.
            by (int): Slot whose node is kept.
            tol (float, optional): If given, the two nodes must coincide to
                within this distance.

        Returns:
            int: The canonical slot both now resolve to.

        Raises:
            TopologyError: If the positions differ by more than ``tol``.
        """
        keep, drop = self.find(by), self.find(slot)
        if keep == drop:
            return keep
        keep, drop = min(keep, drop), max(keep, drop)
        if tol is not None:
            gap = onp.max(onp.linalg.norm(
                self._nodes[keep].x_history - self._nodes[drop].x_history, axis=-1))
            if gap > tol:
                raise TopologyError(
                    f"Slots {keep} and {drop} are stitched but lie {gap:.3e} apart",
                    operation="NodeArena.supersede",
                )
        self._parent[drop] = keep
        self._nodes[drop] = None
        return keep

    def canonical_slots(self):
        return [slot for slot in range(len(self._parent)) if self._parent[slot] == slot]


class Mesh:
    """Elements, nodes and boundary node sets.

    Attributes:
        elements (list): The elements, in creation order.
        nodes (list): De-duplicated nodes; ``nodes[i].id == i``.
    """

    def __init__(self, n_boundary=0):
        self.elements = []
        self.nodes = []
        self._boundary_nodes = [[] for _ in range(n_boundary)]

    @property
    def n_node(self):
        return len(self.nodes)

    @property
    def n_element(self):
        return len(self.elements)

    @property
    def n_boundary(self):
        return len(self._boundary_nodes)

    def set_n_boundary(self, n_boundary):
        self._boundary_nodes = [[] for _ in range(n_boundary)]
        for node in self.nodes:
            node.boundaries.clear()

    def assign_node_ids(self):
        for i, node in enumerate(self.nodes):
            node.id = i

    def _check_boundary(self, b):
        if not 0 <= b < self.n_boundary:
            raise UsageError(f"Boundary {b} out of range (n_boundary={self.n_boundary})",
                             operation=f"{type(self).__name__}.add_boundary_node")

    def add_boundary_node(self, b, node):
        """Add ``node`` to boundary ``b``; adding it again has no effect."""
        self._check_boundary(b)
        if b in node.boundaries:
            return
        node.boundaries.add(b)
        self._boundary_nodes[b].append(node)

    def remove_boundary_node(self, b, node):
        self._check_boundary(b)
        if b not in node.boundaries:
            return
        node.boundaries.discard(b)
        self._boundary_nodes[b].remove(node)

    def boundary_nodes(self, b):
        self._check_boundary(b)
        return list(self._boundary_nodes[b])

    def n_boundary_node(self, b):
        self._check_boundary(b)
        return len(self._boundary_nodes[b])

    def boundary_element_info(self):
        """Elements adjacent to each boundary.

        Returns:
            list: For every boundary ``b``, a list of ``(element, direction)``
                pairs whose face nodes all lie on ``b``.
        """
        info = [[] for _ in range(self.n_boundary)]
        for element in self.elements:
            for direction in directions(element.dim):
                face = element.edge_nodes(direction)
                common = set.intersection(*(node.boundaries for node in face))
                for b in sorted(common):
                    info[b].append((element, direction))
        return info

    def positions(self, t=0):
        return onp.array([node.position(t) for node in self.nodes])

    def node_update(self, t=0):
        """Re-evaluate the positions at time level ``t`` from the macro maps."""
        for element in self.elements:
            if element.macro_elem is None:
                continue
            positions = element.macro_node_positions(t)
            for node, x in zip(element.nodes, positions):
                node.set_position(x, t)

    def shift_time_values(self):
        for node in self.nodes:
            node.shift_time_values()

    def to_meshio(self, t=0):
        """Export as a meshio mesh of bilinear sub-quadrilaterals.

        Every element with ``np`` nodes per edge contributes ``(np - 1)**2``
        quadrilaterals connecting its nodes. Boundary membership is exported
        as the point data ``"boundary_<b>"``.
        """
        nnode_1d = self.elements[0].nnode_1d
        cells = []
        for element in self.elements:
            ids = onp.array([node.id for node in element.nodes]).reshape(nnode_1d, nnode_1d)
            sw, se = ids[:-1, :-1], ids[:-1, 1:]
            nw, ne = ids[1:, :-1], ids[1:, 1:]
            cells.append(onp.stack((sw, se, ne, nw), axis=-1).reshape(-1, 4))
        point_data = {}
        for b in range(self.n_boundary):
            flag = onp.zeros(self.n_node)
            flag[[node.id for node in self._boundary_nodes[b]]] = 1.0
            point_data[f"boundary_{b}"] = flag
        return meshio.Mesh(points=self.positions(t), cells={"quad": onp.vstack(cells)},
                           point_data=point_data)


class MacroElementQuadMesh(Mesh):
    """Quadrilateral mesh with one element per macro element of a 2D domain.

    Args:
        domain (Domain): Domain with a :class:`~macrofem.fem.domain.Topology`.
        nnode_1d (int): Nodes along each element edge (>= 2).
        n_time_levels (int): Number of stored position levels per node.
        validate (bool): Check the topology and the positions of merged nodes.
        tol (float): Distance below which merged nodes count as coincident.
    """

    def __init__(self, domain, nnode_1d=3, n_time_levels=1, validate=True, tol=1e-8):
        if domain.dim != 2:
            raise UsageError(f"Cannot build a quadrilateral mesh for a {domain.dim}D domain",
                             operation=f"{type(self).__name__}.__init__")
        topology = domain.topology
        if topology is None:
            raise UsageError(f"{type(domain).__name__} has no topology",
                             operation=f"{type(self).__name__}.__init__")
        if validate:
            topology.validate()
        super().__init__(n_boundary=topology.n_boundary)
        self.domain = domain
        self.nnode_1d = nnode_1d
        self.n_time_levels = n_time_levels
        self.validate = validate
        self.tol = tol

        arena = NodeArena()
        nnode = nnode_1d ** 2
        for macro in domain.macro_elements:
            element = QElement(nnode_1d)
            element.macro_elem = macro
            history = onp.stack([element.macro_node_positions(t) for t in range(n_time_levels)],
                                axis=1)
            for l in range(nnode):
                node = Node(2, n_time_levels)
                node.x_history[:] = history[l]
                arena.append(node)
            self.elements.append(element)

        for shared in topology.shared_edges:
            idx_a = face_node_indices(shared.edge_a, nnode_1d)
            idx_b = face_node_indices(shared.edge_b, nnode_1d)
            if shared.reversed:
                idx_a = idx_a[::-1]
            for la, lb in zip(idx_a, idx_b):
                arena.supersede(shared.element_b * nnode + lb, shared.element_a * nnode + la,
                                tol=tol if validate else None)

        self.nodes = [arena.node(slot) for slot in arena.canonical_slots()]
        self.assign_node_ids()
        for e, element in enumerate(self.elements):
            element.nodes = [arena.node(e * nnode + l) for l in range(nnode)]

        for b in range(topology.n_boundary):
            for e, l in topology.boundary_walk(b, nnode_1d):
                self.add_boundary_node(b, self.elements[e].nodes[l])

        logger.info(
            f"{type(self).__name__}: {self.n_element} elements, {self.n_node} nodes, "
            f"{self.n_boundary} boundaries ({len(arena) - self.n_node} nodes merged)"
        )


class RectangleWithHoleMesh(MacroElementQuadMesh):
    """Mesh of :class:`~macrofem.fem.domain.RectangleWithHoleDomain`.

    Boundaries: 0 bottom, 1 right, 2 top, 3 left, 4 hole.
    """

    def __init__(self, geom_object, length=1.0, nnode_1d=3, **kwargs):
        super().__init__(RectangleWithHoleDomain(geom_object, length), nnode_1d, **kwargs)


class RectangleQuadMesh(MacroElementQuadMesh):
    """Structured ``nx * ny`` mesh of a rectangle.

    Boundaries: 0 bottom, 1 right, 2 top, 3 left.
    """

    def __init__(self, nx, ny, lx=1.0, ly=1.0, nnode_1d=3, origin=(0.0, 0.0), **kwargs):
        super().__init__(RectangleDomain(nx, ny, lx, ly, origin), nnode_1d, **kwargs)
