"""Adaptive quadtree refinement of macro-element meshes.

Every element of a :class:`RefineableQuadMesh` covers a square sub-region
``[s_macro_ll, s_macro_ur]`` of one macro element. Splitting an element creates
four sons whose nodes are placed with the macro map, so curved boundaries stay
exact at every refinement level. Nodes are shared through a registry keyed by
canonical macro coordinates: a point on an edge between two macro elements is
always described in the coordinates of the lower-numbered one.

After every change the mesh is rebuilt from the leaves of the
:class:`~macrofem.fem.quadtree.QuadTreeForest`:

1. Elements without nodes (new sons, re-merged fathers) get their nodes from the
   registry or create new ones.
2. New nodes on father edges that lie on a mesh boundary join that boundary.
3. Nodes no longer used by any leaf are dropped.
4. Hanging nodes are set up: on an edge whose neighbour is coarser, the nodes
   the neighbour does not have are constrained to the neighbour's edge nodes
   with 1D Lagrange weights.

Example:
    >>> mesh = RefineableRectangleWithHoleMesh(Circle(0.0, 0.0, 0.2), 1.0, nnode_1d=3)
    >>> n_split = mesh.refine_uniformly()
    >>> mesh.n_element
    16
"""
import numpy as onp

from macrofem.errors import TopologyError, UsageError
from macrofem.fem import logger
from macrofem.fem.basis import face_node_indices, lagrange_1d
from macrofem.fem.directions import axis_and_sign, directions, tangential_axes
from macrofem.fem.domain import RectangleDomain, RectangleWithHoleDomain
from macrofem.fem.element import QElement
from macrofem.fem.mesh import MacroElementQuadMesh
from macrofem.fem.node import Node
from macrofem.fem.quadtree import QuadTreeForest

_KEY_DIGITS = 10
_ON_EDGE_TOL = 1e-10


class RefineableQuadMesh(MacroElementQuadMesh):
    """Macro-element quadrilateral mesh with quadtree refinement.

    Args:
        domain (Domain): 2D domain with a topology.
        nnode_1d (int): Nodes along each element edge.
        max_refinement_level (int): Elements at this level are not split further.
        min_refinement_level (int): Elements at this level are not merged.
        **kwargs: Passed on to :class:`~macrofem.fem.mesh.MacroElementQuadMesh`.
    """

    def __init__(self, domain, nnode_1d=3, max_refinement_level=5, min_refinement_level=0,
                 **kwargs):
        super().__init__(domain, nnode_1d, **kwargs)
        if min_refinement_level > max_refinement_level:
            raise UsageError(
                f"min_refinement_level {min_refinement_level} exceeds "
                f"max_refinement_level {max_refinement_level}",
                operation="RefineableQuadMesh.__init__",
            )
        self.max_refinement_level = max_refinement_level
        self.min_refinement_level = min_refinement_level
        self.forest = QuadTreeForest(self.elements)
        for b in range(self.domain.topology.n_boundary):
            for segment in self.domain.topology.boundary_walks[b]:
                self.forest.roots[segment.element].edge_boundaries[segment.edge].add(b)

        self._registry = {}
        for element in self.elements:
            for l, key in enumerate(self._element_node_keys(element)):
                node = element.nodes[l]
                known = self._registry.setdefault(key, node)
                if known is not node:
                    raise TopologyError(
                        f"Two nodes share macro coordinates {key}",
                        operation="RefineableQuadMesh.__init__",
                    )
        self.setup_hanging_nodes()

    @property
    def leaves(self):
        return list(self.forest.leaves())

    def _canonical_key(self, i_macro, s):
        """Canonical ``(macro element, rounded coordinates)`` of a point in macro element ``i_macro``."""
        equivalents = {}
        stack = [(self.forest.roots[i_macro], onp.asarray(s, dtype=float))]
        while stack:
            root, s = stack.pop()
            key = (root.root_number, tuple(float(x) for x in onp.round(s, _KEY_DIGITS)))
            if key in equivalents:
                continue
            equivalents[key] = s
            for direction in directions(2):
                axis, sign = axis_and_sign(direction)
                if abs(s[axis] - sign) < _ON_EDGE_TOL:
                    crossed = self.forest.cross_root_edge(root, direction, s)
                    if crossed is not None:
                        stack.append(crossed[:2])
        return min(equivalents)

    def _element_node_keys(self, element):
        s_macro = element.macro_coordinates(element.local_node_coordinates())
        return [self._canonical_key(element.macro_elem.number, s) for s in s_macro]

    def _make_son_element(self, father, s_ll, s_ur):
        son = QElement(self.nnode_1d)
        son.macro_elem = father.macro_elem
        son.s_macro_ll = s_ll
        son.s_macro_ur = s_ur
        son.nodes = [None] * son.nnode
        return son

    def _new_node(self, element, l, positions):
        node = Node(2, self.n_time_levels)
        node.x_history[:] = positions[l]
        tree = element.tree
        lattice = (l % self.nnode_1d, l // self.nnode_1d)
        for direction in directions(2):
            axis, sign = axis_and_sign(direction)
            if lattice[axis] == (0 if sign < 0 else self.nnode_1d - 1):
                for b in tree.edge_boundaries[direction]:
                    self.add_boundary_node(b, node)
        return node

    def _assign_nodes(self, element):
        positions = None
        for l, key in enumerate(self._element_node_keys(element)):
            node = self._registry.get(key)
            if node is None:
                if positions is None:
                    positions = onp.stack([element.macro_node_positions(t)
                                           for t in range(self.n_time_levels)], axis=1)
                node = self._new_node(element, l, positions)
                self._registry[key] = node
            element.nodes[l] = node

    def _rebuild(self):
        leaves = self.leaves
        new_nodes = []
        known = set(self.nodes)
        seen = set()
        for tree in leaves:
            if any(node is None for node in tree.element.nodes):
                self._assign_nodes(tree.element)
                for node in tree.element.nodes:
                    if node not in known and node not in seen:
                        seen.add(node)
                        new_nodes.append(node)

        alive = set()
        for tree in leaves:
            alive.update(tree.element.nodes)
        self.nodes = [node for node in self.nodes if node in alive] + new_nodes
        self.assign_node_ids()
        self._registry = {key: node for key, node in self._registry.items() if node in alive}
        for b in range(self.n_boundary):
            self._boundary_nodes[b] = [node for node in self._boundary_nodes[b] if node in alive]
        self.elements = [tree.element for tree in leaves]
        self.setup_hanging_nodes()
        logger.info(
            f"{type(self).__name__}: {self.n_element} elements, {self.n_node} nodes, "
            f"{sum(node.is_hanging for node in self.nodes)} hanging"
        )

    def _merge(self, tree):
        tree.merge_sons()
        tree.element.nodes = [None] * tree.element.nnode

    def refine_selected_elements(self, elements):
        """Split the given leaf elements; elements at the maximum level are skipped.

        Returns:
            int: Number of elements split.
        """
        n_split = 0
        for element in elements:
            tree = element.tree
            if tree is None or not tree.is_leaf:
                raise UsageError("Only leaf elements of this mesh can be refined",
                                 operation="RefineableQuadMesh.refine_selected_elements")
            if tree.level >= self.max_refinement_level:
                continue
            tree.split(self._make_son_element)
            n_split += 1
        if n_split:
            self._rebuild()
        return n_split

    def refine_uniformly(self):
        return self.refine_selected_elements(self.elements)

    def _mergeable_fathers(self):
        fathers = []
        for tree in self.leaves:
            father = tree.father
            if (father is not None and father.can_merge and father not in fathers
                    and father.level >= self.min_refinement_level):
                fathers.append(father)
        return fathers

    def unrefine_uniformly(self):
        """Merge every father whose sons are all leaves.

        Returns:
            int: Number of fathers merged.
        """
        fathers = self._mergeable_fathers()
        for father in fathers:
            self._merge(father)
        if fathers:
            self._rebuild()
        return len(fathers)

    def adapt(self, errors, max_error=1e-3, min_error=1e-5):
        """Refine and unrefine according to per-element error estimates.

        Leaves with ``error > max_error`` are split. Fathers whose sons are all
        leaves with ``error < min_error`` are merged.

        Args:
            errors (Sequence[float]): One value per element, in ``self.elements`` order.
            max_error (float): Refinement threshold.
            min_error (float): Unrefinement threshold.

        Returns:
            tuple: ``(n_refined, n_unrefined)``.
        """
        errors = onp.asarray(errors, dtype=float)
        if errors.shape != (self.n_element,):
            raise UsageError(f"Expected {self.n_element} error values, got {errors.shape}",
                             operation="RefineableQuadMesh.adapt")
        if min_error > max_error:
            raise UsageError(f"min_error {min_error} exceeds max_error {max_error}",
                             operation="RefineableQuadMesh.adapt")
        error_of = {element.tree: err for element, err in zip(self.elements, errors)}
        to_split = [tree for tree in self.leaves
                    if error_of[tree] > max_error and tree.level < self.max_refinement_level]
        to_merge = [father for father in self._mergeable_fathers()
                    if all(error_of[son] < min_error for son in father.sons.values())]
        for father in to_merge:
            self._merge(father)
        for tree in to_split:
            tree.split(self._make_son_element)
        if to_split or to_merge:
            self._rebuild()
        logger.info(f"adapt: refined {len(to_split)}, unrefined {len(to_merge)} "
                    f"(max_error={max_error}, min_error={min_error})")
        return len(to_split), len(to_merge)

    def setup_hanging_nodes(self):
        """Constrain the nodes on edges whose neighbour leaf is coarser."""
        for node in self.nodes:
            node.hanging = None
        np_ = self.nnode_1d
        local = self.elements[0].local_node_coordinates()
        for tree in self.forest.leaves():
            element = tree.element
            for direction in directions(2):
                found = self.forest.neighbour(tree, direction)
                if found is None:
                    continue
                other, other_direction, to_other = found
                if other.level >= tree.level:
                    continue
                (t_axis,) = tangential_axes(other_direction, 2)
                span = other.s_ur[t_axis] - other.s_ll[t_axis]
                masters = other.element.edge_nodes(other_direction)
                for l in face_node_indices(direction, np_):
                    s_other = to_other(element.macro_coordinates(local[l]))
                    s_edge = 2.0 * (s_other[t_axis] - other.s_ll[t_axis]) / span - 1.0
                    weights = lagrange_1d(np_, s_edge)
                    if onp.max(onp.abs(weights - onp.rint(weights))) < 1e-10:
                        # coincides with a node of the coarse edge
                        continue
                    element.nodes[l].hanging = {
                        master: float(w) for master, w in zip(masters, weights) if abs(w) > 1e-14
                    }
        self._flatten_hanging()

    def _flatten_hanging(self):
        for _ in range(self.max_refinement_level + 1):
            pending = [node for node in self.nodes if node.is_hanging
                       and any(master.is_hanging for master in node.hanging)]
            if not pending:
                return
            for node in pending:
                flat = {}
                for master, weight in node.hanging.items():
                    if master.is_hanging:
                        for sub_master, sub_weight in master.hanging.items():
                            flat[sub_master] = flat.get(sub_master, 0.0) + weight * sub_weight
                    else:
                        flat[master] = flat.get(master, 0.0) + weight
                node.hanging = flat
        raise TopologyError("Hanging node constraints do not resolve",
                            operation="RefineableQuadMesh.setup_hanging_nodes")


class RefineableRectangleWithHoleMesh(RefineableQuadMesh):
    """Refineable mesh of :class:`~macrofem.fem.domain.RectangleWithHoleDomain`."""

    def __init__(self, geom_object, length=1.0, nnode_1d=3, **kwargs):
        super().__init__(RectangleWithHoleDomain(geom_object, length), nnode_1d, **kwargs)


class RefineableRectangleQuadMesh(RefineableQuadMesh):
    """Refineable structured mesh of a rectangle."""

    def __init__(self, nx, ny, lx=1.0, ly=1.0, nnode_1d=3, origin=(0.0, 0.0), **kwargs):
        super().__init__(RectangleDomain(nx, ny, lx, ly, origin), nnode_1d, **kwargs)
