"""Quadtrees over the elements of a macro-element mesh.

Each element of the unrefined mesh is the root of a :class:`QuadTree`. Splitting
a tree node creates four sons (SW, SE, NW, NE) covering the quarters of the
father's square in the root's local coordinates. The :class:`QuadTreeForest`
connects the roots: two roots are neighbours when they share both end nodes of
an edge, which after node merging means the *same* :class:`Node` objects.

Neighbour search works with points in root coordinates. A point just outside
a root is carried over to the neighbouring root across the shared edge,
taking the relative orientation of the two edges into account, and the tree
containing it is found by descending from that root.
"""
import numpy as onp

from macrofem.errors import TopologyError
from macrofem.fem import logger
from macrofem.fem.directions import axis_and_sign, directions, opposite, tangential_axes

SW, SE, NW, NE = "SW", "SE", "NW", "NE"
SON_SIGNS = {SW: (-1, -1), SE: (1, -1), NW: (-1, 1), NE: (1, 1)}


class RootNeighbour:
    """Root ``tree`` lies across an edge, touching it with its edge ``direction``.

    If ``reversed`` is set, the two edges run in opposite directions.
    """

    def __init__(self, tree, direction, reversed):
        self.tree = tree
        self.direction = direction
        self.reversed = reversed

    def __repr__(self):
        return (f"RootNeighbour(root={self.tree.root_number}, direction={self.direction!r}, "
                f"reversed={self.reversed})")


class QuadTree:
    """Node of a quadtree; references (does not own) its element.

    Attributes:
        element (QElement): Element covering this node's square.
        father (QuadTree or None): Father node, None for a root.
        son_type (str or None): SW, SE, NW or NE.
        sons (dict): Sons keyed by son type, empty for a leaf.
        level (int): Refinement level, 0 for a root.
        edge_boundaries (dict): Direction -> set of mesh boundaries the edge lies on.
    """

    def __init__(self, element, father=None, son_type=None):
        self.element = element
        self.father = father
        self.son_type = son_type
        self.sons = {}
        self.level = 0 if father is None else father.level + 1
        self.root = self if father is None else father.root
        self.root_number = None
        self.neighbours = {}
        self.edge_boundaries = {direction: set() for direction in directions(2)}
        element.tree = self

    def __repr__(self):
        return f"QuadTree(root={self.root.root_number}, level={self.level}, son_type={self.son_type})"

    @property
    def is_leaf(self):
        return not self.sons

    @property
    def s_ll(self):
        return self.element.s_macro_ll

    @property
    def s_ur(self):
        return self.element.s_macro_ur

    @property
    def width(self):
        return float(self.s_ur[0] - self.s_ll[0])

    def leaves(self):
        """Leaves below (and including) this node, sons in SW, SE, NW, NE order."""
        if self.is_leaf:
            yield self
            return
        for son_type in (SW, SE, NW, NE):
            yield from self.sons[son_type].leaves()

    def son_square(self, son_type):
        """Corners ``(s_ll, s_ur)`` of a son's square in root coordinates."""
        mid = 0.5 * (self.s_ll + self.s_ur)
        signs = onp.array(SON_SIGNS[son_type])
        return onp.where(signs < 0, self.s_ll, mid), onp.where(signs < 0, mid, self.s_ur)

    def split(self, make_son_element):
        """Create the four sons; ``make_son_element(father, s_ll, s_ur)`` builds their elements."""
        for son_type in (SW, SE, NW, NE):
            s_ll, s_ur = self.son_square(son_type)
            son = QuadTree(make_son_element(self.element, s_ll, s_ur), father=self,
                           son_type=son_type)
            signs = SON_SIGNS[son_type]
            for direction in directions(2):
                axis, sign = axis_and_sign(direction)
                if signs[axis] == sign:
                    son.edge_boundaries[direction] = set(self.edge_boundaries[direction])
            self.sons[son_type] = son
        return [self.sons[son_type] for son_type in (SW, SE, NW, NE)]

    def merge_sons(self):
        """Turn this node back into a leaf; the sons' elements are dropped."""
        self.sons = {}

    @property
    def can_merge(self):
        return not self.is_leaf and all(son.is_leaf for son in self.sons.values())

    def contains(self, s):
        return bool(onp.all(s >= self.s_ll) and onp.all(s <= self.s_ur))

    def locate(self, s, max_level=None):
        """Deepest node containing root coordinates ``s``, at most ``max_level`` deep."""
        tree = self
        while not tree.is_leaf and (max_level is None or tree.level < max_level):
            mid = 0.5 * (tree.s_ll + tree.s_ur)
            sx = -1 if s[0] < mid[0] else 1
            sy = -1 if s[1] < mid[1] else 1
            son_type = {(-1, -1): SW, (1, -1): SE, (-1, 1): NW, (1, 1): NE}[(sx, sy)]
            tree = tree.sons[son_type]
        return tree


class QuadTreeForest:
    """Quadtrees rooted at the elements of an unrefined mesh.

    Args:
        elements (list): Root elements; their edge end nodes must already be
            merged with the neighbouring elements' nodes.
    """

    def __init__(self, elements):
        self.roots = []
        for i, element in enumerate(elements):
            tree = QuadTree(element)
            tree.root_number = i
            self.roots.append(tree)
        self.find_neighbours()

    def find_neighbours(self):
        """Connect roots that share both end nodes of an edge."""
        ends = {}
        for tree in self.roots:
            for direction in directions(2):
                nodes = tree.element.edge_nodes(direction)
                ends[(tree.root_number, direction)] = (nodes[0], nodes[-1])

        n_pairs = 0
        for tree in self.roots:
            for direction in directions(2):
                first, last = ends[(tree.root_number, direction)]
                for other in self.roots:
                    if other is tree:
                        continue
                    for other_direction in directions(2):
                        o_first, o_last = ends[(other.root_number, other_direction)]
                        if o_first is first and o_last is last:
                            flipped = False
                        elif o_first is last and o_last is first:
                            flipped = True
                        else:
                            continue
                        if direction in tree.neighbours:
                            raise TopologyError(
                                f"Edge {direction} of root {tree.root_number} has more than one neighbour",
                                operation="QuadTreeForest.find_neighbours",
                            )
                        tree.neighbours[direction] = RootNeighbour(other, other_direction, flipped)
                        n_pairs += 1
        logger.debug(f"QuadTreeForest: {len(self.roots)} roots, {n_pairs // 2} shared edges")

    def leaves(self):
        for root in self.roots:
            yield from root.leaves()

    def cross_root_edge(self, root, direction, s):
        """Carry root coordinates ``s`` across edge ``direction`` of ``root``.

        ``s`` may lie on the edge or beyond it; the distance beyond the edge is
        kept as a distance into the neighbouring root.

        Returns:
            tuple: ``(neighbour root, coordinates in the neighbour, its edge)``,
                or None if the edge is not shared.
        """
        neighbour = root.neighbours.get(direction)
        if neighbour is None:
            return None
        axis, sign = axis_and_sign(direction)
        (t_axis,) = tangential_axes(direction, 2)
        depth = sign * s[axis] - 1.0
        p = s[t_axis]
        n_axis, n_sign = axis_and_sign(neighbour.direction)
        (n_t_axis,) = tangential_axes(neighbour.direction, 2)
        s_new = onp.zeros(2)
        s_new[n_axis] = n_sign * (1.0 - depth)
        s_new[n_t_axis] = -p if neighbour.reversed else p
        return neighbour.tree, s_new, neighbour.direction

    def neighbour(self, tree, direction):
        """Neighbour of ``tree`` across its edge ``direction``.

        The returned node is at the same level as ``tree`` or coarser (a leaf).

        Returns:
            tuple: ``(neighbour node, its facing edge, map)`` where ``map``
                carries root coordinates of ``tree`` on the shared edge into
                root coordinates of the neighbour; None on a mesh boundary.
        """
        axis, sign = axis_and_sign(direction)
        probe = 0.5 * (tree.s_ll + tree.s_ur)
        probe[axis] = (tree.s_ur if sign > 0 else tree.s_ll)[axis] + sign * 0.25 * tree.width
        if onp.all(onp.abs(probe) <= 1.0):
            return (tree.root.locate(probe, max_level=tree.level), opposite(direction),
                    lambda s: onp.asarray(s, dtype=float))
        crossed = self.cross_root_edge(tree.root, direction, probe)
        if crossed is None:
            return None
        other_root, s_other, other_direction = crossed
        root = tree.root

        def to_other(s):
            return self.cross_root_edge(root, direction, onp.asarray(s, dtype=float))[1]

        return other_root.locate(s_other, max_level=tree.level), other_direction, to_other
