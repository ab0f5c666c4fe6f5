"""Lagrange quadrilateral/hexahedral elements and their face elements.

A :class:`QElement` holds ``np**dim`` node references in lexicographic order
(``l1 * np + l0`` in 2D). Elements that belong to a macro element keep the
sub-square ``[s_macro_ll, s_macro_ur]`` of macro coordinates they cover, so
that positions can be taken from the exact macro map instead of the
polynomial interpolation of the nodes.
"""
from typing import Optional

import numpy as onp

from macrofem.errors import UsageError
from macrofem.fem.basis import face_node_indices, get_basis, get_quadrature
from macrofem.fem.directions import axis_and_sign, tangential_axes
from macrofem.fem.macro_element import CoordinateMap


class QElement:
    """Quadrilateral (2D) or hexahedral (3D) Lagrange element.

    Args:
        nnode_1d (int): Nodes along each edge.
        dim (int): Spatial dimension.

    Attributes:
        nodes (list): Node references, filled by the mesh.
        macro_elem (MacroElement or None): Macro element the element lies in.
        s_macro_ll (numpy.ndarray): Macro coordinates of local (-1, ..., -1).
        s_macro_ur (numpy.ndarray): Macro coordinates of local (1, ..., 1).
    """

    def __init__(self, nnode_1d, dim=2):
        self.basis = get_basis(dim, nnode_1d)
        self.nnode_1d = nnode_1d
        self.dim = dim
        self.nodes = [None] * self.basis.nnode
        self.macro_elem: Optional[CoordinateMap] = None
        self.tree = None
        self.s_macro_ll = -onp.ones(dim)
        self.s_macro_ur = onp.ones(dim)

    def __repr__(self):
        return (f"QElement(nnode_1d={self.nnode_1d}, macro={self.macro_elem}, "
                f"s_macro_ll={self.s_macro_ll.tolist()}, s_macro_ur={self.s_macro_ur.tolist()})")

    @property
    def nnode(self):
        return self.basis.nnode

    def node(self, l):
        return self.nodes[l]

    def u_index(self, i):
        """Index of displacement component ``i`` among the nodal values."""
        return i

    def local_node_coordinates(self):
        return self.basis.node_coordinates()

    def macro_coordinates(self, s):
        """Map local coordinates (any leading shape) to macro-element coordinates."""
        s = onp.asarray(s, dtype=onp.float64)
        return self.s_macro_ll + 0.5 * (1.0 + s) * (self.s_macro_ur - self.s_macro_ll)

    def edge_nodes(self, direction):
        return [self.nodes[l] for l in face_node_indices(direction, self.nnode_1d, self.dim)]

    def corner_node(self, corner):
        """Node at the corner with local coordinate signs ``corner``, e.g. ``(-1, 1)``."""
        l = sum((0 if c < 0 else self.nnode_1d - 1) * self.nnode_1d ** i
                for i, c in enumerate(corner))
        return self.nodes[l]

    def nodal_positions(self, t=0):
        return onp.array([node.position(t) for node in self.nodes])

    def macro_node_positions(self, t=0):
        """Positions of the nodes from the macro map, shape (nnode, dim)."""
        if self.macro_elem is None:
            raise UsageError("Element has no macro element",
                             operation="QElement.macro_node_positions")
        s_macro = self.macro_coordinates(self.local_node_coordinates())
        return self.macro_elem.macro_map_many(s_macro, t)

    def interpolated_x(self, s, t=0):
        psi = self.basis.shape(s)
        return psi @ self.nodal_positions(t)

    def get_x(self, s, t=0):
        """Global position of local point ``s``: macro map if available, else interpolation."""
        if self.macro_elem is None:
            return self.interpolated_x(s, t)[0]
        return onp.asarray(self.macro_elem.macro_map(self.macro_coordinates(s), t))

    def dx_ds(self, s, t=0):
        """Interpolated Jacobian ``J[i, j] = d x_j / d s_i`` at one local point."""
        dpsi = self.basis.dshape_local(s)[0]
        return dpsi.T @ self.nodal_positions(t)

    def size(self, gauss_order=None):
        """Area (2D) or volume (3D) of the element from its nodal geometry."""
        if gauss_order is None:
            gauss_order = 2 * self.nnode_1d
        quad_points, weights = get_quadrature(self.dim, gauss_order)
        X = self.nodal_positions()
        dpsi = self.basis.dshape_local(quad_points)
        jac = onp.einsum("qli,lj->qij", dpsi, X)
        return float(onp.sum(onp.linalg.det(jac) * weights))


class FaceElement:
    """Face (edge in 2D) of a bulk :class:`QElement`.

    Face coordinates are the bulk local coordinates tangential to the face in
    increasing axis order.

    Args:
        bulk (QElement): Bulk element the face belongs to.
        direction (str): Side of the bulk element, e.g. ``"N"``.
    """

    def __init__(self, bulk, direction):
        self.bulk = bulk
        self.direction = direction
        self.axis, self.sign = axis_and_sign(direction)
        self.tangential = tangential_axes(direction, bulk.dim)
        self.nodes = bulk.edge_nodes(direction)

    @property
    def dim(self):
        return self.bulk.dim - 1

    def local_coordinate_in_bulk(self, s_face):
        s_face = onp.atleast_1d(onp.asarray(s_face, dtype=onp.float64))
        return onp.insert(s_face, self.axis, float(self.sign))

    def interpolated_x(self, s_face, t=0):
        return self.bulk.interpolated_x(self.local_coordinate_in_bulk(s_face), t)[0]

    def tangents(self, s_face, t=0):
        """Covariant tangent vectors, shape (dim - 1, dim)."""
        jac = self.bulk.dx_ds(self.local_coordinate_in_bulk(s_face), t)
        return jac[list(self.tangential)]

    def metric_determinant(self, s_face, t=0):
        tangents = self.tangents(s_face, t)
        return float(onp.linalg.det(tangents @ tangents.T))

    def surface_jacobian(self, s_face, t=0):
        return onp.sqrt(self.metric_determinant(s_face, t))

    def outer_unit_normal(self, s_face, t=0):
        """Unit normal pointing out of the bulk element."""
        jac = self.bulk.dx_ds(self.local_coordinate_in_bulk(s_face), t)
        tangents = jac[list(self.tangential)]
        if self.bulk.dim == 2:
            normal = onp.array([tangents[0, 1], -tangents[0, 0]])
        else:
            normal = onp.cross(tangents[0], tangents[1])
        # orient along the bulk direction leaving the element through this face
        if onp.dot(normal, self.sign * jac[self.axis]) < 0.0:
            normal = -normal
        return normal / onp.linalg.norm(normal)
