"""Lagrange shape functions and Gauss quadrature on [-1, 1] reference cells.

Shape functions are tabulated with the Basix library on its [0, 1] reference
cells and then mapped to the [-1, 1] cells used by the macro-element meshes.
Nodes are numbered lexicographically with the first local coordinate varying
fastest, i.e. node ``l1 * np + l0`` in 2D sits at
``s = (-1 + 2 l0 / (np - 1), -1 + 2 l1 / (np - 1))``.
"""
import functools

import basix
import numpy as onp

from macrofem.errors import UsageError
from macrofem.fem import logger
from macrofem.fem.directions import axis_and_sign


def get_elements(dim):
    """Get the Basix cell types for a tensor-product element of dimension ``dim``.

    Args:
        dim (int): Spatial dimension of the element (1, 2 or 3).

    Returns:
        tuple: A 3-tuple containing:
            - element_family (basix.ElementFamily): Always the Lagrange family P.
            - basix_ele (basix.CellType): Cell type of the element.
            - basix_face_ele (basix.CellType): Cell type of its faces, None in 1D.

    Raises:
        UsageError: If the dimension is not supported.
    """
    element_family = basix.ElementFamily.P
    if dim == 1:
        basix_ele = basix.CellType.interval
        basix_face_ele = None
    elif dim == 2:
        basix_ele = basix.CellType.quadrilateral
        basix_face_ele = basix.CellType.interval
    elif dim == 3:
        basix_ele = basix.CellType.hexahedron
        basix_face_ele = basix.CellType.quadrilateral
    else:
        raise UsageError(f"Unsupported element dimension {dim}", operation="get_elements")
    return element_family, basix_ele, basix_face_ele


def lexicographic_order(points, nnode_1d):
    """Permutation from lexicographic node numbering to Basix DOF numbering.

    Args:
        points (numpy.ndarray): Basix DOF points on the [0, 1] cell,
            shape (n_dofs, dim).
        nnode_1d (int): Number of nodes along each edge.

    Returns:
        numpy.ndarray: ``re_order`` such that lexicographic node ``l`` is
            Basix DOF ``re_order[l]``.
    """
    n_dofs, dim = points.shape
    lattice = onp.rint(points * (nnode_1d - 1)).astype(int)
    lex = onp.zeros(n_dofs, dtype=int)
    for i in range(dim):
        lex += lattice[:, i] * nnode_1d ** i
    re_order = onp.empty(n_dofs, dtype=int)
    re_order[lex] = onp.arange(n_dofs)
    return re_order


class LagrangeBasis:
    """Equispaced tensor-product Lagrange basis with ``nnode_1d`` nodes per edge.

    Attributes:
        dim (int): Dimension of the reference cell.
        nnode_1d (int): Nodes along each edge.
        nnode (int): Total number of nodes, ``nnode_1d ** dim``.
    """

    def __init__(self, dim, nnode_1d):
        if nnode_1d < 2:
            raise UsageError(f"Need at least two nodes per edge, got {nnode_1d}",
                             operation="LagrangeBasis.__init__")
        self.dim = dim
        self.nnode_1d = nnode_1d
        self.nnode = nnode_1d ** dim
        element_family, basix_ele, basix_face_ele, = get_elements(dim)
        self.basix_ele = basix_ele
        self.basix_face_ele = basix_face_ele
        self._element = basix.create_element(
            element_family, basix_ele, nnode_1d - 1, basix.LagrangeVariant.equispaced
        )
        self.re_order = lexicographic_order(onp.asarray(self._element.points), nnode_1d)
        logger.debug(f"Created Lagrange basis dim={dim}, nnode_1d={nnode_1d}")

    def _tabulate(self, n_derivs, s_points):
        s_points = onp.atleast_2d(onp.asarray(s_points, dtype=onp.float64))
        ref_points = 0.5 * (s_points + 1.0)
        tab = self._element.tabulate(n_derivs, ref_points)
        return tab[:, :, self.re_order, 0]

    def shape(self, s_points):
        """Shape function values, shape (n_points, nnode)."""
        return self._tabulate(0, s_points)[0]

    def dshape_local(self, s_points):
        """Shape function derivatives w.r.t. local coordinates.

        Returns:
            numpy.ndarray: Shape (n_points, nnode, dim); the factor 1/2 from
                the [0, 1] to [-1, 1] map is included.
        """
        tab = self._tabulate(1, s_points)
        return 0.5 * onp.transpose(tab[1:], axes=(1, 2, 0))

    def node_coordinates(self):
        """Local coordinates of the nodes in lexicographic order, shape (nnode, dim)."""
        return -1.0 + 2.0 * node_lattice(self.nnode_1d, self.dim) / (self.nnode_1d - 1)


def node_lattice(nnode_1d, dim):
    """Integer lattice position ``(l0, l1[, l2])`` of every node, shape (nnode, dim)."""
    index = onp.arange(nnode_1d ** dim)
    return onp.stack([(index // nnode_1d ** i) % nnode_1d for i in range(dim)], axis=1)


def face_node_indices(direction, nnode_1d, dim=2):
    """Local indices of the nodes on side ``direction``.

    The nodes are ordered lexicographically in the side's own coordinates,
    so in 2D the indices follow the edge in the direction of increasing
    tangential local coordinate.

    Example:
        >>> face_node_indices("N", 3)
        array([6, 7, 8])
    """
    axis, sign = axis_and_sign(direction)
    fixed = 0 if sign < 0 else nnode_1d - 1
    lattice = node_lattice(nnode_1d, dim)
    return onp.nonzero(lattice[:, axis] == fixed)[0]


@functools.lru_cache(maxsize=None)
def get_basis(dim, nnode_1d):
    """Cached :class:`LagrangeBasis` for the given dimension and edge resolution."""
    return LagrangeBasis(dim, nnode_1d)


def lagrange_1d(nnode_1d, s):
    """Values of the 1D equispaced Lagrange polynomials at ``s`` in [-1, 1]."""
    return get_basis(1, nnode_1d).shape(onp.array([[s]]))[0]


def get_quadrature(dim, gauss_order):
    """Gauss quadrature on the [-1, 1]^dim cell.

    Args:
        dim (int): Dimension of the cell.
        gauss_order (int): Polynomial degree integrated exactly.

    Returns:
        tuple: ``(points, weights)`` with shapes (n_quad, dim) and (n_quad,).
    """
    _, basix_ele, _ = get_elements(dim)
    quad_points, weights = basix.make_quadrature(basix_ele, gauss_order)
    return 2.0 * onp.asarray(quad_points) - 1.0, onp.asarray(weights) * 2.0 ** dim
