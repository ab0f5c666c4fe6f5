"""Boundary tractions for linear elasticity on macro-element meshes.

Traction elements are attached to the faces of bulk elements along a mesh
boundary. They integrate a prescribed traction against the face shape
functions and add the result to the displacement residuals of the face
nodes, using the bulk element's :meth:`~macrofem.fem.element.QElement.u_index`
to locate the displacement components among the nodal values.

Key Physics Implementation:
    LinearElasticityTractionElement: Traction load on one bulk element face
    traction_elements: Attach traction elements to every face of a boundary

Example:
    >>> from macrofem.physics import traction_elements, assemble_traction_residuals
    >>> mesh = RectangleWithHoleMesh(Circle(0.0, 0.0, 0.2), length=1.0)
    >>> pull = traction_elements(mesh, 1, lambda x, n: np.array([1.0, 0.0]))
    >>> residuals = assemble_traction_residuals(pull, mesh.n_node)
"""
from typing import Callable, Optional

import jax.numpy as np
import numpy as onp

from macrofem.fem.basis import get_basis, get_quadrature
from macrofem.fem.element import FaceElement


def zero_traction(x, normal):
    return np.zeros_like(normal)


class LinearElasticityTractionElement(FaceElement):
    """Face element applying the traction ``t(x, n)`` to a linear elastic solid.

    The residual contribution of face node ``l`` and displacement component
    ``i`` is ``-int t_i(x, n) psi_l dS``, so that a positive traction pulls
    the solid in the direction of ``t``.

    Args:
        bulk (QElement): Bulk element the face belongs to.
        direction (str): Side of the bulk element.
        traction_fn (Callable, optional): ``traction_fn(x, n) -> t`` with the
            position ``x`` and outer unit normal ``n``. Defaults to zero.
        gauss_order (int, optional): Degree integrated exactly by the face
            quadrature. Defaults to ``2 * nnode_1d``.
    """

    def __init__(self, bulk, direction, traction_fn: Optional[Callable] = None,
                 gauss_order: Optional[int] = None):
        super().__init__(bulk, direction)
        self.traction_fn = traction_fn if traction_fn is not None else zero_traction
        if gauss_order is None:
            gauss_order = 2 * bulk.nnode_1d
        self.quad_points, self.quad_weights = get_quadrature(self.dim, gauss_order)
        self.face_basis = get_basis(self.dim, bulk.nnode_1d)

    def traction(self, x, normal):
        return onp.asarray(self.traction_fn(x, normal), dtype=onp.float64)

    def get_residuals(self, t=0):
        """Local residuals, shape (n_face_node, dim), column ``u_index(i)`` for component ``i``."""
        dim = self.bulk.dim
        psi = self.face_basis.shape(self.quad_points)
        residuals = onp.zeros((len(self.nodes), dim))
        for q, (s_face, weight) in enumerate(zip(self.quad_points, self.quad_weights)):
            x = self.interpolated_x(s_face, t)
            normal = self.outer_unit_normal(s_face, t)
            traction = self.traction(x, normal)
            dS = self.surface_jacobian(s_face, t) * weight
            for i in range(dim):
                residuals[:, self.bulk.u_index(i)] -= traction[i] * psi[q] * dS
        return residuals


def traction_elements(mesh, b, traction_fn=None, **kwargs):
    """Traction elements on every bulk element face lying on boundary ``b``."""
    return [LinearElasticityTractionElement(element, direction, traction_fn, **kwargs)
            for element, direction in mesh.boundary_element_info()[b]]


def assemble_traction_residuals(elements, n_node, t=0):
    """Sum traction residuals into an (n_node, dim) array indexed by node id."""
    dim = elements[0].bulk.dim if elements else 2
    residuals = onp.zeros((n_node, dim))
    for element in elements:
        local = element.get_residuals(t)
        for l, node in enumerate(element.nodes):
            residuals[node.id] += local[l]
    return residuals
