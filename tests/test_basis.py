"""
Tests for macrofem.fem.basis module.

This module tests the Lagrange shape functions on [-1, 1] cells, the
lexicographic node numbering and the Gauss quadrature rules.
"""
import pytest
import numpy as np
import basix

from macrofem.errors import UsageError
from macrofem.fem.basis import (
    LagrangeBasis,
    face_node_indices,
    get_basis,
    get_elements,
    get_quadrature,
    lagrange_1d,
    node_lattice,
)

# Mark integration tests that require environment validation to pass first
pytestmark = pytest.mark.integration


class TestGetElements:
    """Test the get_elements function."""

    @pytest.mark.parametrize("dim,cell,face_cell", [
        (1, basix.CellType.interval, None),
        (2, basix.CellType.quadrilateral, basix.CellType.interval),
        (3, basix.CellType.hexahedron, basix.CellType.quadrilateral),
    ])
    def test_supported_dimensions(self, dim, cell, face_cell):
        element_family, basix_ele, basix_face_ele = get_elements(dim)
        assert element_family == basix.ElementFamily.P
        assert basix_ele == cell
        assert basix_face_ele == face_cell

    def test_unsupported_dimension(self):
        with pytest.raises(UsageError):
            get_elements(4)


class TestLagrangeBasis:
    """Test shape function values and derivatives."""

    @pytest.mark.parametrize("dim", [1, 2, 3])
    @pytest.mark.parametrize("nnode_1d", [2, 3, 4])
    def test_kronecker_property(self, dim, nnode_1d):
        """Shape function l is one at node l and zero at all other nodes."""
        basis = get_basis(dim, nnode_1d)
        psi = basis.shape(basis.node_coordinates())
        np.testing.assert_allclose(psi, np.eye(basis.nnode), atol=1e-12)

    def test_node_coordinates_lexicographic(self):
        coords = get_basis(2, 3).node_coordinates()
        np.testing.assert_allclose(coords[1], [0.0, -1.0])
        np.testing.assert_allclose(coords[3], [-1.0, 0.0])
        np.testing.assert_allclose(coords[8], [1.0, 1.0])

    def test_partition_of_unity(self):
        basis = get_basis(2, 4)
        points = np.array([[0.1, -0.7], [0.9, 0.3], [-0.5, -0.5]])
        np.testing.assert_allclose(basis.shape(points).sum(axis=1), 1.0, atol=1e-12)
        np.testing.assert_allclose(basis.dshape_local(points).sum(axis=1), 0.0, atol=1e-10)

    def test_derivatives_match_finite_differences(self):
        basis = get_basis(2, 3)
        s = np.array([0.3, -0.2])
        h = 1e-6
        dpsi = basis.dshape_local(s)[0]
        for i in range(2):
            step = np.zeros(2)
            step[i] = h
            fd = (basis.shape(s + step)[0] - basis.shape(s - step)[0]) / (2 * h)
            np.testing.assert_allclose(dpsi[:, i], fd, atol=1e-7)

    def test_too_few_nodes(self):
        with pytest.raises(UsageError):
            LagrangeBasis(2, 1)

    def test_lagrange_1d(self):
        np.testing.assert_allclose(lagrange_1d(3, 0.0), [0.0, 1.0, 0.0], atol=1e-14)
        np.testing.assert_allclose(lagrange_1d(2, 0.5), [0.25, 0.75], atol=1e-14)


class TestNodeNumbering:
    """Test lattice and face node indices."""

    def test_lattice(self):
        lattice = node_lattice(3, 2)
        assert lattice[5].tolist() == [2, 1]

    @pytest.mark.parametrize("direction,expected", [
        ("S", [0, 1, 2]),
        ("N", [6, 7, 8]),
        ("W", [0, 3, 6]),
        ("E", [2, 5, 8]),
    ])
    def test_edge_nodes_2d(self, direction, expected):
        assert face_node_indices(direction, 3).tolist() == expected

    def test_face_nodes_3d(self):
        assert face_node_indices("L", 2, dim=3).tolist() == [0, 2, 4, 6]
        assert face_node_indices("F", 2, dim=3).tolist() == [4, 5, 6, 7]


class TestQuadrature:
    """Test Gauss quadrature on [-1, 1] cells."""

    def test_weights_sum_to_cell_size(self):
        for dim in (1, 2, 3):
            _, weights = get_quadrature(dim, 3)
            assert weights.sum() == pytest.approx(2.0 ** dim)

    def test_integrates_polynomial(self):
        points, weights = get_quadrature(2, 4)
        integral = np.sum(weights * points[:, 0] ** 2 * points[:, 1] ** 2)
        assert integral == pytest.approx(4.0 / 9.0)
