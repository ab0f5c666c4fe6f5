"""
Environment validation tests for macrofem.

These tests verify that the required dependencies are installed and that
JAX runs in double precision once macrofem is imported.
"""
import sys

import pytest

# Mark all tests in this module as environment validation
pytestmark = pytest.mark.env_validation


class TestCoreDependencies:
    """Test core Python dependencies are available and functional."""

    def test_python_version(self) -> None:
        """Verify Python version meets requirements."""
        version = sys.version_info
        assert version.major == 3, f"Expected Python 3.x, got {version.major}"
        assert version.minor >= 9, f"Expected Python 3.9+, got 3.{version.minor}"

    def test_numpy_available(self) -> None:
        """Test NumPy is available."""
        try:
            import numpy as np
            arr = np.array([1, 2, 3])
            assert arr.sum() == 6, "NumPy basic operations failed"
        except ImportError as e:
            pytest.fail(f"NumPy not available: {e}")

    def test_jax_available(self) -> None:
        """Test JAX is available and functional."""
        try:
            import jax.numpy as jnp
            x = jnp.array([1.0, 2.0, 3.0])
            assert float(jnp.sum(x)) == 6.0, "JAX basic operations failed"
        except ImportError as e:
            pytest.fail(f"JAX not available: {e}")

    def test_x64_enabled(self) -> None:
        """Importing macrofem.fem switches JAX to double precision."""
        import macrofem.fem  # noqa: F401
        import jax.numpy as jnp
        assert jnp.array(1.0).dtype == jnp.float64

    def test_scipy_available(self) -> None:
        """Test SciPy linear algebra is available."""
        try:
            import numpy as np
            import scipy.linalg
            x = scipy.linalg.solve(np.eye(2), np.ones(2))
            assert np.allclose(x, 1.0), "SciPy solve failed"
        except ImportError as e:
            pytest.fail(f"SciPy not available: {e}")

    def test_meshio_available(self) -> None:
        """Test meshio is available."""
        try:
            import meshio
            assert hasattr(meshio, 'read'), "meshio.read not available"
            assert hasattr(meshio, 'write'), "meshio.write not available"
        except ImportError as e:
            pytest.fail(f"meshio not available: {e}")

    def test_basix_available(self) -> None:
        """Test basix can build a Lagrange element."""
        try:
            import basix
            element = basix.create_element(basix.ElementFamily.P,
                                           basix.CellType.quadrilateral, 1)
            assert element.dim == 4, "basix element creation failed"
        except ImportError as e:
            pytest.fail(f"basix not available: {e}")


class TestPackageStructure:
    """Test the macrofem package structure and installation."""

    def test_macrofem_importable(self) -> None:
        """Test macrofem package can be imported."""
        try:
            import macrofem
            assert hasattr(macrofem, '__version__'), "Package version not defined"
        except ImportError as e:
            pytest.fail(f"macrofem package not importable: {e}")

    def test_package_version(self) -> None:
        """Test package version is defined and valid."""
        import macrofem
        version = macrofem.__version__
        assert isinstance(version, str), f"Version should be string, got {type(version)}"
        assert len(version) > 0, "Version string is empty"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
