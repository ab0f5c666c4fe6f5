"""
Pytest configuration and fixtures for macrofem tests.

Environment validation tests run first so that missing dependencies are
reported before any mesh or solver test fails for the same reason.
"""
import sys

import pytest


def pytest_collection_modifyitems(config, items):
    """Run the environment tests before all other tests.

    Args:
        config: pytest configuration object
        items: List of collected test items
    """
    env_tests = []
    other_tests = []

    for item in items:
        if "test_environment.py" in str(item.fspath):
            env_tests.append(item)
        else:
            other_tests.append(item)

    env_test_priority = {
        "test_python_version": 1,
        "test_numpy_available": 2,
        "test_jax_available": 3,
        "test_x64_enabled": 4,
        "test_macrofem_importable": 99,
    }

    def get_env_test_priority(item):
        test_name = item.name.split("[")[0]
        return env_test_priority.get(test_name, 50)

    env_tests.sort(key=get_env_test_priority)
    items[:] = env_tests + other_tests


def pytest_runtest_setup(item):
    """Tag environment tests with the env_validation marker."""
    if "test_environment.py" in str(item.fspath):
        if not hasattr(item, "pytestmark"):
            item.pytestmark = []
        env_marker = pytest.mark.env_validation
        if env_marker not in item.pytestmark:
            item.pytestmark.append(env_marker)


@pytest.fixture(scope="session", autouse=True)
def validate_environment():
    """Collect basic facts about the environment once per session.

    Yields:
        dict: Environment validation results
    """
    validation_results = {"python_version": sys.version_info}

    try:
        import numpy as np
        validation_results["numpy_version"] = np.__version__
        validation_results["numpy_available"] = True
    except ImportError:
        validation_results["numpy_available"] = False

    try:
        import jax
        validation_results["jax_available"] = True
        validation_results["jax_devices"] = len(jax.devices())
    except ImportError:
        validation_results["jax_available"] = False

    yield validation_results


@pytest.fixture
def temp_workspace(tmp_path):
    """Provide a temporary workspace for tests that need file I/O."""
    workspace = tmp_path / "test_workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def circle():
    from macrofem.geometry import Circle
    return Circle(0.0, 0.0, 0.2)


@pytest.fixture
def hole_domain(circle):
    from macrofem.fem.domain import RectangleWithHoleDomain
    return RectangleWithHoleDomain(circle, length=1.0)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "env_validation: mark test as environment validation"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
