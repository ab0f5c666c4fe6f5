"""
Global warnings configuration for macrofem.

This module configures warning filters so that line-search degeneracies are
always reported while known harmless warnings from dependencies stay quiet.
"""
import warnings

from macrofem.errors import LineSearchWarning


def configure_warnings():
    """Configure global warning filters for the macrofem package."""

    # Every degenerate line-search step is reported, not just the first one
    warnings.filterwarnings("always", category=LineSearchWarning)

    # NumPy and scientific computing warnings
    warnings.filterwarnings(
        "ignore",
        message=".*numpy.dtype size changed.*",
        category=RuntimeWarning
    )

    # JAX warnings (platform/device selection, x64 truncation)
    warnings.filterwarnings(
        "ignore",
        message=".*jax.*",
        category=UserWarning
    )
    warnings.filterwarnings(
        "ignore",
        message=".*An NVIDIA GPU may be present.*",
        category=UserWarning
    )


# Auto-configure warnings when this module is imported
configure_warnings()
