"""macrofem: macro-element based finite element meshes on curved domains."""
from macrofem import warnings_config  # noqa: F401

__version__ = "0.1.0"
