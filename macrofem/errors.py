"""Exception and warning types raised by macrofem.

Usage errors and unimplemented defaults are programming errors: they are
raised immediately and are not meant to be caught by library code. Numerical
non-convergence is reported with the iteration count so that the caller can
retry with different settings.
"""
import inspect
import os


def _call_site():
    """Return ``file:line`` of the first frame outside this module."""
    frame = inspect.currentframe()
    try:
        while frame is not None and frame.f_code.co_filename == __file__:
            frame = frame.f_back
        if frame is None:
            return "<unknown>"
        return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"
    finally:
        del frame


class MacroFEMError(Exception):
    """Base class for all macrofem errors.

    Attributes:
        operation (str): Name of the failing operation.
        location (str): ``file:line`` of the statement that raised the error.
    """

    def __init__(self, message, operation=None):
        self.operation = operation
        self.location = _call_site()
        self.message = message
        text = message
        if operation is not None:
            text = f"{message} [in {operation}, at {self.location}]"
        super().__init__(text)


class UnimplementedError(MacroFEMError, NotImplementedError):
    """An abstract default was called that the concrete class does not override."""


class UsageError(MacroFEMError, ValueError):
    """Wrong argument sizes, unsupported dimensions or otherwise invalid calls."""


class TopologyError(MacroFEMError, ValueError):
    """Shared-edge or boundary-walk data that does not describe a valid mesh."""


class NewtonSolverError(MacroFEMError, RuntimeError):
    """The Newton iteration failed.

    Attributes:
        n_iter (int): Number of Newton iterations taken before failing.
    """

    def __init__(self, message, operation=None, n_iter=0):
        self.n_iter = n_iter
        super().__init__(message, operation=operation)


class LineSearchWarning(UserWarning):
    """The line search could not reduce the residual and kept the old iterate."""
