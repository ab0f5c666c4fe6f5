"""Labels for the sides of quadrilateral and hexahedral reference cells.

Local coordinates ``s`` live in ``[-1, 1]^dim``. In 2D the sides are
W (s0 = -1), E (s0 = +1), S (s1 = -1) and N (s1 = +1). In 3D they are
L/R (s0), D/U (s1) and B/F (s2). A side is parametrised by the remaining local
coordinates in increasing axis order.
"""
from macrofem.errors import UsageError

W, E, S, N = "W", "E", "S", "N"
L, R, D, U, B, F = "L", "R", "D", "U", "B", "F"

_AXIS_AND_SIGN = {
    W: (0, -1), E: (0, 1), S: (1, -1), N: (1, 1),
    L: (0, -1), R: (0, 1), D: (1, -1), U: (1, 1), B: (2, -1), F: (2, 1),
}

_BY_DIM = {
    2: (W, E, S, N),
    3: (L, R, D, U, B, F),
}


def directions(dim):
    """All side labels of the ``dim``-dimensional reference cell."""
    try:
        return _BY_DIM[dim]
    except KeyError:
        raise UsageError(f"Unsupported spatial dimension {dim}", operation="directions") from None


def axis_and_sign(direction):
    """Return ``(axis, sign)`` of the local coordinate fixed on ``direction``."""
    try:
        return _AXIS_AND_SIGN[direction]
    except KeyError:
        raise UsageError(f"Unknown direction {direction!r}", operation="axis_and_sign") from None


def direction_for(axis, sign, dim):
    """Side label on which local coordinate ``axis`` equals ``sign``."""
    return directions(dim)[2 * axis + (0 if sign < 0 else 1)]


def opposite(direction):
    axis, sign = axis_and_sign(direction)
    dim = 2 if direction in _BY_DIM[2] else 3
    return direction_for(axis, -sign, dim)


def tangential_axes(direction, dim):
    """Local axes that parametrise ``direction``, in increasing order."""
    axis, _ = axis_and_sign(direction)
    return tuple(i for i in range(dim) if i != axis)
