"""Mesh nodes with position history, boundary membership and hanging constraints."""
import numpy as onp


class Node:
    """A mesh node.

    Attributes:
        id (int): Position in the owning mesh's node list, assigned by the mesh.
        x_history (numpy.ndarray): Positions, shape (n_time_levels, dim);
            row 0 is the current position.
        boundaries (set): Indices of the mesh boundaries the node lies on.
        hanging (dict or None): For a hanging node, ``{master Node: weight}``.
    """

    def __init__(self, dim, n_time_levels=1):
        self.id = None
        self.x_history = onp.zeros((n_time_levels, dim))
        self.boundaries = set()
        self.hanging = None

    def __repr__(self):
        return f"Node(id={self.id}, x={self.x.tolist()})"

    @property
    def dim(self):
        return self.x_history.shape[1]

    @property
    def n_time_levels(self):
        return self.x_history.shape[0]

    @property
    def x(self):
        return self.x_history[0]

    def position(self, t=0):
        return self.x_history[t]

    def set_position(self, x, t=0):
        self.x_history[t] = x

    def shift_time_values(self):
        """Copy every stored position one level back; the current one is kept."""
        self.x_history[1:] = self.x_history[:-1].copy()

    def is_on_boundary(self, b=None):
        if b is None:
            return bool(self.boundaries)
        return b in self.boundaries

    @property
    def is_hanging(self):
        return self.hanging is not None

    def constrained_position(self, t=0):
        """Position implied by the hanging constraint (own position if not hanging)."""
        if self.hanging is None:
            return self.x_history[t]
        return sum(weight * master.x_history[t] for master, weight in self.hanging.items())
