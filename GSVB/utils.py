# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements helper functions for the GSVB algorithm, the
# group spike-and-slab variational Bayes method developed in:
# Komodromos, M., Evangelou, M., Filippi, S., and Ray, K.,
# 'Group spike-and-slab variational Bayes'.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numpy as np


class GroupIndex:
    """
    Partition of the coefficient indices into non-overlapping groups.

    Groups are visited in the natural (ascending) order of their labels. The
    inclusion probabilities are held one per group and expanded to the
    coefficients through the group assignment, so that every member of a
    group always carries the same probability.

    Parameters
    ----------
    groups : array-like of shape (p,)
        Integer group label of every column of the design matrix.

    Attributes
    ----------
    labels : np.ndarray of shape (K,)
        Sorted unique group labels.
    position : np.ndarray of shape (p,)
        Position in `labels` of the group of each coefficient.
    members : list of np.ndarray
        Indices of the coefficients of each group (G).
    complements : list of np.ndarray
        Indices of the coefficients outside each group (Gc).
    """
    def __init__(self, groups):
        groups = np.asarray(groups)
        if groups.ndim != 1 or groups.size == 0:
            raise ValueError("groups must be a non-empty 1-D array of labels")
        if not np.issubdtype(groups.dtype, np.integer):
            raise ValueError("groups must contain integer labels")

        self.groups = groups
        self.labels, self.position = np.unique(groups, return_inverse=True)
        self.position = self.position.ravel()
        self.members = [np.flatnonzero(self.position == k) for k in range(len(self.labels))]
        self.complements = [np.flatnonzero(self.position != k) for k in range(len(self.labels))]

    def __len__(self):
        return len(self.labels)

    def __iter__(self):
        return iter(zip(self.members, self.complements))

    @property
    def sizes(self):
        return np.array([len(G) for G in self.members])

    def expand(self, g_groups: np.ndarray) -> np.ndarray:
        """Per-coefficient inclusion probabilities from the per-group ones."""
        return np.asarray(g_groups, dtype=float)[self.position]

    def collapse(self, g: np.ndarray) -> np.ndarray:
        """
        Per-group inclusion probabilities from a per-coefficient vector.

        Raises
        ------
        ValueError
            If the members of a group do not share one value.
        """
        g = np.asarray(g, dtype=float)
        g_groups = np.array([g[G[0]] for G in self.members])
        if not np.allclose(g, g_groups[self.position], rtol=0.0, atol=1e-12):
            raise ValueError("g must be identical for all coefficients of a group")
        return g_groups


def as_vector(x, p: int, name: str) -> np.ndarray:
    """
    Broadcast a scalar, or validate a vector, to a float array of length p.
    """
    x = np.asarray(x, dtype=float)
    if x.ndim == 0:
        return np.full(p, float(x))
    if x.ndim != 1 or x.shape[0] != p:
        raise ValueError(f"{name} must be a scalar or a vector of length {p}")
    return x.copy()


def check_finite(value, name: str):
    """
    Raise a FloatingPointError if `value` holds NaN or infinite entries.
    """
    if not np.all(np.isfinite(value)):
        raise FloatingPointError(f"non-finite values encountered in {name}")
