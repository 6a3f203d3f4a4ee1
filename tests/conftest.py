"""Pytest configuration for the GSVB tests.

The ELBO plot is drawn with a non-interactive matplotlib backend.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest


@pytest.fixture
def sparse_data():
    """n=50, p=4, two groups of two columns, only the first group active."""
    rng = np.random.default_rng(2024)
    X = rng.standard_normal((50, 4))
    beta = np.array([2.0, 2.0, 0.0, 0.0])
    y = X @ beta + rng.standard_normal(50)
    groups = np.array([1, 1, 2, 2])
    return X, y, groups
