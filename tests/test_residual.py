"""Tests for the expected residual sum of squares."""

import numpy as np
import pytest

from GSVB import compute_S


def _compute_S_loops(yty, yx, xtx, groups, mu, s, g):
    p = len(mu)
    total = 0.0
    for i in range(p):
        for j in range(p):
            if i == j:
                total += xtx[i, i] * g[i] * (s[i] ** 2 + mu[i] ** 2)
            elif groups[i] == groups[j]:
                total += xtx[i, j] * g[i] * mu[i] * mu[j]
            else:
                total += xtx[i, j] * g[i] * g[j] * mu[i] * mu[j]
    return yty + total - 2.0 * yx @ (g * mu)


def test_two_groups_hand_computed():
    xtx = np.array([[2.0, 1.0, 0.0, 1.0],
                    [1.0, 3.0, 1.0, 0.0],
                    [0.0, 1.0, 1.0, 0.5],
                    [1.0, 0.0, 0.5, 2.0]])
    yx = np.array([1.0, 0.0, 2.0, -1.0])
    groups = np.array([1, 1, 2, 2])
    mu = np.array([1.0, 2.0, -1.0, 2.0])
    s = np.array([1.0, 1.0, 2.0, 2.0])
    g = np.array([0.5, 0.5, 0.25, 0.25])

    # diagonal 14.75, within groups 2 - 0.5, across groups 0.5 - 0.5,
    # linear term -2 * (-0.5)
    assert compute_S(10.0, yx, xtx, groups, mu, s, g) == pytest.approx(27.25)


def test_matches_explicit_double_sum():
    rng = np.random.default_rng(0)
    X = rng.standard_normal((30, 6))
    y = rng.standard_normal(30)
    groups = np.array([3, 1, 3, 2, 1, 2])
    mu = rng.standard_normal(6)
    s = rng.uniform(0.1, 1.0, 6)
    g_groups = {1: 0.2, 2: 0.9, 3: 0.6}
    g = np.array([g_groups[k] for k in groups])

    args = (y @ y, X.T @ y, X.T @ X, groups, mu, s, g)
    assert compute_S(*args) == pytest.approx(_compute_S_loops(*args))


def test_all_groups_included_is_gaussian_expectation():
    rng = np.random.default_rng(1)
    X = rng.standard_normal((20, 4))
    y = rng.standard_normal(20)
    mu = rng.standard_normal(4)
    s = rng.uniform(0.1, 1.0, 4)
    g = np.ones(4)
    groups = np.array([1, 1, 2, 2])

    # E‖y - Xβ‖² = ‖y - Xμ‖² + Σ (XᵀX)ᵢᵢ sᵢ² for β ~ N(μ, diag(s²))
    expected = np.sum((y - X @ mu) ** 2) + np.sum(np.sum(X ** 2, axis=0) * s ** 2)
    assert compute_S(y @ y, X.T @ y, X.T @ X, groups, mu, s, g) == pytest.approx(expected)


def test_all_groups_excluded_is_yty():
    rng = np.random.default_rng(2)
    X = rng.standard_normal((20, 4))
    y = rng.standard_normal(20)
    S = compute_S(y @ y, X.T @ y, X.T @ X, np.array([1, 1, 2, 2]),
                  rng.standard_normal(4), np.ones(4), np.zeros(4))
    assert S == pytest.approx(y @ y)
