"""Tests for the coordinate updates and their objectives."""

import numpy as np
import pytest
from scipy.special import expit

from GSVB import update_a_b, update_g, update_mu, update_s
from GSVB.objectives import (LogTransform, MeanObjective, PrecisionObjective,
                             lbfgs, update_a_b_obj)


def _finite_difference(objective, x, eps=1e-6):
    grad = np.zeros_like(x)
    for i in range(len(x)):
        step = np.zeros_like(x)
        step[i] = eps
        grad[i] = (objective.evaluate_with_gradient(x + step)[0]
                   - objective.evaluate_with_gradient(x - step)[0]) / (2 * eps)
    return grad


@pytest.fixture
def state():
    rng = np.random.default_rng(7)
    X = rng.standard_normal((40, 5))
    y = X @ np.array([1.0, -1.0, 0.5, 0.0, 0.0]) + rng.standard_normal(40)
    return {
        'xtx': X.T @ X,
        'yx': X.T @ y,
        'mu': rng.standard_normal(5),
        's': rng.uniform(0.2, 1.0, 5),
        'g': np.array([0.3, 0.3, 0.3, 0.8, 0.8]),
        'G': np.array([0, 1, 2]),
        'Gc': np.array([3, 4]),
    }


def test_mean_gradient_matches_finite_differences(state):
    fn = MeanObjective(G=state['G'], Gc=state['Gc'], xtx=state['xtx'], yx=state['yx'],
                       mu=state['mu'], s=state['s'], g=state['g'], e_tau=1.7, lam=2.0)
    m = np.array([0.4, -0.2, 1.1])
    _, grad = fn.evaluate_with_gradient(m)
    np.testing.assert_allclose(grad, _finite_difference(fn, m), rtol=1e-5, atol=1e-6)


def test_log_transform_applies_chain_rule():
    fn = LogTransform(PrecisionObjective(ta0=1.0, tb0=1.0, S=40.0, n=50),
                      mask=np.array([True, False]))
    pars = np.array([np.log(3.0), 2.5])
    _, grad = fn.evaluate_with_gradient(pars)
    np.testing.assert_allclose(grad, _finite_difference(fn, pars), rtol=1e-5, atol=1e-6)
    np.testing.assert_allclose(fn.forward(fn.inverse([3.0, 2.5])), [3.0, 2.5])


def test_precision_objective_value():
    fn = PrecisionObjective(ta0=2.0, tb0=0.5, S=12.0, n=30)
    value, _ = fn.evaluate_with_gradient(np.array([4.0, 3.0]))
    assert value == pytest.approx(update_a_b_obj(4.0, 3.0, 2.0, 0.5, 12.0, 30))


def test_update_mu_does_not_increase_objective(state):
    kwargs = dict(xtx=state['xtx'], yx=state['yx'], mu=state['mu'], s=state['s'],
                  g=state['g'], e_tau=1.3, lam=1.0)
    fn = MeanObjective(G=state['G'], Gc=state['Gc'], **kwargs)
    m_new = update_mu(state['G'], state['Gc'], **kwargs)

    assert m_new.shape == (3,)
    assert fn.evaluate_with_gradient(m_new)[0] <= fn.evaluate_with_gradient(state['mu'][state['G']])[0]


@pytest.mark.parametrize("s0", [1e-8, 1e-3, 1.0, 50.0])
def test_update_s_stays_positive(state, s0):
    rng = np.random.default_rng(11)
    for _ in range(10):
        s = np.full(5, s0) * rng.uniform(0.5, 2.0, 5)
        e_tau = rng.uniform(0.01, 10.0)
        s_new = update_s(state['G'], state['xtx'], state['mu'], s, e_tau, 1.0)
        assert s_new.shape == (3,)
        assert np.all(s_new > 0)
        assert np.all(np.isfinite(s_new))


def test_update_s_does_not_touch_input(state):
    s = state['s'].copy()
    update_s(state['G'], state['xtx'], state['mu'], s, 1.0, 1.0)
    np.testing.assert_array_equal(s, state['s'])


def test_update_g_is_a_probability(state):
    prob = update_g(state['G'], state['Gc'], state['xtx'], state['yx'], state['mu'],
                    state['s'], state['g'], 1.0, 1.0, 0.5)
    assert isinstance(prob, float)
    assert 0.0 <= prob <= 1.0


def test_update_g_singleton_group_is_scalar_spike_and_slab(state):
    xtx, yx, mu, s, g = state['xtx'], state['yx'], state['mu'], state['s'], state['g']
    e_tau, lam, w = 0.8, 1.5, 0.3
    i = 3
    others = np.array([0, 1, 2, 4])

    # scalar double exponential slab: C_1 = 1/2
    res = (np.log(w / (1 - w)) + 0.5 + e_tau * yx[i] * mu[i]
           + 0.5 * np.log(2 * np.pi) + np.log(s[i]) - np.log(2.0) + np.log(lam)
           - lam * np.sqrt(s[i] ** 2 + mu[i] ** 2)
           - 0.5 * e_tau * xtx[i, i] * (s[i] ** 2 + mu[i] ** 2)
           - e_tau * mu[i] * np.sum(xtx[i, others] * g[others] * mu[others]))

    prob = update_g(np.array([i]), others, xtx, yx, mu, s, g, e_tau, lam, w)
    assert prob == pytest.approx(expit(res), rel=1e-12)


def test_update_a_b_reaches_stationary_point():
    n, S, ta0, tb0 = 50, 40.0, 1.0, 1.0
    tau_a, tau_b = update_a_b(1.0, 1.0, ta0, tb0, S, n)

    # the joint minimiser is ta = n/2 + ta0, tb = S/2 + tb0
    assert tau_a == pytest.approx(0.5 * n + ta0, rel=1e-2)
    assert tau_b == pytest.approx(0.5 * S + tb0, rel=1e-2)


@pytest.mark.parametrize("start", [(1e-3, 1e-3), (1e-2, 1e-2)])
def test_update_a_b_from_far_start_reaches_stationary_point(start):
    n, S, ta0, tb0 = 50, 60.0, 1e-3, 1e-3
    tau_a, tau_b = update_a_b(*start, ta0, tb0, S, n)

    assert tau_b > 0
    assert tau_a == pytest.approx(0.5 * n + ta0, rel=1e-2)
    assert tau_b == pytest.approx(0.5 * S + tb0, rel=1e-2)


def test_update_a_b_from_warm_start_is_stable():
    tau_a, tau_b = update_a_b(26.0, 21.0, 1.0, 1.0, 40.0, 50)
    assert tau_a == pytest.approx(26.0, rel=1e-4)
    assert tau_b == pytest.approx(21.0, rel=1e-4)


def test_lbfgs_keeps_block_shape():
    class Quadratic:
        def evaluate_with_gradient(self, x):
            return np.sum((x - 1.0) ** 2), 2.0 * (x - 1.0)

    x = lbfgs(Quadratic(), np.zeros((2, 3)), max_iterations=50)
    assert x.shape == (2, 3)
    np.testing.assert_allclose(x, 1.0, atol=1e-5)


def test_lbfgs_respects_bounds():
    class Log:
        def evaluate_with_gradient(self, x):
            # undefined for x <= 0, minimum at x = 2
            return x[0] - 2.0 * np.log(x[0]), np.array([1.0 - 2.0 / x[0]])

    x = lbfgs(Log(), np.array([1e-3]), max_iterations=100,
              bounds=[(np.finfo(float).eps, None)])
    assert x[0] == pytest.approx(2.0, rel=1e-4)


def test_lbfgs_rejects_non_finite_objective():
    class Broken:
        def evaluate_with_gradient(self, x):
            return np.nan, np.full_like(x, np.nan)

    with pytest.raises(FloatingPointError):
        lbfgs(Broken(), np.zeros(2), max_iterations=5)
