# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the GSVB algorithm, coordinate ascent variational
# inference for the group spike-and-slab linear model, as developed in:
# Komodromos, M., Evangelou, M., Filippi, S., and Ray, K.,
# 'Group spike-and-slab variational Bayes'.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numpy as np
from scipy.special import expit, gammaln
from tqdm import tqdm

from .elbo import elbo
from .objectives import (LogTransform, MeanObjective, PrecisionObjective,
                         ScaleObjective, lbfgs)
from .residual import compute_S
from .utils import GroupIndex, as_vector, check_finite

# L-BFGS budgets: the per-group updates run many times per sweep and are kept
# short, the precision update runs once per sweep
MU_MAX_ITER = 8
S_MAX_ITER = 8
TAU_NUM_BASIS = 50
TAU_MAX_ITER = 1000

# search box of the precision update; the stationary point
# (n/2 + tau_a0, S/2 + tau_b0) lies well inside it
TAU_A_BOUNDS = (1e-8, 1e15)
TAU_B_MIN = np.finfo(float).eps


def update_mu(G, Gc, xtx, yx, mu, s, g, e_tau, lam):
    """
    Update the variational means of the group G, starting from the current
    ones, with a few L-BFGS iterations on `MeanObjective`.

    Returns
    -------
    np.ndarray of shape (|G|,)
        The updated means of the group.
    """
    fn = MeanObjective(G=G, Gc=Gc, xtx=xtx, yx=yx, mu=mu, s=s, g=g,
                       e_tau=e_tau, lam=lam)
    return lbfgs(fn, mu[G], max_iterations=MU_MAX_ITER)


def update_s(G, xtx, mu, s, e_tau, lam):
    """
    Update the variational standard deviations of the group G.

    The optimisation runs over u = log s so that s = exp(u) stays positive on
    every evaluation and no constraint is needed.

    Returns
    -------
    np.ndarray of shape (|G|,)
        The updated, strictly positive, standard deviations.
    """
    fn = LogTransform(ScaleObjective(G=G, xtx=xtx, mu=mu, e_tau=e_tau, lam=lam))
    u = lbfgs(fn, fn.inverse(s[G]), max_iterations=S_MAX_ITER)
    s_G = fn.forward(u)
    check_finite(s_G, "s")
    if np.any(s_G <= 0.0):
        raise FloatingPointError("variational standard deviation underflowed to zero")
    return s_G


def update_g(G, Gc, xtx, yx, mu, s, g, e_tau, lam, w):
    """
    Closed form update of the inclusion probability of the group G.

    The log-odds combine the prior odds w / (1 - w), the normalising constant
    of the multivariate double exponential slab,

        log C_m = -m log 2 - ½ (m - 1) log π - log Γ(½ (m + 1)),

    the entropy of the Gaussian component and the expected fit of the group.

    Parameters
    ----------
    G, Gc : np.ndarray
        Indices of the group and of its complement.
    xtx, yx : np.ndarray
        XᵀX and Xᵀy.
    mu, s, g : np.ndarray of shape (p,)
        Current variational parameters; μ and s of the group already updated.
    e_tau : float
        E[τ] = tau_a / tau_b.
    lam : float
        Slab scale λ.
    w : float
        Prior inclusion probability a0 / (a0 + b0).

    Returns
    -------
    float
        The inclusion probability shared by every member of the group.
    """
    mk = len(G)
    mu_G = mu[G]
    s_G = s[G]
    xtx_GG = xtx[np.ix_(G, G)]

    res = (np.log(w / (1.0 - w)) + mk / 2.0 + e_tau * yx[G] @ mu_G
           + 0.5 * mk * np.log(2.0 * np.pi)
           + np.sum(np.log(s_G))
           - mk * np.log(2.0) - 0.5 * (mk - 1.0) * np.log(np.pi) - gammaln(0.5 * (mk + 1.0))
           + mk * np.log(lam)
           - lam * np.sqrt(s_G @ s_G + mu_G @ mu_G)
           - 0.5 * e_tau * np.diag(xtx_GG) @ (s_G * s_G)
           - 0.5 * e_tau * mu_G @ xtx_GG @ mu_G
           - e_tau * mu_G @ xtx[np.ix_(G, Gc)] @ (g[Gc] * mu[Gc]))

    return float(expit(res))


def update_a_b(tau_a, tau_b, tau_a0, tau_b0, S, n):
    """
    Joint update of the shape and rate of q(τ) = Gamma(tau_a, tau_b).

    Optimising the two separately does not converge, so both are moved
    together. tau_a is optimised on the log scale, tau_b directly. The search
    is boxed so that no trial point reaches tau_b <= 0 or overflows exp(log tau_a).

    Returns
    -------
    tuple of float
        The updated (tau_a, tau_b).
    """
    fn = LogTransform(PrecisionObjective(ta0=tau_a0, tb0=tau_b0, S=S, n=n),
                      mask=np.array([True, False]))
    bounds = [tuple(np.log(TAU_A_BOUNDS)), (TAU_B_MIN, None)]
    pars = lbfgs(fn, fn.inverse([tau_a, tau_b]), max_iterations=TAU_MAX_ITER,
                 num_basis=TAU_NUM_BASIS, bounds=bounds)
    tau_a, tau_b = fn.forward(pars)
    return float(tau_a), float(tau_b)


def GSVB_gaussian(
    X: np.ndarray,
    y: np.ndarray,
    groups: np.ndarray,
    lam: float = 1.0,
    a0: float = 1.0,
    b0: float = 1.0,
    tau_a0: float = 1e-3,
    tau_b0: float = 1e-3,
    mu=0.0,
    s=1.0,
    g=0.5,
    track_elbo: bool = True,
    track_elbo_every: int = 5,
    track_elbo_mcn: int = 500,
    niter: int = 150,
    tol: float = 1e-3,
    verbose: bool = True,
    interrupt=None,
    elbo_fn=None,
    rng=None,
) -> dict:
    """
    Coordinate ascent variational inference for the group spike-and-slab
    linear model.

    Parameters
    ----------
    X : np.ndarray of shape (n, p)
        Design matrix.
    y : np.ndarray of shape (n,)
        Response vector.
    groups : np.ndarray of shape (p,)
        Integer group label of every column of X.
    lam : float, optional
        Scale λ of the multivariate double exponential slab. Default is 1.0.
    a0, b0 : float, optional
        Beta prior on the inclusion probability; the prior inclusion
        probability is w = a0 / (a0 + b0). Defaults are 1.0.
    tau_a0, tau_b0 : float, optional
        Shape and rate of the Gamma prior on the noise precision τ.
        Defaults are 1e-3.
    mu, s, g : float or np.ndarray of shape (p,), optional
        Initial means, standard deviations (positive) and inclusion
        probabilities (constant within a group). Scalars are broadcast.
    track_elbo : bool, optional
        If True, record the ELBO every `track_elbo_every` sweeps and once more
        at the end. Default is True.
    track_elbo_every : int, optional
        Sweep interval between ELBO evaluations. Default is 5.
    track_elbo_mcn : int, optional
        Number of Monte Carlo samples used by the ELBO. Default is 500.
    niter : int, optional
        Maximum number of sweeps. Default is 150.
    tol : float, optional
        Convergence tolerance on the summed absolute change of each of μ, s
        and g. Default is 1e-3.
    verbose : bool, optional
        If True, show a progress bar and convergence info. Default is True.
    interrupt : callable, optional
        Called once per sweep without arguments; returning True stops the fit.
    elbo_fn : callable, optional
        Replacement for `elbo` with the same signature.
    rng : np.random.Generator, optional
        Random generator passed to the ELBO.

    Returns
    -------
    dict
        Dictionary containing the following keys:
        - 'mu': variational means (np.ndarray of shape (p,))
        - 'sigma': variational standard deviations (np.ndarray of shape (p,))
        - 'gamma': inclusion probability of each coefficient (np.ndarray of shape (p,))
        - 'gamma_groups': inclusion probability of each group (np.ndarray of shape (K,))
        - 'groups': sorted group labels (np.ndarray of shape (K,))
        - 'tau_a', 'tau_b': shape and rate of q(τ) (float)
        - 'converged': whether the tolerance was met (bool)
        - 'iterations': number of sweeps run (int)
        - 'status': 'converged', 'max_iterations' or 'interrupted'
        - 'elbo': recorded ELBO values (list of float)

    Notes
    -----
    Each sweep visits the groups in ascending label order and updates μ, s
    and then g of the group in place, so later groups see the values already
    updated in the same sweep. The noise precision is updated once per sweep
    from the expected residual sum of squares `compute_S`.
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    if X.ndim != 2:
        raise ValueError("'X' must be a 2-D array of shape (n, p)")
    n, p = X.shape
    if y.ndim != 1 or y.shape[0] != n:
        raise ValueError("'y' must be a 1-D array of length equal to X.shape[0]")
    index = GroupIndex(groups)
    if index.groups.shape[0] != p:
        raise ValueError(f"groups must be a vector of length {p}")
    if track_elbo_every < 1:
        raise ValueError("track_elbo_every must be a positive integer")
    if niter < 0:
        raise ValueError("niter must be non-negative")

    mu = as_vector(mu, p, "mu")
    s = as_vector(s, p, "s")
    if np.any(s <= 0):
        raise ValueError("s must be strictly positive")
    g_groups = index.collapse(as_vector(g, p, "g"))
    if np.any((g_groups < 0) | (g_groups > 1)):
        raise ValueError("g must lie in [0, 1]")
    g = index.expand(g_groups)

    if elbo_fn is None:
        elbo_fn = elbo
    w = a0 / (a0 + b0)

    # precompute prameters used several times
    xtx = X.T @ X
    yx = X.T @ y
    yty = y @ y

    # initialization
    tau_a, tau_b = tau_a0, tau_b0
    iter_count = 0
    converged = False
    status = "max_iterations"
    elbo_values = []

    def track():
        elbo_values.append(elbo_fn(y, X, index.groups, mu, s, g, lam, a0, b0,
                                   tau_a, tau_b, track_elbo_mcn,
                                   tau_a0=tau_a0, tau_b0=tau_b0, rng=rng))

    for it in tqdm(range(1, niter + 1), disable=not verbose, desc="GSVB sweeps"):
        mu_old, s_old, g_old = mu.copy(), s.copy(), g.copy()
        e_tau = tau_a / tau_b

        for k, (G, Gc) in enumerate(index):
            mu[G] = update_mu(G, Gc, xtx, yx, mu, s, g, e_tau, lam)
            s[G] = update_s(G, xtx, mu, s, e_tau, lam)
            g_groups[k] = update_g(G, Gc, xtx, yx, mu, s, g, e_tau, lam, w)
            g[G] = g_groups[k]

        S = compute_S(yty, yx, xtx, index.groups, mu, s, g)
        check_finite(S, "the expected residual sum of squares")
        tau_a, tau_b = update_a_b(tau_a, tau_b, tau_a0, tau_b0, S, n)
        iter_count = it

        if interrupt is not None and interrupt():
            status = "interrupted"
            if verbose:
                print(f"Interrupted after {it} iterations.")
            break

        if track_elbo and it % track_elbo_every == 0:
            track()

        if (np.sum(np.abs(mu_old - mu)) < tol and
                np.sum(np.abs(s_old - s)) < tol and
                np.sum(np.abs(g_old - g)) < tol):
            converged = True
            status = "converged"
            if verbose:
                print(f"Converged in {it} iterations.")
            break

    if status == "max_iterations" and niter > 0:
        print("Warning: reached maximum iterations before convergence.")

    # final evaluation
    if track_elbo:
        track()

    return {'mu': mu, 'sigma': s, 'gamma': g, 'gamma_groups': g_groups,
            'groups': index.labels, 'tau_a': tau_a, 'tau_b': tau_b,
            'converged': converged, 'iterations': iter_count,
            'status': status, 'elbo': elbo_values}
