# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the estimator class for the GSVB algorithm, the
# group spike-and-slab variational Bayes method developed in:
# Komodromos, M., Evangelou, M., Filippi, S., and Ray, K.,
# 'Group spike-and-slab variational Bayes'.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numbers

from .gsvb import GSVB_gaussian
from .utils import GroupIndex, as_vector
import numpy as np
import pandas as pd
from rich.console import Console
from rich.panel import Panel
from sklearn.linear_model import Ridge
from sklearn.preprocessing import scale
import matplotlib.pyplot as plt

# Validating prior parameters
def validate_prior_params(prior_params, n_groups):
    """
    Validate and complete the prior hyperparameters.

    The hyperparameters are given as a dictionary with (a subset of) the keys:
        - 'lambda': scale of the multivariate double exponential slab,
        - 'a0', 'b0': Beta prior on the group inclusion probability,
        - 'tau_a0', 'tau_b0': Gamma prior on the noise precision τ.

    Missing keys take the defaults lambda=1, a0=1, b0=n_groups,
    tau_a0=1e-3 and tau_b0=1e-3.

    Parameters
    ----------
    prior_params : dict or None
        The prior hyperparameters.
    n_groups : int
        Number of groups, the default of b0.

    Returns
    -------
    dict
        Validated hyperparameters with all five keys.

    Raises
    ------
    ValueError
        If the input is not a dictionary, holds unknown keys or non-positive values.
    """
    defaults = {'lambda': 1.0, 'a0': 1.0, 'b0': float(n_groups),
                'tau_a0': 1e-3, 'tau_b0': 1e-3}
    if prior_params is None:
        return defaults
    if not isinstance(prior_params, dict):
        raise ValueError("prior_params must be a dict with keys among "
                         "'lambda', 'a0', 'b0', 'tau_a0', 'tau_b0'")

    unknown = set(prior_params) - set(defaults)
    if unknown:
        raise ValueError(f"unknown prior parameters: {sorted(unknown)}")

    params = {**defaults, **prior_params}
    for key, value in params.items():
        if isinstance(value, bool) or not (isinstance(value, numbers.Real) and value > 0):
            raise ValueError(f"{key} must be a positive scalar")
    return {key: float(value) for key, value in params.items()}

# Validating the initial variational parameters
def validate_initial_values(mu, s, g, index, p):
    """
    Validate the initial means, standard deviations and inclusion probabilities.

    Parameters
    ----------
    mu, s, g : float or array-like of shape (p,)
        Initial values; scalars are broadcast.
    index : GroupIndex
        Group partition of the coefficients.
    p : int
        Number of coefficients.

    Returns
    -------
    mu, s, g : np.ndarray of shape (p,)

    Raises
    ------
    ValueError
        If shapes mismatch, s is not positive, g is outside [0, 1] or g is
        not constant within a group.
    """
    mu = as_vector(mu, p, "mu")
    s = as_vector(s, p, "s")
    g = as_vector(g, p, "g")

    if not np.all(np.isfinite(mu)):
        raise ValueError("mu must be finite")
    if np.any(s <= 0) or not np.all(np.isfinite(s)):
        raise ValueError("s must be strictly positive and finite")
    if np.any((g < 0) | (g > 1)):
        raise ValueError("g must lie in [0, 1]")
    index.collapse(g)

    return mu, s, g

# =============================================================================
# The GSVB class for the Gaussian linear model
# =============================================================================
class GSVB_linear:
    """
    GSVB for the group spike-and-slab linear model.

    This class provides a high-level interface to fit the group spike-and-slab
    variational approximation by coordinate ascent. It supports scaling, default
    initialisation, ELBO tracking, and getting both the posterior means & the
    variational estimates.

    Parameters
    ----------
    scale_X : bool, default=False
        If True, standardizes X before fitting.

    scale_y : bool, default=False
        If True, standardizes y before fitting.

    Attributes
    ----------
    is_fitted : bool
        Indicates whether the model has been fitted.
    fitted_values : dict
        Stores the variational parameters, convergence info and ELBO.
    """
    def __init__(self,
                 scale_X: bool = False,
                 scale_y: bool = False):
        """
        Initialize the GSVB model parameters.
        """
        self.scale_X = scale_X
        self.scale_y = scale_y
        self.is_fitted = False

    def fit(self,
            X: np.ndarray,
            y: np.ndarray,
            groups: np.ndarray,
            prior_params=None,
            mu=None,
            s=None,
            g=None,
            track_elbo: bool = True,
            track_elbo_every: int = 5,
            track_elbo_mcn: int = 500,
            niter: int = 150,
            tol: float = 1e-3,
            interrupt=None,
            random_state=None,
            verbose=True):
        """
        Fit the GSVB model to training data.

        Parameters
        ----------
        X : np.ndarray of shape (n, p)
            Input design matrix.
        y : np.ndarray of shape (n,)
            Response vector.
        groups : np.ndarray of shape (p,)
            Integer group label of every column of X.
        prior_params : dict, optional
            Prior hyperparameters, see `validate_prior_params`.
            If None, uses lambda=1, a0=1, b0=number of groups, tau_a0=tau_b0=1e-3.
        mu : float or np.ndarray of shape (p,), optional
            Initial means. If None, the coefficients of a ridge regression.
        s : float or np.ndarray of shape (p,), optional
            Initial standard deviations. If None, 1.
        g : float or np.ndarray of shape (p,), optional
            Initial inclusion probabilities, constant within groups. If None, 0.5.
        track_elbo : bool, default=True
            Whether to record the ELBO.
        track_elbo_every : int, default=5
            Number of sweeps between ELBO evaluations.
        track_elbo_mcn : int, default=500
            Monte Carlo samples used by the ELBO.
        niter : int, default=150
            Maximum number of sweeps.
        tol : float, default=1e-3
            Tolerance threshold for convergence.
        interrupt : callable, optional
            Checked once per sweep; returning True stops the fit.
        random_state : int or np.random.Generator, optional
            Seed of the Monte Carlo draws of the ELBO.
        verbose : bool, default=True
            Whether to print convergence information.
        """
        self.X = np.asarray(X, dtype=float)
        self.y = np.asarray(y, dtype=float)
        if self.X.ndim != 2:
            raise ValueError("X must be a 2-D array of shape (n, p)")
        self.n, self.p = self.X.shape
        if self.y.ndim != 1 or self.y.shape[0] != self.n:
            raise ValueError(f"y must be a vector of length {self.n}")
        self.design_matrix = np.copy(self.X)
        self.response = np.copy(self.y)

        self.index = GroupIndex(groups)
        if self.index.groups.shape[0] != self.p:
            raise ValueError(f"groups must be a vector of length {self.p}")

        if self.scale_y:
            self.response = scale(self.response, with_mean=True, with_std=True)

        if self.scale_X:
            self.design_matrix = scale(self.design_matrix, with_mean=True, with_std=True)

        ################################################################
        if verbose:
            console = Console()
            console.print(
                Panel(
                    "[bold green] Starting GSVB fit![/]",
                    title="[bold blue]GSVB Fit for the Gaussian linear model[/]",
                    border_style="magenta",
                    expand=False
                )
            )
        ################################################################

        ################################################################
        ### prior parameter validation
        ################################################################
        self.prior_params = validate_prior_params(prior_params, n_groups=len(self.index))

        ################################################################
        ### initial values
        ################################################################
        if mu is None:
            ridge = Ridge(alpha=1.0, fit_intercept=False)
            mu = ridge.fit(self.design_matrix, self.response).coef_
        if s is None:
            s = 1.0
        if g is None:
            g = 0.5
        mu, s, g = validate_initial_values(mu, s, g, self.index, self.p)

        ################################################################
        ### GSVB coordinate ascent
        ################################################################
        self.fitted_values = GSVB_gaussian(X=self.design_matrix, y=self.response,
                                           groups=self.index.groups,
                                           lam=self.prior_params['lambda'],
                                           a0=self.prior_params['a0'],
                                           b0=self.prior_params['b0'],
                                           tau_a0=self.prior_params['tau_a0'],
                                           tau_b0=self.prior_params['tau_b0'],
                                           mu=mu, s=s, g=g,
                                           track_elbo=track_elbo,
                                           track_elbo_every=track_elbo_every,
                                           track_elbo_mcn=track_elbo_mcn,
                                           niter=niter, tol=tol, verbose=verbose,
                                           interrupt=interrupt,
                                           rng=np.random.default_rng(random_state))

        self.is_fitted = True

    def _check_fitted(self):
        if self.is_fitted == False:
            raise Exception("GSVB model is not trained yet. Call fit() first.")

    def get_variational_estimates(self):
        """
        Returns the variational estimates of model parameters.

        Returns
        -------
        dict
            Dictionary containing:
            - 'mu': variational means of the coefficients.
            - 'sigma': variational standard deviations of the coefficients.
            - 'gamma': inclusion probability of each coefficient.
            - 'tau_a': shape parameter of the Gamma posterior on τ.
            - 'tau_b': rate parameter of the Gamma posterior on τ.
        """
        self._check_fitted()
        res = self.fitted_values
        return {'mu': res['mu'], 'sigma': res['sigma'], 'gamma': res['gamma'],
                'tau_a': res['tau_a'], 'tau_b': res['tau_b']}

    def get_elbo(self):
        """
        Returns the Evidence Lower Bound (ELBO) trajectory during training.

        Returns
        -------
        np.ndarray
            ELBO values recorded every `track_elbo_every` sweeps, followed by
            the value at the end of the fit.
        """
        self._check_fitted()
        ELBO = self.fitted_values['elbo']
        return np.array(ELBO)

    def get_GSVB_means(self):
        """
        Return posterior means of model parameters.

        Returns
        -------
        beta : np.ndarray of shape (p,)
            Posterior mean of regression coefficients, gamma * mu.
        tau : float
            Posterior mean of the noise precision τ.

        Raises
        ------
        Exception
            If the model is not yet fitted.
        """
        self._check_fitted()
        res = self.fitted_values
        beta = res['gamma'] * res['mu']
        tau = res['tau_a'] / res['tau_b']
        return beta, tau

    def summary(self):
        """
        Coefficient-level summary of the fit.

        Returns
        -------
        pd.DataFrame
            One row per coefficient with its group, variational mean and
            standard deviation, inclusion probability and posterior mean.
        """
        self._check_fitted()
        res = self.fitted_values
        return pd.DataFrame({
            'group': self.index.groups,
            'mu': res['mu'],
            'sigma': res['sigma'],
            'gamma': res['gamma'],
            'beta_mean': res['gamma'] * res['mu'],
        })

    def plot_elbo(self, ax=None):
        """
        Plot the recorded ELBO values in the order they were recorded: one
        point every `track_elbo_every` sweeps and a last one at the end of
        the fit.

        Returns
        -------
        matplotlib.axes.Axes
        """
        self._check_fitted()
        ELBO = self.get_elbo()
        if ax is None:
            _, ax = plt.subplots()
        ax.plot(np.arange(1, len(ELBO) + 1), ELBO, marker='o')
        ax.set_xlabel('Evaluation')
        ax.set_ylabel('ELBO')
        ax.set_title('GSVB Evidence Lower Bound')
        return ax
