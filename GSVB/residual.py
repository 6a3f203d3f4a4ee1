# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the expected residual sum of squares shared by the
# GSVB precision update and the evidence lower bound, for the method developed in:
# Komodromos, M., Evangelou, M., Filippi, S., and Ray, K.,
# 'Group spike-and-slab variational Bayes'.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numpy as np


def compute_S(yty, yx, xtx, groups, mu, s, g):
    """
    Expected residual sum of squares under the variational distribution,

        S = E‖y - Xβ‖² = yᵀy - 2 (Xᵀy)ᵀ(g ⊙ μ) + Σᵢ Σⱼ (XᵀX)ᵢⱼ E[βᵢ βⱼ]

    where
        E[βᵢ²]    = gᵢ (sᵢ² + μᵢ²),
        E[βᵢ βⱼ]  = gᵢ μᵢ μⱼ        for i ≠ j in the same group,
        E[βᵢ βⱼ]  = gᵢ gⱼ μᵢ μⱼ     for i, j in different groups.

    Members of a group share a single inclusion indicator and are therefore
    not independent, hence the missing gⱼ factor within a group.

    Parameters
    ----------
    yty : float
        yᵀy.
    yx : np.ndarray of shape (p,)
        Xᵀy.
    xtx : np.ndarray of shape (p, p)
        XᵀX.
    groups : np.ndarray of shape (p,)
        Group label of every coefficient.
    mu, s, g : np.ndarray of shape (p,)
        Variational means, standard deviations and inclusion probabilities.

    Returns
    -------
    float
        The expected residual sum of squares S.
    """
    groups = np.asarray(groups)
    gm = g * mu
    same = groups[:, None] == groups[None, :]

    # E[βᵢ βⱼ] for i ≠ j, then the diagonal second moments
    E_bb = np.where(same, np.outer(gm, mu), np.outer(gm, gm))
    np.fill_diagonal(E_bb, g * (s * s + mu * mu))

    return yty + np.sum(xtx * E_bb) - 2.0 * yx @ gm

