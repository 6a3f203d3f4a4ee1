# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements required initializations for the GSVB algorithm,
# the group spike-and-slab variational Bayes method developed in:
# Komodromos, M., Evangelou, M., Filippi, S., and Ray, K.,
# 'Group spike-and-slab variational Bayes'.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

from .GSVB_classes import GSVB_linear
from .gsvb import GSVB_gaussian, update_a_b, update_g, update_mu, update_s
from .residual import compute_S
from .elbo import elbo
