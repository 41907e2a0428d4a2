"""Parameter selection for the low-rank imputation methods.

Both procedures hide an extra share of the observed entries, impute them
with each candidate parameter and keep the parameter with the lowest error.
Randomness comes from child generators spawned from the caller's generator.
"""

import logging
import numpy as np
import pandas as pd
from numpy.random import default_rng

from .evaluator import mse
from .exceptions import ImputationError
from .matrix_completion import iterative_pca, max_singular_value, soft_impute

logger = logging.getLogger(__name__)

def holdout_mask(mask, fraction, rng):
    """
    Draw an MCAR selection of currently observed entries to hide.

    Every column keeps at least one observed entry and at least one entry is
    hidden overall.
    """
    observed = ~mask
    extra = observed & (rng.uniform(size=mask.shape) < fraction)
    for j in range(mask.shape[1]):
        if not (observed[:, j] & ~extra[:, j]).any():
            rows = np.where(extra[:, j])[0]
            extra[rng.choice(rows), j] = False
    if not extra.any():
        cols = np.where(observed.sum(axis=0) >= 2)[0]
        if len(cols) == 0:
            raise ImputationError("Not enough observed entries to hold any out for cross-validation.")
        j = rng.choice(cols)
        extra[rng.choice(np.where(observed[:, j])[0]), j] = True
    return extra

def lambda_grid(values, mask, grid_len=15, ratio=100.0):
    """Geometric grid from the largest singular value down to it divided by ``ratio``."""
    lam_max = max_singular_value(values, mask)
    if lam_max <= 0:
        return np.zeros(1)
    return np.geomspace(lam_max, lam_max / ratio, grid_len)

def cross_validate_soft_impute(values, mask, rng=None, grid_len=15, n_folds=3, holdout=0.2,
                               max_rank=None, max_iter=100, tol=1e-5):
    """
    Choose the soft-thresholding level by hold-out cross-validation.

    Returns:
    - best_lambda: float
    - errors: Series of fold-averaged errors indexed by lambda
    """
    if rng is None:
        rng = default_rng(123)
    grid = lambda_grid(values, mask, grid_len=grid_len)
    errors = np.zeros(len(grid))

    for fold_rng in rng.spawn(n_folds):
        hidden = holdout_mask(mask, holdout, fold_rng)
        both = mask | hidden
        fold_values = np.where(both, np.nan, values)
        for k, lam in enumerate(grid):
            completed = soft_impute(fold_values, both, lam, max_rank=max_rank, max_iter=max_iter, tol=tol)
            errors[k] += mse(completed, values, hidden)

    errors /= n_folds
    best = float(grid[int(np.argmin(errors))])
    logger.debug(f"soft_impute CV selected lambda={best:.4g} from {len(grid)} candidates")
    return best, pd.Series(errors, index=grid, name='cv_error')

def estimate_ncp_pca(values, mask, ncp_min=0, ncp_max=5, cv_method='gcv', scale=True, rng=None,
                     n_folds=10, holdout=0.05, pca_method='regularized', max_iter=1000, threshold=1e-6):
    """
    Estimate the number of components for iterative PCA imputation.

    - 'gcv': generalised cross-validation on the observed entries,
      N_obs * RSS / (N_obs - df)^2 with df = p + k(n - 1 + p - k).
      df counts the parameters of an unshrunk rank-k fit, so the residuals
      come from the EM variant whatever ``pca_method`` is.
    - 'kfold': hide an extra ``holdout`` share of observed entries
      ``n_folds`` times and average the reconstruction error of
      ``pca_method``

    Returns:
    - best_ncp: int
    - criterion: Series indexed by candidate ncp
    """
    n, p = values.shape
    ncp_max = max(0, min(ncp_max, p - 1, n - 2))
    ncp_min = min(ncp_min, ncp_max)
    candidates = list(range(ncp_min, ncp_max + 1))

    if cv_method == 'gcv':
        n_obs = int((~mask).sum())
        crit = []
        for k in candidates:
            _, fitted = iterative_pca(values, mask, k, scale=scale, method='em',
                                      max_iter=max_iter, threshold=threshold)
            rss = float(np.sum((fitted[~mask] - values[~mask]) ** 2))
            df = p + k * (n - 1 + p - k)
            crit.append(n_obs * rss / (n_obs - df) ** 2 if n_obs > df else np.inf)
        crit = np.asarray(crit)
    elif cv_method == 'kfold':
        if rng is None:
            rng = default_rng(123)
        crit = np.zeros(len(candidates))
        for fold_rng in rng.spawn(n_folds):
            hidden = holdout_mask(mask, holdout, fold_rng)
            both = mask | hidden
            fold_values = np.where(both, np.nan, values)
            for idx, k in enumerate(candidates):
                completed, _ = iterative_pca(fold_values, both, k, scale=scale, method=pca_method,
                                             max_iter=max_iter, threshold=threshold)
                crit[idx] += mse(completed, values, hidden)
        crit /= n_folds
    else:
        raise ValueError(f"cv_method must be 'gcv' or 'kfold'. Got {cv_method}.")

    best = candidates[int(np.argmin(crit))]
    logger.debug(f"iterative PCA {cv_method} selected ncp={best}")
    return best, pd.Series(crit, index=candidates, name=cv_method)
