"""Low-rank completion kernels used by the imputation methods.

The kernels work on a float array ``values`` with NaN at the positions
flagged by ``mask`` and return a completed array whose observed entries are
left untouched.
"""

import logging
import numpy as np
from fancyimpute import SoftImpute

logger = logging.getLogger(__name__)

def mean_fill(values, mask):
    """Replace masked entries by the mean of the observed entries of their column."""
    means = np.nanmean(np.where(mask, np.nan, values), axis=0)
    return np.where(mask, means[None, :], values)

def max_singular_value(values, mask):
    """Largest singular value of the column-centred, zero-filled matrix."""
    means = np.nanmean(np.where(mask, np.nan, values), axis=0)
    centered = np.where(mask, 0.0, values - means)
    return float(np.linalg.norm(centered, ord=2))

# ============================================================================
# SOFT-IMPUTE
# ============================================================================

def soft_impute(values, mask, lam, max_rank=None, max_iter=100, tol=1e-5):
    """
    Nuclear-norm regularised matrix completion with ``fancyimpute.SoftImpute``.

    Columns are centred on their observed means and the solver starts from
    zero, so the first fill is the column mean. ``lam`` is the shrinkage
    value applied to the singular values.
    """
    means = np.nanmean(np.where(mask, np.nan, values), axis=0)
    centered = np.where(mask, np.nan, values - means)
    solver = SoftImpute(shrinkage_value=lam, max_rank=max_rank, max_iters=max_iter,
                        convergence_threshold=tol, init_fill_method='zero', verbose=False)
    return solver.fit_transform(centered) + means

# ============================================================================
# ITERATIVE PCA
# ============================================================================

def _pca_fit(Z, ncp, method='regularized', coeff_ridge=1.0):
    """Rank-``ncp`` reconstruction of Z, with shrunk singular values when regularized."""
    if ncp == 0:
        return np.zeros_like(Z)
    n, p = Z.shape
    U, s, Vt = np.linalg.svd(Z, full_matrices=False)
    ncp = min(ncp, len(s))
    kept = s[:ncp]

    if method == 'regularized' and ncp < len(s):
        denom = (n - 1) * p - (n - 1) * ncp - p * ncp + ncp ** 2
        if denom > 0:
            sigma2 = n * p / min(p, n - 1) * np.sum(s[ncp:] ** 2 / n) / denom
            sigma2 = min(sigma2 * coeff_ridge, s[ncp] ** 2 / n)
        else:
            sigma2 = 0.0
        safe = np.where(kept > 1e-12, kept, 1.0)
        kept = np.where(kept > 1e-12, kept - n * sigma2 / safe, 0.0)

    return (U[:, :ncp] * kept) @ Vt[:ncp]

def iterative_pca(values, mask, ncp, scale=True, method='regularized', max_iter=1000,
                  threshold=1e-6, coeff_ridge=1.0):
    """
    Regularised iterative PCA imputation (Josse & Husson, 2012).

    Starts from the column means; each iteration standardises the filled
    matrix (centring always, scaling when ``scale``), rebuilds it from
    ``ncp`` components and refills the missing entries. With
    ``method='regularized'`` the singular values are shrunk by the estimated
    noise variance; ``method='em'`` keeps them as is.

    Returns:
    - filled: completed matrix (observed entries unchanged)
    - fitted: low-rank reconstruction, used by the GCV criterion
    """
    if method not in ('regularized', 'em'):
        raise ValueError(f"method must be 'regularized' or 'em'. Got {method}.")
    filled = mean_fill(values, mask)
    fitted_old = None
    fitted = filled

    for it in range(max_iter):
        means = filled.mean(axis=0)
        sds = filled.std(axis=0) if scale else np.ones(filled.shape[1])
        sds = np.where(sds > 1e-12, sds, 1.0)
        fitted = _pca_fit((filled - means) / sds, ncp, method=method, coeff_ridge=coeff_ridge) * sds + means
        filled = np.where(mask, fitted, values)
        if fitted_old is not None and np.mean((fitted - fitted_old) ** 2) < threshold:
            break
        fitted_old = fitted

    return filled, fitted
