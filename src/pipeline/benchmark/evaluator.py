"""Evaluation of imputation quality.

Imputations are scored against the complete ground truth on the entries that
were artificially removed, so observed entries (which every method returns
unchanged) do not dilute the error.
"""

import numpy as np
import pandas as pd
import logging

logger = logging.getLogger(__name__)

# ============================================================================
# NUMERICAL STABILITY FUNCTIONS
# ============================================================================

def stable_variance(values, ddof=0):
    """
    Compute variance with numerical stability using two-pass algorithm.

    Parameters:
    -----------
    values : array-like
        Array of values
    ddof : int
        Delta degrees of freedom (0 for population variance, 1 for sample)

    Returns:
    --------
    float : Variance value
    """
    if len(values) <= 1:
        return 0.0

    values = np.asarray(values, dtype=np.float64)
    mean_val = np.mean(values)
    variance = np.mean((values - mean_val) ** 2)

    if ddof > 0 and len(values) > ddof:
        variance = variance * len(values) / (len(values) - ddof)

    return float(variance)

def stable_std(values, ddof=0):
    """Standard deviation built on ``stable_variance``."""
    variance = stable_variance(values, ddof=ddof)
    return np.sqrt(max(0.0, variance))

# ============================================================================
# RECONSTRUCTION ERROR
# ============================================================================

def _as_array(x):
    if isinstance(x, (pd.DataFrame, pd.Series)):
        return x.to_numpy(dtype=float)
    return np.asarray(x, dtype=float)

def mse(imputed, true, mask):
    """
    Root-mean-squared reconstruction error on the removed entries.

    sqrt( sum_{(i,j): mask[i,j]} (imputed[i,j] - true[i,j])^2 / count(mask) )

    Parameters:
    -----------
    imputed : DataFrame or array
        Completed matrix
    true : DataFrame or array
        Ground truth
    mask : array-like of bool
        True where an entry was removed

    Returns:
    --------
    float

    Raises ValueError on shape mismatch or an empty mask.
    """
    imputed = _as_array(imputed)
    true = _as_array(true)
    mask = np.asarray(mask, dtype=bool)
    if not (imputed.shape == true.shape == mask.shape):
        raise ValueError(f"Shape mismatch: imputed {imputed.shape}, true {true.shape}, mask {mask.shape}")
    n_masked = int(mask.sum())
    if n_masked == 0:
        raise ValueError("Error is undefined for an empty mask (no removed entries).")
    diff = imputed[mask] - true[mask]
    return float(np.sqrt(np.sum(diff ** 2) / n_masked))

def summarize_scores(scores):
    """Mean, spread and success count of per-repetition scores, ignoring failed (NaN) ones."""
    scores = np.asarray(scores, dtype=float)
    ok = scores[np.isfinite(scores)]
    if len(ok) == 0:
        return {'mse_mean': np.nan, 'mse_std_runs': np.nan, 'n_success': 0}
    return {
        'mse_mean': float(np.mean(ok)),
        'mse_std_runs': stable_std(ok, ddof=1) if len(ok) > 1 else 0.0,
        'n_success': int(len(ok)),
    }
