"""Missingness pattern classes for benchmark studies.

Each pattern removes entries from a complete table and returns the incomplete
copy together with the boolean mask of removed entries (True = removed).

MAR and MNAR use logistic propensities: random weights on standardised
inputs, rescaled so each linear predictor has unit variance, and per-column
intercepts fitted by bisection so that the mean removal probability hits the
requested rate.
"""

import logging
import numpy as np
import pandas as pd
from abc import ABC, abstractmethod
from numpy.random import default_rng
from scipy.optimize import bisect
from scipy.special import expit

logger = logging.getLogger(__name__)

# Highest removal rate allowed for a single MAR-amputated column
MAX_COLUMN_RATE = 0.9

def _standardize(values):
    mu = values.mean(axis=0)
    sd = values.std(axis=0)
    sd = np.where(sd > 1e-12, sd, 1.0)
    return (values - mu) / sd

def pick_coefficients(inputs, n_outputs=None, rng=None, self_mask=False):
    """
    Draw logistic weights so each linear predictor has unit variance.

    With ``self_mask`` every column gets one weight applied to itself;
    otherwise ``inputs @ coeffs`` gives one predictor per output column.
    """
    if rng is None:
        rng = default_rng(123)
    if self_mask:
        coeffs = rng.standard_normal(inputs.shape[1])
        sd = (inputs * coeffs).std(axis=0)
    else:
        coeffs = rng.standard_normal((inputs.shape[1], n_outputs))
        sd = (inputs @ coeffs).std(axis=0)
    sd = np.where(sd > 1e-12, sd, 1.0)
    return coeffs / sd

def fit_intercepts(linear, rate):
    """Intercepts b_j with mean(sigmoid(linear[:, j] + b_j)) == rate for every column j."""
    intercepts = np.empty(linear.shape[1])
    for j in range(linear.shape[1]):
        col = linear[:, j]
        intercepts[j] = bisect(lambda b: expit(col + b).mean() - rate, -50.0, 50.0, xtol=1e-10)
    return intercepts

def enforce_mask_policy(mask, propensity, eligible):
    """
    Apply the edge-case policy to a drawn mask.

    - A column left without any observed entry gets back its entry with the
      lowest removal propensity.
    - An empty mask gets the eligible entry with the highest propensity.
    """
    mask = mask.copy()
    for j in range(mask.shape[1]):
        if mask[:, j].all():
            mask[np.argmin(propensity[:, j]), j] = False
    if not mask.any():
        candidates = np.where(eligible[None, :], propensity, -np.inf)
        i, j = np.unravel_index(np.argmax(candidates), candidates.shape)
        mask[i, j] = True
    return mask

class MissingnessPattern(ABC):
    """Abstract base class for missingness patterns.

    All missingness patterns must implement:
    - _draw_mask(values, fraction, rng): Return (mask, propensity, eligible)
    - name: Property for descriptive name
    """

    def apply(self, data, fraction, rng=None):
        """Apply missingness to the data.

        Parameters:
        - data: Complete DataFrame or 2-D array
        - fraction: Target share of removed entries, in (0, 1)
        - rng: numpy Generator

        Returns:
        - dat_miss: Copy of data with removed entries set to NaN (same type as data)
        - mask: Boolean array, True where an entry was removed
        """
        if not 0 < fraction < 1:
            raise ValueError(f"fraction must be in (0, 1). Got {fraction}.")
        if rng is None:
            rng = default_rng(123)

        is_array = isinstance(data, np.ndarray)
        frame = pd.DataFrame(data) if is_array else data
        values = frame.to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("Amputation expects complete data, found missing values.")
        if values.shape[0] < 2:
            raise ValueError("Amputation needs at least 2 rows to keep one observed entry per column.")

        mask, propensity, eligible = self._draw_mask(values, fraction, rng)
        mask = enforce_mask_policy(mask, propensity, eligible)

        dat_miss = frame.astype(float).mask(mask)
        if is_array:
            dat_miss = dat_miss.to_numpy()
        return dat_miss, mask

    @abstractmethod
    def _draw_mask(self, values, fraction, rng):
        pass

    @property
    @abstractmethod
    def name(self):
        """Return descriptive name of the pattern."""
        pass

class MCARPattern(MissingnessPattern):
    def _draw_mask(self, values, fraction, rng):
        propensity = np.full(values.shape, float(fraction))
        mask = rng.uniform(size=values.shape) < propensity
        return mask, propensity, np.ones(values.shape[1], dtype=bool)

    @property
    def name(self):
        return 'MCAR'

class MARPattern(MissingnessPattern):
    """Logistic MAR: a subset of fully observed columns drives the other columns' missingness.

    The overall rate is matched by amputating each non-driver column at
    ``fraction * p / n_amputated``; drivers are dropped (down to one) while
    that rate exceeds MAX_COLUMN_RATE.
    """

    def __init__(self, obs_fraction=0.3):
        self.obs_fraction = obs_fraction

    def _draw_mask(self, values, fraction, rng):
        n, p = values.shape
        if p < 2:
            raise ValueError("MAR amputation needs at least 2 columns (one fully observed driver).")

        n_obs = min(max(1, int(self.obs_fraction * p)), p - 1)
        while n_obs > 1 and fraction * p / (p - n_obs) > MAX_COLUMN_RATE:
            n_obs -= 1
        col_rate = fraction * p / (p - n_obs)
        if col_rate > MAX_COLUMN_RATE:
            logger.warning(f"MAR rate {fraction} not reachable with {p} columns; "
                           f"capping amputated columns at {MAX_COLUMN_RATE}")
            col_rate = MAX_COLUMN_RATE

        idx_obs = np.sort(rng.choice(p, n_obs, replace=False))
        idx_na = np.setdiff1d(np.arange(p), idx_obs)

        inputs = _standardize(values[:, idx_obs])
        coeffs = pick_coefficients(inputs, len(idx_na), rng=rng)
        linear = inputs @ coeffs
        intercepts = fit_intercepts(linear, col_rate)

        propensity = np.zeros((n, p))
        propensity[:, idx_na] = expit(linear + intercepts)
        mask = np.zeros((n, p), dtype=bool)
        mask[:, idx_na] = rng.uniform(size=(n, len(idx_na))) < propensity[:, idx_na]

        eligible = np.zeros(p, dtype=bool)
        eligible[idx_na] = True
        return mask, propensity, eligible

    @property
    def name(self):
        return 'MAR'

class MNARPattern(MissingnessPattern):
    """Logistic MNAR.

    - 'self_masked': each column's propensity depends on its own value.
    - 'logistic': a subset of input columns drives the others, then the inputs
      are themselves removed MCAR, so the drivers may be unobserved.
    """

    def __init__(self, model='self_masked', params_fraction=0.3):
        if model not in ('self_masked', 'logistic'):
            raise ValueError(f"Unknown MNAR model '{model}'. Use 'self_masked' or 'logistic'.")
        self.model = model
        self.params_fraction = params_fraction

    def _draw_mask(self, values, fraction, rng):
        n, p = values.shape
        if self.model == 'logistic' and p > 1:
            return self._logistic_mask(values, fraction, rng)

        inputs = _standardize(values)
        coeffs = pick_coefficients(inputs, rng=rng, self_mask=True)
        linear = inputs * coeffs
        propensity = expit(linear + fit_intercepts(linear, fraction))
        mask = rng.uniform(size=(n, p)) < propensity
        return mask, propensity, np.ones(p, dtype=bool)

    def _logistic_mask(self, values, fraction, rng):
        n, p = values.shape
        n_params = min(max(1, int(self.params_fraction * p)), p - 1)
        idx_params = np.sort(rng.choice(p, n_params, replace=False))
        idx_na = np.setdiff1d(np.arange(p), idx_params)

        inputs = _standardize(values[:, idx_params])
        coeffs = pick_coefficients(inputs, len(idx_na), rng=rng)
        linear = inputs @ coeffs
        intercepts = fit_intercepts(linear, fraction)

        propensity = np.full((n, p), float(fraction))
        propensity[:, idx_na] = expit(linear + intercepts)
        mask = rng.uniform(size=(n, p)) < propensity
        return mask, propensity, np.ones(p, dtype=bool)

    @property
    def name(self):
        return 'MNAR'

_PATTERNS = {
    'MCAR': MCARPattern,
    'MAR': MARPattern,
    'MNAR': MNARPattern,
}

def list_mechanisms():
    return list(_PATTERNS)

def get_pattern(mechanism, **kwargs):
    """Build a missingness pattern by mechanism name (case-insensitive)."""
    key = str(mechanism).strip().upper()
    if key not in _PATTERNS:
        raise KeyError(f"Unknown missingness mechanism '{mechanism}'. Available: {list_mechanisms()}")
    return _PATTERNS[key](**kwargs)

def amputate(data, mechanism, fraction, rng=None):
    """Remove a ``fraction`` of entries from ``data`` under ``mechanism``; returns (dat_miss, mask)."""
    return get_pattern(mechanism).apply(data, fraction, rng=rng)
