"""Imputation method classes for benchmark studies."""

import numpy as np
import pandas as pd
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer
from sklearn.ensemble import RandomForestRegressor
import logging
from tqdm import tqdm
from abc import ABC, abstractmethod
from numpy.random import default_rng

from .cross_validation import cross_validate_soft_impute, estimate_ncp_pca
from .exceptions import ImputationError
from .matrix_completion import iterative_pca, max_singular_value, mean_fill, soft_impute

logger = logging.getLogger(__name__)

class ImputationMethod(ABC):
    """Abstract base class for imputation methods.

    All imputation methods must implement:
    - _impute(values, mask, rng): Return the completed float array
    - name: Property for descriptive name

    ``impute`` wraps ``_impute`` with the shared contract: a complete input
    is returned unchanged, a column without any observed entry raises
    ImputationError, and observed entries are always restored in the output.
    """

    def impute(self, data, rng=None):
        """
        Complete ``data`` (DataFrame or 2-D array with NaN as missing marker).

        Returns an object of the same type with no missing entries.
        """
        is_array = isinstance(data, np.ndarray)
        frame = pd.DataFrame(data) if is_array else data
        values = frame.to_numpy(dtype=float)
        mask = np.isnan(values)

        if not mask.any():
            completed = values.copy()
        else:
            empty = np.where(mask.all(axis=0))[0]
            if len(empty) > 0:
                raise ImputationError(f"{self.name}: no observed value in columns {list(frame.columns[empty])}")
            if rng is None:
                rng = default_rng(123)
            completed = np.array(self._impute(values, mask, rng), dtype=float)
            if completed.shape != values.shape:
                raise ImputationError(f"{self.name}: returned shape {completed.shape}, expected {values.shape}")
            if not np.isfinite(completed[mask]).all():
                raise ImputationError(f"{self.name}: produced non-finite imputations")
            completed[~mask] = values[~mask]

        if is_array:
            return completed
        return pd.DataFrame(completed, index=frame.index, columns=frame.columns)

    @abstractmethod
    def _impute(self, values, mask, rng):
        pass

    @property
    @abstractmethod
    def name(self):
        pass

    def fallback(self):
        """Same method with default, untuned parameters, used for one retry after a failure."""
        return None

class MeanImputation(ImputationMethod):
    def _impute(self, values, mask, rng):
        return mean_fill(values, mask)

    @property
    def name(self):
        return 'mean'

class SoftImputeImputation(ImputationMethod):
    """Low-rank matrix completion by iterative soft-thresholded SVD.

    With ``lam=None`` the threshold is picked by hold-out cross-validation
    (``cv=True``) or set to 10% of the largest singular value (``cv=False``).
    """

    def __init__(self, lam=None, cv=True, max_rank=None, max_iter=100, tol=1e-5,
                 grid_len=15, n_folds=3, holdout=0.2):
        self.lam = lam
        self.cv = cv
        self.max_rank = max_rank
        self.max_iter = max_iter
        self.tol = tol
        self.grid_len = grid_len
        self.n_folds = n_folds
        self.holdout = holdout

    def _impute(self, values, mask, rng):
        lam = self.lam
        if lam is None and self.cv:
            lam, _ = cross_validate_soft_impute(
                values, mask, rng=rng.spawn(1)[0], grid_len=self.grid_len, n_folds=self.n_folds,
                holdout=self.holdout, max_rank=self.max_rank, max_iter=self.max_iter, tol=self.tol
            )
        elif lam is None:
            lam = 0.1 * max_singular_value(values, mask)
        return soft_impute(values, mask, lam, max_rank=self.max_rank, max_iter=self.max_iter, tol=self.tol)

    def fallback(self):
        return SoftImputeImputation(cv=False, max_rank=self.max_rank, max_iter=self.max_iter, tol=self.tol)

    @property
    def name(self):
        return 'soft_impute'

class MICEImputation(ImputationMethod):
    """Chained-equations multiple imputation; the ``n_imputations`` completed tables are averaged."""

    def __init__(self, n_imputations=5, max_iter=10, sample_posterior=True):
        self.n_imputations = n_imputations
        self.max_iter = max_iter
        self.sample_posterior = sample_posterior

    def _impute(self, values, mask, rng):
        imputation_rngs = rng.spawn(self.n_imputations)
        draws = []
        for imputation_rng in tqdm(imputation_rngs, desc="MICE Imputations", leave=False):
            imp = IterativeImputer(max_iter=self.max_iter, sample_posterior=self.sample_posterior,
                                   random_state=int(imputation_rng.integers(0, 2**32 - 1)))
            draws.append(imp.fit_transform(values))
        return np.mean(draws, axis=0)

    def fallback(self):
        return MICEImputation(n_imputations=1, max_iter=self.max_iter, sample_posterior=False)

    @property
    def name(self):
        return 'mice'

class MissForestImputation(ImputationMethod):
    """Iterative random-forest imputation (Stekhoven & Buhlmann, 2012).

    Columns are visited in ascending order of missing count. Iterations stop
    the first time the normalised change on the missing entries increases,
    returning the previous iterate, or after ``max_iter``.
    """

    def __init__(self, n_estimators=100, max_iter=10, max_features='sqrt', n_jobs=None):
        self.n_estimators = n_estimators
        self.max_iter = max_iter
        self.max_features = max_features
        self.n_jobs = n_jobs

    def _impute(self, values, mask, rng):
        n, p = values.shape
        previous = mean_fill(values, mask)
        if p == 1:
            return previous

        order = [j for j in np.argsort(mask.sum(axis=0), kind='stable') if mask[:, j].any()]
        prev_diff = np.inf
        for it in range(self.max_iter):
            current = previous.copy()
            for j in order:
                miss = mask[:, j]
                others = np.delete(np.arange(p), j)
                model = RandomForestRegressor(n_estimators=self.n_estimators, max_features=self.max_features,
                                              random_state=int(rng.integers(0, 2**31 - 1)), n_jobs=self.n_jobs)
                model.fit(current[~miss][:, others], current[~miss, j])
                current[miss, j] = model.predict(current[miss][:, others])

            denom = np.sum(current[mask] ** 2)
            diff = np.sum((current[mask] - previous[mask]) ** 2) / denom if denom > 0 else 0.0
            logger.debug(f"missforest iteration {it + 1}: diff={diff:.3e}")
            if diff >= prev_diff:
                break
            prev_diff = diff
            previous = current
        return previous

    def fallback(self):
        return MissForestImputation(n_estimators=20, max_iter=1, max_features=self.max_features, n_jobs=self.n_jobs)

    @property
    def name(self):
        return 'missforest'

class IterativePCAImputation(ImputationMethod):
    """Regularised iterative PCA; ``ncp=None`` estimates the number of components."""

    def __init__(self, ncp=None, scale=True, method='regularized', ncp_min=0, ncp_max=5,
                 cv_method='gcv', max_iter=1000, threshold=1e-6):
        self.ncp = ncp
        self.scale = scale
        self.method = method
        self.ncp_min = ncp_min
        self.ncp_max = ncp_max
        self.cv_method = cv_method
        self.max_iter = max_iter
        self.threshold = threshold

    def _impute(self, values, mask, rng):
        n, p = values.shape
        ncp = self.ncp
        if ncp is None:
            ncp, _ = estimate_ncp_pca(values, mask, ncp_min=self.ncp_min, ncp_max=self.ncp_max,
                                      cv_method=self.cv_method, scale=self.scale, rng=rng.spawn(1)[0],
                                      pca_method=self.method, max_iter=self.max_iter,
                                      threshold=self.threshold)
            logger.debug(f"iterative_pca uses ncp={ncp}")
        ncp = max(0, min(ncp, p - 1, n - 1))
        filled, _ = iterative_pca(values, mask, ncp, scale=self.scale, method=self.method,
                                  max_iter=self.max_iter, threshold=self.threshold)
        return filled

    def fallback(self):
        return IterativePCAImputation(ncp=2, scale=self.scale, method=self.method,
                                      max_iter=self.max_iter, threshold=self.threshold)

    @property
    def name(self):
        return 'iterative_pca'

_REGISTRY = {
    'mean': MeanImputation,
    'soft_impute': SoftImputeImputation,
    'mice': MICEImputation,
    'missforest': MissForestImputation,
    'iterative_pca': IterativePCAImputation,
}

def list_methods():
    return list(_REGISTRY)

def build_imputation_method(name, **kwargs):
    """Build an imputation method by name."""
    key = str(name).strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"Unknown imputation method '{name}'. Available: {list_methods()}")
    return _REGISTRY[key](**kwargs)

def default_methods():
    """Baseline first, then the four adapters."""
    return [build_imputation_method(name) for name in list_methods()]
