"""Dataset loading and validation.

Benchmarks run on a complete numeric table. Datasets come from three places:

- the synthetic Gaussian generator (``gaussian``),
- the small tables bundled with scikit-learn (``diabetes``, ``wine``,
  ``breast_cancer``, ``iris``),
- any CSV/TSV file or URL with a header row (``load_csv``).

``validate_dataset`` is called before any simulation starts so that an
unusable table fails fast with a clear message.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
from numpy.random import default_rng
from sklearn import datasets as sk_datasets

from .data_generators import generate_data

logger = logging.getLogger(__name__)

_SKLEARN_LOADERS = {
    'diabetes': sk_datasets.load_diabetes,
    'wine': sk_datasets.load_wine,
    'breast_cancer': sk_datasets.load_breast_cancer,
    'iris': sk_datasets.load_iris,
}

def list_datasets():
    return ['gaussian'] + sorted(_SKLEARN_LOADERS)

def load_dataset(name, rng=None, **kwargs):
    """
    Load a named dataset as a complete numeric DataFrame.

    Parameters:
    -----------
    name : str
        One of ``list_datasets()``
    rng : numpy.random.Generator, optional
        Only used by the synthetic ``gaussian`` dataset
    **kwargs :
        Forwarded to ``generate_data`` for ``gaussian``

    Returns:
    --------
    pd.DataFrame
    """
    key = str(name).strip().lower()
    if key == 'gaussian':
        data = generate_data(rng=rng if rng is not None else default_rng(123), **kwargs)
    elif key in _SKLEARN_LOADERS:
        data = _SKLEARN_LOADERS[key](as_frame=True).data
        data = data.astype(float).reset_index(drop=True)
    else:
        raise KeyError(f"Unknown dataset '{name}'. Available: {list_datasets()}")
    logger.info(f"Loaded dataset '{key}' with shape {data.shape}")
    return data

def load_csv(path, sep=None, dropna=True):
    """
    Read a CSV/TSV table (local path or URL) with a header row.

    The separator is inferred from the extension when not given (``.tsv`` and
    ``.tab`` use tabs). Non-numeric columns are dropped and, with ``dropna``,
    rows with missing values are removed so the result is a complete table.
    """
    path_str = str(path)
    if sep is None:
        sep = '\t' if Path(path_str.split('?')[0]).suffix.lower() in ('.tsv', '.tab') else ','
    data = pd.read_csv(path_str, sep=sep)

    numeric = data.select_dtypes(include=[np.number])
    dropped_cols = [c for c in data.columns if c not in numeric.columns]
    if dropped_cols:
        logger.warning(f"Dropping non-numeric columns from {path_str}: {dropped_cols}")
    data = numeric.astype(float)

    if dropna:
        n_before = len(data)
        data = data.dropna().reset_index(drop=True)
        if len(data) < n_before:
            logger.info(f"Dropped {n_before - len(data)} incomplete rows from {path_str}")
    return data

def validate_dataset(data):
    """
    Check that ``data`` can be benchmarked and return it as a float DataFrame.

    Raises ValueError for an empty table, non-numeric columns, missing
    values, fewer than two rows, or a zero-variance column.
    """
    if isinstance(data, np.ndarray):
        if data.ndim != 2:
            raise ValueError(f"Dataset must be 2-dimensional, got shape {data.shape}")
        data = pd.DataFrame(data, columns=[f'X{i+1}' for i in range(data.shape[1])])
    if not isinstance(data, pd.DataFrame):
        raise ValueError(f"Dataset must be a DataFrame or 2-D array, got {type(data).__name__}")

    if data.shape[0] == 0 or data.shape[1] == 0:
        raise ValueError(f"Dataset is empty (shape {data.shape})")
    if data.shape[0] < 2:
        raise ValueError("Dataset needs at least 2 rows: one entry removed and one observed per column")

    non_numeric = [c for c in data.columns if not pd.api.types.is_numeric_dtype(data[c])]
    if non_numeric:
        raise ValueError(f"Dataset has non-numeric columns: {non_numeric}")

    data = data.astype(float)
    if data.isna().any().any():
        nan_cols = data.columns[data.isna().any()].tolist()
        raise ValueError(f"Dataset must be complete before amputation; missing values in {nan_cols}")

    std = data.std(axis=0, ddof=0)
    constant = std.index[std <= 1e-12].tolist()
    if constant:
        raise ValueError(f"Dataset has zero-variance columns: {constant}")
    return data

def scale_columns(data):
    """Center each column and divide by its standard deviation."""
    return (data - data.mean(axis=0)) / data.std(axis=0, ddof=0)
