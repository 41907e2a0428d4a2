"""Data generation for benchmark studies."""

import numpy as np
import pandas as pd
from numpy.random import default_rng

def block_covariance(p, diag=0.5, offdiag=0.5):
    """Covariance with constant off-diagonal: diag * I + offdiag * 11'."""
    return diag * np.eye(p) + offdiag * np.ones((p, p))

def generate_data(n=1000, p=10, mean=1.0, diag=0.5, offdiag=0.5, rng=None):
    """
    Draw a complete Gaussian dataset with correlated columns.

    Parameters:
    - n: Sample size
    - p: Number of variables
    - mean: Common mean of every variable
    - diag: Diagonal term of the covariance (added to offdiag on the diagonal)
    - offdiag: Constant covariance between any two variables
    - rng: numpy Generator

    Returns:
    - data: DataFrame with columns X1..Xp
    """
    if rng is None:
        rng = default_rng(123)
    if n < 1 or p < 1:
        raise ValueError(f"n and p must be positive. Got n={n}, p={p}.")

    mu = np.full(p, float(mean))
    sigma = block_covariance(p, diag=diag, offdiag=offdiag)
    values = rng.multivariate_normal(mu, sigma, size=n)
    columns = [f'X{i+1}' for i in range(p)]
    return pd.DataFrame(values, columns=columns)

def generate_low_rank_data(n=200, p=20, rank=3, noise=0.1, rng=None):
    """Product of two Gaussian factors plus isotropic noise."""
    if rng is None:
        rng = default_rng(123)
    values = rng.normal(size=(n, rank)) @ rng.normal(size=(rank, p))
    values = values + noise * rng.normal(size=(n, p))
    return pd.DataFrame(values, columns=[f'X{i+1}' for i in range(p)])
