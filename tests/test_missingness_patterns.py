import pytest
import pandas as pd
import numpy as np
import sys
import os
import logging
from numpy.random import default_rng

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.benchmark.data_generators import generate_data
from src.pipeline.benchmark.missingness_patterns import (
    MCARPattern, MARPattern, MNARPattern, amputate, get_pattern, list_mechanisms,
    enforce_mask_policy, fit_intercepts
)
from scipy.special import expit

@pytest.fixture(scope="module")
def gaussian_data():
    return generate_data(n=500, p=10, rng=default_rng(1))

# ----------------------------------------------------------------------
# Shared contract
# ----------------------------------------------------------------------
@pytest.mark.parametrize("mechanism", ['MCAR', 'MAR', 'MNAR'])
def test_mask_matches_nan_positions(gaussian_data, mechanism):
    dat_miss, mask = amputate(gaussian_data, mechanism, 0.3, rng=default_rng(2))
    assert isinstance(dat_miss, pd.DataFrame)
    assert mask.dtype == bool and mask.shape == gaussian_data.shape
    assert np.array_equal(dat_miss.isna().to_numpy(), mask)
    # Observed entries untouched
    assert np.array_equal(dat_miss.to_numpy()[~mask], gaussian_data.to_numpy()[~mask])
    assert list(dat_miss.columns) == list(gaussian_data.columns)

@pytest.mark.parametrize("mechanism", ['MCAR', 'MAR', 'MNAR'])
@pytest.mark.parametrize("fraction", [0.2, 0.5, 0.7])
def test_realized_rate_close_to_target(gaussian_data, mechanism, fraction):
    _, mask = amputate(gaussian_data, mechanism, fraction, rng=default_rng(3))
    assert abs(mask.mean() - fraction) < 0.05
    assert mask.any()
    # Every column keeps at least one observed entry
    assert (~mask).any(axis=0).all()

def test_same_seed_same_mask(gaussian_data):
    _, mask1 = amputate(gaussian_data, 'MAR', 0.4, rng=default_rng(7))
    _, mask2 = amputate(gaussian_data, 'MAR', 0.4, rng=default_rng(7))
    _, mask3 = amputate(gaussian_data, 'MAR', 0.4, rng=default_rng(8))
    assert np.array_equal(mask1, mask2)
    assert not np.array_equal(mask1, mask3)

def test_array_input_returns_array(gaussian_data):
    dat_miss, mask = MCARPattern().apply(gaussian_data.to_numpy(), 0.2, rng=default_rng(0))
    assert isinstance(dat_miss, np.ndarray)
    assert np.array_equal(np.isnan(dat_miss), mask)

@pytest.mark.parametrize("fraction", [0.0, 1.0, -0.1, 1.5])
def test_invalid_fraction_raises(gaussian_data, fraction):
    with pytest.raises(ValueError, match="fraction"):
        amputate(gaussian_data, 'MCAR', fraction)

def test_incomplete_input_raises(gaussian_data):
    data = gaussian_data.copy()
    data.iloc[0, 0] = np.nan
    with pytest.raises(ValueError, match="complete"):
        amputate(data, 'MCAR', 0.2)

def test_unknown_mechanism_raises(gaussian_data):
    with pytest.raises(KeyError, match="Unknown missingness mechanism"):
        amputate(gaussian_data, 'MNRA', 0.2)

def test_mechanism_lookup_case_insensitive():
    assert list_mechanisms() == ['MCAR', 'MAR', 'MNAR']
    assert isinstance(get_pattern('mcar'), MCARPattern)
    assert isinstance(get_pattern(' Mnar '), MNARPattern)
    assert get_pattern('mar').name == 'MAR'

# ----------------------------------------------------------------------
# MAR
# ----------------------------------------------------------------------
def test_mar_keeps_driver_columns_observed(gaussian_data):
    _, mask = amputate(gaussian_data, 'MAR', 0.3, rng=default_rng(4))
    fully_observed = ~mask.any(axis=0)
    # 30% of 10 columns drive the others
    assert fully_observed.sum() >= 3

def test_mar_high_rate_reduces_drivers(gaussian_data):
    _, mask = amputate(gaussian_data, 'MAR', 0.7, rng=default_rng(5))
    # 0.7 * 10 / 7 = 1.0 > 0.9, so fewer drivers are kept
    assert (~mask.any(axis=0)).sum() < 3
    assert abs(mask.mean() - 0.7) < 0.05

def test_mar_unreachable_rate_warns(caplog):
    data = generate_data(n=300, p=2, rng=default_rng(6))
    with caplog.at_level(logging.WARNING):
        _, mask = amputate(data, 'MAR', 0.6, rng=default_rng(6))
    assert "not reachable" in caplog.text
    assert (~mask).any(axis=0).all()

def test_mar_single_column_raises():
    data = generate_data(n=50, p=1, rng=default_rng(0))
    with pytest.raises(ValueError, match="at least 2 columns"):
        amputate(data, 'MAR', 0.2)

def test_mar_depends_on_observed_values():
    """Removal in the amputated column tracks the driver column."""
    rng = default_rng(11)
    x = rng.standard_normal(4000)
    data = pd.DataFrame({'a': x, 'b': x + 0.1 * rng.standard_normal(4000)})
    _, mask = MARPattern().apply(data, 0.3, rng=default_rng(12))
    driver = int(np.where(~mask.any(axis=0))[0][0])
    amputated = 1 - driver
    col = data.iloc[:, driver].to_numpy()
    high = mask[col > np.median(col), amputated].mean()
    low = mask[col <= np.median(col), amputated].mean()
    assert abs(high - low) > 0.05

# ----------------------------------------------------------------------
# MNAR
# ----------------------------------------------------------------------
@pytest.mark.parametrize("model", ['self_masked', 'logistic'])
def test_mnar_models_hit_rate(gaussian_data, model):
    _, mask = MNARPattern(model=model).apply(gaussian_data, 0.4, rng=default_rng(9))
    assert abs(mask.mean() - 0.4) < 0.05
    assert (~mask).any(axis=0).all()

def test_mnar_unknown_model_raises():
    with pytest.raises(ValueError, match="Unknown MNAR model"):
        MNARPattern(model='quantile')

def test_mnar_self_masked_single_column():
    data = generate_data(n=200, p=1, rng=default_rng(0))
    _, mask = amputate(data, 'MNAR', 0.3, rng=default_rng(1))
    assert 0 < mask.sum() < 200

# ----------------------------------------------------------------------
# Edge-case policy and helpers
# ----------------------------------------------------------------------
def test_tiny_dataset_keeps_one_observed_per_column():
    data = pd.DataFrame({'a': [1.0, 2.0], 'b': [3.0, 5.0]})
    for seed in range(20):
        _, mask = amputate(data, 'MCAR', 0.9, rng=default_rng(seed))
        assert (~mask).any(axis=0).all()
        assert mask.any()

def test_enforce_mask_policy_unmasks_lowest_propensity():
    mask = np.array([[True, False], [True, False], [True, True]])
    propensity = np.array([[0.9, 0.1], [0.2, 0.1], [0.5, 0.1]])
    fixed = enforce_mask_policy(mask, propensity, np.ones(2, dtype=bool))
    assert not fixed[1, 0]
    assert fixed[0, 0] and fixed[2, 0]

def test_enforce_mask_policy_fills_empty_mask():
    mask = np.zeros((3, 2), dtype=bool)
    propensity = np.array([[0.1, 0.0], [0.3, 0.0], [0.2, 0.0]])
    eligible = np.array([True, False])
    fixed = enforce_mask_policy(mask, propensity, eligible)
    assert fixed.sum() == 1 and fixed[1, 0]

def test_fit_intercepts_matches_rate():
    linear = default_rng(0).standard_normal((1000, 3))
    intercepts = fit_intercepts(linear, 0.25)
    assert np.allclose(expit(linear + intercepts).mean(axis=0), 0.25, atol=1e-6)

def test_too_few_rows_raises():
    with pytest.raises(ValueError, match="at least 2 rows"):
        amputate(pd.DataFrame({'a': [1.0]}), 'MCAR', 0.5)
