import pytest
import pandas as pd
import numpy as np
import sys
import os
import logging
from numpy.random import default_rng

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.benchmark.data_generators import block_covariance, generate_data
from src.pipeline.benchmark.datasets import (
    list_datasets, load_csv, load_dataset, scale_columns, validate_dataset
)

def test_generate_data_shape_and_moments():
    data = generate_data(n=5000, p=4, rng=default_rng(0))
    assert data.shape == (5000, 4)
    assert list(data.columns) == ['X1', 'X2', 'X3', 'X4']
    assert np.allclose(data.mean(), 1.0, atol=0.1)
    assert np.allclose(np.cov(data.to_numpy(), rowvar=False), block_covariance(4), atol=0.1)

def test_block_covariance():
    sigma = block_covariance(3)
    assert np.allclose(np.diag(sigma), 1.0)
    assert sigma[0, 1] == pytest.approx(0.5)

def test_generate_data_invalid_size():
    with pytest.raises(ValueError, match="positive"):
        generate_data(n=0, p=3)

def test_generate_data_reproducible():
    pd.testing.assert_frame_equal(generate_data(n=20, p=3, rng=default_rng(9)),
                                  generate_data(n=20, p=3, rng=default_rng(9)))

@pytest.mark.parametrize("name", ['diabetes', 'wine', 'breast_cancer', 'iris'])
def test_bundled_datasets_are_valid(name):
    data = load_dataset(name)
    validated = validate_dataset(data)
    assert validated.shape == data.shape
    assert not validated.isna().any().any()

def test_load_dataset_gaussian_defaults():
    data = load_dataset('gaussian')
    assert data.shape == (1000, 10)
    assert 'gaussian' in list_datasets()

def test_load_dataset_unknown():
    with pytest.raises(KeyError, match="Unknown dataset"):
        load_dataset('mnist')

def test_load_csv_infers_separator_and_drops(tmp_path, caplog):
    path = tmp_path / 'table.tsv'
    path.write_text("a\tb\tlabel\n1\t2\tx\n3\t\ty\n5\t6\tz\n")
    with caplog.at_level(logging.INFO):
        data = load_csv(path)
    assert list(data.columns) == ['a', 'b']
    assert len(data) == 2
    assert "Dropping non-numeric columns" in caplog.text
    assert "Dropped 1 incomplete rows" in caplog.text

def test_load_csv_comma(tmp_path):
    path = tmp_path / 'table.csv'
    path.write_text("a,b\n1,2\n3,4\n")
    data = load_csv(path)
    assert data.shape == (2, 2)
    assert data['b'].dtype == float

def test_validate_dataset_array_input():
    data = validate_dataset(np.array([[1.0, 2.0], [3.0, 5.0]]))
    assert list(data.columns) == ['X1', 'X2']

@pytest.mark.parametrize("data, message", [
    (pd.DataFrame(), "empty"),
    (pd.DataFrame({'a': [1.0]}), "at least 2 rows"),
    (pd.DataFrame({'a': [1.0, 2.0], 'b': ['x', 'y']}), "non-numeric"),
    (pd.DataFrame({'a': [1.0, np.nan, 3.0]}), "missing values"),
    (pd.DataFrame({'a': [1.0, 2.0], 'b': [4.0, 4.0]}), "zero-variance"),
])
def test_validate_dataset_rejects(data, message):
    with pytest.raises(ValueError, match=message):
        validate_dataset(data)

def test_scale_columns():
    scaled = scale_columns(generate_data(n=100, p=3, rng=default_rng(0)))
    assert np.allclose(scaled.mean(), 0.0)
    assert np.allclose(scaled.std(ddof=0), 1.0)
