"""Benchmark framework for missing value imputation methods.

This package amputates a complete numeric table under MCAR, MAR and MNAR
mechanisms at several rates, imputes it with a set of methods and scores
each method by its reconstruction error on the removed entries.

Basic Usage
-----------
>>> from src.pipeline.benchmark import BenchmarkStudy, load_dataset
>>> from src.pipeline.benchmark import MeanImputation, SoftImputeImputation
>>>
>>> data = load_dataset('gaussian')
>>> study = BenchmarkStudy(data, percentages=[0.2, 0.5], mechanisms=['MCAR', 'MAR'], nbsim=2,
...                        imputation_methods=[MeanImputation(), SoftImputeImputation()], seed=123)
>>> results_all, results_table = study.run_all()
>>> print(results_table)

Modules
-------
data_generators : Synthetic Gaussian data
datasets : Named datasets, CSV loading and validation
missingness_patterns : Amputation (MCAR, MAR, MNAR)
matrix_completion : Soft-thresholded SVD and iterative PCA kernels
cross_validation : Parameter selection for the low-rank methods
imputation_methods : Imputation method classes
evaluator : Reconstruction error
simulator : Study orchestration
"""

from .data_generators import generate_data
from .datasets import list_datasets, load_dataset, load_csv, validate_dataset
from .exceptions import ImputationError
from .missingness_patterns import (
    MissingnessPattern,
    MCARPattern,
    MARPattern,
    MNARPattern,
    amputate,
    get_pattern,
    list_mechanisms
)
from .imputation_methods import (
    ImputationMethod,
    MeanImputation,
    SoftImputeImputation,
    MICEImputation,
    MissForestImputation,
    IterativePCAImputation,
    build_imputation_method,
    default_methods,
    list_methods
)
from .evaluator import mse
from .simulator import BenchmarkStudy

__version__ = '1.0.0'

__all__ = [
    # Data
    'generate_data',
    'list_datasets',
    'load_dataset',
    'load_csv',
    'validate_dataset',

    # Abstract base classes
    'MissingnessPattern',
    'ImputationMethod',

    # Amputation
    'MCARPattern',
    'MARPattern',
    'MNARPattern',
    'amputate',
    'get_pattern',
    'list_mechanisms',

    # Imputation methods
    'MeanImputation',
    'SoftImputeImputation',
    'MICEImputation',
    'MissForestImputation',
    'IterativePCAImputation',
    'build_imputation_method',
    'default_methods',
    'list_methods',

    # Evaluation and benchmark
    'ImputationError',
    'mse',
    'BenchmarkStudy',
]
