import os
import json
import logging
import argparse
from pathlib import Path
from src.pipeline.benchmark.datasets import load_csv, load_dataset
from src.pipeline.benchmark.imputation_methods import build_imputation_method, default_methods
from src.pipeline.benchmark.simulator import BenchmarkStudy
from numpy.random import default_rng

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('benchmark.log.txt'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger()

def load_config(config_path):
    """
    Load benchmark configuration from a JSON file.

    Parameters:
    -----------
    config_path : str or Path
        Path to the JSON configuration file

    Returns:
    --------
    dict : Configuration dictionary with benchmark parameters

    Example JSON structure:
    {
        "dataset": "gaussian",
        "percentages": [0.2, 0.5, 0.7],
        "mechanisms": ["MCAR", "MAR", "MNAR"],
        "nbsim": 10,
        "scale": false,
        "seed": 123,
        "n_jobs": 4,
        "methods": ["mean", "soft_impute", "mice", "missforest", "iterative_pca"]
    }
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = json.load(f)

    # Validate required keys
    required_keys = ['dataset', 'percentages', 'mechanisms', 'nbsim', 'scale', 'seed']
    missing_keys = [key for key in required_keys if key not in config]
    if missing_keys:
        raise ValueError(f"Missing required configuration keys: {missing_keys}")

    # Ensure list types for parameters that should be lists
    for param in ['percentages', 'mechanisms']:
        if not isinstance(config[param], list):
            config[param] = [config[param]]

    logger.info(f"Loaded configuration from {config_path}")
    return config

def dataset_path(dataset):
    """Path part of a dataset location, without any URL query string."""
    return str(dataset).split('?')[0]

def resolve_dataset(dataset, rng):
    """A dataset name from ``load_dataset``, or a path/URL to a CSV or TSV file."""
    if dataset_path(dataset).lower().endswith(('.csv', '.tsv', '.tab', '.txt')):
        return load_csv(dataset)
    return load_dataset(dataset, rng=rng)

def resolve_methods(methods):
    """Build imputation methods from names or ``{"name": ..., **params}`` dicts."""
    if methods is None:
        return default_methods()
    resolved = []
    for entry in methods:
        if isinstance(entry, dict):
            params = dict(entry)
            resolved.append(build_imputation_method(params.pop('name'), **params))
        else:
            resolved.append(build_imputation_method(entry))
    return resolved

def run_benchmark(
    config_file=None,
    dataset='gaussian',
    percentages=[0.2, 0.5, 0.7],
    mechanisms=['MCAR', 'MAR', 'MNAR'],
    nbsim=10,
    scale=False,
    seed=123,
    n_jobs=1,
    methods=None,
    mnar_model='self_masked',
    output_dir='results/report/'
):
    """
    Run the full benchmark: every method on every (percentage, mechanism) pair, nbsim times.

    Parameters can be provided either via a JSON config file or directly as function arguments.
    If config_file is provided, its values take precedence over direct arguments.

    Parameters:
    -----------
    config_file : str or Path, optional
        Path to JSON configuration file
    dataset : str, default='gaussian'
        Dataset name (see ``list_datasets``) or path/URL of a CSV/TSV file
    percentages : list, default=[0.2, 0.5, 0.7]
        Missingness rates to test
    mechanisms : list, default=['MCAR', 'MAR', 'MNAR']
        Missingness mechanisms to test
    nbsim : int, default=10
        Number of repetitions per (percentage, mechanism) pair
    scale : bool, default=False
        Standardize the columns before amputation
    seed : int, default=123
        Random seed
    n_jobs : int, default=1
        Number of worker processes
    methods : list, optional
        Method names or dicts with a 'name' key and constructor parameters;
        defaults to all registered methods
    mnar_model : str, default='self_masked'
        MNAR model, 'self_masked' or 'logistic'
    output_dir : str, default='results/report/'
        Parent directory of the report folder

    Returns:
    --------
    results_all : DataFrame
        One row per (percentage, mechanism, repetition, method)
    results_table : DataFrame
        Methods x (percentage, mechanism) averaged errors

    Example:
    --------
    # Using JSON config file
    results_all, results_table = run_benchmark(config_file='config.json')

    # Using direct parameters
    results_all, results_table = run_benchmark(dataset='wine', percentages=[0.3], nbsim=2)
    """
    # Load configuration from JSON file if provided
    if config_file is not None:
        config = load_config(config_file)
        dataset = config['dataset']
        percentages = config['percentages']
        mechanisms = config['mechanisms']
        nbsim = config['nbsim']
        scale = config['scale']
        seed = config['seed']
        n_jobs = config.get('n_jobs', n_jobs)
        methods = config.get('methods', methods)
        mnar_model = config.get('mnar_model', mnar_model)
        output_dir = config.get('output_dir', output_dir)

    logger.info(f"Starting benchmark on dataset={dataset} with seed={seed}")

    parent_rng = default_rng(seed)
    data_rng, study_rng = parent_rng.spawn(2)
    data = resolve_dataset(dataset, data_rng)

    study = BenchmarkStudy(
        data, percentages=percentages, mechanisms=mechanisms, nbsim=nbsim,
        imputation_methods=resolve_methods(methods), scale=scale, n_jobs=n_jobs,
        mnar_model=mnar_model, rng=study_rng
    )
    results_all, results_table = study.run_all()
    results_averaged = study.averaged_results(results_all)

    dataset_name = Path(dataset_path(dataset)).stem
    pct_part = '_'.join(str(pct) for pct in study.percentages)
    mech_part = '_'.join(study.mechanisms)
    report_dir = os.path.join(output_dir, f'{dataset_name}_nbsim_{study.nbsim}_pct_{pct_part}_mech_{mech_part}_scale_{int(bool(scale))}')
    os.makedirs(report_dir, exist_ok=True)

    results_all.to_csv(os.path.join(report_dir, 'results_all_runs.csv'), index=False)
    logger.info(f"Saved all runs results to {os.path.join(report_dir, 'results_all_runs.csv')}")

    results_table.to_csv(os.path.join(report_dir, 'results_table.csv'))
    logger.info(f"Saved results table to {os.path.join(report_dir, 'results_table.csv')}")

    results_averaged.to_csv(os.path.join(report_dir, 'results_averaged.csv'), index=False)
    logger.info(f"Saved averaged results to {os.path.join(report_dir, 'results_averaged.csv')}")

    logger.info(f"Benchmark complete. Results saved in {report_dir}")
    return results_all, results_table

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Benchmark imputation methods on amputated data')
    parser.add_argument('--config', type=str, default=None, help='Path to JSON configuration file')
    args = parser.parse_args()

    if args.config:
        results_all, results_table = run_benchmark(config_file=args.config)
    else:
        results_all, results_table = run_benchmark(nbsim=2)
    print(results_table.round(4).to_string())
