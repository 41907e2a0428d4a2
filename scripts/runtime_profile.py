"""
Runtime profiling of the imputation methods.

Times every registered imputation method on Gaussian datasets of increasing
size (MCAR, 30% missing) and saves the timings to docs/runtime_results.csv.
"""

import time
import warnings
import pandas as pd
from pathlib import Path
import sys
import os
import logging
import argparse
from numpy.random import default_rng

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from src.pipeline.benchmark.data_generators import generate_data
from src.pipeline.benchmark.evaluator import mse
from src.pipeline.benchmark.imputation_methods import build_imputation_method, list_methods
from src.pipeline.benchmark.missingness_patterns import amputate

logging.basicConfig(level=logging.WARNING)  # Suppress INFO logs

SIZES = [
    {'name': 'Small', 'n': 100, 'p': 5},
    {'name': 'Medium', 'n': 500, 'p': 10},
    {'name': 'Large', 'n': 2000, 'p': 20},
]

def time_method(method_name, data, dat_miss, mask, rng):
    """Impute once and return (runtime, error, number of warnings raised)."""
    method = build_imputation_method(method_name)
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        start_time = time.time()
        imputed = method.impute(dat_miss, rng=rng)
        runtime = time.time() - start_time
    return runtime, mse(imputed, data, mask), len(w)

def profile_runtime(sizes=SIZES, methods=None, percentage=0.3, seed=42, output_path='docs/runtime_results.csv'):
    """Run the timings and return them as a DataFrame."""
    methods = methods or list_methods()
    rng = default_rng(seed)
    results = []

    print("=" * 80)
    print("RUNTIME PROFILE: IMPUTATION METHODS")
    print("=" * 80)

    for size, size_rng in zip(sizes, rng.spawn(len(sizes))):
        data_rng, amputation_rng, method_rng = size_rng.spawn(3)
        data = generate_data(n=size['n'], p=size['p'], rng=data_rng)
        dat_miss, mask = amputate(data, 'MCAR', percentage, rng=amputation_rng)
        print(f"\n{size['name']} (n={size['n']}, p={size['p']})")

        for method_name, run_rng in zip(methods, method_rng.spawn(len(methods))):
            print(f"  {method_name:15s}", end=' ', flush=True)
            try:
                runtime, error, n_warnings = time_method(method_name, data, dat_miss, mask, run_rng)
            except Exception as e:
                results.append({'size': size['name'], 'n': size['n'], 'p': size['p'], 'method': method_name,
                                'runtime': float('nan'), 'mse': float('nan'), 'warnings': 0,
                                'success': False, 'error': str(e)})
                print(f"ERROR: {e}")
                continue
            results.append({'size': size['name'], 'n': size['n'], 'p': size['p'], 'method': method_name,
                            'runtime': runtime, 'mse': error, 'warnings': n_warnings,
                            'success': True, 'error': ''})
            print(f"{runtime:8.2f}s  mse={error:.4f}  warnings={n_warnings}")

    df = pd.DataFrame(results)
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)

    print("\n" + "=" * 80)
    print("RUNTIME SUMMARY (seconds)")
    print("=" * 80)
    successful = df[df['success']]
    if not successful.empty:
        print(successful.pivot_table(index='method', columns='n', values='runtime').round(2).to_string())
    if not df['success'].all():
        print(f"\nFailed runs: {int((~df['success']).sum())}")
    print(f"\nResults saved to {output_path}")
    return df

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Time each imputation method on datasets of increasing size')
    parser.add_argument('--methods', nargs='+', default=None, help=f'Methods to time (default: all of {list_methods()})')
    parser.add_argument('--seed', type=int, default=42)
    args = parser.parse_args()
    profile_runtime(methods=args.methods, seed=args.seed)
