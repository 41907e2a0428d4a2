"""
Demo script for the imputation benchmark.

This script demonstrates basic usage of the benchmark framework with small examples.
It amputates a dataset, imputes it with several methods and prints the errors.
"""

import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from src.pipeline.benchmark.datasets import load_dataset, scale_columns
from src.pipeline.benchmark.evaluator import mse
from src.pipeline.benchmark.missingness_patterns import MCARPattern, MARPattern, MNARPattern
from src.pipeline.benchmark.imputation_methods import (
    MeanImputation, SoftImputeImputation, IterativePCAImputation, MissForestImputation
)
from src.pipeline.benchmark.simulator import BenchmarkStudy
from numpy.random import default_rng

def demo_single_amputation():
    """
    Amputate once and compare methods on the same incomplete table.

    This demonstrates:
    - Applying a missingness pattern
    - Imputing with several methods
    - Scoring on the removed entries
    """
    print("=" * 70)
    print("DEMO: One Amputation, Several Methods")
    print("=" * 70)
    print()

    rng = default_rng(42)
    data = load_dataset('gaussian', rng=rng, n=300, p=8)
    dat_miss, mask = MCARPattern().apply(data, 0.3, rng=rng)
    print(f"Dataset shape: {data.shape}, removed entries: {mask.sum()} ({mask.mean():.1%})")
    print()

    methods = [MeanImputation(), SoftImputeImputation(), IterativePCAImputation(),
               MissForestImputation(n_estimators=50)]
    print("Errors on removed entries (lower is better):")
    print("-" * 70)
    errors = {}
    for method in methods:
        imputed = method.impute(dat_miss, rng=rng)
        errors[method.name] = mse(imputed, data, mask)
        print(f"  {method.name:30s}: {errors[method.name]:.6f}")
    print()
    return errors

def demo_multiple_patterns():
    """
    Test the same imputation method across the three mechanisms.
    """
    print("=" * 70)
    print("DEMO: Testing Across Missingness Mechanisms")
    print("=" * 70)
    print()

    data = scale_columns(load_dataset('wine'))
    method = SoftImputeImputation()
    print(f"Imputation Method: {method.name}")
    print()

    errors = {}
    for pattern in [MCARPattern(), MARPattern(), MNARPattern()]:
        rng = default_rng(42)
        dat_miss, mask = pattern.apply(data, 0.3, rng=rng)
        imputed = method.impute(dat_miss, rng=rng)
        errors[pattern.name] = mse(imputed, data, mask)
        print(f"  {pattern.name:30s}: {errors[pattern.name]:.6f}")
    print()
    return errors

def demo_small_benchmark():
    """
    Run a small benchmark and print the result table.
    """
    print("=" * 70)
    print("DEMO: Small Benchmark")
    print("=" * 70)
    print()

    data = load_dataset('iris')
    study = BenchmarkStudy(
        data, percentages=[0.1, 0.3], mechanisms=['MCAR', 'MNAR'], nbsim=2,
        imputation_methods=[MeanImputation(), SoftImputeImputation(), IterativePCAImputation()],
        scale=True, seed=42
    )
    results_all, results_table = study.run_all()
    print(results_table.round(4).to_string())
    print()
    return results_table

def main():
    """
    Main demo function that runs all demonstrations.
    """
    print()
    print("Imputation Benchmark - Demo Script")
    print()
    print("For full benchmarks, use 'run_benchmark.py --config <file>'.")
    print()

    demo_single_amputation()
    print("\n" + "=" * 70 + "\n")
    demo_multiple_patterns()
    print("\n" + "=" * 70 + "\n")
    demo_small_benchmark()

    print("=" * 70)
    print("Demo complete!")
    print("=" * 70)
    print()
    print("Next steps:")
    print("  - Run a benchmark: python run_benchmark.py --config config/benchmark.json")
    print("  - Build the report: python -m src.analysis.report_benchmark --latest")
    print()

if __name__ == "__main__":
    main()
