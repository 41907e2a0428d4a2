import os
import sys
import argparse
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
import logging
from pathlib import Path

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Locating reports ---

def has_results(report_dir):
    """True when ``report_dir`` holds a non-empty results_averaged.csv written by run_benchmark."""
    results_file = Path(report_dir) / 'results_averaged.csv'
    return results_file.is_file() and results_file.stat().st_size > 0

def discover_report_dirs(base_dir='results/report/', use_latest_only=False):
    """
    Report folders under ``base_dir``, sorted by name.

    run_benchmark names its folders ``<dataset>_nbsim_<k>_pct_..._mech_..._scale_<0|1>``;
    folders without results are skipped. With ``use_latest_only`` only the
    folder whose results were written last is returned.
    """
    base_path = Path(base_dir)
    if not base_path.is_dir():
        logger.error(f"Report base directory does not exist: {base_dir}")
        return []

    candidates = sorted(d for d in base_path.glob('*_nbsim_*') if d.is_dir())
    report_dirs = [d for d in candidates if has_results(d)]
    skipped = len(candidates) - len(report_dirs)
    if skipped:
        logger.info(f"Skipping {skipped} report folder(s) without results_averaged.csv in {base_dir}")
    if not report_dirs:
        logger.error(f"No benchmark reports with results in {base_dir}")
        return []

    if use_latest_only:
        latest = max(report_dirs, key=lambda d: (d / 'results_averaged.csv').stat().st_mtime)
        logger.info(f"Latest report: {latest.name}")
        return [str(latest)]
    logger.info(f"{len(report_dirs)} report(s) found: {', '.join(d.name for d in report_dirs)}")
    return [str(d) for d in report_dirs]

def resolve_report_dirs(dir_args, base_dir='results/report/'):
    """
    Turn ``--dir`` arguments into report folders.

    Relative names are looked up under ``base_dir`` first, then against the
    working directory. Raises FileNotFoundError for a folder that does not
    exist or has no results.
    """
    report_dirs = []
    for dir_arg in dir_args:
        path = Path(dir_arg)
        if not path.is_absolute() and (Path(base_dir) / path).is_dir():
            path = Path(base_dir) / path
        if not path.is_dir():
            raise FileNotFoundError(f"Report directory not found: {dir_arg}")
        if not has_results(path):
            raise FileNotFoundError(f"No results_averaged.csv in report directory {path}")
        report_dirs.append(str(path))
    return report_dirs

def load_results(report_dir):
    """Load results_all_runs.csv and results_averaged.csv from a report directory."""
    results_all_path = os.path.join(report_dir, 'results_all_runs.csv')
    results_avg_path = os.path.join(report_dir, 'results_averaged.csv')
    if not os.path.exists(results_all_path):
        logger.warning(f"Missing results_all_runs.csv in {report_dir}")
        return None, None
    results_all = pd.read_csv(results_all_path)
    results_avg = pd.read_csv(results_avg_path) if os.path.exists(results_avg_path) else None

    missing = [col for col in ['percentage', 'mechanism', 'method', 'mse'] if col not in results_all.columns]
    if missing:
        logger.warning(f"Results file in {report_dir} is missing columns {missing}.")

    return results_all, results_avg

# --- Statistical Tests ---

def perform_statistical_tests(results_all):
    """One-way ANOVA per (percentage, mechanism): do the methods' errors differ across repetitions?"""
    tests = []
    for (percentage, mechanism), group in results_all.groupby(['percentage', 'mechanism']):
        samples = [g['mse'].dropna() for _, g in group.groupby('method')]
        samples = [s for s in samples if len(s) > 1]
        if len(samples) < 2:
            logger.warning(f"Not enough repetitions to run ANOVA for {mechanism} at {percentage}.")
            continue
        f_stat, p_value = stats.f_oneway(*samples)
        tests.append({'percentage': percentage, 'mechanism': mechanism, 'f_stat': f_stat, 'p_value': p_value})
        logger.info(f"ANOVA for {mechanism} at {percentage}: F={f_stat:.2f}, p={p_value:.3f}")
    return pd.DataFrame(tests, columns=['percentage', 'mechanism', 'f_stat', 'p_value'])

# --- Plots ---

def plot_error_curves(results_all, path):
    """Error against missingness percentage, one line per method and one panel per mechanism."""
    row = 'source' if results_all['source'].nunique() > 1 else None
    grid = sns.relplot(
        data=results_all, x='percentage', y='mse', hue='method', style='method',
        col='mechanism', row=row, kind='line', markers=True, errorbar='sd',
        facet_kws={'sharey': False}, height=4, aspect=1.1
    )
    grid.set_axis_labels('Missingness percentage', 'Reconstruction error (lower is better)')
    grid.figure.suptitle('Imputation error by missingness mechanism', y=1.03)
    grid.savefig(path, dpi=300, bbox_inches='tight')
    plt.close(grid.figure)

def plot_error_heatmap(results_avg, path):
    """Heatmap of the result table: methods in rows, (mechanism, percentage) in columns."""
    table = results_avg.groupby(['method', 'mechanism', 'percentage'])['mse_mean'].mean().unstack(['mechanism', 'percentage'])
    plt.figure(figsize=(max(8, 1.2 * table.shape[1]), max(4, 0.8 * table.shape[0])))
    sns.heatmap(
        table, annot=True, fmt=".3f", cmap='viridis_r', linewidths=.5,
        cbar_kws={'label': 'Mean reconstruction error'}
    )
    plt.title('Mean Imputation Error by Mechanism and Percentage')
    plt.xticks(rotation=45, ha='right')
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()

# --- Main Report Function ---

def report_benchmark(report_dirs, tables_dir='results/tables/', figures_dir='results/figures/'):
    """
    Combine benchmark reports, write summary tables and figures.

    Returns a dict of the written file paths, or None when nothing could be loaded.
    """
    all_results = []
    all_results_avg = []

    for report_dir in report_dirs:
        results_all, results_avg = load_results(report_dir)
        if results_all is None or results_avg is None:
            logger.warning(f"Skipping {report_dir} due to missing or invalid results")
            continue
        source = os.path.basename(os.path.normpath(report_dir)).split('_nbsim_')[0]
        results_all['source'] = source
        results_avg['source'] = source
        all_results.append(results_all)
        all_results_avg.append(results_avg)

    if not all_results:
        logger.error("No valid results found.")
        return None

    combined_all = pd.concat(all_results, ignore_index=True)
    combined_avg = pd.concat(all_results_avg, ignore_index=True)
    logger.info(f"Combined results shape: {combined_all.shape}")

    os.makedirs(tables_dir, exist_ok=True)
    outputs = {
        'averaged': os.path.join(tables_dir, 'combined_results_averaged.csv'),
        'tests': os.path.join(tables_dir, 'statistical_tests.csv'),
    }
    combined_avg.to_csv(outputs['averaged'], index=False)
    perform_statistical_tests(combined_all).to_csv(outputs['tests'], index=False)

    os.makedirs(figures_dir, exist_ok=True)
    outputs['curves'] = os.path.join(figures_dir, 'mse_vs_percentage.png')
    outputs['heatmap'] = os.path.join(figures_dir, 'mse_heatmap_methods_vs_scenario.png')

    logger.info("Generating error curves...")
    plot_error_curves(combined_all, outputs['curves'])
    logger.info("Generating error heatmap...")
    plot_error_heatmap(combined_avg, outputs['heatmap'])

    logger.info(f"Analysis complete. Tables in {tables_dir}, figures in {figures_dir}")
    return outputs

def main(argv=None):
    """Command line entry point; returns the written file paths, or None when nothing was reported."""
    parser = argparse.ArgumentParser(description='Tables and figures from imputation benchmark reports')
    parser.add_argument('--latest', '-l', action='store_true',
                        help='only the report written last')
    parser.add_argument('--dir', '-d', nargs='+', default=None,
                        help='report folder(s), by name under --base-dir or by path')
    parser.add_argument('--base-dir', default='results/report/',
                        help='folder holding the benchmark reports (default: results/report/)')
    parser.add_argument('--tables-dir', default='results/tables/')
    parser.add_argument('--figures-dir', default='results/figures/')
    args = parser.parse_args(argv)

    if args.dir:
        report_dirs = resolve_report_dirs(args.dir, args.base_dir)
    else:
        report_dirs = discover_report_dirs(args.base_dir, use_latest_only=args.latest)
    if not report_dirs:
        logger.error("Nothing to report. Run 'python run_benchmark.py' to produce benchmark results first.")
        return None
    return report_benchmark(report_dirs, tables_dir=args.tables_dir, figures_dir=args.figures_dir)

if __name__ == "__main__":
    if main() is None:
        sys.exit(1)
