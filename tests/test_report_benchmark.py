import os
import sys
import pytest
import logging
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.analysis.report_benchmark import (
    discover_report_dirs, load_results, main, perform_statistical_tests, report_benchmark, resolve_report_dirs
)
from src.pipeline.benchmark.simulator import average_results

# Configure logging for testing
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

def make_results_all(seed=0, nbsim=3):
    """Per-repetition records shaped like BenchmarkStudy.run_all output."""
    rng = np.random.default_rng(seed)
    rows = []
    for pct in [0.2, 0.5]:
        for mech in ['MCAR', 'MAR']:
            for rep in range(nbsim):
                for method, offset in [('mean', 1.0), ('soft_impute', 0.6)]:
                    rows.append({'percentage': pct, 'mechanism': mech, 'repetition': rep, 'method': method,
                                 'mse': offset + pct + 0.05 * rng.standard_normal(), 'status': 'ok'})
    return pd.DataFrame(rows)

def write_report(report_dir, results_all):
    os.makedirs(report_dir, exist_ok=True)
    results_all.to_csv(os.path.join(report_dir, 'results_all_runs.csv'), index=False)
    average_results(results_all).to_csv(os.path.join(report_dir, 'results_averaged.csv'), index=False)

# Fixture to set up a report directory structure
@pytest.fixture
def report_base(tmp_path):
    base = tmp_path / "results" / "report"
    base.mkdir(parents=True)
    return base

# Test discovery ignores directories without results
def test_discover_report_dirs(report_base):
    write_report(report_base / "gaussian_nbsim_3_pct_0.2_0.5", make_results_all())
    (report_base / "wine_nbsim_3_empty").mkdir()
    (report_base / "unrelated").mkdir()
    found = discover_report_dirs(str(report_base))
    assert [os.path.basename(d) for d in found] == ["gaussian_nbsim_3_pct_0.2_0.5"]

# Test latest-only discovery
def test_discover_latest(report_base):
    older = report_base / "iris_nbsim_3_a"
    newer = report_base / "wine_nbsim_3_b"
    write_report(older, make_results_all())
    write_report(newer, make_results_all())
    os.utime(older / 'results_averaged.csv', (1, 1))
    found = discover_report_dirs(str(report_base), use_latest_only=True)
    assert found == [str(newer)]

# Test error when the base directory is missing
def test_discover_missing_base(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        assert discover_report_dirs(str(tmp_path / "nothing")) == []
    assert any("does not exist" in record.message for record in caplog.records)

# Test warning for missing results_all_runs.csv
def test_missing_results_all_runs_csv(report_base, caplog):
    report_dir = report_base / "iris_nbsim_1_x"
    report_dir.mkdir()
    with caplog.at_level(logging.WARNING):
        results_all, results_avg = load_results(str(report_dir))
    assert results_all is None and results_avg is None
    assert any("Missing results_all_runs.csv in" in record.message for record in caplog.records)

# Test error when no valid results are found
def test_no_valid_results(report_base, caplog):
    with caplog.at_level(logging.ERROR):
        outputs = report_benchmark([str(report_base / "iris_nbsim_1_x")])
    assert outputs is None
    assert any("No valid" in record.message for record in caplog.records)

# Test ANOVA per scenario
def test_statistical_tests():
    tests = perform_statistical_tests(make_results_all(nbsim=5))
    assert len(tests) == 4
    assert (tests['p_value'] < 0.05).all()

def test_statistical_tests_need_repetitions(caplog):
    with caplog.at_level(logging.WARNING):
        tests = perform_statistical_tests(make_results_all(nbsim=1))
    assert tests.empty
    assert "Not enough repetitions" in caplog.text

# Test the full report writes tables and figures
def test_report_benchmark_outputs(report_base, tmp_path):
    write_report(report_base / "gaussian_nbsim_3_a", make_results_all(seed=1))
    write_report(report_base / "wine_nbsim_3_b", make_results_all(seed=2))
    report_dirs = discover_report_dirs(str(report_base))

    outputs = report_benchmark(report_dirs, tables_dir=str(tmp_path / "tables"),
                               figures_dir=str(tmp_path / "figures"))
    for path in outputs.values():
        assert os.path.exists(path)
    assert os.path.basename(outputs['curves']) == 'mse_vs_percentage.png'

    combined = pd.read_csv(outputs['averaged'])
    assert set(combined['source']) == {'gaussian', 'wine'}
    assert len(combined) == 2 * 8

# Test failed cells (NaN) do not break the report
def test_report_with_failed_method(report_base, tmp_path):
    results_all = make_results_all()
    failed = results_all['method'] == 'soft_impute'
    results_all.loc[failed, 'mse'] = np.nan
    results_all.loc[failed, 'status'] = 'failed'
    write_report(report_base / "iris_nbsim_3_c", results_all)

    outputs = report_benchmark([str(report_base / "iris_nbsim_3_c")], tables_dir=str(tmp_path / "tables"),
                               figures_dir=str(tmp_path / "figures"))
    assert os.path.exists(outputs['heatmap'])
    combined = pd.read_csv(outputs['averaged'])
    assert (combined.loc[combined['method'] == 'soft_impute', 'n_success'] == 0).all()

# Test --dir arguments are looked up under the base directory or taken as paths
def test_resolve_report_dirs(report_base, tmp_path):
    write_report(report_base / "iris_nbsim_3_a", make_results_all())
    elsewhere = tmp_path / "elsewhere" / "wine_nbsim_2_b"
    write_report(elsewhere, make_results_all())

    found = resolve_report_dirs(["iris_nbsim_3_a", str(elsewhere)], base_dir=str(report_base))
    assert found == [str(report_base / "iris_nbsim_3_a"), str(elsewhere)]

def test_resolve_report_dirs_errors(report_base):
    with pytest.raises(FileNotFoundError, match="not found"):
        resolve_report_dirs(["absent_nbsim_1"], base_dir=str(report_base))
    (report_base / "iris_nbsim_1_empty").mkdir()
    with pytest.raises(FileNotFoundError, match="No results_averaged.csv"):
        resolve_report_dirs(["iris_nbsim_1_empty"], base_dir=str(report_base))

# Test the command line entry point
def test_main_latest(report_base, tmp_path):
    write_report(report_base / "iris_nbsim_3_a", make_results_all(seed=3))
    outputs = main(['--latest', '--base-dir', str(report_base),
                    '--tables-dir', str(tmp_path / "tables"), '--figures-dir', str(tmp_path / "figures")])
    assert set(outputs) == {'averaged', 'tests', 'curves', 'heatmap'}
    assert set(pd.read_csv(outputs['averaged'])['source']) == {'iris'}

def test_main_without_reports(report_base, caplog):
    with caplog.at_level(logging.ERROR):
        assert main(['--base-dir', str(report_base)]) is None
    assert "Nothing to report" in caplog.text
