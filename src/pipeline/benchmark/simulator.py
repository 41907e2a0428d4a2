"""Benchmark study orchestration."""

import logging
from itertools import product
from multiprocessing import Pool

import numpy as np
import pandas as pd
from numpy.random import default_rng
from tqdm import tqdm

from src.pipeline.benchmark.datasets import scale_columns, validate_dataset
from src.pipeline.benchmark.evaluator import mse, summarize_scores
from src.pipeline.benchmark.imputation_methods import default_methods
from src.pipeline.benchmark.missingness_patterns import get_pattern

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ['percentage', 'mechanism', 'repetition', 'method', 'mse', 'status']

def impute_with_fallback(method, dat_miss, rng):
    """
    Run one imputation, retrying once with ``method.fallback()`` on failure.

    Returns:
    - imputed: completed data, or None when both attempts failed
    - status: 'ok', 'fallback' or 'failed'
    """
    try:
        return method.impute(dat_miss, rng=rng), 'ok'
    except Exception as e:
        logger.warning(f"{method.name} failed ({type(e).__name__}: {e})")

    fallback = method.fallback()
    if fallback is None:
        return None, 'failed'
    try:
        imputed = fallback.impute(dat_miss, rng=rng.spawn(1)[0])
    except Exception as e:
        logger.warning(f"{method.name} fallback failed ({type(e).__name__}: {e}); recording NaN")
        return None, 'failed'
    logger.info(f"{method.name} completed with fallback parameters")
    return imputed, 'fallback'

def run_repetition(data, pattern, percentage, imputation_methods, rng):
    """
    Amputate ``data`` once and score every method on the same incomplete table.

    Returns a list of records with keys method, mse, status.
    """
    amputation_rng, *method_rngs = rng.spawn(1 + len(imputation_methods))
    dat_miss, mask = pattern.apply(data, percentage, rng=amputation_rng)

    records = []
    for method, method_rng in zip(imputation_methods, method_rngs):
        imputed, status = impute_with_fallback(method, dat_miss, method_rng)
        # Metric errors propagate
        score = mse(imputed, data, mask) if imputed is not None else np.nan
        records.append({'method': method.name, 'mse': score, 'status': status})
    return records

def run_single_repetition(args):
    """Run a single (percentage, mechanism, repetition) task. Used for parallelization across tasks."""
    data, pattern, percentage, repetition, imputation_methods, task_rng = args
    logger.debug(f"Running {pattern.name} at {percentage:.0%}, repetition {repetition}")
    records = run_repetition(data, pattern, percentage, imputation_methods, task_rng)
    for record in records:
        record.update({'percentage': percentage, 'mechanism': pattern.name, 'repetition': repetition})
    return pd.DataFrame(records, columns=RESULT_COLUMNS)

def build_results_table(results_all, methods, percentages, mechanisms):
    """
    Pivot per-repetition records into the method x (percentage, mechanism) table.

    Cells average the successful repetitions and are NaN when every
    repetition failed.
    """
    means = results_all.groupby(['method', 'percentage', 'mechanism'], sort=False)['mse'].mean()
    table = means.unstack(['percentage', 'mechanism'])
    columns = pd.MultiIndex.from_product([list(percentages), list(mechanisms)],
                                         names=['percentage', 'mechanism'])
    table = table.reindex(index=list(methods), columns=columns)
    table.index.name = 'method'
    return table

def average_results(results_all):
    """Mean, spread across repetitions and success count per (percentage, mechanism, method)."""
    keys = ['percentage', 'mechanism', 'method']
    rows = []
    for (percentage, mechanism, method), group in results_all.groupby(keys, sort=False):
        summary = summarize_scores(group['mse'])
        summary['n_fallback'] = int((group['status'] == 'fallback').sum())
        rows.append({'percentage': percentage, 'mechanism': mechanism, 'method': method, **summary})
    return pd.DataFrame(rows, columns=keys + ['mse_mean', 'mse_std_runs', 'n_success', 'n_fallback'])

class BenchmarkStudy:
    """
    Compare imputation methods on one complete dataset.

    For every (percentage, mechanism) pair the dataset is amputated ``nbsim``
    times; each amputation is imputed by every method and scored with the
    masked reconstruction error.
    """

    def __init__(self, data, percentages=(0.2, 0.5, 0.7), mechanisms=('MCAR', 'MAR', 'MNAR'), nbsim=1,
                 imputation_methods=None, scale=False, n_jobs=1, mnar_model='self_masked', rng=None, seed=None):
        if rng is not None:
            self.rng = rng
        else:
            self.rng = default_rng(seed)
        self.seed = seed

        data = validate_dataset(data)
        self.data = scale_columns(data) if scale else data
        self.scale = scale

        if isinstance(percentages, (int, float)):
            percentages = [percentages]
        self.percentages = [float(pct) for pct in percentages]
        if not self.percentages:
            raise ValueError("percentages must contain at least one value.")
        for pct in self.percentages:
            if not 0 < pct < 1:
                raise ValueError(f"percentages must be in (0, 1). Got {pct}.")

        if isinstance(mechanisms, str):
            mechanisms = [mechanisms]
        if not mechanisms:
            raise ValueError("mechanisms must contain at least one name.")
        pattern_kwargs = {'MNAR': {'model': mnar_model}}
        self.patterns = []
        for mechanism in mechanisms:
            key = str(mechanism).strip().upper()
            self.patterns.append(get_pattern(key, **pattern_kwargs.get(key, {})))
        self.mechanisms = [pattern.name for pattern in self.patterns]
        if 'MAR' in self.mechanisms and self.data.shape[1] < 2:
            raise ValueError("MAR amputation needs at least 2 columns (one fully observed driver).")

        if int(nbsim) != nbsim or nbsim < 1:
            raise ValueError(f"nbsim must be a positive integer. Got {nbsim}.")
        self.nbsim = int(nbsim)

        self.imputation_methods = list(imputation_methods) if imputation_methods is not None else default_methods()
        if not self.imputation_methods:
            raise ValueError("At least one imputation method is required.")
        names = [method.name for method in self.imputation_methods]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Imputation method names must be unique. Duplicates: {duplicates}")
        self.method_names = names

        self.n_jobs = max(1, int(n_jobs or 1))

    def run_repetition(self, pattern, percentage, rng):
        """Amputate once and score every method; returns a DataFrame with one row per method."""
        records = run_repetition(self.data, pattern, percentage, self.imputation_methods, rng)
        return pd.DataFrame(records, columns=['method', 'mse', 'status'])

    def tasks(self):
        """Explicit (percentage, pattern, repetition) index set in deterministic order."""
        return list(product(self.percentages, self.patterns, range(self.nbsim)))

    def run_all(self):
        """
        Run every repetition of every (percentage, mechanism) pair.

        Each task gets its own generator spawned up front, so the results do
        not depend on execution order or on ``n_jobs``.

        Returns:
        - results_all: one row per (percentage, mechanism, repetition, method)
        - results_table: methods x (percentage, mechanism) averaged errors
        """
        tasks = self.tasks()
        task_rngs = self.rng.spawn(len(tasks))
        args_list = [
            (self.data, pattern, pct, rep, self.imputation_methods, task_rng)
            for (pct, pattern, rep), task_rng in zip(tasks, task_rngs)
        ]

        logger.info(f"Running {len(tasks)} repetitions ({len(self.percentages)} percentages x "
                    f"{len(self.patterns)} mechanisms x {self.nbsim} runs) for {len(self.method_names)} methods")
        if self.n_jobs > 1:
            processes = min(self.n_jobs, len(args_list))
            logger.info(f"Parallelizing repetitions across {processes} processes")
            with Pool(processes=processes) as pool:
                frames = list(tqdm(pool.imap(run_single_repetition, args_list),
                                   total=len(args_list), desc="Repetitions"))
        else:
            frames = [run_single_repetition(args) for args in tqdm(args_list, desc="Repetitions")]

        results_all = pd.concat(frames, ignore_index=True)
        n_failed = int((results_all['status'] == 'failed').sum())
        if n_failed:
            logger.warning(f"{n_failed} imputations failed and were recorded as NaN")

        results_table = build_results_table(results_all, self.method_names, self.percentages, self.mechanisms)
        return results_all, results_table

    def averaged_results(self, results_all):
        return average_results(results_all)
