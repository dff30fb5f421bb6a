"""
Repeated cross-validated evaluation of a competing risks RSF.

This script:
1. Loads and validates the cohort sheet
2. Tunes min_samples_leaf and max_depth by grid search over repeated
   stratified k-fold cross-validation (ranked by IBS, then C-index)
3. Re-runs the folds with the selected combination and aggregates
   AUC, Brier score, IBS, C-index and CIF across folds
4. Writes summary tables (CSV) and plots (PNG) to the output directory

Usage:
    python -m src.survival_cv.run_cv --input data/cohort.xlsx --output results
    python -m src.survival_cv.run_cv -i data/cohort.xlsx -o results --folds 10 --repeats 5
    python -m src.survival_cv.run_cv -i data/cohort.xlsx -o results --horizons 60 114 --trees 500
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..data.columns import DEFAULT_SCHEMA, DatasetSchema
from ..data.loader import load_dataset
from ..data.utils import print_summary_stats
from .aggregation import records_to_frame
from .config import CVConfig
from .cumulative_incidence import estimate_cif_aalen_johansen, aalen_johansen_at_times
from .exceptions import DataError, GridSearchError
from .grid_search import CVReport, RepeatedCVGridSearch
from .plotting import save_summary_plots

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


PACKAGE_LOGGERS = ('src.survival_cv', 'src.data')


def close_logging() -> None:
    """Detach and close the handlers attached by setup_logging."""
    for name in PACKAGE_LOGGERS:
        pkg_logger = logging.getLogger(name)
        for handler in list(pkg_logger.handlers):
            pkg_logger.removeHandler(handler)
            handler.close()


def setup_logging(output_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Attach console and (optionally) file handlers to the package loggers.

    Handlers left by an earlier call are closed first, so each run logs
    only to its own output directory.
    """
    close_logging()
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(output_dir / 'run_cv.log'))

    for handler in handlers:
        handler.setFormatter(formatter)

    for name in PACKAGE_LOGGERS:
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(level)
        for handler in handlers:
            pkg_logger.addHandler(handler)


def print_summary_table(summary: pd.DataFrame, key: str, title: str, decimals: int = 4):
    """Print a mean / 95% CI table keyed by horizon or time."""
    print(f"\n{'='*60}")
    print(title)
    print(f"{'='*60}")
    if summary.empty:
        print("  (no values)")
        return
    table = summary.set_index(key)[['mean', 'lower', 'upper', 'n']]
    print(table.round(decimals).to_string(na_rep='NA'))


def write_outputs(report: CVReport, output_dir: Path,
                  empirical_cif: Optional[pd.DataFrame] = None) -> Dict[str, Path]:
    """Write tuning results, per-fold records, summaries and plots."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = {}

    path = output_dir / 'tuning_results.csv'
    report.tuning.table.to_csv(path, index=False)
    written['tuning_results'] = path

    path = output_dir / 'fold_metrics.csv'
    records_to_frame(report.final.records).to_csv(path, index=False)
    written['fold_metrics'] = path

    for name, summary in report.summaries.items():
        path = output_dir / f'{name}.csv'
        summary.to_csv(path, index=False)
        written[name] = path

    for path in save_summary_plots(report.summaries, output_dir,
                                   report.config.plot_time_ranges, empirical_cif):
        written[path.stem + '_plot'] = path

    for name, path in written.items():
        logger.info(f"Saved {name} to {path}")

    return written


def run(input_path: Path, output_dir: Path, config: CVConfig,
        schema: DatasetSchema = DEFAULT_SCHEMA, sheet_name=0) -> CVReport:
    """Load the cohort, run the repeated CV grid search and write all outputs."""
    config = config.validate()
    cohort = load_dataset(input_path, schema=schema, time_cap=config.time_cap,
                          sheet_name=sheet_name)
    print_summary_stats(cohort, schema)

    search = RepeatedCVGridSearch(config, schema)
    report = search.run(cohort)

    print(f"\nBest hyperparameters: {report.best_params}")
    if report.best_fold is not None:
        print(f"Best fold (C-index at {config.max_horizon:g} months): "
              f"{report.best_fold} ({report.best_fold_c_index:.4f})")
    print_summary_table(report.summaries['ibs_by_horizon'], 'horizon',
                        'Integrated Brier score by horizon')
    print_summary_table(report.summaries['cindex_by_horizon'], 'horizon',
                        'C-index by horizon')

    ajf = estimate_cif_aalen_johansen(
        cohort[schema.time_col].values,
        cohort[schema.event_col].values,
        event_of_interest=config.cause,
        seed=config.seed,
    )
    empirical = aalen_johansen_at_times(ajf, config.eval_times())

    write_outputs(report, output_dir, empirical)
    return report


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Repeated cross-validated evaluation of a competing risks random survival forest'
    )
    parser.add_argument(
        '--input', '-i',
        type=str,
        required=True,
        help='Cohort file (.xlsx, .xls, .csv or .parquet)'
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        required=True,
        help='Output directory for tables, plots and the log'
    )
    parser.add_argument(
        '--sheet',
        type=str,
        default=None,
        help='Excel sheet name (default: first sheet)'
    )
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--folds', type=int, default=None, help='Folds per repeat (k)')
    parser.add_argument('--repeats', type=int, default=None, help='Number of repeats (R)')
    parser.add_argument('--trees', type=int, default=None, help='Trees per forest')
    parser.add_argument(
        '--min-samples-leaf',
        type=int,
        nargs='+',
        default=None,
        help='Grid of minimum leaf sizes (e.g., 5 10 15)'
    )
    parser.add_argument(
        '--max-depth',
        type=str,
        nargs='+',
        default=None,
        help='Grid of maximum depths; "none" means unlimited (e.g., 3 5 none)'
    )
    parser.add_argument(
        '--horizons',
        type=float,
        nargs='+',
        default=None,
        help='Evaluation horizons in months (e.g., 36 60 114)'
    )
    parser.add_argument('--time-cap', type=float, default=None, help='Follow-up ceiling in months')
    parser.add_argument('--time-step', type=float, default=None, help='Spacing of the evaluation grid')
    parser.add_argument('--cause', type=int, default=None, help='Event code of interest')
    parser.add_argument(
        '--censoring-data',
        choices=['test', 'train'],
        default=None,
        help='Fold part used for the Kaplan-Meier censoring weights'
    )
    parser.add_argument('--n-jobs', type=int, default=None, help='Parallel jobs per forest fit')
    return parser.parse_args(argv)


def _parse_depths(values: Optional[List[str]]) -> Optional[tuple]:
    if values is None:
        return None
    return tuple(None if v.lower() == 'none' else int(v) for v in values)


def config_from_args(args: argparse.Namespace) -> CVConfig:
    return CVConfig().with_overrides(
        seed=args.seed,
        n_splits=args.folds,
        n_repeats=args.repeats,
        n_estimators=args.trees,
        min_samples_leaf_grid=tuple(args.min_samples_leaf) if args.min_samples_leaf else None,
        max_depth_grid=_parse_depths(args.max_depth),
        horizons=tuple(args.horizons) if args.horizons else None,
        time_cap=args.time_cap,
        time_step=args.time_step,
        cause=args.cause,
        censoring_data=args.censoring_data,
        n_jobs=args.n_jobs,
    )


def main(argv=None) -> int:
    """Main entry point for the cross-validation workflow."""
    args = parse_args(argv)

    input_path = Path(args.input)
    output_path = Path(args.output)
    setup_logging(output_path)

    try:
        if not input_path.exists():
            logger.error(f"Input path does not exist: {input_path}")
            return 1

        config = config_from_args(args)
        run(input_path, output_path, config,
            sheet_name=args.sheet if args.sheet is not None else 0)
    except (DataError, GridSearchError, ValueError) as e:
        logger.error(str(e))
        return 1
    finally:
        close_logging()

    return 0


if __name__ == '__main__':
    sys.exit(main())
