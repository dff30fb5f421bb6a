"""
Repeated cross-validation with grid search for the competing risks RSF.

Two passes over the same folds:
1. Tuning: every hyperparameter combination on every fold, scoring IBS
   and C-index at every horizon.
2. Final: the selected combination only, keeping full per-fold series
   (AUC and Brier over time, IBS and C-index by horizon, mean CIF curve).

Every (combination, fold) iteration returns its own list of immutable
MetricRecords; the driver only concatenates them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import ParameterGrid

from ..data.columns import DatasetSchema, DEFAULT_SCHEMA
from .aggregation import (
    AUC, BRIER, IBS, C_INDEX, CIF,
    MetricRecord,
    normal_ci,
    records_to_frame,
    metric_summary,
)
from .config import CVConfig
from .cumulative_incidence import predict_cif, mean_cif_curve
from .evaluation import evaluate, concordance
from .exceptions import FitError, GridSearchError
from .folds import Fold, make_folds
from .random_forest import CompetingRisksRSF, fit_rsf_competing_risks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HyperparameterCombination:
    """Tunable forest settings drawn from the grid."""

    min_samples_leaf: int
    max_depth: Optional[int] = None

    def as_params(self) -> Dict[str, Optional[int]]:
        return {'min_samples_leaf': self.min_samples_leaf, 'max_depth': self.max_depth}

    def as_pairs(self) -> Tuple[Tuple[str, Optional[int]], ...]:
        return tuple(sorted(self.as_params().items()))

    def __str__(self) -> str:
        return f"min_samples_leaf={self.min_samples_leaf}, max_depth={self.max_depth}"


def parameter_grid(config: CVConfig) -> List[HyperparameterCombination]:
    """
    All combinations of the configured grid, in ParameterGrid order.

    Raises
    ------
    GridSearchError
        If either value list is empty
    """
    empty = [name for name, values in config.param_grid().items() if not values]
    if empty:
        raise GridSearchError(f"Hyperparameter grid is empty: no values for {empty}")
    return [HyperparameterCombination(**params) for params in ParameterGrid(config.param_grid())]


@dataclass
class TuningResult:
    """Records of the tuning pass and the per-combination means."""

    combinations: List[HyperparameterCombination]
    records: List[MetricRecord]
    table: pd.DataFrame


@dataclass
class FinalResult:
    """Per-fold records of the selected combination."""

    params: HyperparameterCombination
    records: List[MetricRecord]

    @property
    def frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)


@dataclass
class CVReport:
    """Everything a run produces."""

    config: CVConfig
    folds: List[Fold]
    tuning: TuningResult
    best_params: HyperparameterCombination
    final: FinalResult
    summaries: Dict[str, pd.DataFrame] = field(default_factory=dict)
    best_fold: Optional[str] = None
    best_fold_c_index: Optional[float] = None


class RepeatedCVGridSearch:
    """
    Grid search over repeated stratified k-fold cross-validation.

    Parameters
    ----------
    config : CVConfig
        Run settings
    schema : DatasetSchema
        Column layout of the cohort
    """

    def __init__(self, config: Optional[CVConfig] = None, schema: DatasetSchema = DEFAULT_SCHEMA):
        self.config = (config or CVConfig()).validate()
        self.schema = schema

        if self.config.cause not in schema.event_types:
            raise ValueError(
                f"Cause {self.config.cause} is not an event type of the schema "
                f"({schema.event_types})"
            )

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def make_folds(self, df: pd.DataFrame) -> List[Fold]:
        return make_folds(
            df[self.schema.event_col].values,
            n_splits=self.config.n_splits,
            n_repeats=self.config.n_repeats,
            seed=self.config.seed,
        )

    def _grid(self) -> np.ndarray:
        """Union of the evaluation grids of all horizons."""
        return np.unique(np.concatenate([self.config.eval_times(h) for h in self.config.horizons]))

    def _fit(self, train_df: pd.DataFrame, params: HyperparameterCombination,
             fold: Fold) -> Optional[CompetingRisksRSF]:
        try:
            return fit_rsf_competing_risks(
                train_df,
                schema=self.schema,
                n_estimators=self.config.n_estimators,
                split_rule=self.config.split_rule,
                n_jobs=self.config.n_jobs,
                random_state=self.config.seed,
                **params.as_params(),
            )
        except FitError as e:
            logger.warning(f"Skipping {fold.name} for {params}: {e}")
            return None

    def score_fold(
        self,
        df: pd.DataFrame,
        fold: Fold,
        params: HyperparameterCombination,
        keep_series: bool = False,
    ) -> List[MetricRecord]:
        """
        Fit on the training part of a fold and score its test part.

        Always records IBS and C-index at every horizon. With keep_series,
        also records AUC, Brier and mean CIF at every time of the largest
        horizon's grid. A fold whose fit fails yields the same records with
        missing values.
        """
        cfg = self.config
        pairs = params.as_pairs()
        train_df, test_df = fold.split(df)
        censoring_df = test_df if cfg.censoring_data == 'test' else train_df

        model = self._fit(train_df, params, fold)
        grid = self._grid()
        cif = result = None
        if model is not None:
            cif = predict_cif(model, test_df, grid, cause=cfg.cause, schema=self.schema)
            # one Brier curve over the union grid serves the IBS of every horizon
            result = evaluate(
                model, test_df, grid,
                cause=cfg.cause,
                schema=self.schema,
                censoring_df=censoring_df,
                cif=cif,
                with_auc=keep_series,
            )

        records = []
        for horizon in cfg.horizons:
            ibs = c_index = np.nan

            if result is not None:
                ibs = result.ibs_over(cfg.eval_times(horizon))
                c_index = concordance(
                    model, test_df, horizon,
                    cause=cfg.cause,
                    schema=self.schema,
                    censoring_df=censoring_df,
                    risk_scores=cif[:, grid == horizon][:, 0],
                )

            records.append(MetricRecord(fold.name, horizon, IBS, ibs, params=pairs))
            records.append(MetricRecord(fold.name, horizon, C_INDEX, c_index, params=pairs))

        if keep_series:
            times = cfg.eval_times(cfg.max_horizon)
            records.extend(self._series_records(fold, cfg.max_horizon, times, result, cif, pairs))

        return records

    @staticmethod
    def _series_records(fold, horizon, times, result, cif, pairs) -> List[MetricRecord]:
        if result is None:
            auc = brier = mean_cif = np.full(len(times), np.nan)
        else:
            cols = np.isin(result.times, times)
            auc, brier = result.auc[cols], result.brier[cols]
            mean_cif = mean_cif_curve(cif[:, cols], times)['cif'].values

        records = []
        for i, t in enumerate(times):
            records.append(MetricRecord(fold.name, horizon, AUC, auc[i], time=t, params=pairs))
            records.append(MetricRecord(fold.name, horizon, BRIER, brier[i], time=t, params=pairs))
            records.append(MetricRecord(fold.name, horizon, CIF, mean_cif[i], time=t, params=pairs))
        return records

    # ------------------------------------------------------------------
    # Tuning and selection
    # ------------------------------------------------------------------

    def tune(self, df: pd.DataFrame, folds: List[Fold]) -> TuningResult:
        """
        Score every combination on every fold and horizon.

        Returns
        -------
        TuningResult
            table has one row per combination with mean_ibs, mean_c_index
            and the number of non-missing values behind each mean
        """
        combinations = parameter_grid(self.config)
        all_records: List[MetricRecord] = []
        rows = []

        for i, params in enumerate(combinations, start=1):
            logger.info(f"Combination {i}/{len(combinations)}: {params}")

            combo_records: List[MetricRecord] = []
            for fold in folds:
                combo_records.extend(self.score_fold(df, fold, params))

            ibs_values = [r.value for r in combo_records if r.metric == IBS]
            c_values = [r.value for r in combo_records if r.metric == C_INDEX]
            mean_ibs, _, _, n_ibs = normal_ci(ibs_values)
            mean_c, _, _, n_c = normal_ci(c_values)

            logger.info(f"  mean IBS={mean_ibs}, mean C-index={mean_c}")

            rows.append({
                **params.as_params(),
                'mean_ibs': mean_ibs,
                'mean_c_index': mean_c,
                'n_ibs': n_ibs,
                'n_c_index': n_c,
            })
            all_records.extend(combo_records)

        table = pd.DataFrame(
            rows,
            columns=['min_samples_leaf', 'max_depth', 'mean_ibs', 'mean_c_index', 'n_ibs', 'n_c_index'],
        )
        table['mean_ibs'] = table['mean_ibs'].astype(float)
        table['mean_c_index'] = table['mean_c_index'].astype(float)

        return TuningResult(combinations=combinations, records=all_records, table=table)

    @staticmethod
    def select_best(tuning: TuningResult) -> HyperparameterCombination:
        """
        Lowest mean IBS wins; ties go to the higher mean C-index.

        Raises
        ------
        GridSearchError
            If the grid is empty or no combination produced any metric
        """
        if not tuning.combinations:
            raise GridSearchError("Hyperparameter grid is empty")

        table = tuning.table
        usable = table[table['mean_ibs'].notna() | table['mean_c_index'].notna()]
        if usable.empty:
            raise GridSearchError(
                "Every hyperparameter combination produced only missing metrics"
            )

        ranked = usable.sort_values(
            ['mean_ibs', 'mean_c_index'],
            ascending=[True, False],
            na_position='last',
            kind='mergesort',
        )
        return tuning.combinations[ranked.index[0]]

    # ------------------------------------------------------------------
    # Final pass
    # ------------------------------------------------------------------

    def evaluate_final(self, df: pd.DataFrame, folds: List[Fold],
                       params: HyperparameterCombination) -> FinalResult:
        """Re-run the fold loop with the selected combination, keeping full series."""
        logger.info(f"Final pass with {params}")
        records: List[MetricRecord] = []
        for fold in folds:
            records.extend(self.score_fold(df, fold, params, keep_series=True))
        return FinalResult(params=params, records=records)

    def summarize_final(self, final: FinalResult) -> Dict[str, pd.DataFrame]:
        """Mean and CI tables of every final-pass metric."""
        frame = final.frame
        confidence = self.config.confidence
        return {
            'auc_by_time': metric_summary(frame, AUC, 'time', confidence),
            'brier_by_time': metric_summary(frame, BRIER, 'time', confidence),
            'ibs_by_horizon': metric_summary(frame, IBS, 'horizon', confidence),
            'cindex_by_horizon': metric_summary(frame, C_INDEX, 'horizon', confidence),
            'cif_by_time': metric_summary(frame, CIF, 'time', confidence),
        }

    @staticmethod
    def best_fold(final: FinalResult, horizon: float) -> Tuple[Optional[str], Optional[float]]:
        """
        Fold with the highest C-index at the given horizon.

        Informational only; returns (None, None) if every value is missing.
        """
        candidates = [
            r for r in final.records
            if r.metric == C_INDEX and r.horizon == horizon and not r.is_missing
        ]
        if not candidates:
            return None, None
        best = max(candidates, key=lambda r: r.value)
        return best.fold, best.value

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(self, df: pd.DataFrame) -> CVReport:
        """
        Generate folds, tune, select, run the final pass and summarize.

        Parameters
        ----------
        df : pd.DataFrame
            Prepared cohort

        Returns
        -------
        CVReport
        """
        cfg = self.config
        folds = self.make_folds(df)
        logger.info(
            f"Generated {len(folds)} folds ({cfg.n_repeats} x {cfg.n_splits}) with seed {cfg.seed}"
        )

        tuning = self.tune(df, folds)
        best_params = self.select_best(tuning)
        logger.info(f"Selected hyperparameters: {best_params}")

        final = self.evaluate_final(df, folds, best_params)
        summaries = self.summarize_final(final)

        best_fold, best_c = self.best_fold(final, cfg.max_horizon)
        if best_fold is None:
            logger.warning(f"No fold has a C-index at horizon {cfg.max_horizon}")
        else:
            logger.info(f"Best fold at horizon {cfg.max_horizon}: {best_fold} (C-index={best_c:.4f})")

        return CVReport(
            config=cfg,
            folds=folds,
            tuning=tuning,
            best_params=best_params,
            final=final,
            summaries=summaries,
            best_fold=best_fold,
            best_fold_c_index=best_c,
        )
