"""
Repeated Cross-Validation for Competing Risks Random Survival Forests.

Repeated stratified k-fold evaluation with grid search over forest
hyperparameters, and cross-fold aggregation of time-dependent metrics.

Modules:
--------
folds : Repeated stratified k-fold partitions
random_forest : Cause-specific RSF with Aalen-Johansen cumulative incidence
cumulative_incidence : Predicted and empirical CIF
evaluation : IPCW AUC, Brier score, IBS and C-index for competing risks
aggregation : Metric records and mean / normal-approximation CI summaries
grid_search : Tuning pass, selection, final pass
plotting : AUC, Brier and CIF plots with confidence ribbons
run_cv : Command-line workflow
"""

from .exceptions import (
    DataError,
    FitError,
    GridSearchError,
)

from .config import CVConfig

from .folds import (
    Fold,
    make_folds,
)

from .random_forest import (
    CompetingRisksRSF,
    fit_rsf_competing_risks,
)

from .cumulative_incidence import (
    estimate_cif_aalen_johansen,
    aalen_johansen_at_times,
    predict_cif,
    mean_cif_curve,
)

from .evaluation import (
    CensoringModel,
    EvaluationResult,
    brier_score,
    time_dependent_auc,
    concordance_index_competing_risks,
    integrated_brier_score,
    evaluate,
    concordance,
)

from .aggregation import (
    MetricRecord,
    normal_ci,
    summarize,
    records_to_frame,
)

from .grid_search import (
    HyperparameterCombination,
    RepeatedCVGridSearch,
    TuningResult,
    FinalResult,
    CVReport,
    parameter_grid,
)

__all__ = [
    # Errors
    'DataError',
    'FitError',
    'GridSearchError',
    # Configuration
    'CVConfig',
    # Folds
    'Fold',
    'make_folds',
    # Random Survival Forest
    'CompetingRisksRSF',
    'fit_rsf_competing_risks',
    # Cumulative incidence
    'estimate_cif_aalen_johansen',
    'aalen_johansen_at_times',
    'predict_cif',
    'mean_cif_curve',
    # Evaluation
    'CensoringModel',
    'EvaluationResult',
    'brier_score',
    'time_dependent_auc',
    'concordance_index_competing_risks',
    'integrated_brier_score',
    'evaluate',
    'concordance',
    # Aggregation
    'MetricRecord',
    'normal_ci',
    'summarize',
    'records_to_frame',
    # Grid search
    'HyperparameterCombination',
    'RepeatedCVGridSearch',
    'TuningResult',
    'FinalResult',
    'CVReport',
    'parameter_grid',
]

__version__ = '0.1.0'
