"""
Configuration and constants for the repeated cross-validation study.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

import numpy as np

from ..data.columns import EVENT_OF_INTEREST, TIME_CAP_MONTHS
from .random_forest import SUPPORTED_SPLIT_RULES

# =========================================================
# Resampling
# =========================================================
RANDOM_STATE = 42
N_SPLITS = 5
N_REPEATS = 3

# =========================================================
# Forest
# =========================================================
N_ESTIMATORS = 300
SPLIT_RULE = 'logrank'
MIN_SAMPLES_LEAF_GRID = (5, 10, 15)
MAX_DEPTH_GRID = (3, 5, None)

# =========================================================
# Evaluation
# =========================================================
CAUSE = EVENT_OF_INTEREST
HORIZONS = (36, 60, 114)  # months
TIME_STEP = 1             # spacing of the evaluation grid, months
CONFIDENCE = 0.95
CENSORING_DATA = 'test'  # data used for the Kaplan-Meier censoring weights: 'test' or 'train'

# Time ranges shown as separate panels in the AUC/Brier plots
PLOT_TIME_RANGES = ((0, 60), (60, 114))


@dataclass(frozen=True)
class CVConfig:
    """
    Settings for one repeated cross-validation run.

    Parameters
    ----------
    seed : int
        Seed for fold generation and forest fitting
    n_splits : int
        Folds per repeat (k)
    n_repeats : int
        Number of repeats (R)
    min_samples_leaf_grid, max_depth_grid : sequence
        Hyperparameter grid; None in max_depth_grid means unlimited depth
    n_estimators : int
        Trees per forest
    split_rule : str
        Node splitting rule
    cause : int
        Event code of interest
    horizons : sequence of float
        Time horizons at which IBS and C-index are reported
    time_cap : float
        Follow-up ceiling applied at load time
    time_step : float
        Spacing of the AUC/Brier/CIF evaluation grid
    censoring_data : str
        Fold part the censoring distribution is estimated on, 'test' or 'train'
    n_jobs : int
        Parallel jobs inside each forest fit
    """

    seed: int = RANDOM_STATE
    n_splits: int = N_SPLITS
    n_repeats: int = N_REPEATS
    min_samples_leaf_grid: Tuple[int, ...] = MIN_SAMPLES_LEAF_GRID
    max_depth_grid: Tuple[Optional[int], ...] = MAX_DEPTH_GRID
    n_estimators: int = N_ESTIMATORS
    split_rule: str = SPLIT_RULE
    cause: int = CAUSE
    horizons: Tuple[float, ...] = HORIZONS
    time_cap: float = TIME_CAP_MONTHS
    time_step: float = TIME_STEP
    confidence: float = CONFIDENCE
    plot_time_ranges: Tuple[Tuple[float, float], ...] = field(default=PLOT_TIME_RANGES)
    censoring_data: str = CENSORING_DATA
    n_jobs: int = 1

    @property
    def max_horizon(self) -> float:
        return max(self.horizons)

    def param_grid(self) -> dict:
        """Grid in the form expected by sklearn.model_selection.ParameterGrid."""
        return {
            'min_samples_leaf': list(self.min_samples_leaf_grid),
            'max_depth': list(self.max_depth_grid),
        }

    def eval_times(self, horizon: Optional[float] = None) -> np.ndarray:
        """
        Evaluation grid time_step, 2*time_step, ..., horizon.

        The horizon itself is always the last grid point.
        """
        if horizon is None:
            horizon = self.max_horizon
        times = np.arange(self.time_step, horizon, self.time_step, dtype=float)
        times = times[times < horizon]
        return np.append(times, float(horizon))

    def validate(self) -> 'CVConfig':
        if self.n_splits < 2:
            raise ValueError(f"n_splits must be at least 2, got {self.n_splits}")
        if self.n_repeats < 1:
            raise ValueError(f"n_repeats must be at least 1, got {self.n_repeats}")
        if self.n_estimators < 1:
            raise ValueError(f"n_estimators must be positive, got {self.n_estimators}")
        if not self.horizons:
            raise ValueError("At least one evaluation horizon is required")
        if min(self.horizons) <= 0:
            raise ValueError(f"Horizons must be positive, got {list(self.horizons)}")
        if self.max_horizon > self.time_cap:
            raise ValueError(
                f"Horizon {self.max_horizon} exceeds the time cap {self.time_cap}"
            )
        if self.time_step <= 0:
            raise ValueError(f"time_step must be positive, got {self.time_step}")
        if not 0 < self.confidence < 1:
            raise ValueError(f"confidence must lie in (0, 1), got {self.confidence}")
        if self.censoring_data not in ('test', 'train'):
            raise ValueError(f"censoring_data must be 'test' or 'train', got '{self.censoring_data}'")
        if self.split_rule not in SUPPORTED_SPLIT_RULES:
            raise ValueError(
                f"Unsupported split rule '{self.split_rule}'. Available: {list(SUPPORTED_SPLIT_RULES)}"
            )
        return self

    def with_overrides(self, **overrides) -> 'CVConfig':
        """Copy with the given fields replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)
