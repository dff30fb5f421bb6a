"""
Random Survival Forest for Competing Risks.

One cause-specific forest is grown per event type (Ishwaran et al., 2014),
with competing events treated as censoring for that forest. Cumulative
incidence combines the cause-specific cumulative hazards of all forests,
so the predicted CIF accounts for the competing event.
Tree growing itself is delegated to scikit-survival.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Sequence, Union
from sklearn.base import BaseEstimator
from sksurv.ensemble import RandomSurvivalForest
from sksurv.util import Surv

from ..data.columns import DatasetSchema, DEFAULT_SCHEMA
from ..data.utils import encode_features
from .exceptions import FitError

logger = logging.getLogger(__name__)

SUPPORTED_SPLIT_RULES = ('logrank',)


def _step_lookup(grid: np.ndarray, values: np.ndarray, times: np.ndarray,
                 before: float = 0.0) -> np.ndarray:
    """
    Evaluate right-continuous step functions at arbitrary times.

    values has shape (n_samples, len(grid)); times before grid[0]
    take the value `before`.
    """
    idx = np.searchsorted(grid, times, side='right') - 1
    out = np.full((values.shape[0], len(times)), before, dtype=float)
    valid = idx >= 0
    out[:, valid] = values[:, idx[valid]]
    return out


class CompetingRisksRSF(BaseEstimator):
    """
    Random Survival Forest for Competing Risks.

    Parameters
    ----------
    n_estimators : int
        Number of trees in each cause-specific forest
    max_depth : int, optional
        Maximum depth of trees (None = unlimited)
    min_samples_split : int
        Minimum samples required to split a node
    min_samples_leaf : int
        Minimum samples in a leaf node
    max_features : str or int
        Number of features to consider for splits
    split_rule : str
        Node splitting rule; scikit-survival grows trees with the log-rank rule
    n_jobs : int
        Number of parallel jobs per forest
    random_state : int
        Random seed
    """

    def __init__(
        self,
        n_estimators: int = 300,
        max_depth: Optional[int] = None,
        min_samples_split: int = 6,
        min_samples_leaf: int = 3,
        max_features: str = "sqrt",
        split_rule: str = "logrank",
        n_jobs: int = 1,
        random_state: int = 42,
    ):
        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.split_rule = split_rule
        self.n_jobs = n_jobs
        self.random_state = random_state

        self.models_: Dict[int, RandomSurvivalForest] = {}
        self.event_types_: List[int] = []
        self.feature_names_: List[str] = []

    def fit(
        self,
        X: Union[pd.DataFrame, np.ndarray],
        duration: np.ndarray,
        event_code: np.ndarray,
        event_types: Sequence[int] = (1, 2),
    ) -> "CompetingRisksRSF":
        """
        Fit cause-specific RSF models for each event type.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Numeric feature matrix
        duration : array-like of shape (n_samples,)
            Observed times
        event_code : array-like of shape (n_samples,)
            Event codes (0=censored, 1=event of interest, 2=competing risk)
        event_types : sequence of int
            Event codes to model (excluding censored=0)

        Returns
        -------
        self
        """
        if self.split_rule not in SUPPORTED_SPLIT_RULES:
            raise ValueError(
                f"Unsupported split rule '{self.split_rule}'. "
                f"Available: {list(SUPPORTED_SPLIT_RULES)}"
            )

        self.event_types_ = list(event_types)
        self.models_ = {}

        if isinstance(X, pd.DataFrame):
            self.feature_names_ = X.columns.tolist()
            X = X.values
        else:
            self.feature_names_ = [f"x{i}" for i in range(X.shape[1])]

        X = np.asarray(X, dtype=float)
        duration = np.asarray(duration, dtype=float)
        event_code = np.asarray(event_code)

        for event in self.event_types_:
            logger.debug(f"Fitting RSF for event {event} on {len(duration)} samples")

            # Event of interest = True, all others = False (censored)
            y = Surv.from_arrays(event_code == event, duration)

            rsf = RandomSurvivalForest(
                n_estimators=self.n_estimators,
                max_depth=self.max_depth,
                min_samples_split=self.min_samples_split,
                min_samples_leaf=self.min_samples_leaf,
                max_features=self.max_features,
                n_jobs=self.n_jobs,
                random_state=self.random_state,
            )
            rsf.fit(X, y)

            self.models_[event] = rsf

        return self

    def _as_array(self, X: Union[pd.DataFrame, np.ndarray]) -> np.ndarray:
        if not self.models_:
            raise ValueError("Model not fitted. Call fit() first.")
        if isinstance(X, pd.DataFrame):
            X = X[self.feature_names_].values
        return np.asarray(X, dtype=float)

    def predict_risk(
        self,
        X: Union[pd.DataFrame, np.ndarray],
        event: int,
    ) -> np.ndarray:
        """
        Predict forest risk scores for a specific event (higher = more risk).
        """
        if event not in self.models_:
            raise ValueError(f"No model for event {event}. Available: {list(self.models_.keys())}")

        return self.models_[event].predict(self._as_array(X))

    def predict_cumulative_hazard(
        self,
        X: Union[pd.DataFrame, np.ndarray],
        event: int,
        times: np.ndarray,
    ) -> np.ndarray:
        """
        Predict the cause-specific cumulative hazard at the given times.

        Returns
        -------
        np.ndarray
            Cumulative hazard, shape (n_samples, n_times); zero before
            the first event time seen by the forest
        """
        if event not in self.models_:
            raise ValueError(f"No model for event {event}")

        rsf = self.models_[event]
        chf = rsf.predict_cumulative_hazard_function(self._as_array(X), return_array=True)
        return _step_lookup(rsf.unique_times_, chf, np.asarray(times, dtype=float))

    def predict_cumulative_incidence(
        self,
        X: Union[pd.DataFrame, np.ndarray],
        event: int,
        times: np.ndarray,
    ) -> np.ndarray:
        """
        Predict the cumulative incidence function for a specific event.

        Uses the Aalen-Johansen form on the union of all forests' event times:
        F_k(t) = sum_{s <= t} S(s-) dH_k(s), with overall survival
        S(s) = prod_{u <= s} (1 - sum_j dH_j(u)).

        Parameters
        ----------
        X : array-like
            Feature matrix
        event : int
            Event code
        times : array-like
            Time points for prediction

        Returns
        -------
        np.ndarray
            Cumulative incidence, shape (n_samples, n_times), non-decreasing in time
        """
        if event not in self.models_:
            raise ValueError(f"No model for event {event}")

        times = np.asarray(times, dtype=float)
        grid = np.unique(np.concatenate([m.unique_times_ for m in self.models_.values()]))

        increments = {}
        for k in self.event_types_:
            chf = self.predict_cumulative_hazard(X, k, grid)
            increments[k] = np.clip(np.diff(chf, axis=1, prepend=0.0), 0.0, None)

        # Combined jumps above 1 are rescaled so the CIFs of all causes sum to at most 1
        total = sum(increments.values())
        scale = 1.0 / np.maximum(total, 1.0)
        surv = np.cumprod(1.0 - total * scale, axis=1)
        surv_before = np.hstack([np.ones((surv.shape[0], 1)), surv[:, :-1]])

        cif = np.cumsum(surv_before * increments[event] * scale, axis=1)
        cif = np.clip(cif, 0.0, 1.0)

        return _step_lookup(grid, cif, times)


def fit_rsf_competing_risks(
    df: pd.DataFrame,
    schema: DatasetSchema = DEFAULT_SCHEMA,
    **rsf_params,
) -> CompetingRisksRSF:
    """
    Fit a competing risks RSF on a prepared cohort (or fold subset).

    Parameters
    ----------
    df : pd.DataFrame
        Prepared data with predictors, time and event code
    schema : DatasetSchema
        Column layout
    **rsf_params
        Parameters for CompetingRisksRSF

    Returns
    -------
    CompetingRisksRSF
        Fitted model

    Raises
    ------
    FitError
        If any cause-specific forest cannot be fitted
    """
    X = encode_features(df, schema)
    duration = df[schema.time_col].values
    event_code = df[schema.event_col].values

    model = CompetingRisksRSF(**rsf_params)
    try:
        model.fit(X, duration, event_code, event_types=schema.event_types)
    except (ValueError, IndexError) as e:
        raise FitError(f"RSF fit failed: {e}", params=rsf_params) from e

    return model
