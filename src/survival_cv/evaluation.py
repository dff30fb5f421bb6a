"""
Model evaluation metrics for competing risks analysis.

All metrics are inverse-probability-of-censoring weighted (IPCW) with a
marginal Kaplan-Meier model of the censoring distribution:
- Time-dependent AUC (Blanche et al., 2013; controls = at risk or competing event)
- Brier score for competing risks (Graf et al. / Gerds & Schumacher)
- Integrated Brier score over the evaluation grid
- Truncated concordance index for competing risks (Wolbers et al., 2014)

A metric that cannot be computed (no cases, no controls, no comparable
pairs, zero censoring survival) is returned as NaN and later recorded
as missing.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from lifelines import KaplanMeierFitter
from scipy.integrate import trapezoid

from ..data.columns import CENSORED, DatasetSchema, DEFAULT_SCHEMA
from .cumulative_incidence import predict_cif


class CensoringModel:
    """
    Kaplan-Meier estimate G(t) of the censoring survival function.

    Censoring (code 0) is treated as the "event"; every other code
    is a censoring of the censoring process.
    """

    def __init__(self, durations: np.ndarray, event_codes: np.ndarray):
        durations = np.asarray(durations, dtype=float)
        event_codes = np.asarray(event_codes)

        kmf = KaplanMeierFitter()
        kmf.fit(durations, event_observed=(event_codes == CENSORED))

        self.kmf_ = kmf
        self.timeline_ = kmf.survival_function_.index.values.astype(float)
        self.survival_ = kmf.survival_function_.values[:, 0]

    def __call__(self, times, left: bool = False) -> np.ndarray:
        """
        Evaluate G at the given times.

        With left=True the left limit G(t-) is returned.
        """
        times = np.atleast_1d(np.asarray(times, dtype=float))
        if left:
            times = np.nextafter(times, -np.inf)
        idx = np.searchsorted(self.timeline_, times, side='right') - 1
        return np.where(idx >= 0, self.survival_[np.clip(idx, 0, None)], 1.0)


def _inverse(g: np.ndarray) -> np.ndarray:
    """1/g where g > 0, zero elsewhere."""
    g = np.asarray(g, dtype=float)
    out = np.zeros_like(g)
    np.divide(1.0, g, out=out, where=g > 0)
    return out


def brier_score(
    event_times: np.ndarray,
    event_codes: np.ndarray,
    predicted_cif: np.ndarray,
    eval_time: float,
    censoring: CensoringModel,
    event_of_interest: int = 1,
) -> float:
    """
    IPCW Brier score for competing risks at a specific time.

    BS(t) = 1/n sum_i W_i(t) (I(T_i <= t, K_i = k) - F_k(t | x_i))^2

    with W_i = 1/G(T_i-) for an event of any type by t, 1/G(t) while
    still at risk at t, and 0 for subjects censored before t.

    Parameters
    ----------
    event_times : np.ndarray
        Observed times
    event_codes : np.ndarray
        Event codes
    predicted_cif : np.ndarray
        Predicted CIF at eval_time for each subject
    eval_time : float
        Time point for evaluation
    censoring : CensoringModel
        Censoring distribution
    event_of_interest : int
        Event code to evaluate

    Returns
    -------
    float
        Brier score (lower is better), NaN if undefined
    """
    event_times = np.asarray(event_times, dtype=float)
    event_codes = np.asarray(event_codes)
    predicted_cif = np.asarray(predicted_cif, dtype=float)

    had_event = (event_times <= eval_time) & (event_codes != CENSORED)
    at_risk = event_times > eval_time

    weights = np.zeros(len(event_times))
    if had_event.any():
        g_before = censoring(event_times[had_event], left=True)
        if (g_before <= 0).any():
            return np.nan
        weights[had_event] = 1.0 / g_before
    if at_risk.any():
        g_t = censoring(eval_time)[0]
        if g_t <= 0:
            return np.nan
        weights[at_risk] = 1.0 / g_t

    if not weights.any():
        return np.nan

    observed = (had_event & (event_codes == event_of_interest)).astype(float)
    return float(np.mean(weights * (observed - predicted_cif) ** 2))


def time_dependent_auc(
    event_times: np.ndarray,
    event_codes: np.ndarray,
    risk_scores: np.ndarray,
    eval_time: float,
    censoring: CensoringModel,
    event_of_interest: int = 1,
) -> float:
    """
    IPCW cumulative/dynamic AUC for competing risks at a specific time.

    Cases experienced the event of interest by t; controls are still at
    risk at t or experienced a competing event by t. Tied scores count 1/2.

    Parameters
    ----------
    event_times : np.ndarray
        Observed times
    event_codes : np.ndarray
        Event codes
    risk_scores : np.ndarray
        Predicted risk at eval_time (higher = more risk), e.g. CIF(t)
    eval_time : float
        Time point for evaluation
    censoring : CensoringModel
        Censoring distribution
    event_of_interest : int
        Event code to evaluate

    Returns
    -------
    float
        AUC, NaN if there are no cases or no controls
    """
    event_times = np.asarray(event_times, dtype=float)
    event_codes = np.asarray(event_codes)
    risk_scores = np.asarray(risk_scores, dtype=float)

    cases = (event_times <= eval_time) & (event_codes == event_of_interest)
    competing = (
        (event_times <= eval_time)
        & (event_codes != CENSORED)
        & (event_codes != event_of_interest)
    )
    at_risk = event_times > eval_time
    controls = competing | at_risk

    if not cases.any() or not controls.any():
        return np.nan

    w_case = _inverse(censoring(event_times[cases], left=True))

    w_all = np.zeros(len(event_times))
    w_all[competing] = _inverse(censoring(event_times[competing], left=True))
    if at_risk.any():
        w_all[at_risk] = _inverse(censoring(eval_time))[0]
    w_control = w_all[controls]

    denominator = w_case.sum() * w_control.sum()
    if denominator <= 0:
        return np.nan

    m_case = risk_scores[cases][:, None]
    m_control = risk_scores[controls][None, :]
    score = (m_case > m_control) + 0.5 * (m_case == m_control)

    numerator = np.sum(w_case[:, None] * w_control[None, :] * score)
    return float(numerator / denominator)


def concordance_index_competing_risks(
    event_times: np.ndarray,
    event_codes: np.ndarray,
    risk_scores: np.ndarray,
    tau: float,
    censoring: CensoringModel,
    event_of_interest: int = 1,
) -> float:
    """
    Truncated concordance index for competing risks.

    Following Wolbers et al. (2014), a pair (i, j) is comparable when i had
    the event of interest at T_i <= tau and either
      (A) T_j > T_i, weighted by 1 / (G(T_i-) G(T_i)), or
      (B) j had a competing event at T_j <= T_i, weighted by 1 / (G(T_i-) G(T_j-)).
    The pair is concordant when risk_i > risk_j; ties count 1/2.

    Parameters
    ----------
    event_times : np.ndarray
        Observed times
    event_codes : np.ndarray
        Event codes
    risk_scores : np.ndarray
        Predicted risk scores, e.g. CIF at tau (higher = more risk)
    tau : float
        Truncation time
    censoring : CensoringModel
        Censoring distribution
    event_of_interest : int
        Event code to evaluate

    Returns
    -------
    float
        C-index, NaN without comparable pairs
    """
    event_times = np.asarray(event_times, dtype=float)
    event_codes = np.asarray(event_codes)
    risk_scores = np.asarray(risk_scores, dtype=float)

    is_case = (event_codes == event_of_interest) & (event_times <= tau)
    if not is_case.any():
        return np.nan

    is_competing = (event_codes != CENSORED) & (event_codes != event_of_interest)

    t_i = event_times[is_case][:, None]
    m_i = risk_scores[is_case][:, None]
    t_j = event_times[None, :]
    m_j = risk_scores[None, :]

    g_i_before = censoring(event_times[is_case], left=True)[:, None]
    g_i = censoring(event_times[is_case])[:, None]
    g_j_before = censoring(event_times, left=True)[None, :]

    type_a = t_j > t_i
    type_b = (t_j <= t_i) & is_competing[None, :]

    weights = (
        type_a * _inverse(g_i_before * g_i)
        + type_b * _inverse(g_i_before * g_j_before)
    )

    total = weights.sum()
    if total <= 0:
        return np.nan

    score = (m_i > m_j) + 0.5 * (m_i == m_j)
    return float(np.sum(weights * score) / total)


def integrated_brier_score(times: np.ndarray, brier: np.ndarray) -> float:
    """
    Integrate the Brier curve over time and divide by the covered span.

    Missing (NaN) points are skipped; fewer than two remaining points
    leave the IBS undefined.
    """
    times = np.asarray(times, dtype=float)
    brier = np.asarray(brier, dtype=float)

    valid = ~np.isnan(brier)
    if valid.sum() < 2:
        return np.nan

    t = times[valid]
    return float(trapezoid(brier[valid], t) / (t[-1] - t[0]))


@dataclass(frozen=True)
class EvaluationResult:
    """AUC and Brier score over an evaluation grid plus the IBS at its end."""

    times: np.ndarray
    auc: np.ndarray
    brier: np.ndarray
    ibs: float

    def ibs_over(self, times: np.ndarray) -> float:
        """IBS over the grid points that belong to a sub-grid, e.g. one horizon's grid."""
        mask = np.isin(self.times, np.asarray(times, dtype=float))
        return integrated_brier_score(self.times[mask], self.brier[mask])


def evaluate(
    model,
    test_df: pd.DataFrame,
    times: np.ndarray,
    cause: int = 1,
    schema: DatasetSchema = DEFAULT_SCHEMA,
    censoring_df: Optional[pd.DataFrame] = None,
    cif: Optional[np.ndarray] = None,
    with_auc: bool = True,
) -> EvaluationResult:
    """
    Time-dependent AUC and Brier score at every time point, plus IBS.

    Parameters
    ----------
    model : CompetingRisksRSF
        Fitted model
    test_df : pd.DataFrame
        Evaluation rows
    times : array-like
        Evaluation grid
    cause : int
        Event code of interest
    schema : DatasetSchema
        Column layout
    censoring_df : pd.DataFrame, optional
        Data for the Kaplan-Meier censoring model (default: test_df)
    cif : np.ndarray, optional
        Precomputed predicted CIF of test_df at times
    with_auc : bool
        If False only the Brier curve is computed and auc is all NaN

    Returns
    -------
    EvaluationResult
    """
    times = np.asarray(times, dtype=float)
    if cif is None:
        cif = predict_cif(model, test_df, times, cause=cause, schema=schema)

    if censoring_df is None:
        censoring_df = test_df
    censoring = CensoringModel(censoring_df[schema.time_col].values,
                               censoring_df[schema.event_col].values)

    event_times = test_df[schema.time_col].values
    event_codes = test_df[schema.event_col].values

    auc = np.full(len(times), np.nan)
    brier = np.empty(len(times))
    for i, t in enumerate(times):
        if with_auc:
            auc[i] = time_dependent_auc(event_times, event_codes, cif[:, i], t, censoring, cause)
        brier[i] = brier_score(event_times, event_codes, cif[:, i], t, censoring, cause)

    return EvaluationResult(
        times=times,
        auc=auc,
        brier=brier,
        ibs=integrated_brier_score(times, brier),
    )


def concordance(
    model,
    test_df: pd.DataFrame,
    eval_time: float,
    cause: int = 1,
    schema: DatasetSchema = DEFAULT_SCHEMA,
    censoring_df: Optional[pd.DataFrame] = None,
    risk_scores: Optional[np.ndarray] = None,
) -> float:
    """
    C-index truncated at eval_time, ranking subjects by predicted CIF(eval_time).

    Parameters
    ----------
    model : CompetingRisksRSF
        Fitted model
    test_df : pd.DataFrame
        Evaluation rows
    eval_time : float
        Horizon
    cause : int
        Event code of interest
    schema : DatasetSchema
        Column layout
    censoring_df : pd.DataFrame, optional
        Data for the Kaplan-Meier censoring model (default: test_df)
    risk_scores : np.ndarray, optional
        Precomputed predicted CIF of test_df at eval_time

    Returns
    -------
    float
        C-index, NaN if undefined
    """
    if risk_scores is None:
        risk_scores = predict_cif(model, test_df, [eval_time], cause=cause, schema=schema)[:, 0]

    if censoring_df is None:
        censoring_df = test_df
    censoring = CensoringModel(censoring_df[schema.time_col].values,
                               censoring_df[schema.event_col].values)

    return concordance_index_competing_risks(
        test_df[schema.time_col].values,
        test_df[schema.event_col].values,
        risk_scores,
        eval_time,
        censoring,
        cause,
    )
