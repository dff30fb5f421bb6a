"""
Cross-fold aggregation of metric records.

Every per-fold value is stored as an immutable MetricRecord whose value is
either a float or None (missing). A single summarizer turns any group of
records into mean and normal-approximation confidence bounds:

    mean +/- z * sd / sqrt(n),  z = Phi^-1(1 - alpha/2)

Missing values are excluded before anything is computed. With fewer than
two values the bounds are undefined; with none the mean is undefined too.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

RECORD_COLUMNS = ['fold', 'horizon', 'metric', 'time', 'value']
SUMMARY_COLUMNS = ['mean', 'lower', 'upper', 'n']

# Metric names
AUC = 'auc'
BRIER = 'brier'
IBS = 'ibs'
C_INDEX = 'c_index'
CIF = 'cif'


def _as_optional(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


@dataclass(frozen=True)
class MetricRecord:
    """
    One metric value from one fold.

    Attributes
    ----------
    fold : str
        Fold identifier, e.g. 'Fold2.Rep1'
    horizon : float
        Time horizon the value belongs to
    metric : str
        Metric name (auc, brier, ibs, c_index, cif)
    value : float or None
        None when the metric could not be computed; NaN is normalised to None
    time : float, optional
        Evaluation time for time-indexed metrics
    params : tuple, optional
        Hyperparameters as sorted (name, value) pairs
    """

    fold: str
    horizon: float
    metric: str
    value: Optional[float]
    time: Optional[float] = None
    params: Tuple[Tuple[str, object], ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, 'value', _as_optional(self.value))

    @property
    def is_missing(self) -> bool:
        return self.value is None


def records_to_frame(records: Iterable[MetricRecord]) -> pd.DataFrame:
    """
    Tidy DataFrame of metric records.

    Missing values become NaN; hyperparameters become one column each.
    """
    rows = []
    for r in records:
        row = {
            'fold': r.fold,
            'horizon': r.horizon,
            'metric': r.metric,
            'time': r.time,
            'value': np.nan if r.value is None else r.value,
        }
        row.update(dict(r.params))
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    df = pd.DataFrame(rows)
    df['time'] = df['time'].astype(float)
    df['value'] = df['value'].astype(float)
    return df


def normal_ci(
    values: Sequence[Optional[float]],
    confidence: float = 0.95,
) -> Tuple[Optional[float], Optional[float], Optional[float], int]:
    """
    Mean and two-sided normal-approximation confidence interval.

    Parameters
    ----------
    values : sequence of float or None
        Values; None and NaN are treated as missing and excluded
    confidence : float
        Coverage of the interval

    Returns
    -------
    tuple
        (mean, lower, upper, n) where n counts non-missing values;
        lower/upper are None for n < 2 and mean is None for n = 0
    """
    kept = np.array([v for v in (_as_optional(v) for v in values) if v is not None], dtype=float)
    n = len(kept)

    if n == 0:
        return None, None, None, 0

    mean = float(kept.mean())
    if n < 2:
        return mean, None, None, n

    z = stats.norm.ppf(1 - (1 - confidence) / 2)
    half_width = z * kept.std(ddof=1) / math.sqrt(n)
    return mean, float(mean - half_width), float(mean + half_width), n


def summarize(
    data: Union[pd.DataFrame, Iterable[MetricRecord]],
    by: Union[str, List[str]],
    value_col: str = 'value',
    confidence: float = 0.95,
) -> pd.DataFrame:
    """
    Summarize values by group into mean and confidence bounds.

    Used for AUC and Brier by time, IBS and C-index by horizon, and
    CIF by time.

    Parameters
    ----------
    data : pd.DataFrame or iterable of MetricRecord
        Records to summarize
    by : str or list of str
        Grouping key column(s)
    value_col : str
        Column holding the values
    confidence : float
        Coverage of the interval

    Returns
    -------
    pd.DataFrame
        One row per group, sorted by key, with columns by + mean, lower, upper, n
    """
    if not isinstance(data, pd.DataFrame):
        data = records_to_frame(data)

    keys = [by] if isinstance(by, str) else list(by)

    if data.empty:
        return pd.DataFrame(columns=keys + SUMMARY_COLUMNS)

    rows = []
    for key, group in data.groupby(keys, sort=True, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        mean, lower, upper, n = normal_ci(group[value_col].tolist(), confidence)
        rows.append(dict(zip(keys, key), mean=mean, lower=lower, upper=upper, n=n))

    summary = pd.DataFrame(rows, columns=keys + SUMMARY_COLUMNS)
    for col in ['mean', 'lower', 'upper']:
        summary[col] = summary[col].astype(float)
    summary['n'] = summary['n'].astype(int)
    return summary.reset_index(drop=True)


def metric_summary(
    records_df: pd.DataFrame,
    metric: str,
    by: Union[str, List[str]],
    confidence: float = 0.95,
) -> pd.DataFrame:
    """Summary of one metric from a tidy records frame."""
    subset = records_df[records_df['metric'] == metric] if not records_df.empty else records_df
    return summarize(subset, by=by, confidence=confidence)
