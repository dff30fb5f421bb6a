"""
Column definitions for the clinical competing-risks cohort.

The cohort sheet has one row per patient with baseline covariates,
a follow-up time in months and an event-type code.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

# Categorical predictors (coerced to pandas 'category' at load time)
CATEGORICAL_PREDICTORS = [
    'sex',
    'stage',
    'grade',
    'treatment',
]

# Continuous predictors
CONTINUOUS_PREDICTORS = [
    'age',
    'tumor_size',
    'positive_nodes',
]

# Outcome columns
TIME_COL = 'time'
EVENT_COL = 'delta'

# Event-type codes
CENSORED = 0
EVENT_OF_INTEREST = 1
COMPETING_RISK = 2

VALID_EVENT_CODES = (CENSORED, EVENT_OF_INTEREST, COMPETING_RISK)

EVENT_CODE_MAP = {
    CENSORED: 'censored',
    EVENT_OF_INTEREST: 'event_of_interest',
    COMPETING_RISK: 'competing_risk',
}

# Follow-up ceiling in months; longer follow-up is capped to this value
TIME_CAP_MONTHS = 114


@dataclass(frozen=True)
class DatasetSchema:
    """
    Statically declared layout of a cohort table.

    Parameters
    ----------
    categorical : tuple of str
        Categorical predictor columns
    continuous : tuple of str
        Continuous predictor columns
    time_col : str
        Follow-up time column
    event_col : str
        Event-type code column (0=censored, 1=event, 2=competing)
    event_codes : tuple of int
        Admissible event codes
    """

    categorical: Tuple[str, ...] = tuple(CATEGORICAL_PREDICTORS)
    continuous: Tuple[str, ...] = tuple(CONTINUOUS_PREDICTORS)
    time_col: str = TIME_COL
    event_col: str = EVENT_COL
    event_codes: Tuple[int, ...] = field(default=VALID_EVENT_CODES)

    @property
    def predictors(self) -> List[str]:
        return list(self.categorical) + list(self.continuous)

    @property
    def required_columns(self) -> List[str]:
        return self.predictors + [self.time_col, self.event_col]

    @property
    def event_types(self) -> List[int]:
        """Non-censoring event codes, one cause-specific model each."""
        return [code for code in self.event_codes if code != CENSORED]


DEFAULT_SCHEMA = DatasetSchema()
