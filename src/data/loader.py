"""
Load a clinical cohort and prepare it for competing-risks modelling.

Preparation steps:
- check that every declared column is present
- drop rows with a missing required value
- check event codes and follow-up times
- cap follow-up time at the configured ceiling
- coerce categorical and continuous predictors
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from .columns import DatasetSchema, DEFAULT_SCHEMA, TIME_CAP_MONTHS
from .utils import validate_data
from ..survival_cv.exceptions import DataError

logger = logging.getLogger(__name__)


def read_table(filepath: Path, sheet_name: Union[int, str] = 0) -> pd.DataFrame:
    """
    Read a cohort table from Excel, CSV or parquet.

    Parameters
    ----------
    filepath : Path
        Input file
    sheet_name : int or str
        Sheet to read for Excel workbooks

    Returns
    -------
    pd.DataFrame
        Raw table
    """
    filepath = Path(filepath)
    suffix = filepath.suffix.lower()

    logger.info(f"Loading cohort from {filepath}")

    if suffix in ('.xlsx', '.xls'):
        df = pd.read_excel(filepath, sheet_name=sheet_name)
    elif suffix == '.csv':
        df = pd.read_csv(filepath)
    elif suffix == '.parquet':
        df = pd.read_parquet(filepath)
    else:
        raise DataError(f"Unsupported input format '{suffix}' for {filepath}")

    logger.info(f"Loaded {len(df):,} rows and {df.shape[1]} columns")
    return df


def prepare_dataset(
    df: pd.DataFrame,
    schema: DatasetSchema = DEFAULT_SCHEMA,
    time_cap: float = TIME_CAP_MONTHS,
) -> pd.DataFrame:
    """
    Validate and clean a raw cohort table.

    Parameters
    ----------
    df : pd.DataFrame
        Raw table
    schema : DatasetSchema
        Declared column layout
    time_cap : float
        Follow-up ceiling; longer times are set to this value

    Returns
    -------
    pd.DataFrame
        New frame restricted to the schema columns, with a fresh RangeIndex

    Raises
    ------
    DataError
        If columns are missing, no complete row remains, or outcome
        values are invalid
    """
    is_valid, missing = validate_data(df, schema.required_columns)
    if not is_valid:
        raise DataError(f"Missing required columns: {missing}")

    cohort = df[schema.required_columns].dropna()
    n_dropped = len(df) - len(cohort)
    if n_dropped:
        logger.info(f"Dropped {n_dropped:,} rows with missing required values")

    if cohort.empty:
        raise DataError("No complete rows remain after dropping missing values")

    try:
        times = pd.to_numeric(cohort[schema.time_col]).astype(float)
        codes = pd.to_numeric(cohort[schema.event_col])
    except (TypeError, ValueError) as e:
        raise DataError(f"Non-numeric outcome values: {e}") from e

    if (codes != codes.round()).any():
        raise DataError(f"Column '{schema.event_col}' must hold integer event codes")
    codes = codes.astype(int)

    bad_codes = sorted(set(codes.unique()) - set(schema.event_codes))
    if bad_codes:
        raise DataError(
            f"Unexpected event codes {bad_codes} in '{schema.event_col}'; "
            f"allowed: {list(schema.event_codes)}"
        )

    if (times < 0).any() or not np.isfinite(times).all():
        raise DataError(f"Column '{schema.time_col}' must hold finite non-negative times")

    n_capped = int((times > time_cap).sum())
    if n_capped:
        logger.info(f"Capped {n_capped:,} follow-up times at {time_cap}")

    cohort = cohort.assign(**{
        schema.time_col: times.clip(upper=time_cap),
        schema.event_col: codes,
    })

    for col in schema.categorical:
        cohort[col] = cohort[col].astype('category')
    for col in schema.continuous:
        try:
            cohort[col] = pd.to_numeric(cohort[col]).astype(float)
        except (TypeError, ValueError) as e:
            raise DataError(f"Continuous predictor '{col}' is not numeric: {e}") from e

    return cohort.reset_index(drop=True)


def load_dataset(
    filepath: Path,
    schema: DatasetSchema = DEFAULT_SCHEMA,
    time_cap: float = TIME_CAP_MONTHS,
    sheet_name: Union[int, str] = 0,
) -> pd.DataFrame:
    """Read a cohort file and run prepare_dataset on it."""
    raw = read_table(filepath, sheet_name=sheet_name)
    cohort = prepare_dataset(raw, schema=schema, time_cap=time_cap)
    logger.info(f"Prepared cohort with {len(cohort):,} patients")
    return cohort
