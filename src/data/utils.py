"""
Utility functions for cohort validation and feature encoding.
"""

import pandas as pd
from typing import Tuple, List

from .columns import DatasetSchema, DEFAULT_SCHEMA, EVENT_CODE_MAP


def validate_data(df: pd.DataFrame, required_columns: List[str]) -> Tuple[bool, List[str]]:
    """
    Validate that dataframe has required columns.

    Args:
        df: DataFrame to validate
        required_columns: List of required column names

    Returns:
        Tuple of (is_valid, missing_columns)
    """
    missing = [col for col in required_columns if col not in df.columns]
    return len(missing) == 0, missing


def encode_features(df: pd.DataFrame, schema: DatasetSchema = DEFAULT_SCHEMA) -> pd.DataFrame:
    """
    Build the numeric design matrix for the forest.

    Categorical predictors are one-hot encoded from their pandas categories,
    so every subset of a prepared cohort yields the same columns in the
    same order, whatever levels the subset happens to contain.

    Args:
        df: Prepared cohort (or a fold subset of it)
        schema: Column layout

    Returns:
        DataFrame of floats, one column per dummy level or continuous predictor
    """
    parts = []

    for col in schema.categorical:
        values = df[col]
        if not isinstance(values.dtype, pd.CategoricalDtype):
            values = values.astype('category')
        dummies = pd.get_dummies(values, prefix=col, prefix_sep='=', dtype=float)
        parts.append(dummies)

    if schema.continuous:
        parts.append(df[list(schema.continuous)].astype(float))

    if not parts:
        return pd.DataFrame(index=df.index)

    return pd.concat(parts, axis=1)


def print_summary_stats(df: pd.DataFrame, schema: DatasetSchema = DEFAULT_SCHEMA,
                        name: str = "Cohort"):
    """
    Print summary statistics for a competing-risks cohort.

    Args:
        df: Prepared cohort
        schema: Column layout
        name: Name for display
    """
    print(f"\n{'='*60}")
    print(f"{name} Summary")
    print(f"{'='*60}")
    print(f"Total patients: {len(df):,}")

    if schema.event_col in df.columns:
        print(f"\nEvent type distribution:")
        counts = df[schema.event_col].value_counts().sort_index()
        for code, count in counts.items():
            label = EVENT_CODE_MAP.get(int(code), str(code))
            print(f"  {code} ({label}): {count:,} ({count/len(df)*100:.1f}%)")

    if schema.time_col in df.columns:
        print(f"\nFollow-up time (months):")
        print(f"  Mean:   {df[schema.time_col].mean():.1f}")
        print(f"  Median: {df[schema.time_col].median():.1f}")
        print(f"  Min:    {df[schema.time_col].min():.0f}")
        print(f"  Max:    {df[schema.time_col].max():.0f}")

    print(f"{'='*60}\n")
