"""
Repeated stratified k-fold partitions.

Folds are generated once per run from a fixed seed and reused by the
tuning pass and the final pass, so both see identical train/test splits.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import RepeatedStratifiedKFold

from .exceptions import DataError


@dataclass(frozen=True)
class Fold:
    """
    One train/test partition of the cohort.

    Attributes
    ----------
    name : str
        Identifier of the form 'Fold{k}.Rep{r}' (1-based)
    repeat : int
        Repeat number (1-based)
    fold : int
        Fold number within the repeat (1-based)
    train_index, test_index : np.ndarray
        Positional row indices; test_index is the complement of train_index
    """

    name: str
    repeat: int
    fold: int
    train_index: np.ndarray
    test_index: np.ndarray

    def split(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Positional copies of the training and test rows."""
        return df.iloc[self.train_index].copy(), df.iloc[self.test_index].copy()


def make_folds(
    strata: np.ndarray,
    n_splits: int,
    n_repeats: int = 1,
    seed: int = 42,
) -> List[Fold]:
    """
    Generate n_repeats x n_splits stratified folds.

    Parameters
    ----------
    strata : array-like of shape (n_samples,)
        Stratification label per observation (the event-type code)
    n_splits : int
        Folds per repeat, at least 2
    n_repeats : int
        Number of independently shuffled repeats, at least 1
    seed : int
        Random seed; identical seed and strata give identical folds

    Returns
    -------
    List[Fold]
        Ordered by repeat, then fold

    Raises
    ------
    DataError
        If k or R are out of range or a stratum has fewer than k members
    """
    strata = np.asarray(strata)

    if n_splits < 2:
        raise DataError(f"n_splits must be at least 2, got {n_splits}")
    if n_repeats < 1:
        raise DataError(f"n_repeats must be at least 1, got {n_repeats}")

    labels, counts = np.unique(strata, return_counts=True)
    thin = {label.item(): int(count) for label, count in zip(labels, counts) if count < n_splits}
    if thin:
        raise DataError(
            f"Cannot build {n_splits} stratified folds: strata {thin} have fewer "
            f"than {n_splits} members"
        )

    rskf = RepeatedStratifiedKFold(
        n_splits=n_splits,
        n_repeats=n_repeats,
        random_state=seed,
    )

    folds = []
    placeholder = np.zeros(len(strata))
    for i, (train_idx, test_idx) in enumerate(rskf.split(placeholder, strata)):
        repeat = i // n_splits + 1
        fold = i % n_splits + 1
        folds.append(Fold(
            name=f"Fold{fold}.Rep{repeat}",
            repeat=repeat,
            fold=fold,
            train_index=np.sort(train_idx),
            test_index=np.sort(test_idx),
        ))

    return folds
