"""
Tests for repeated stratified k-fold generation.

Usage:
    pytest tests/test_folds.py -v
"""

import numpy as np
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.survival_cv.folds import make_folds
from src.survival_cv.exceptions import DataError

RANDOM_SEED = 42

# 30 observations: 12 events, 9 competing, 9 censored
STRATA = np.array([1] * 12 + [2] * 9 + [0] * 9)


@pytest.mark.parametrize("n_splits,n_repeats", [(2, 1), (3, 2), (5, 3)])
def test_fold_count(n_splits, n_repeats):
    folds = make_folds(STRATA, n_splits=n_splits, n_repeats=n_repeats, seed=RANDOM_SEED)
    assert len(folds) == n_splits * n_repeats
    assert len({f.name for f in folds}) == len(folds), "Fold names must be unique"


def test_test_sets_partition_each_repeat():
    folds = make_folds(STRATA, n_splits=3, n_repeats=4, seed=RANDOM_SEED)
    n = len(STRATA)

    for repeat in range(1, 5):
        tests = [f.test_index for f in folds if f.repeat == repeat]
        assert len(tests) == 3
        combined = np.concatenate(tests)
        assert len(combined) == n, "Test sets overlap within a repeat"
        assert set(combined) == set(range(n)), "Test sets leave gaps within a repeat"


def test_train_is_complement_of_test():
    for fold in make_folds(STRATA, n_splits=5, n_repeats=2, seed=RANDOM_SEED):
        assert not set(fold.train_index) & set(fold.test_index)
        assert set(fold.train_index) | set(fold.test_index) == set(range(len(STRATA)))


def test_same_seed_gives_identical_folds():
    first = make_folds(STRATA, n_splits=3, n_repeats=2, seed=7)
    second = make_folds(STRATA, n_splits=3, n_repeats=2, seed=7)

    for a, b in zip(first, second):
        assert a.name == b.name
        np.testing.assert_array_equal(a.train_index, b.train_index)
        np.testing.assert_array_equal(a.test_index, b.test_index)


def test_different_seeds_change_partitions():
    first = make_folds(STRATA, n_splits=3, n_repeats=1, seed=1)
    second = make_folds(STRATA, n_splits=3, n_repeats=1, seed=2)
    assert any(
        not np.array_equal(a.test_index, b.test_index) for a, b in zip(first, second)
    )


def test_repeats_are_redrawn():
    folds = make_folds(STRATA, n_splits=3, n_repeats=2, seed=RANDOM_SEED)
    rep1 = [set(f.test_index) for f in folds if f.repeat == 1]
    rep2 = [set(f.test_index) for f in folds if f.repeat == 2]
    assert rep1 != rep2


def test_folds_preserve_strata():
    folds = make_folds(STRATA, n_splits=3, n_repeats=1, seed=RANDOM_SEED)
    for fold in folds:
        labels = STRATA[fold.test_index]
        assert (labels == 1).sum() == 4
        assert (labels == 2).sum() == 3
        assert (labels == 0).sum() == 3


def test_fold_names():
    folds = make_folds(STRATA, n_splits=2, n_repeats=2, seed=RANDOM_SEED)
    assert [f.name for f in folds] == ['Fold1.Rep1', 'Fold2.Rep1', 'Fold1.Rep2', 'Fold2.Rep2']


def test_thin_stratum_raises():
    strata = np.array([1] * 10 + [2] * 2 + [0] * 10)
    with pytest.raises(DataError, match="fewer than 3"):
        make_folds(strata, n_splits=3, n_repeats=1, seed=RANDOM_SEED)


@pytest.mark.parametrize("n_splits,n_repeats", [(1, 1), (0, 1), (2, 0)])
def test_invalid_split_counts_raise(n_splits, n_repeats):
    with pytest.raises(DataError):
        make_folds(STRATA, n_splits=n_splits, n_repeats=n_repeats, seed=RANDOM_SEED)


def test_split_returns_copies():
    import pandas as pd

    df = pd.DataFrame({'x': np.arange(len(STRATA)), 'delta': STRATA})
    fold = make_folds(STRATA, n_splits=3, n_repeats=1, seed=RANDOM_SEED)[0]
    train_df, test_df = fold.split(df)

    assert len(train_df) + len(test_df) == len(df)
    train_df['x'] = -1
    assert (df['x'] >= 0).all(), "Fold split must not write through to the cohort"
