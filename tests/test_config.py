"""
Tests for run configuration.

Usage:
    pytest tests/test_config.py -v
"""

import numpy as np
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.survival_cv.config import CVConfig, HORIZONS, N_SPLITS, N_REPEATS


def test_defaults():
    config = CVConfig()
    assert config.n_splits == N_SPLITS
    assert config.n_repeats == N_REPEATS
    assert config.horizons == HORIZONS
    assert config.max_horizon == 114
    assert config.censoring_data == 'test'
    assert config.validate() is config


def test_eval_times_end_at_horizon():
    config = CVConfig(time_step=1)
    times = config.eval_times(60)
    assert times[0] == 1.0
    assert times[-1] == 60.0
    assert len(times) == 60


def test_eval_times_append_off_grid_horizon():
    config = CVConfig(time_step=6, horizons=(20,))
    np.testing.assert_array_equal(config.eval_times(), [6.0, 12.0, 18.0, 20.0])


def test_param_grid():
    grid = CVConfig(min_samples_leaf_grid=(5, 10), max_depth_grid=(3, None)).param_grid()
    assert grid == {'min_samples_leaf': [5, 10], 'max_depth': [3, None]}


def test_with_overrides_ignores_none():
    config = CVConfig().with_overrides(n_splits=10, n_repeats=None, seed=7)
    assert config.n_splits == 10
    assert config.n_repeats == N_REPEATS
    assert config.seed == 7


@pytest.mark.parametrize("overrides", [
    dict(n_splits=1),
    dict(n_repeats=0),
    dict(n_estimators=0),
    dict(horizons=()),
    dict(horizons=(0, 60)),
    dict(horizons=(60, 200)),
    dict(time_step=0),
    dict(confidence=1.0),
    dict(censoring_data='full'),
    dict(split_rule='gray'),
])
def test_invalid_settings_raise(overrides):
    with pytest.raises(ValueError):
        CVConfig(**overrides).validate()
