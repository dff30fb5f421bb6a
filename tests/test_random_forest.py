"""
Tests for the cause-specific competing risks RSF.

Usage:
    pytest tests/test_random_forest.py -v
"""

import numpy as np
import pandas as pd
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.columns import DatasetSchema
from src.survival_cv.random_forest import CompetingRisksRSF, fit_rsf_competing_risks
from src.survival_cv.cumulative_incidence import predict_cif, mean_cif_curve
from src.survival_cv.exceptions import FitError

RANDOM_SEED = 42

SCHEMA = DatasetSchema(categorical=('sex', 'stage'), continuous=('age',))

FOREST_PARAMS = dict(n_estimators=10, min_samples_leaf=3, max_depth=4, random_state=RANDOM_SEED)


@pytest.fixture
def cohort():
    """Synthetic cohort where stage drives the event of interest."""
    rng = np.random.default_rng(RANDOM_SEED)
    n = 80

    stage = rng.choice(['I', 'II', 'III'], size=n)
    delta = np.where(
        stage == 'III',
        rng.choice([1, 1, 2, 0], size=n),
        rng.choice([1, 2, 2, 0], size=n),
    )

    df = pd.DataFrame({
        'sex': rng.choice(['F', 'M'], size=n),
        'stage': stage,
        'age': rng.uniform(30, 80, size=n),
        'time': rng.uniform(1, 100, size=n).round(),
        'delta': delta,
    })
    df['sex'] = df['sex'].astype('category')
    df['stage'] = df['stage'].astype('category')
    return df


@pytest.fixture
def fitted(cohort):
    return fit_rsf_competing_risks(cohort, schema=SCHEMA, **FOREST_PARAMS)


def test_one_forest_per_event_type(fitted):
    assert sorted(fitted.models_) == [1, 2]
    assert 'stage=III' in fitted.feature_names_


def test_cif_is_monotone_and_bounded(fitted, cohort):
    times = np.arange(0, 121, 5, dtype=float)
    cif = predict_cif(fitted, cohort, times, cause=1, schema=SCHEMA)

    assert cif.shape == (len(cohort), len(times))
    assert (cif >= 0).all() and (cif <= 1).all()
    assert (np.diff(cif, axis=1) >= -1e-12).all(), "CIF must be non-decreasing in time"


def test_cifs_of_all_causes_sum_to_at_most_one(fitted, cohort):
    times = np.array([10.0, 50.0, 100.0])
    total = (
        predict_cif(fitted, cohort, times, cause=1, schema=SCHEMA)
        + predict_cif(fitted, cohort, times, cause=2, schema=SCHEMA)
    )
    assert (total <= 1 + 1e-9).all()


def test_cumulative_hazard_is_zero_before_first_time(fitted, cohort):
    from src.data.utils import encode_features

    X = encode_features(cohort, SCHEMA)
    first = fitted.models_[1].unique_times_[0]
    chf = fitted.predict_cumulative_hazard(X, event=1, times=[first - 0.5])
    np.testing.assert_array_equal(chf, 0.0)


def test_predictions_are_reproducible(cohort):
    times = np.array([20.0, 60.0])
    first = predict_cif(fit_rsf_competing_risks(cohort, SCHEMA, **FOREST_PARAMS),
                        cohort, times, schema=SCHEMA)
    second = predict_cif(fit_rsf_competing_risks(cohort, SCHEMA, **FOREST_PARAMS),
                         cohort, times, schema=SCHEMA)
    np.testing.assert_allclose(first, second)


def test_subset_prediction_uses_training_columns(fitted, cohort):
    # a test subset without stage III must still be encoded with all levels
    subset = cohort[cohort['stage'] != 'III']
    cif = predict_cif(fitted, subset, [50.0], schema=SCHEMA)
    assert cif.shape == (len(subset), 1)


def test_mean_cif_curve(fitted, cohort):
    times = np.array([10.0, 50.0])
    cif = predict_cif(fitted, cohort, times, schema=SCHEMA)
    curve = mean_cif_curve(cif, times)

    assert curve['time'].tolist() == [10.0, 50.0]
    assert curve['cif'].iloc[0] <= curve['cif'].iloc[1]


def test_unsupported_split_rule_raises(cohort):
    from src.data.utils import encode_features

    model = CompetingRisksRSF(split_rule='gray', n_estimators=5)
    with pytest.raises(ValueError, match="Unsupported split rule"):
        model.fit(encode_features(cohort, SCHEMA), cohort['time'].values, cohort['delta'].values)


def test_predict_before_fit_raises(cohort):
    from src.data.utils import encode_features

    model = CompetingRisksRSF(n_estimators=5)
    with pytest.raises(ValueError):
        model.predict_cumulative_incidence(encode_features(cohort, SCHEMA), event=1, times=[10.0])


def test_fold_without_competing_events_raises_fit_error(cohort):
    no_competing = cohort.assign(delta=cohort['delta'].replace(2, 0))
    with pytest.raises(FitError):
        fit_rsf_competing_risks(no_competing, SCHEMA, **FOREST_PARAMS)


def test_predict_risk(fitted, cohort):
    from src.data.utils import encode_features

    X = encode_features(cohort, SCHEMA)
    risk = fitted.predict_risk(X, event=1)
    assert risk.shape == (len(cohort),)
    assert np.isfinite(risk).all()

    with pytest.raises(ValueError, match="No model for event 3"):
        fitted.predict_risk(X, event=3)
