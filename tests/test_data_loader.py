"""
Tests for cohort loading, validation and feature encoding.

Usage:
    pytest tests/test_data_loader.py -v
"""

import numpy as np
import pandas as pd
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.columns import DatasetSchema, DEFAULT_SCHEMA, TIME_CAP_MONTHS
from src.data.loader import read_table, prepare_dataset, load_dataset
from src.data.utils import encode_features, validate_data
from src.survival_cv.exceptions import DataError

SCHEMA = DatasetSchema(categorical=('sex', 'stage'), continuous=('age',))


def _raw(**overrides):
    data = {
        'sex': ['F', 'M', 'F', 'M', 'F'],
        'stage': ['I', 'II', 'III', 'I', 'II'],
        'age': [54, 61, 47, 70, 66],
        'time': [12.0, 130.0, 40.0, 114.0, 7.5],
        'delta': [1, 0, 2, 1, 0],
        'comment': ['a', 'b', 'c', 'd', 'e'],
    }
    data.update(overrides)
    return pd.DataFrame(data)


class TestValidation:

    def test_validate_data_reports_missing(self):
        is_valid, missing = validate_data(_raw(), ['sex', 'grade', 'time'])
        assert not is_valid
        assert missing == ['grade']

    def test_missing_column_raises(self):
        with pytest.raises(DataError, match="Missing required columns"):
            prepare_dataset(_raw().drop(columns=['stage']), SCHEMA)

    def test_all_rows_incomplete_raises(self):
        with pytest.raises(DataError, match="No complete rows"):
            prepare_dataset(_raw(age=[np.nan] * 5), SCHEMA)

    def test_unexpected_event_code_raises(self):
        with pytest.raises(DataError, match="Unexpected event codes"):
            prepare_dataset(_raw(delta=[1, 0, 3, 1, 0]), SCHEMA)

    def test_fractional_event_code_raises(self):
        with pytest.raises(DataError):
            prepare_dataset(_raw(delta=[1, 0, 1.5, 1, 0]), SCHEMA)

    def test_negative_time_raises(self):
        with pytest.raises(DataError, match="non-negative"):
            prepare_dataset(_raw(time=[12.0, -1.0, 40.0, 114.0, 7.5]), SCHEMA)

    def test_non_numeric_time_raises(self):
        with pytest.raises(DataError):
            prepare_dataset(_raw(time=['12', 'x', '40', '114', '7']), SCHEMA)


class TestPreparation:

    def test_time_is_capped(self):
        df = prepare_dataset(_raw(), SCHEMA, time_cap=TIME_CAP_MONTHS)
        assert df['time'].max() == TIME_CAP_MONTHS
        # the capped row keeps its event code
        assert df.loc[1, 'delta'] == 0

    def test_only_schema_columns_are_kept(self):
        df = prepare_dataset(_raw(), SCHEMA)
        assert list(df.columns) == SCHEMA.required_columns

    def test_types_are_coerced(self):
        df = prepare_dataset(_raw(), SCHEMA)
        assert isinstance(df['sex'].dtype, pd.CategoricalDtype)
        assert isinstance(df['stage'].dtype, pd.CategoricalDtype)
        assert df['age'].dtype == float
        assert df['delta'].dtype.kind == 'i'

    def test_incomplete_rows_dropped_and_index_reset(self):
        raw = _raw(age=[54, np.nan, 47, 70, np.nan])
        df = prepare_dataset(raw, SCHEMA)
        assert len(df) == 3
        assert df.index.tolist() == [0, 1, 2]

    def test_input_is_not_modified(self):
        raw = _raw()
        before = raw.copy()
        prepare_dataset(raw, SCHEMA)
        pd.testing.assert_frame_equal(raw, before)


class TestEncoding:

    def test_dummy_columns(self):
        df = prepare_dataset(_raw(), SCHEMA)
        X = encode_features(df, SCHEMA)
        assert list(X.columns) == ['sex=F', 'sex=M', 'stage=I', 'stage=II', 'stage=III', 'age']
        assert (X.dtypes == float).all()

    def test_subsets_share_columns(self):
        df = prepare_dataset(_raw(), SCHEMA)
        subset = df[df['stage'] == 'I']
        assert list(encode_features(subset, SCHEMA).columns) == list(encode_features(df, SCHEMA).columns)
        assert (encode_features(subset, SCHEMA)['stage=III'] == 0).all()


class TestFiles:

    def test_load_csv(self, tmp_path):
        path = tmp_path / 'cohort.csv'
        _raw().to_csv(path, index=False)

        df = load_dataset(path, schema=SCHEMA)
        assert len(df) == 5
        assert df['time'].max() == TIME_CAP_MONTHS

    def test_unsupported_suffix_raises(self, tmp_path):
        path = tmp_path / 'cohort.txt'
        path.write_text('time,delta\n1,1\n')
        with pytest.raises(DataError, match="Unsupported input format"):
            read_table(path)

    def test_default_schema_columns(self):
        assert DEFAULT_SCHEMA.event_types == [1, 2]
        assert DEFAULT_SCHEMA.required_columns[-2:] == ['time', 'delta']
