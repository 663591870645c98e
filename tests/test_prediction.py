"""
Tests for prediction-time replay.

Tests:
- Training round-trip reproduces the stored table
- Subsets (response / fixed / random)
- New data uses fit-time statistics only
- Unseen levels and groups are fatal
"""
import numpy as np
import pandas as pd
import pytest

from standardize import PredictionMapper, expand_factors, predict, standardize
from standardize.exceptions import MissingVariableError, UnseenGroupError, UnseenLevelError


@pytest.fixture
def model(train_df, full_formula):
    return standardize(full_formula, train_df, scale=0.5)


# =============================================================================
# ROUND TRIP
# =============================================================================

class TestRoundTrip:
    """Replaying on the training table gives back model.data."""

    def test_full_round_trip(self, model, train_df):
        pd.testing.assert_frame_equal(model.predict(train_df, response=True), model.data)

    def test_fixed_only(self, model, train_df):
        result = model.predict(train_df, random=False)
        expected = model.data[['x', 'log_z', 'scale_by_w_g', 'f', 'b', 'o']]
        pd.testing.assert_frame_equal(result, expected)

    def test_random_only(self, model, train_df):
        result = model.predict(train_df, fixed=False)
        pd.testing.assert_frame_equal(result, model.data[['g']])

    def test_response_only(self, model, train_df):
        result = model.predict(train_df, response=True, fixed=False, random=False)
        pd.testing.assert_frame_equal(result, model.data[['y']])

    def test_round_trip_with_poly_and_offset(self, train_df):
        model = standardize("y ~ poly(x, 3) + I(x ^ 2) + offset(log(exposure))", train_df)
        pd.testing.assert_frame_equal(model.predict(train_df, response=True), model.data)


# =============================================================================
# NEW DATA
# =============================================================================

class TestNewData:
    """Prediction on new rows."""

    def test_uses_training_statistics(self, model, train_df, new_df):
        result = model.predict(new_df)
        expected = (new_df['x'] - train_df['x'].mean()) / train_df['x'].std(ddof=1) * 0.5
        np.testing.assert_allclose(result['x'], expected)

    def test_grouped_uses_training_group_statistics(self, model, train_df, new_df):
        result = model.predict(new_df)
        stats = train_df.groupby('g')['w'].agg(['mean', 'std'])
        expected = (
            (new_df['w'] - new_df['g'].map(stats['mean']))
            / new_df['g'].map(stats['std']) * 0.5
        )
        np.testing.assert_allclose(result['scale_by_w_g'], expected)

    def test_factor_categories_match_training(self, model, new_df):
        result = model.predict(new_df)
        for column in ['f', 'b', 'o', 'g']:
            pd.testing.assert_index_equal(
                result[column].cat.categories, model.data[column].cat.categories
            )

    def test_response_not_needed(self, model, new_df):
        result = model.predict(new_df.drop(columns=['y']))
        assert 'y' not in result.columns
        pd.testing.assert_index_equal(result.index, new_df.index)

    def test_index_preserved(self, model, new_df):
        shuffled = new_df.sample(frac=1.0, random_state=0)
        shuffled.index = shuffled.index + 1000
        result = model.predict(shuffled)
        pd.testing.assert_index_equal(result.index, shuffled.index)

    def test_missing_factor_value_stays_missing(self, model, new_df):
        data = new_df.copy()
        data.loc[0, 'f'] = None
        result = model.predict(data)
        assert pd.isna(result.loc[0, 'f'])

    def test_parallel_matches_sequential(self, model, new_df):
        pd.testing.assert_frame_equal(
            model.predict(new_df, n_jobs=1), model.predict(new_df, n_jobs=3)
        )

    def test_predict_function(self, model, new_df):
        pd.testing.assert_frame_equal(predict(model, new_df), model.predict(new_df))

    def test_expand_factors_on_predictions(self, model, new_df):
        expanded = expand_factors(model.predict(new_df), model.contrasts)
        assert {'fa', 'fb', 'bTRUE', 'oL', 'oQ'} <= set(expanded.columns)
        assert 'f' not in expanded.columns


# =============================================================================
# ERRORS
# =============================================================================

class TestPredictionErrors:
    """Unseen values and missing columns are fatal."""

    def test_unseen_group(self, model, new_df):
        data = new_df.copy()
        data.loc[0, 'g'] = 's9'
        with pytest.raises(UnseenGroupError) as excinfo:
            model.predict(data)
        assert excinfo.value.variable == 'g'
        assert excinfo.value.unseen == ['s9']

    def test_unseen_group_random_only(self, model, new_df):
        data = new_df.copy()
        data.loc[0, 'g'] = 's9'
        with pytest.raises(UnseenGroupError):
            model.predict(data, fixed=False)

    def test_unseen_group_in_grouped_continuous(self, train_df, new_df):
        model = standardize("y ~ scale_by(w ~ g)", train_df)
        data = new_df.copy()
        data.loc[3, 'g'] = 'new-subject'
        with pytest.raises(UnseenGroupError, match="new-subject"):
            model.predict(data)

    def test_unseen_level(self, model, new_df):
        data = new_df.copy()
        data.loc[0, 'f'] = 'zz'
        with pytest.raises(UnseenLevelError, match="zz") as excinfo:
            model.predict(data)
        assert not isinstance(excinfo.value, UnseenGroupError)
        assert excinfo.value.allowed == ['a', 'b', 'c']

    def test_missing_column(self, model, new_df):
        with pytest.raises(MissingVariableError) as excinfo:
            model.predict(new_df.drop(columns=['f', 'z']))
        assert excinfo.value.variables == ['f', 'z']

    def test_missing_response_when_requested(self, model, new_df):
        with pytest.raises(MissingVariableError):
            model.predict(new_df.drop(columns=['y']), response=True)

    def test_non_dataframe(self, model):
        with pytest.raises(ValueError, match="DataFrame"):
            model.predict([1, 2, 3])


class TestPredictionMapper:
    """Tests for PredictionMapper directly."""

    def test_select_order(self, model):
        names = [d.name for d in PredictionMapper(model).select(response=True)]
        assert names == list(model.data.columns)

    def test_random_slope_variable_selected_as_fixed(self, train_df):
        model = standardize("y ~ z + (1 + x | g)", train_df)
        mapper = PredictionMapper(model)
        assert [d.name for d in mapper.select(fixed=False)] == ['g']
        assert [d.name for d in mapper.select(random=False)] == ['z', 'x']
        assert list(model.predict(train_df, fixed=False).columns) == ['g']
        pd.testing.assert_frame_equal(
            model.predict(train_df, random=False), model.data[['z', 'x']]
        )

    def test_empty_selection(self, model, new_df):
        result = PredictionMapper(model).transform(new_df, fixed=False, random=False)
        assert result.shape == (len(new_df), 0)
