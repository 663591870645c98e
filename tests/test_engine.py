"""
Tests for the standardization engine.

Tests:
- Continuous, grouped, factor, polynomial and expression terms
- Gaussian vs non-gaussian responses
- Offsets
- Formula rewriting and naming
- Fatal errors (no partial results)
"""
import numpy as np
import pandas as pd
import pytest

from standardize import StandardizeConfig, TransformEngine, standardize
from standardize.classify import VariableClass
from standardize.descriptors import Source
from standardize.exceptions import (
    DegenerateFactorError,
    FormulaError,
    MissingVariableError,
    NonNumericError,
    StandardizeError,
    ZeroVarianceError,
)


# =============================================================================
# FULL MODEL
# =============================================================================

class TestStandardizeFullModel:
    """Tests on a model using every common term type."""

    @pytest.fixture
    def model(self, train_df, full_formula):
        return standardize(full_formula, train_df)

    def test_formula_rewritten(self, model):
        assert model.formula == "y ~ x + log_z + scale_by_w_g + f + b + o + (1 | g)"

    def test_data_columns(self, model):
        assert list(model.data.columns) == [
            'y', 'x', 'log_z', 'scale_by_w_g', 'f', 'b', 'o', 'g'
        ]
        assert len(model.data) == 120
        pd.testing.assert_index_equal(model.data.index, pd.RangeIndex(120))

    def test_response_unit_scale(self, model):
        y = model.data['y']
        assert np.isclose(y.mean(), 0.0, atol=1e-10)
        assert np.isclose(y.std(ddof=1), 1.0)

    @pytest.mark.parametrize("column", ['x', 'log_z'])
    def test_continuous_unit_scale(self, model, column):
        values = model.data[column]
        assert np.isclose(values.mean(), 0.0, atol=1e-10)
        assert np.isclose(values.std(ddof=1), 1.0)

    def test_log_applied_before_scaling(self, model, train_df):
        expected = np.log(train_df['z'])
        expected = (expected - expected.mean()) / expected.std(ddof=1)
        np.testing.assert_allclose(model.data['log_z'], expected)

    def test_grouped_scaling(self, model, train_df):
        grouped = model.data['scale_by_w_g']
        stats = grouped.groupby(train_df['g']).agg(['mean', 'std'])
        np.testing.assert_allclose(stats['mean'], 0.0, atol=1e-10)
        np.testing.assert_allclose(stats['std'], 1.0)
        # unequal groups: pooled sd is close to but not exactly 1
        assert np.isclose(grouped.std(ddof=1), np.sqrt(117 / 119))

    def test_unordered_factor(self, model):
        assert list(model.data['f'].cat.categories) == ['a', 'b', 'c']
        contrast = model.contrasts['f']
        np.testing.assert_array_equal(contrast.loc['c'].to_numpy(), [-1.0, -1.0])

    def test_boolean_factor_positive_first(self, model):
        assert list(model.data['b'].cat.categories) == ['TRUE', 'FALSE']
        contrast = model.contrasts['b']
        assert contrast.loc['TRUE', 'TRUE'] == 1.0
        assert contrast.loc['FALSE', 'TRUE'] == -1.0

    def test_ordered_factor(self, model):
        contrast = model.contrasts['o']
        assert list(contrast.index) == ['low', 'mid', 'high']
        assert list(contrast.columns) == ['L', 'Q']
        np.testing.assert_allclose(contrast.std(ddof=1), 1.0)
        assert model.data['o'].cat.ordered

    def test_grouping_factor(self, model):
        assert model.groups == {'g': ['s1', 's2', 's3']}
        assert list(model.data['g'].cat.categories) == ['s1', 's2', 's3']

    def test_variable_table(self, model):
        table = model.variables.set_index('variable')
        assert table.loc['log(z)', 'std_variable'] == 'log_z'
        assert table.loc['scale_by(w ~ g)', 'class'] == 'grouped_continuous'
        assert table.loc['f', 'class'] == 'unordered_factor'
        assert table.loc['o', 'class'] == 'ordered_factor'
        assert table.loc['g', 'role'] == 'random_group'
        assert table.loc['y', 'role'] == 'response'

    def test_input_not_modified(self, train_df, full_formula):
        before = train_df.copy()
        standardize(full_formula, train_df)
        pd.testing.assert_frame_equal(train_df, before)


# =============================================================================
# SCALE AND FAMILY
# =============================================================================

class TestScaleAndFamily:
    """Tests for the scale and family settings."""

    def test_scale_applies_to_predictors_not_response(self, train_df):
        model = standardize("y ~ x + f", train_df, scale=0.5)
        assert np.isclose(model.data['y'].std(ddof=1), 1.0)
        assert np.isclose(model.data['x'].std(ddof=1), 0.5)
        assert set(np.unique(model.contrasts['f'].to_numpy())) == {-0.5, 0.0, 0.5}
        assert model.scale == 0.5

    def test_non_gaussian_response_unchanged(self, train_df):
        model = standardize("success ~ x", train_df, family='binomial')
        np.testing.assert_array_equal(model.data['success'], train_df['success'])
        assert model.variables.set_index('variable').loc['success', 'class'] == 'identity'
        assert np.isclose(model.data['x'].std(ddof=1), 1.0)

    def test_gaussian_family_aliases(self, train_df):
        model = standardize("y ~ x", train_df, family='Normal')
        assert np.isclose(model.data['y'].std(ddof=1), 1.0)

    def test_grouped_response(self, train_df):
        model = standardize("scale_by(y ~ g) ~ x", train_df)
        assert model.formula == "scale_by_y_g ~ x"
        stds = model.data['scale_by_y_g'].groupby(train_df['g']).std()
        np.testing.assert_allclose(stds, 1.0)

    def test_grouped_response_requires_gaussian(self, train_df):
        with pytest.raises(FormulaError, match="gaussian"):
            standardize("scale_by(y ~ g) ~ x", train_df, family='poisson')

    def test_config_object(self, train_df):
        config = StandardizeConfig(scale=2.0)
        model = standardize("y ~ x", train_df, config=config)
        assert np.isclose(model.data['x'].std(ddof=1), 2.0)

    def test_keyword_overrides_config(self, train_df):
        config = StandardizeConfig(scale=2.0)
        model = standardize("y ~ x", train_df, config=config, scale=0.5)
        assert np.isclose(model.data['x'].std(ddof=1), 0.5)

    @pytest.mark.parametrize("scale", [0, -1.0, float('nan')])
    def test_invalid_scale(self, train_df, scale):
        with pytest.raises(ValueError, match="scale"):
            standardize("y ~ x", train_df, scale=scale)


# =============================================================================
# OTHER TERM TYPES
# =============================================================================

class TestTermTypes:
    """Tests for polynomial, expression and numeric factor terms."""

    def test_polynomial_term(self, train_df):
        model = standardize("y ~ poly(x, 2) + f", train_df, scale=0.5)
        assert model.formula == "y ~ (poly_x_2_1 + poly_x_2_2) + f"
        poly = model.data[['poly_x_2_1', 'poly_x_2_2']]
        np.testing.assert_allclose(poly.mean(), 0.0, atol=1e-10)
        np.testing.assert_allclose(poly.std(ddof=1), 0.5)
        assert abs(np.corrcoef(poly.to_numpy(), rowvar=False)[0, 1]) < 1e-10

    def test_expression_term(self, train_df):
        model = standardize("y ~ I(x ^ 2)", train_df)
        assert model.formula == "y ~ I_x_2"
        expected = train_df['x'] ** 2
        expected = (expected - expected.mean()) / expected.std(ddof=1)
        np.testing.assert_allclose(model.data['I_x_2'], expected)

    def test_two_valued_numeric_is_factor(self, train_df):
        model = standardize("y ~ success", train_df)
        assert list(model.data['success'].cat.categories) == ['1', '0']
        assert model.contrasts['success'].loc['1', 'X1'] == 1.0

    def test_interaction_preserved(self, train_df):
        model = standardize("y ~ x * f + log(z):b", train_df)
        assert model.formula == "y ~ x * f + log_z:b"
        assert list(model.data.columns) == ['y', 'x', 'f', 'log_z', 'b']

    def test_random_slope(self, train_df):
        model = standardize("y ~ x + (1 + x | g)", train_df)
        assert model.formula == "y ~ x + (1 + x | g)"
        assert model.data['g'].dtype == 'category'

    def test_name_collision(self, train_df):
        data = train_df.assign(log_z=train_df['x'] * 3)
        model = standardize("y ~ log_z + log(z)", data)
        assert model.formula == "y ~ log_z + log_z_1"
        expected = np.log(data['z'])
        expected = (expected - expected.mean()) / expected.std(ddof=1)
        np.testing.assert_allclose(model.data['log_z_1'], expected)

    def test_missing_values_stay_missing(self, train_df):
        data = train_df.copy()
        data.loc[0, 'x'] = np.nan
        data.loc[1, 'f'] = None
        model = standardize("y ~ x + f", data)
        assert np.isnan(model.data.loc[0, 'x'])
        assert pd.isna(model.data.loc[1, 'f'])
        assert np.isclose(model.data['x'].std(ddof=1), 1.0)

    def test_parallel_matches_sequential(self, train_df, full_formula):
        sequential = standardize(full_formula, train_df, n_jobs=1)
        parallel = standardize(full_formula, train_df, n_jobs=4)
        pd.testing.assert_frame_equal(sequential.data, parallel.data)
        assert sequential.formula == parallel.formula


# =============================================================================
# OFFSETS
# =============================================================================

class TestOffset:
    """Tests for offset handling."""

    def test_offset_term_divided_by_response_sd(self, train_df):
        model = standardize("y ~ x + offset(log(exposure))", train_df)
        assert model.formula == "y ~ x + offset(offset_log_exposure)"
        expected = np.log(train_df['exposure']) / train_df['y'].std(ddof=1)
        np.testing.assert_allclose(model.data['offset_log_exposure'], expected)
        assert model.offset is not None
        assert model.offset.name == 'offset_log_exposure'

    def test_offset_argument(self, train_df):
        model = standardize("y ~ x", train_df, offset='exposure')
        assert model.formula == "y ~ x + offset(offset_exposure)"
        expected = train_df['exposure'] / train_df['y'].std(ddof=1)
        np.testing.assert_allclose(model.data['offset_exposure'], expected)

    def test_offset_grouped_response(self, train_df):
        model = standardize("scale_by(y ~ g) ~ x + offset(exposure)", train_df)
        sds = train_df.groupby('g')['y'].std()
        expected = train_df['exposure'] / train_df['g'].map(sds)
        np.testing.assert_allclose(model.data['offset_exposure'], expected)

    def test_offset_unchanged_for_non_gaussian(self, train_df):
        model = standardize("success ~ x", train_df, family='poisson', offset='exposure')
        np.testing.assert_allclose(model.data['offset_exposure'], train_df['exposure'])

    def test_both_offsets_rejected(self, train_df):
        with pytest.raises(FormulaError, match="only one"):
            standardize("y ~ x + offset(exposure)", train_df, offset='exposure')


# =============================================================================
# ERRORS
# =============================================================================

class TestEngineErrors:
    """Fatal errors raised before any result is returned."""

    def test_missing_variable(self, train_df):
        with pytest.raises(MissingVariableError) as excinfo:
            standardize("y ~ x + nope + scale_by(w ~ other)", train_df)
        assert excinfo.value.variables == ['nope', 'other']

    def test_constant_predictor(self, train_df):
        data = train_df.assign(x=1.0)
        with pytest.raises(ZeroVarianceError, match="'x'"):
            standardize("y ~ x", data)

    def test_constant_response(self, train_df):
        data = train_df.assign(y=5.0)
        with pytest.raises(ZeroVarianceError):
            standardize("y ~ x", data)

    def test_single_level_factor(self, train_df):
        data = train_df.assign(f='a')
        with pytest.raises(DegenerateFactorError, match="'f'"):
            standardize("y ~ x + f", data)

    def test_single_group(self, train_df):
        data = train_df.assign(g='s1')
        with pytest.raises(DegenerateFactorError, match="two groups"):
            standardize("y ~ x + (1 | g)", data)

    def test_constant_within_group(self, train_df):
        data = train_df.copy()
        data.loc[data['g'] == 's3', 'w'] = 2.0
        with pytest.raises(ZeroVarianceError, match="g='s3'"):
            standardize("y ~ scale_by(w ~ g)", data)

    def test_log_of_non_positive(self, train_df):
        data = train_df.assign(z=train_df['x'] - 100)
        with pytest.raises(NonNumericError, match="positive"):
            standardize("y ~ log(z)", data)

    def test_numeric_transform_of_text(self, train_df):
        with pytest.raises(NonNumericError):
            standardize("y ~ log(f)", train_df)

    def test_non_dataframe(self):
        with pytest.raises(ValueError, match="DataFrame"):
            standardize("y ~ x", {'y': [1, 2], 'x': [3, 4]})

    def test_malformed_formula(self, train_df):
        with pytest.raises(FormulaError):
            standardize("y ~ (x", train_df)

    def test_unsupported_function(self, train_df):
        with pytest.raises(StandardizeError, match="foo"):
            standardize("y ~ foo(x)", train_df)

    def test_expression_evaluation_failure(self, train_df):
        source = Source(expression="foo(x)", requires=('x',))
        with pytest.raises(FormulaError, match=r"Could not evaluate expression 'foo\(x\)'"):
            source.values(train_df)

    def test_supported_math_function(self, train_df):
        model = standardize("y ~ sqrt(z)", train_df)
        assert model.formula == "y ~ sqrt_z"
        expected = np.sqrt(train_df['z'])
        expected = (expected - expected.mean()) / expected.std(ddof=1)
        np.testing.assert_allclose(model.data['sqrt_z'], expected)

    def test_engine_direct(self, train_df):
        engine = TransformEngine(StandardizeConfig(scale=0.5))
        model = engine.fit("y ~ x", train_df)
        assert model.descriptors['x'].kind is VariableClass.CONTINUOUS
        assert model.descriptors['x'].target == 0.5
