"""
Test Suite for Model Training Module
======================================

Tests for the forward-selection, ridge and lasso-fraction estimators, grid
expansion, the shared folds and the CandidateModel wrapper.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

from sklearn.linear_model import LinearRegression

from forestfire.features import engineer_features
from forestfire.preprocessing import preprocess_pipeline
from forestfire.model import (
    ForwardSelectionRegression, RidgeRegression, LassoFractionRegression, CandidateModel,
    make_folds, expand_grid, build_candidates, train_models
)


@pytest.fixture
def regression_data():
    """Linear data where x0 dominates, x1 matters, the rest are noise."""
    rng = np.random.default_rng(0)
    n_samples = 120
    X = pd.DataFrame(rng.normal(size=(n_samples, 6)), columns=[f'x{i}' for i in range(6)])
    y = pd.Series(3.0 * X['x0'] - 1.5 * X['x1'] + 0.3 * X['x2'] + rng.normal(0, 0.5, n_samples))
    return X, y


class TestExpandGrid:
    """Tests for expand_grid."""

    def test_integer_range(self):
        assert expand_grid({'start': 1, 'stop': 10, 'step': 1}) == list(range(1, 11))

    def test_float_range_inclusive(self):
        values = expand_grid({'start': 0.0, 'stop': 1.0, 'step': 0.05})

        assert len(values) == 21
        assert values[0] == 0.0
        assert values[-1] == pytest.approx(1.0)
        assert values[1] == pytest.approx(0.05)

    def test_list_passthrough(self):
        assert expand_grid([0.1, 0.5]) == [0.1, 0.5]

    def test_bad_step(self):
        with pytest.raises(ValueError, match="step"):
            expand_grid({'start': 0.0, 'stop': 1.0, 'step': 0})


class TestFolds:
    """Tests for the shared fold assignment."""

    def test_reproducible(self, regression_data):
        X, _ = regression_data
        first = [test for _, test in make_folds(10, random_state=42).split(X)]
        second = [test for _, test in make_folds(10, random_state=42).split(X)]

        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)

    def test_partition(self, regression_data):
        X, _ = regression_data
        folds = [test for _, test in make_folds(10, random_state=42).split(X)]

        assert len(folds) == 10
        assert sorted(np.concatenate(folds).tolist()) == list(range(len(X)))


class TestForwardSelectionRegression:
    """Tests for ForwardSelectionRegression."""

    def test_selects_strongest_first(self, regression_data):
        X, y = regression_data
        model = ForwardSelectionRegression(max_features=2).fit(X, y)

        assert model.selected_features_.tolist() == [0, 1]
        assert int(np.count_nonzero(model.coef_)) == 2

    @pytest.mark.parametrize("k", [1, 3, 5])
    def test_coefficient_count(self, regression_data, k):
        X, y = regression_data
        model = ForwardSelectionRegression(max_features=k).fit(X, y)

        assert int(np.count_nonzero(model.coef_)) == k
        assert np.all(np.diff(model.rss_path_) <= 1e-9)

    def test_cap_at_column_count(self, regression_data):
        X, y = regression_data
        model = ForwardSelectionRegression(max_features=10).fit(X, y)
        ols = LinearRegression().fit(X, y)

        assert len(model.selected_features_) == 6
        np.testing.assert_allclose(model.predict(X), ols.predict(X), atol=1e-8)

    def test_invalid_max_features(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="max_features"):
            ForwardSelectionRegression(max_features=0).fit(X, y)


class TestRidgeRegression:
    """Tests for RidgeRegression on the collinear engineered table."""

    @pytest.fixture
    def engineered(self, fire_table_factory):
        prep = preprocess_pipeline(engineer_features(fire_table_factory(517, seed=11)),
                                   {'random_state': 42})
        return prep['X_train'], prep['y_train']

    def test_design_is_collinear(self, engineered):
        X, y = engineered
        model = RidgeRegression(alpha=0.0).fit(X, y)

        assert {'is_weekend', 'day_sat', 'day_sun'} <= set(X.columns)
        assert model.rank_ < X.shape[1]

    def test_zero_alpha_matches_least_squares(self, engineered):
        X, y = engineered
        model = RidgeRegression(alpha=0.0).fit(X, y)
        ols = LinearRegression().fit(X, y)

        assert np.all(np.isfinite(model.coef_))
        assert np.abs(model.coef_).max() < 1e3
        np.testing.assert_allclose(model.predict(X), ols.predict(X), atol=1e-6)

    def test_zero_alpha_scores_like_full_forward_selection(self, engineered):
        X, y = engineered
        folds = make_folds(5, random_state=42)
        ridge = CandidateModel('ridge', RidgeRegression(), {'alpha': [0.0]}, folds).fit(X, y)
        forward = CandidateModel('forward_selection', ForwardSelectionRegression(),
                                 {'max_features': [X.shape[1]]}, folds).fit(X, y)

        np.testing.assert_allclose(ridge.fold_scores()['rmse'],
                                   forward.fold_scores()['rmse'], rtol=1e-6)

    def test_penalty_shrinks_scaled_coefficients(self, engineered):
        X, y = engineered
        norms = []
        for alpha in expand_grid({'start': 0.0, 'stop': 1.0, 'step': 0.05}):
            model = RidgeRegression(alpha=alpha).fit(X, y)
            norms.append(np.linalg.norm(model.coef_ * model.scale_))

        assert np.all(np.diff(norms) < 0)
        assert norms[-1] < 0.9 * norms[0]

    def test_unit_norm_scale(self, engineered):
        X, y = engineered
        model = RidgeRegression(alpha=0.5).fit(X, y)
        centred = X - X.mean()

        np.testing.assert_allclose(model.scale_, np.sqrt((centred ** 2).sum()).values)

    def test_negative_alpha(self, engineered):
        X, y = engineered
        with pytest.raises(ValueError, match="alpha"):
            RidgeRegression(alpha=-1.0).fit(X, y)


class TestLassoFractionRegression:
    """Tests for LassoFractionRegression."""

    def test_zero_fraction_is_intercept_only(self, regression_data):
        X, y = regression_data
        model = LassoFractionRegression(fraction=0.0).fit(X, y)

        np.testing.assert_allclose(model.coef_, 0.0)
        np.testing.assert_allclose(model.predict(X), y.mean())

    def test_full_fraction_matches_ols(self, regression_data):
        X, y = regression_data
        model = LassoFractionRegression(fraction=1.0).fit(X, y)
        ols = LinearRegression().fit(X, y)

        np.testing.assert_allclose(model.coef_, ols.coef_, atol=1e-6)
        np.testing.assert_allclose(model.intercept_, ols.intercept_, atol=1e-6)

    def test_shrinkage_grows_with_smaller_fraction(self, regression_data):
        X, y = regression_data
        norms = [
            np.abs(LassoFractionRegression(fraction=f, normalize=False).fit(X, y).coef_).sum()
            for f in (0.25, 0.5, 0.75, 1.0)
        ]

        assert norms == sorted(norms)
        assert norms[1] == pytest.approx(0.5 * norms[-1], rel=1e-6)

    def test_small_fraction_zeroes_weak_predictors(self, regression_data):
        X, y = regression_data
        model = LassoFractionRegression(fraction=0.3).fit(X, y)

        assert model.coef_[0] != 0
        assert np.count_nonzero(model.coef_) < X.shape[1]

    @pytest.mark.parametrize("fraction", [-0.1, 1.1])
    def test_invalid_fraction(self, regression_data, fraction):
        X, y = regression_data
        with pytest.raises(ValueError, match="fraction"):
            LassoFractionRegression(fraction=fraction).fit(X, y)


class TestCandidateModel:
    """Tests for the CandidateModel grid-search wrapper."""

    @pytest.fixture
    def fitted(self, regression_data):
        X, y = regression_data
        model = CandidateModel(
            'lasso',
            LassoFractionRegression(),
            {'fraction': [0.0, 0.5, 1.0]},
            make_folds(5, random_state=42)
        )
        return model.fit(X, y)

    def test_predict_before_fit(self, regression_data):
        X, _ = regression_data
        model = CandidateModel('ridge', LinearRegression(), {'fit_intercept': [True]},
                               make_folds(5))
        with pytest.raises(ValueError, match="must be trained"):
            model.predict(X)

    def test_best_params(self, fitted):
        assert fitted.best_params_['fraction'] in (0.5, 1.0)
        assert fitted.training_info['n_folds'] == 5

    def test_fold_scores(self, fitted):
        scores = fitted.fold_scores()

        assert list(scores.columns) == ['fold', 'rmse', 'r2']
        assert len(scores) == 5
        assert (scores['rmse'] > 0).all()
        assert scores['rmse'].mean() == pytest.approx(fitted.training_info['cv_rmse'])

    def test_tuning_profile(self, fitted):
        profile = fitted.tuning_profile()

        assert profile['fraction'].tolist() == [0.0, 0.5, 1.0]
        assert profile['mean_rmse'].idxmin() == profile['fraction'].tolist().index(
            fitted.best_params_['fraction'])

    def test_coefficients(self, fitted, regression_data):
        X, _ = regression_data
        coefficients = fitted.get_coefficients()

        assert coefficients.index[0] == '(Intercept)'
        assert list(coefficients.index[1:]) == list(X.columns)

    def test_save_load(self, fitted, regression_data):
        X, _ = regression_data

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, 'lasso.joblib')
            fitted.save(path)
            loaded = CandidateModel.load(path)

            assert loaded.name == 'lasso'
            assert loaded.best_params_ == fitted.best_params_
            np.testing.assert_allclose(loaded.predict(X), fitted.predict(X))


class TestTrainModels:
    """Tests for build_candidates and train_models."""

    @pytest.fixture
    def config(self):
        return {
            'random_state': 1,
            'model': {
                'cv_folds': 4,
                'grids': {
                    'forward_selection': {'max_features': [1, 2, 3]},
                    'ridge': {'alpha': {'start': 0.0, 'stop': 1.0, 'step': 0.5}},
                    'lasso': {'fraction': [0.2, 0.6, 1.0]},
                }
            }
        }

    def test_default_grids(self):
        candidates = build_candidates({})

        assert [c.name for c in candidates] == ['forward_selection', 'ridge', 'lasso']
        assert candidates[0].param_grid['max_features'] == list(range(1, 11))
        assert len(candidates[1].param_grid['alpha']) == 21
        assert len(candidates[2].param_grid['fraction']) == 11
        assert all(c.cv.get_n_splits() == 10 for c in candidates)

    def test_train_models(self, regression_data, config):
        X, y = regression_data
        models = train_models(X, y, config)

        assert list(models) == ['forward_selection', 'ridge', 'lasso']
        assert models['ridge'].param_grid['alpha'] == [0.0, 0.5, 1.0]
        assert {repr(m.cv) for m in models.values()} == {repr(make_folds(4, 1))}
        for model in models.values():
            assert len(model.fold_scores()) == 4
            assert model.predict(X).shape == (len(X),)

    def test_train_models_saves(self, regression_data, config):
        X, y = regression_data

        with tempfile.TemporaryDirectory() as tmp_dir:
            train_models(X, y, config, save_path=tmp_dir)
            assert sorted(os.listdir(tmp_dir)) == [
                'forward_selection.joblib', 'lasso.joblib', 'ridge.joblib'
            ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
