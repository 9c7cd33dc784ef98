"""
Test Suite for Model Comparison Module
========================================
"""

import pytest
import numpy as np
import pandas as pd

from forestfire.model import train_models
from forestfire.evaluation import (
    collect_resamples, summarize_resamples, select_best_model,
    confidence_interval, calculate_metrics, compare_models
)


def _resamples(rmse: dict, r2: dict, n_folds: int = 3) -> pd.DataFrame:
    rows = []
    for name in rmse:
        for i in range(n_folds):
            rows.append({'model': name, 'fold': f'Fold{i + 1:02d}',
                         'rmse': rmse[name][i], 'r2': r2[name][i]})
    return pd.DataFrame(rows)


class TestSelection:
    """Tests for resample summaries and winner selection."""

    def test_lowest_mean_rmse_wins(self):
        resamples = _resamples(
            rmse={'forward_selection': [0.62, 0.60, 0.64],
                  'ridge': [0.61, 0.63, 0.62],
                  'lasso': [0.59, 0.60, 0.61]},
            r2={'forward_selection': [0.01, 0.02, 0.03],
                'ridge': [0.05, 0.05, 0.05],
                'lasso': [0.00, 0.01, 0.02]}
        )

        assert select_best_model(resamples) == 'lasso'

    def test_tie_broken_by_r2(self):
        resamples = _resamples(
            rmse={'ridge': [0.6, 0.6, 0.6], 'lasso': [0.6, 0.6, 0.6]},
            r2={'ridge': [0.01, 0.01, 0.01], 'lasso': [0.02, 0.02, 0.02]}
        )

        assert select_best_model(resamples) == 'lasso'

    def test_full_tie_keeps_candidate_order(self):
        resamples = _resamples(
            rmse={'ridge': [0.6, 0.6, 0.6], 'lasso': [0.6, 0.6, 0.6]},
            r2={'ridge': [0.01, 0.01, 0.01], 'lasso': [0.01, 0.01, 0.01]}
        )

        assert select_best_model(resamples) == 'ridge'

    def test_summary(self):
        resamples = _resamples(
            rmse={'ridge': [1.0, 2.0, 3.0], 'lasso': [2.0, 2.0, 2.0]},
            r2={'ridge': [0.1, 0.2, 0.3], 'lasso': [0.2, 0.2, 0.2]}
        )
        summary = summarize_resamples(resamples)

        assert set(summary) == {'rmse', 'r2'}
        assert list(summary['rmse'].columns) == ['Min', '1st Qu.', 'Median', 'Mean', '3rd Qu.', 'Max']
        assert list(summary['rmse'].index) == ['ridge', 'lasso']
        assert summary['rmse'].loc['ridge', 'Mean'] == pytest.approx(2.0)
        assert summary['rmse'].loc['ridge', 'Min'] == pytest.approx(1.0)
        assert summary['r2'].loc['lasso', 'Max'] == pytest.approx(0.2)


class TestMetrics:
    """Tests for metric helpers."""

    def test_perfect_predictions(self):
        y = np.array([0.0, 0.5, 1.2, 2.0])
        metrics = calculate_metrics(y, y)

        assert metrics['rmse'] == 0.0
        assert metrics['r2'] == 1.0
        assert metrics['n_samples'] == 4

    def test_rmse_value(self):
        metrics = calculate_metrics(np.array([0.0, 0.0]), np.array([1.0, -1.0]))

        assert metrics['rmse'] == pytest.approx(1.0)
        assert metrics['mae'] == pytest.approx(1.0)
        assert metrics['mean_error'] == pytest.approx(0.0)

    def test_confidence_interval_contains_mean(self):
        values = np.array([0.58, 0.61, 0.66, 0.59, 0.63])
        lower, upper = confidence_interval(values)

        assert lower < values.mean() < upper

    def test_confidence_interval_single_value(self):
        lower, upper = confidence_interval(np.array([0.5]))

        assert np.isnan(lower) and np.isnan(upper)


class TestCompareModels:
    """End-to-end comparison on small tuned candidates."""

    @pytest.fixture
    def tuned(self):
        rng = np.random.default_rng(5)
        X = pd.DataFrame(rng.normal(size=(150, 5)), columns=list('abcde'))
        y = pd.Series(X['a'] - 0.5 * X['b'] + rng.normal(0, 1.0, 150))
        config = {
            'random_state': 3,
            'model': {
                'cv_folds': 5,
                'grids': {
                    'forward_selection': {'max_features': [1, 2, 3]},
                    'ridge': {'alpha': [0.0, 1.0]},
                    'lasso': {'fraction': [0.5, 1.0]},
                }
            }
        }
        models = train_models(X.iloc[:120], y.iloc[:120], config)
        return models, X.iloc[120:], y.iloc[120:]

    def test_collect_resamples(self, tuned):
        models, _, _ = tuned
        resamples = collect_resamples(models)

        assert list(resamples.columns) == ['model', 'fold', 'rmse', 'r2']
        assert len(resamples) == 15
        assert resamples.groupby('model')['fold'].nunique().eq(5).all()

    def test_compare_models(self, tuned, tmp_path):
        models, X_test, y_test = tuned
        result = compare_models(models, X_test, y_test, output_dir=str(tmp_path))

        means = result['resamples'].groupby('model')['rmse'].mean()
        assert result['best_model'] == means.idxmin()
        assert set(result['test_metrics']) == set(models)
        assert result['best_params'] == models[result['best_model']].best_params_
        for figure in result['figures']:
            assert (tmp_path / figure).exists()
        assert len(result['figures']) == 4

    def test_compare_without_test_set(self, tuned, tmp_path):
        models, _, _ = tuned
        result = compare_models(models, output_dir=str(tmp_path))

        assert result['test_metrics'] == {}
        assert result['figures'] == ['comparison_dotplot.png', 'comparison_tuning_profiles.png']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
