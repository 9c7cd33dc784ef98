"""
Model Training Module - Phase 4
================================

Fits three linear-regression variants for log burned area, each tuned by
k-fold cross-validation over a hyperparameter grid:

    - forward_selection: greedy stepwise OLS, grid over max_features
    - ridge: L2-penalised least squares on unit-norm columns, grid over alpha
    - lasso: L1 path truncated at a fraction of the full solution's L1 norm

All candidates share one fold assignment so their resampling results are
directly comparable.
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import BaseEstimator, RegressorMixin, clone
from sklearn.linear_model import LinearRegression, lars_path
from sklearn.model_selection import GridSearchCV, KFold
from sklearn.utils.validation import check_X_y, check_array, check_is_fitted

logger = logging.getLogger(__name__)

SCORING = {
    'rmse': 'neg_root_mean_squared_error',
    'r2': 'r2'
}

DEFAULT_GRIDS = {
    'forward_selection': {'max_features': {'start': 1, 'stop': 10, 'step': 1}},
    'ridge': {'alpha': {'start': 0.0, 'stop': 1.0, 'step': 0.05}},
    'lasso': {'fraction': {'start': 0.0, 'stop': 1.0, 'step': 0.1}},
}


def _residual_sum_of_squares(X: np.ndarray, y: np.ndarray) -> float:
    ols = LinearRegression().fit(X, y)
    residuals = y - ols.predict(X)
    return float(residuals @ residuals)


class ForwardSelectionRegression(RegressorMixin, BaseEstimator):
    """
    Ordinary least squares on greedily selected predictors.

    Starting from the intercept-only model, each step adds the predictor
    that gives the lowest in-sample residual sum of squares, until
    ``max_features`` predictors (or all of them) are included.

    Attributes:
        coef_: Coefficients over all input columns (zero where not selected)
        intercept_: Fitted intercept
        selected_features_: Column positions in the order they were added
        rss_path_: Residual sum of squares after each addition
    """

    def __init__(self, max_features: int = 1):
        self.max_features = max_features

    def fit(self, X, y):
        if self.max_features < 1:
            raise ValueError(f"max_features must be >= 1, got {self.max_features}")

        if hasattr(X, 'columns'):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        X, y = check_X_y(X, y, y_numeric=True, dtype=np.float64)
        n_features = X.shape[1]

        selected: List[int] = []
        remaining = list(range(n_features))
        rss_path = []

        for _ in range(min(int(self.max_features), n_features)):
            scores = [(_residual_sum_of_squares(X[:, selected + [j]], y), j) for j in remaining]
            best_rss, best_j = min(scores)
            selected.append(best_j)
            remaining.remove(best_j)
            rss_path.append(best_rss)

        ols = LinearRegression().fit(X[:, selected], y)

        self.coef_ = np.zeros(n_features)
        self.coef_[selected] = ols.coef_
        self.intercept_ = float(ols.intercept_)
        self.selected_features_ = np.array(selected, dtype=int)
        self.rss_path_ = np.array(rss_path)
        self.n_features_in_ = n_features
        return self

    def predict(self, X):
        check_is_fitted(self, 'coef_')
        X = check_array(X, dtype=np.float64)
        return X @ self.coef_ + self.intercept_


def _center_and_scale(X: np.ndarray, normalize: bool):
    """Column means and scales that map X to centred (optionally unit-norm) columns."""
    x_mean = X.mean(axis=0)
    X_centered = X - x_mean

    if normalize:
        scale = np.sqrt((X_centered ** 2).sum(axis=0))
        scale[scale == 0] = 1.0
    else:
        scale = np.ones(X.shape[1])

    return x_mean, scale, X_centered / scale


class RidgeRegression(RegressorMixin, BaseEstimator):
    """
    Ridge regression on centred, unit-norm scaled predictors.

    Solved through the SVD of the scaled design; singular values below the
    least-squares rank tolerance are discarded, so exactly collinear inputs
    (full one-hot level sets, indicator sums) give the minimum-norm
    solution. At ``alpha=0`` this is ordinary least squares.

    Attributes:
        coef_: Coefficients on the original feature scale
        intercept_: Fitted intercept
        scale_: Column scales used for the penalty
        rank_: Numerical rank of the centred design
    """

    def __init__(self, alpha: float = 1.0, normalize: bool = True):
        self.alpha = alpha
        self.normalize = normalize

    def fit(self, X, y):
        if self.alpha < 0:
            raise ValueError(f"alpha must be >= 0, got {self.alpha}")

        if hasattr(X, 'columns'):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        X, y = check_X_y(X, y, y_numeric=True, dtype=np.float64)

        x_mean, scale, X_scaled = _center_and_scale(X, self.normalize)
        y_mean = y.mean()

        U, s, Vt = np.linalg.svd(X_scaled, full_matrices=False)
        tol = s.max() * max(X_scaled.shape) * np.finfo(np.float64).eps if s.size else 0.0
        keep = s > tol

        shrink = s[keep] / (s[keep] ** 2 + self.alpha)
        beta = Vt[keep].T @ (shrink * (U[:, keep].T @ (y - y_mean)))

        self.coef_ = beta / scale
        self.intercept_ = float(y_mean - x_mean @ self.coef_)
        self.scale_ = scale
        self.rank_ = int(keep.sum())
        self.n_features_in_ = X.shape[1]
        return self

    def predict(self, X):
        check_is_fitted(self, 'coef_')
        X = check_array(X, dtype=np.float64)
        return X @ self.coef_ + self.intercept_


class LassoFractionRegression(RegressorMixin, BaseEstimator):
    """
    Lasso regression parameterised by the fraction of the full L1 norm.

    The LARS-lasso path is computed on centred (and, by default, unit-norm
    scaled) predictors. The returned coefficients are the point on that path
    whose L1 norm equals ``fraction`` times the L1 norm at the end of the
    path, so fraction 0 is the intercept-only model and fraction 1 the
    unpenalised least-squares fit.
    """

    def __init__(self, fraction: float = 1.0, normalize: bool = True):
        self.fraction = fraction
        self.normalize = normalize

    def fit(self, X, y):
        if not 0.0 <= self.fraction <= 1.0:
            raise ValueError(f"fraction must be in [0, 1], got {self.fraction}")

        if hasattr(X, 'columns'):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        X, y = check_X_y(X, y, y_numeric=True, dtype=np.float64)

        x_mean, scale, X_scaled = _center_and_scale(X, self.normalize)
        y_mean = y.mean()

        _, _, path = lars_path(X_scaled, y - y_mean, method='lasso')
        l1_norms = np.abs(path).sum(axis=0)

        beta = self._interpolate(path, l1_norms, self.fraction * l1_norms[-1])

        self.coef_ = beta / scale
        self.intercept_ = float(y_mean - x_mean @ self.coef_)
        self.l1_path_ = l1_norms
        self.n_features_in_ = X.shape[1]
        return self

    @staticmethod
    def _interpolate(path: np.ndarray, l1_norms: np.ndarray, target: float) -> np.ndarray:
        # The lasso path is piecewise linear between knots
        if target <= l1_norms[0]:
            return path[:, 0].copy()
        if target >= l1_norms[-1]:
            return path[:, -1].copy()

        k = int(np.searchsorted(l1_norms, target, side='left'))
        lower, upper = l1_norms[k - 1], l1_norms[k]
        if upper == lower:
            return path[:, k].copy()
        weight = (target - lower) / (upper - lower)
        return (1.0 - weight) * path[:, k - 1] + weight * path[:, k]

    def predict(self, X):
        check_is_fitted(self, 'coef_')
        X = check_array(X, dtype=np.float64)
        return X @ self.coef_ + self.intercept_


def make_folds(n_splits: int = 10, random_state: int = 42) -> KFold:
    """Create the shuffled k-fold splitter shared by all candidates."""
    return KFold(n_splits=n_splits, shuffle=True, random_state=random_state)


def expand_grid(spec: Union[List[Any], Dict[str, Any]]) -> List[Any]:
    """
    Expand a grid specification into an explicit list of values.

    Args:
        spec: Either a list of values or a mapping with start, stop and step
            (stop is inclusive)

    Returns:
        List of grid values
    """
    if isinstance(spec, dict):
        start, stop, step = spec['start'], spec['stop'], spec['step']
        if step <= 0:
            raise ValueError(f"Grid step must be positive, got {step}")
        if all(isinstance(v, int) for v in (start, stop, step)):
            return list(range(start, stop + 1, step))
        n_steps = int(np.floor((stop - start) / step + 1e-9))
        return [round(start + i * step, 10) for i in range(n_steps + 1)]
    return list(spec)


class CandidateModel:
    """
    A regression variant tuned by cross-validated grid search.

    Wraps GridSearchCV with RMSE (for selection) and R² scoring; after
    fit, the best estimator is refit on the full training set.
    """

    def __init__(
        self,
        name: str,
        estimator: BaseEstimator,
        param_grid: Dict[str, List[Any]],
        cv: KFold,
        n_jobs: Optional[int] = 1
    ):
        self.name = name
        self.estimator = estimator
        self.param_grid = param_grid
        self.cv = cv
        self.n_jobs = n_jobs

        self.search_: Optional[GridSearchCV] = None
        self.feature_names_: Optional[List[str]] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'CandidateModel':
        """
        Run the grid search and refit at the best hyperparameter.

        Args:
            X: Preprocessed training features
            y: Training target

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()
        logger.info(f"Tuning {self.name} over {self.param_grid}")

        self.feature_names_ = list(X.columns) if hasattr(X, 'columns') else \
            [f"x{i}" for i in range(np.shape(X)[1])]

        self.search_ = GridSearchCV(
            clone(self.estimator),
            self.param_grid,
            cv=self.cv,
            scoring=SCORING,
            refit='rmse',
            n_jobs=self.n_jobs,
            error_score='raise'
        )
        self.search_.fit(X, y)

        training_duration = (datetime.now() - start_time).total_seconds()
        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(np.shape(X)[0]),
            'n_features': int(np.shape(X)[1]),
            'n_folds': self.cv.get_n_splits(),
            'best_params': dict(self.search_.best_params_),
            'cv_rmse': float(-self.search_.best_score_),
            'trained_at': datetime.now().isoformat()
        }
        self._is_fitted = True

        logger.info(
            f"{self.name}: best {self.search_.best_params_} "
            f"CV RMSE={self.training_info['cv_rmse']:.4f} ({training_duration:.2f}s)"
        )
        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Model must be trained before use. Call fit() first.")

    @property
    def best_params_(self) -> Dict[str, Any]:
        self._check_fitted()
        return dict(self.search_.best_params_)

    @property
    def best_estimator_(self) -> BaseEstimator:
        self._check_fitted()
        return self.search_.best_estimator_

    def predict(self, X) -> np.ndarray:
        """Predict with the estimator refit at the best hyperparameter."""
        self._check_fitted()
        return self.search_.predict(X)

    def fold_scores(self) -> pd.DataFrame:
        """
        Per-fold cross-validated RMSE and R² at the selected hyperparameter.

        Returns:
            DataFrame with columns fold, rmse, r2
        """
        self._check_fitted()
        results = self.search_.cv_results_
        best = self.search_.best_index_
        n_splits = self.cv.get_n_splits()

        return pd.DataFrame({
            'fold': [f"Fold{i + 1:02d}" for i in range(n_splits)],
            'rmse': [-results[f'split{i}_test_rmse'][best] for i in range(n_splits)],
            'r2': [results[f'split{i}_test_r2'][best] for i in range(n_splits)],
        })

    def tuning_profile(self) -> pd.DataFrame:
        """Mean and spread of CV RMSE / R² for every grid point."""
        self._check_fitted()
        results = self.search_.cv_results_
        profile = pd.DataFrame(list(results['params']))
        profile['mean_rmse'] = -results['mean_test_rmse']
        profile['std_rmse'] = results['std_test_rmse']
        profile['mean_r2'] = results['mean_test_r2']
        profile['std_r2'] = results['std_test_r2']
        return profile

    def get_coefficients(self) -> pd.Series:
        """Coefficients of the refit model, indexed by feature, plus the intercept."""
        estimator = self.best_estimator_
        coefficients = pd.Series(np.ravel(estimator.coef_), index=self.feature_names_)
        intercept = pd.Series([float(np.ravel(estimator.intercept_)[0])], index=['(Intercept)'])
        return pd.concat([intercept, coefficients])

    def save(self, filepath: str) -> None:
        """
        Save the tuned model to disk.

        Args:
            filepath: Path to save the model
        """
        self._check_fitted()

        state = {
            'name': self.name,
            'estimator': self.estimator,
            'param_grid': self.param_grid,
            'cv': self.cv,
            'n_jobs': self.n_jobs,
            'search_': self.search_,
            'feature_names_': self.feature_names_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model {self.name} saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'CandidateModel':
        """
        Load a tuned model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded CandidateModel instance
        """
        state = joblib.load(filepath)

        model = cls(
            name=state['name'],
            estimator=state['estimator'],
            param_grid=state['param_grid'],
            cv=state['cv'],
            n_jobs=state['n_jobs']
        )
        model.search_ = state['search_']
        model.feature_names_ = state['feature_names_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model {model.name} loaded from {filepath}")
        return model


def build_candidates(config: Dict[str, Any]) -> List[CandidateModel]:
    """
    Create the three untrained candidates from configuration.

    Args:
        config: Configuration dictionary (random_state, model.cv_folds,
            model.n_jobs, model.normalize, model.grids)

    Returns:
        Candidates in the order forward_selection, ridge, lasso
    """
    model_config = config.get('model', {})
    grids = model_config.get('grids', {})

    cv = make_folds(
        n_splits=model_config.get('cv_folds', 10),
        random_state=config.get('random_state', 42)
    )
    n_jobs = model_config.get('n_jobs', 1)
    normalize = model_config.get('normalize', True)

    estimators = {
        'forward_selection': ForwardSelectionRegression(),
        'ridge': RidgeRegression(normalize=normalize),
        'lasso': LassoFractionRegression(normalize=normalize),
    }

    candidates = []
    for name, estimator in estimators.items():
        grid_spec = grids.get(name, DEFAULT_GRIDS[name])
        param_grid = {param: expand_grid(values) for param, values in grid_spec.items()}
        candidates.append(CandidateModel(name, estimator, param_grid, cv, n_jobs=n_jobs))

    return candidates


def train_models(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> Dict[str, CandidateModel]:
    """
    Tune and refit every candidate on the training set.

    Args:
        X_train: Preprocessed training features
        y_train: Training target
        config: Configuration dictionary
        save_path: Directory to save the tuned models (optional)

    Returns:
        Mapping of candidate name to fitted CandidateModel, in training order
    """
    logger.info("=" * 60)
    logger.info("STARTING MODEL TRAINING (Phase 4)")
    logger.info("=" * 60)
    logger.info(f"Training data shape: X={X_train.shape}, y={y_train.shape}")

    models: Dict[str, CandidateModel] = {}
    for candidate in build_candidates(config):
        candidate.fit(X_train, y_train)
        models[candidate.name] = candidate

        if save_path:
            candidate.save(str(Path(save_path) / f"{candidate.name}.joblib"))

    logger.info("=" * 60)
    logger.info("MODEL TRAINING COMPLETE")
    logger.info("=" * 60)

    return models


def print_model_summary(models: Dict[str, CandidateModel]) -> None:
    """
    Print a summary of the tuned candidates.

    Args:
        models: Mapping from train_models
    """
    print("\n" + "=" * 60)
    print("MODEL SUMMARY")
    print("=" * 60)

    for name, model in models.items():
        info = model.training_info
        coefficients = model.get_coefficients()
        n_nonzero = int((coefficients.drop('(Intercept)').abs() > 1e-12).sum())

        print(f"\n{name}")
        print("-" * 40)
        print(f"  Estimator: {type(model.estimator).__name__}")
        print(f"  Samples: {info['n_samples']} | Features: {info['n_features']} | "
              f"Folds: {info['n_folds']}")
        print(f"  Best hyperparameters: {info['best_params']}")
        print(f"  CV RMSE: {info['cv_rmse']:.4f}")
        print(f"  Non-zero coefficients: {n_nonzero}/{info['n_features']}")
        print(f"  Duration: {info['training_duration_seconds']:.2f}s")

    print("=" * 60 + "\n")
