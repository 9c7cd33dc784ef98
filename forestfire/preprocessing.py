"""
Data Preprocessing Module - Phase 3
====================================

Handles the train/test partition and the feature transform fitted on the
training rows.

Functions:
    - stratified_split: Train/test partition stratified on the binned target
    - near_zero_variance: Per-column near-zero-variance diagnostics
    - FirePreprocessor: Centring + near-zero-variance filtering
    - preprocess_pipeline: Split, fit on train, transform both sets
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
import joblib

from .features import TARGET_COLUMN, split_features_target

logger = logging.getLogger(__name__)

DEFAULT_FREQ_CUT = 95 / 5
DEFAULT_UNIQUE_CUT = 10.0


def stratified_split(
    y: pd.Series,
    train_fraction: float = 0.8,
    n_bins: int = 5,
    random_state: int = 42
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Partition row labels into train and test sets, stratified on the target.

    The continuous target is cut at its quantiles into ``n_bins`` groups
    (coinciding edges are merged) and rows are sampled within each group.

    Args:
        y: Target values, indexed by row label
        train_fraction: Fraction of rows assigned to training
        n_bins: Number of quantile bins
        random_state: Random seed for reproducibility

    Returns:
        Tuple of (train_index, test_index) arrays of row labels
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    n_rows = len(y)
    n_train = int(round(train_fraction * n_rows))
    if n_train == 0 or n_train == n_rows:
        raise ValueError(
            f"train_fraction {train_fraction} leaves an empty partition for {n_rows} rows"
        )

    if y.nunique() > 1 and n_bins > 1:
        bins = pd.qcut(y, q=n_bins, labels=False, duplicates='drop')
    else:
        bins = pd.Series(0, index=y.index)

    # Every stratum needs at least two members
    counts = bins.value_counts()
    while (counts < 2).any() and len(counts) > 1:
        smallest = counts.idxmin()
        nearest = min((b for b in counts.index if b != smallest),
                      key=lambda b: abs(b - smallest))
        bins = bins.replace(smallest, nearest)
        counts = bins.value_counts()

    stratify = bins.values if len(counts) > 1 else None

    train_index, test_index = train_test_split(
        np.asarray(y.index),
        train_size=n_train,
        stratify=stratify,
        random_state=random_state
    )

    logger.info(
        f"Stratified split over {bins.nunique()} target bins: "
        f"{len(train_index)} train rows, {len(test_index)} test rows"
    )

    return np.sort(train_index), np.sort(test_index)


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = DEFAULT_FREQ_CUT,
    unique_cut: float = DEFAULT_UNIQUE_CUT
) -> pd.DataFrame:
    """
    Compute near-zero-variance diagnostics for each column.

    A column is flagged when it is constant, or when the ratio of its most
    common value count to its second most common exceeds ``freq_cut`` and
    its distinct values make up less than ``unique_cut`` percent of rows.

    Args:
        df: Numeric DataFrame
        freq_cut: Cutoff for the most-common / second-most-common ratio
        unique_cut: Cutoff (percent) for distinct values relative to rows

    Returns:
        DataFrame indexed by column with freq_ratio, percent_unique,
        zero_var and nzv
    """
    rows = []
    n_rows = len(df)

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)
        n_unique = len(counts)

        if n_unique <= 1:
            freq_ratio = 0.0
        else:
            freq_ratio = float(counts.iloc[0] / counts.iloc[1])

        percent_unique = 100.0 * n_unique / n_rows if n_rows else 0.0
        zero_var = n_unique <= 1

        rows.append({
            'column': col,
            'freq_ratio': freq_ratio,
            'percent_unique': percent_unique,
            'zero_var': zero_var,
            'nzv': zero_var or (freq_ratio > freq_cut and percent_unique < unique_cut)
        })

    return pd.DataFrame(rows, columns=['column', 'freq_ratio', 'percent_unique',
                                       'zero_var', 'nzv']).set_index('column')


class FirePreprocessor:
    """
    Feature transform for the engineered fire table.

    Learns per-column centring offsets and the set of near-zero-variance
    columns from the training rows, and applies both identically to any
    frame with the same schema.
    """

    def __init__(
        self,
        center: bool = True,
        drop_nzv: bool = True,
        freq_cut: float = DEFAULT_FREQ_CUT,
        unique_cut: float = DEFAULT_UNIQUE_CUT
    ):
        """
        Initialize the preprocessor.

        Args:
            center: Whether to subtract training means
            drop_nzv: Whether to drop near-zero-variance columns
            freq_cut: Frequency-ratio cutoff for near-zero variance
            unique_cut: Percent-unique cutoff for near-zero variance
        """
        self.center = center
        self.drop_nzv = drop_nzv
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

        self.input_columns: Optional[List[str]] = None
        self.feature_columns: Optional[List[str]] = None
        self.dropped_columns: List[str] = []
        self.means_: Optional[pd.Series] = None
        self.nzv_metrics_: Optional[pd.DataFrame] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'FirePreprocessor':
        """
        Fit the preprocessor to the training rows.

        Args:
            df: Training feature table (numeric columns only)

        Returns:
            Self for method chaining
        """
        non_numeric = df.select_dtypes(exclude=[np.number]).columns.tolist()
        if non_numeric:
            raise ValueError(f"Preprocessor expects numeric columns only, got: {non_numeric}")

        self.input_columns = df.columns.tolist()
        self.nzv_metrics_ = near_zero_variance(df, self.freq_cut, self.unique_cut)

        if self.drop_nzv:
            self.dropped_columns = self.nzv_metrics_.index[self.nzv_metrics_['nzv']].tolist()
        else:
            self.dropped_columns = []

        self.feature_columns = [c for c in self.input_columns if c not in self.dropped_columns]

        if self.center:
            self.means_ = df[self.feature_columns].astype(float).mean()
        else:
            self.means_ = pd.Series(0.0, index=self.feature_columns)

        logger.info(
            f"Fitted preprocessor: {len(self.feature_columns)} kept, "
            f"{len(self.dropped_columns)} near-zero-variance dropped"
        )
        if self.dropped_columns:
            logger.info(f"  Dropped columns: {self.dropped_columns}")

        self._is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Transform data using fitted parameters.

        Args:
            df: Feature table containing at least the kept columns

        Returns:
            Centred DataFrame restricted to the kept columns
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        missing = [c for c in self.feature_columns if c not in df.columns]
        if missing:
            raise ValueError(f"Columns missing from input: {missing}")

        data = df[self.feature_columns].astype(float)
        return data - self.means_

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Fit and transform in one step."""
        self.fit(df)
        return self.transform(df)

    def inverse_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add the centring offsets back to transformed data."""
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before inverse_transform.")
        return df[self.feature_columns] + self.means_

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'center': self.center,
            'drop_nzv': self.drop_nzv,
            'freq_cut': self.freq_cut,
            'unique_cut': self.unique_cut,
            'input_columns': self.input_columns,
            'feature_columns': self.feature_columns,
            'dropped_columns': self.dropped_columns,
            'means_': self.means_,
            'nzv_metrics_': self.nzv_metrics_,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'FirePreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded FirePreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            center=state['center'],
            drop_nzv=state['drop_nzv'],
            freq_cut=state['freq_cut'],
            unique_cut=state['unique_cut']
        )
        preprocessor.input_columns = state['input_columns']
        preprocessor.feature_columns = state['feature_columns']
        preprocessor.dropped_columns = state['dropped_columns']
        preprocessor.means_ = state['means_']
        preprocessor.nzv_metrics_ = state['nzv_metrics_']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def preprocess_pipeline(
    df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    target: str = TARGET_COLUMN
) -> Dict[str, Any]:
    """
    Complete preprocessing for the engineered fire table.

    Args:
        df: Engineered DataFrame (numeric, including the target)
        config: Configuration dictionary (split, preprocessing, random_state)
        target: Target column name

    Returns:
        Dictionary containing:
            - X_train, X_test, y_train, y_test: Split and transformed datasets
            - train_index, test_index: Row labels of each partition
            - preprocessor: Fitted FirePreprocessor
            - dropped_columns: Columns removed as near-zero variance
    """
    config = config or {}
    split_config = config.get('split', {})
    prep_config = config.get('preprocessing', {})
    random_state = config.get('random_state', 42)

    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 3)")
    logger.info("=" * 60)

    X, y = split_features_target(df, target)

    train_index, test_index = stratified_split(
        y,
        train_fraction=split_config.get('train_fraction', 0.8),
        n_bins=split_config.get('n_bins', 5),
        random_state=random_state
    )

    preprocessor = FirePreprocessor(
        center=prep_config.get('center', True),
        drop_nzv=prep_config.get('drop_nzv', True),
        freq_cut=prep_config.get('freq_cut', DEFAULT_FREQ_CUT),
        unique_cut=prep_config.get('unique_cut', DEFAULT_UNIQUE_CUT)
    )

    X_train = preprocessor.fit_transform(X.loc[train_index])
    X_test = preprocessor.transform(X.loc[test_index])

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': y.loc[train_index],
        'y_test': y.loc[test_index],
        'train_index': train_index,
        'test_index': test_index,
        'preprocessor': preprocessor,
        'dropped_columns': list(preprocessor.dropped_columns)
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Test samples: {len(X_test)}")
    logger.info(f"  Features kept: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']
    n_total = len(result['train_index']) + len(result['test_index'])

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training samples: {len(result['X_train'])} ({len(result['X_train']) / n_total:.1%})")
    print(f"Test samples: {len(result['X_test'])}")
    print(f"Features kept: {result['X_train'].shape[1]}")
    print(f"Centring: {preprocessor.center}")
    print(f"Near-zero-variance columns dropped ({len(result['dropped_columns'])}):")
    for col in result['dropped_columns']:
        metrics = preprocessor.nzv_metrics_.loc[col]
        print(f"  - {col}: freq_ratio={metrics['freq_ratio']:.2f}, "
              f"unique={metrics['percent_unique']:.2f}%")
    print("=" * 50 + "\n")
