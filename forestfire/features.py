"""
Feature Engineering Module - Phase 2
=====================================

Derives the modelling table from the raw observations.

Functions:
    - month_to_season: Total month -> season mapping
    - add_log_area: log10(area + 1) target
    - add_is_weekend: Weekend indicator from day
    - add_season: Season column from month
    - one_hot_encode: Indicator columns over declared category levels
    - engineer_features: Complete feature engineering step
"""

import logging
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

MONTH_LEVELS = ['jan', 'feb', 'mar', 'apr', 'may', 'jun',
                'jul', 'aug', 'sep', 'oct', 'nov', 'dec']
DAY_LEVELS = ['mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun']
SEASON_LEVELS = ['winter', 'spring', 'summer', 'autumn']
WEEKEND_DAYS = ('sat', 'sun')

_SEASON_BY_MONTH: Dict[str, str] = {
    'dec': 'winter', 'jan': 'winter', 'feb': 'winter',
    'mar': 'spring', 'apr': 'spring', 'may': 'spring',
    'jun': 'summer', 'jul': 'summer', 'aug': 'summer',
}

TARGET_COLUMN = 'log_area'


def month_to_season(month: str) -> str:
    """
    Map a month abbreviation to its season.

    Winter is dec-feb, spring mar-may, summer jun-aug; every other
    declared month is autumn.

    Raises:
        ValueError: If the month is not one of MONTH_LEVELS
    """
    if month not in MONTH_LEVELS:
        raise ValueError(f"Unknown month: {month!r}. Expected one of {MONTH_LEVELS}")
    return _SEASON_BY_MONTH.get(month, 'autumn')


def add_log_area(df: pd.DataFrame, area_column: str = 'area') -> pd.DataFrame:
    """Return a copy of df with log_area = log10(area + 1)."""
    if (df[area_column] < 0).any():
        raise ValueError(f"Column '{area_column}' contains negative values")
    out = df.copy()
    out[TARGET_COLUMN] = np.log10(out[area_column].astype(float) + 1.0)
    return out


def add_is_weekend(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of df with a 0/1 is_weekend column derived from day."""
    unknown = set(df['day'].unique()) - set(DAY_LEVELS)
    if unknown:
        raise ValueError(f"Unknown day values: {sorted(unknown)}")
    out = df.copy()
    out['is_weekend'] = out['day'].isin(WEEKEND_DAYS).astype(int)
    return out


def add_season(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of df with a season column derived from month."""
    out = df.copy()
    out['season'] = out['month'].map(month_to_season)
    return out


def one_hot_encode(
    df: pd.DataFrame,
    column: str,
    levels: Sequence[str]
) -> pd.DataFrame:
    """
    Replace a categorical column with one indicator column per declared level.

    Every level gets a column (named ``<column>_<level>``), whether or not it
    occurs in df, so that independently encoded subsets share one schema.

    Args:
        df: Input DataFrame
        column: Categorical column to expand
        levels: Complete list of allowed levels

    Returns:
        New DataFrame without ``column`` and with the indicator columns appended

    Raises:
        ValueError: If df contains values outside ``levels``
    """
    unknown = set(df[column].dropna().unique()) - set(levels)
    if unknown:
        raise ValueError(f"Column '{column}' has values outside declared levels: {sorted(unknown)}")

    categorical = pd.Categorical(df[column], categories=list(levels))
    dummies = pd.get_dummies(categorical, prefix=column, dtype=int)
    dummies.index = df.index

    return pd.concat([df.drop(columns=[column]), dummies], axis=1)


def engineer_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    Build the modelling table from the raw observation table.

    Adds log_area, is_weekend and season, one-hot encodes month, day and
    season over their declared levels, then drops the raw categorical
    columns and the raw area.

    Args:
        df: Raw observation table

    Returns:
        Modelling table with only numeric columns

    Raises:
        ValueError: On missing values or unknown category levels
    """
    if df.isnull().values.any():
        missing = df.columns[df.isnull().any()].tolist()
        raise ValueError(f"Cannot engineer features with missing values in columns: {missing}")

    logger.info("=" * 60)
    logger.info("STARTING FEATURE ENGINEERING (Phase 2)")
    logger.info("=" * 60)

    out = add_log_area(df)
    out = add_is_weekend(out)
    out = add_season(out)

    for column, levels in (('month', MONTH_LEVELS), ('day', DAY_LEVELS), ('season', SEASON_LEVELS)):
        out = one_hot_encode(out, column, levels)

    out = out.drop(columns=['area'])

    logger.info(f"Engineered table: {out.shape[0]} rows × {out.shape[1]} columns")
    logger.info(f"  log_area range: [{out[TARGET_COLUMN].min():.4f}, {out[TARGET_COLUMN].max():.4f}]")
    logger.info(f"  Weekend fires: {int(out['is_weekend'].sum())}")

    return out


def split_features_target(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN
) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate the predictor table from the target column."""
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found")
    return df.drop(columns=[target]), df[target]
