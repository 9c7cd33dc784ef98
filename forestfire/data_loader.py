"""
Data Loader Module
==================

Handles ingestion of the forest-fire observation table, schema validation
and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load the delimited observation table
    - validate_data: Check schema and data quality constraints
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

from .features import MONTH_LEVELS, DAY_LEVELS

logger = logging.getLogger(__name__)

FIRE_COLUMNS = [
    'X', 'Y', 'month', 'day', 'FFMC', 'DMC', 'DC', 'ISI',
    'temp', 'RH', 'wind', 'rain', 'area'
]
CATEGORICAL_COLUMNS = ['month', 'day']
NUMERIC_COLUMNS = [col for col in FIRE_COLUMNS if col not in CATEGORICAL_COLUMNS]


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    sep: str = "\t",
    expected_columns: Optional[List[str]] = FIRE_COLUMNS
) -> pd.DataFrame:
    """
    Load the observation table from a delimited text file with a header row.

    Args:
        file_path: Path to the data file
        sep: Field separator (tab by default)
        expected_columns: Column names that must be present (None disables the check)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If required columns are missing
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(file_path, sep=sep)
    df.columns = [str(col).strip() for col in df.columns]
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None:
        missing = [col for col in expected_columns if col not in df.columns]
        if missing:
            raise ValueError(
                f"Missing expected columns {missing}. "
                f"Columns found: {list(df.columns)}"
            )

    for col in CATEGORICAL_COLUMNS:
        if col in df.columns:
            # Missing entries stay NaN
            present = df[col].notna()
            df[col] = df[col].astype(object)
            df.loc[present, col] = df.loc[present, col].astype(str).str.strip().str.lower()

    return df


def validate_data(df: pd.DataFrame, strict: bool = True) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for the observation table.

    Checks:
        - Measurement columns are numerical
        - Month and day values belong to the declared levels
        - No missing values
        - Burned area is non-negative
        - Duplicate rows (reported only)

    Args:
        df: DataFrame to validate
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": [],
        "warnings": []
    }

    # Check 1: Measurement columns should be numerical
    present_numeric = [col for col in NUMERIC_COLUMNS if col in df.columns]
    non_numeric_cols = [
        col for col in present_numeric
        if not pd.api.types.is_numeric_dtype(df[col])
    ]
    if non_numeric_cols:
        issue = f"Non-numeric measurement columns found: {non_numeric_cols}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 2: Categorical levels
    for col, levels in (('month', MONTH_LEVELS), ('day', DAY_LEVELS)):
        if col not in df.columns:
            continue
        unknown = sorted(set(df[col].dropna().unique()) - set(levels))
        if unknown:
            issue = f"Column '{col}' has unknown levels: {unknown}"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 3: Missing values
    missing_counts = df.isnull().sum()
    total_missing = missing_counts.sum()
    if total_missing > 0:
        missing_pct = (total_missing / (df.shape[0] * df.shape[1])) * 100
        issue = f"Missing values: {total_missing} ({missing_pct:.2f}%)"
        report["issues"].append(issue)
        report["missing_by_column"] = missing_counts[missing_counts > 0].to_dict()
        logger.warning(issue)

    # Check 4: Burned area must be non-negative
    if 'area' in df.columns and 'area' not in non_numeric_cols:
        negative = int((df['area'] < 0).sum())
        if negative > 0:
            issue = f"Column 'area' has {negative} negative values"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 5: Duplicate rows (reported, never fail validation)
    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        warning = f"Duplicate rows found: {duplicates}"
        report["warnings"].append(warning)
        logger.info(warning)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing numeric statistics and categorical level counts
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "statistics": {},
        "level_counts": {}
    }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "25%": float(df[col].quantile(0.25)),
            "50%": float(df[col].quantile(0.50)),
            "75%": float(df[col].quantile(0.75)),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "kurtosis": float(df[col].kurtosis())
        }

    for col in df.select_dtypes(exclude=[np.number]).columns:
        summary["level_counts"][col] = df[col].value_counts().to_dict()

    return summary


def print_data_summary(df: pd.DataFrame) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print("\nColumn Information:")
    print("-" * 40)

    for col in df.columns:
        dtype = df[col].dtype
        non_null = df[col].count()
        null_pct = (1 - non_null / len(df)) * 100
        print(f"  {col}: {dtype} | {non_null} non-null ({null_pct:.1f}% missing)")

    print("\nBasic Statistics:")
    print("-" * 40)
    print(df.describe().round(4).to_string())

    categorical = df.select_dtypes(exclude=[np.number]).columns
    if len(categorical) > 0:
        print("\nCategory Counts:")
        print("-" * 40)
        for col in categorical:
            counts = df[col].value_counts()
            print(f"  {col}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    print("=" * 60 + "\n")
