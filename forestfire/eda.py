"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Provides analysis and visualization of the fire observation table.

Functions:
    - plot_histograms: Histograms for all numeric columns
    - plot_tile_map: Fire counts and mean log area over the X/Y park grid
    - plot_scatter_trends: Faceted scatter + linear trend of log area vs weather
    - plot_correlation_matrix: Pairwise correlation heatmap
    - plot_category_boxplots: Log area by month and day
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .features import MONTH_LEVELS, DAY_LEVELS, TARGET_COLUMN, add_log_area

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")

WEATHER_COLUMNS = ['FFMC', 'DMC', 'DC', 'ISI', 'temp', 'RH', 'wind', 'rain']


def _grid_axes(n_plots: int, n_cols: int, figsize: Tuple[int, int]):
    n_rows = int(np.ceil(n_plots / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()
    for idx in range(n_plots, len(axes)):
        axes[idx].set_visible(False)
    return fig, axes


def plot_histograms(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    bins: int = 30,
    figsize: Tuple[int, int] = (16, 12),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create histograms for the numeric columns.

    Args:
        df: DataFrame with numerical data
        columns: Specific columns to plot (default: all numeric)
        bins: Number of histogram bins
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()

    fig, axes = _grid_axes(len(columns), 4, figsize)

    for ax, col in zip(axes, columns):
        sns.histplot(df[col], ax=ax, bins=bins, alpha=0.7)

        skew = stats.skew(df[col].dropna())
        ax.axvline(df[col].mean(), color='red', linestyle='--', linewidth=1,
                   label=f'Mean: {df[col].mean():.2f}')
        ax.set_title(f'{col} (skew={skew:.2f})', fontsize=10, fontweight='bold')
        ax.legend(fontsize=7)

    plt.suptitle('Distribution Analysis', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Histograms saved to {save_path}")

    return fig


def plot_tile_map(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 6),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Tile map over the park's X/Y grid: fire counts and mean log area per cell.

    Args:
        df: DataFrame with X, Y and log_area columns
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, per-cell DataFrame with count and mean_log_area)
    """
    cells = (
        df.groupby(['Y', 'X'])[TARGET_COLUMN]
        .agg(count='size', mean_log_area='mean')
        .reset_index()
    )

    counts = cells.pivot(index='Y', columns='X', values='count')
    means = cells.pivot(index='Y', columns='X', values='mean_log_area')

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.heatmap(counts, annot=True, fmt='.0f', cmap='YlOrRd', linewidths=0.5,
                cbar_kws={"label": "Fires"}, ax=axes[0])
    axes[0].set_title('Fire Count per Grid Cell', fontweight='bold')

    sns.heatmap(means, annot=True, fmt='.2f', cmap='YlOrRd', linewidths=0.5,
                cbar_kws={"label": "Mean log_area"}, ax=axes[1])
    axes[1].set_title('Mean log10(area + 1) per Grid Cell', fontweight='bold')

    for ax in axes:
        ax.invert_yaxis()

    plt.suptitle('Spatial Distribution of Fires', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tile map saved to {save_path}")

    return fig, cells


def plot_scatter_trends(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    figsize: Tuple[int, int] = (16, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Faceted scatter plots of log area against weather variables with a linear trend.

    Args:
        df: DataFrame with log_area and weather columns
        columns: Predictors to plot (default: the weather columns)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = [col for col in WEATHER_COLUMNS if col in df.columns]

    fig, axes = _grid_axes(len(columns), 4, figsize)

    for ax, col in zip(axes, columns):
        sns.regplot(
            x=df[col], y=df[TARGET_COLUMN], ax=ax,
            scatter_kws={'alpha': 0.4, 's': 12},
            line_kws={'color': 'red', 'linewidth': 1.5}
        )
        r = df[[col, TARGET_COLUMN]].corr().iloc[0, 1]
        ax.set_title(f'{col} (r={r:.3f})', fontsize=10, fontweight='bold')
        ax.set_ylabel(TARGET_COLUMN)

    plt.suptitle('log_area vs Weather Variables', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Scatter trends saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (11, 9),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_category_boxplots(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plots of log area grouped by month and by day of week.

    Args:
        df: DataFrame with month, day and log_area columns
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, axes = plt.subplots(1, 2, figsize=figsize, gridspec_kw={'width_ratios': [12, 7]})

    for ax, col, levels in ((axes[0], 'month', MONTH_LEVELS), (axes[1], 'day', DAY_LEVELS)):
        sns.boxplot(x=df[col], y=df[TARGET_COLUMN], order=levels, ax=ax, color='lightsteelblue')
        ax.set_title(f'log_area by {col}', fontweight='bold')
        ax.set_xlabel(col)

    plt.suptitle('Burned Area by Calendar Category', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Category box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Raw observation table (log_area is derived if absent)
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if TARGET_COLUMN not in df.columns:
        df = add_log_area(df)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "grid_cells": None,
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    # 1. Histograms
    logger.info("Plotting distributions...")
    plot_histograms(df, save_path=str(output_dir / "01_histograms.png"))
    report["figures"].append("01_histograms.png")

    # 2. Spatial tile map
    logger.info("Building X/Y tile map...")
    _, cells = plot_tile_map(df, save_path=str(output_dir / "02_tile_map.png"))
    report["figures"].append("02_tile_map.png")
    report["grid_cells"] = cells

    # 3. Scatter + trend
    logger.info("Plotting log_area against weather variables...")
    plot_scatter_trends(df, save_path=str(output_dir / "03_scatter_trends.png"))
    report["figures"].append("03_scatter_trends.png")

    # 4. Correlation matrix
    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df,
        save_path=str(output_dir / "04_correlation_matrix.png")
    )
    report["figures"].append("04_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    # 5. Category box plots
    if {'month', 'day'}.issubset(df.columns):
        logger.info("Creating month/day box plots...")
        plot_category_boxplots(df, save_path=str(output_dir / "05_category_boxplots.png"))
        report["figures"].append("05_category_boxplots.png")

    for col in df.select_dtypes(include=[np.number]).columns:
        report["statistics"][col] = {
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "kurtosis": float(df[col].kurtosis())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    target: str = TARGET_COLUMN,
    threshold: float = 0.5
) -> None:
    """
    Print the strongest predictor pairs and each predictor's correlation with the target.

    Args:
        corr_matrix: Correlation matrix DataFrame
        target: Target column name
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    predictors = [col for col in corr_matrix.columns if col not in (target, 'area')]

    strong_corr = []
    for i, col1 in enumerate(predictors):
        for col2 in predictors[i + 1:]:
            corr_val = corr_matrix.loc[col1, col2]
            if abs(corr_val) >= threshold:
                strong_corr.append((col1, col2, corr_val))

    if strong_corr:
        print(f"\nStrong predictor correlations (|r| >= {threshold}):")
        for col1, col2, corr_val in sorted(strong_corr, key=lambda x: abs(x[2]), reverse=True):
            direction = "positive" if corr_val > 0 else "negative"
            print(f"  • {col1} ↔ {col2}: {corr_val:.3f} ({direction})")
        print("  - Collinear predictors favour penalised or stepwise models")
    else:
        print(f"\nNo strong predictor correlations found (|r| >= {threshold})")

    if target in corr_matrix.columns:
        print(f"\nCorrelation with {target}:")
        with_target = corr_matrix.loc[predictors, target].sort_values(key=np.abs, ascending=False)
        for col, corr_val in with_target.items():
            print(f"  • {col}: {corr_val:.3f}")

    print("=" * 50 + "\n")
