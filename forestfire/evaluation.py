"""
Model Comparison Module - Phase 5
==================================

Compares the tuned candidates on their cross-validation resamples and
evaluates the winner on the hold-out test set.

Features:
    - Per-fold RMSE / R² table across candidates
    - Resampling summary statistics and winner selection
    - Dotplot of mean resampled metrics with confidence intervals
    - Tuning profiles (CV RMSE vs hyperparameter)
    - Hold-out Actual vs Predicted and residual diagnostics
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score

from .model import CandidateModel

logger = logging.getLogger(__name__)

METRICS = ('rmse', 'r2')
TIE_TOLERANCE = 1e-12


def collect_resamples(models: Dict[str, CandidateModel]) -> pd.DataFrame:
    """
    Gather per-fold cross-validated metrics of every candidate.

    Args:
        models: Mapping of name to fitted CandidateModel

    Returns:
        Long DataFrame with columns model, fold, rmse, r2
    """
    frames = []
    for name, model in models.items():
        scores = model.fold_scores()
        scores.insert(0, 'model', name)
        frames.append(scores)

    splitters = {repr(model.cv) for model in models.values()}
    if len(splitters) > 1:
        logger.warning(f"Candidates were resampled with different splitters: {sorted(splitters)}")

    return pd.concat(frames, ignore_index=True)


def summarize_resamples(resamples: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """
    Five-number summary plus mean of each metric per candidate.

    Args:
        resamples: Output of collect_resamples

    Returns:
        Mapping of metric name to DataFrame indexed by model with columns
        Min, 1st Qu., Median, Mean, 3rd Qu., Max
    """
    summary = {}
    for metric in METRICS:
        grouped = resamples.groupby('model', sort=False)[metric]
        summary[metric] = pd.DataFrame({
            'Min': grouped.min(),
            '1st Qu.': grouped.quantile(0.25),
            'Median': grouped.median(),
            'Mean': grouped.mean(),
            '3rd Qu.': grouped.quantile(0.75),
            'Max': grouped.max(),
        })
    return summary


def select_best_model(resamples: pd.DataFrame) -> str:
    """
    Pick the candidate with the lowest mean cross-validated RMSE.

    Ties are broken by higher mean R², then by candidate order.

    Args:
        resamples: Output of collect_resamples

    Returns:
        Name of the winning candidate
    """
    means = resamples.groupby('model', sort=False)[list(METRICS)].mean()
    best_rmse = means['rmse'].min()
    tied = means[means['rmse'] - best_rmse <= TIE_TOLERANCE]

    if len(tied) > 1:
        logger.info(f"Mean CV RMSE tie between {list(tied.index)}; breaking on mean R²")

    return str(tied['r2'].idxmax())


def confidence_interval(values: np.ndarray, confidence: float = 0.95) -> Tuple[float, float]:
    """Student-t confidence interval for the mean of values."""
    values = np.asarray(values, dtype=float)
    if len(values) < 2:
        return (np.nan, np.nan)
    mean = values.mean()
    sem = stats.sem(values)
    if sem == 0:
        return (mean, mean)
    return stats.t.interval(confidence, len(values) - 1, loc=mean, scale=sem)


def calculate_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    """
    Calculate hold-out regression metrics.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values

    Returns:
        Dictionary with rmse, mae, r2 and residual statistics
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    residuals = y_true - y_pred

    return {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)),
        'mean_error': float(np.mean(residuals)),
        'std_error': float(np.std(residuals)),
        'max_error': float(np.max(np.abs(residuals))),
        'n_samples': int(len(y_true))
    }


def plot_resample_dotplot(
    resamples: pd.DataFrame,
    confidence: float = 0.95,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Dotplot of mean resampled RMSE and R² per candidate with confidence intervals.

    Args:
        resamples: Output of collect_resamples
        confidence: Confidence level for the interval bars
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    models = list(dict.fromkeys(resamples['model']))
    fig, axes = plt.subplots(1, len(METRICS), figsize=figsize)

    for ax, metric in zip(axes, METRICS):
        y_pos = np.arange(len(models))
        for i, name in enumerate(models):
            values = resamples.loc[resamples['model'] == name, metric].values
            mean = values.mean()
            lower, upper = confidence_interval(values, confidence)
            ax.plot([lower, upper], [i, i], color='steelblue', linewidth=2)
            ax.scatter([mean], [i], color='navy', s=60, zorder=5)

        ax.set_yticks(y_pos)
        ax.set_yticklabels(models)
        ax.set_xlabel(metric.upper() if metric == 'rmse' else 'R²')
        ax.set_title(f'{metric.upper() if metric == "rmse" else "R²"} '
                     f'({confidence:.0%} CI)', fontweight='bold')
        ax.grid(axis='x', alpha=0.4)

    plt.suptitle('Cross-Validated Model Comparison', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Resample dotplot saved to {save_path}")

    return fig


def plot_tuning_profiles(
    models: Dict[str, CandidateModel],
    figsize: Tuple[int, int] = (15, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot mean CV RMSE against the tuned hyperparameter of each candidate.

    Args:
        models: Mapping of name to fitted CandidateModel
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, axes = plt.subplots(1, len(models), figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for ax, (name, model) in zip(axes, models.items()):
        profile = model.tuning_profile()
        param = list(model.param_grid.keys())[0]
        best_value = model.best_params_[param]

        ax.plot(profile[param], profile['mean_rmse'], 'o-', color='steelblue', markersize=4)
        ax.axvline(best_value, color='red', linestyle='--', alpha=0.6,
                   label=f'Best: {best_value}')
        ax.set_xlabel(param)
        ax.set_ylabel('RMSE (Cross-Validation)')
        ax.set_title(name, fontsize=11, fontweight='bold')
        ax.legend(fontsize=8)

    plt.suptitle('Tuning Profiles', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tuning profiles saved to {save_path}")

    return fig


def plot_actual_vs_predicted(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    model_name: str,
    figsize: Tuple[int, int] = (6, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter hold-out predictions against observed log area.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        model_name: Label for the title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(y_true, y_pred, alpha=0.5, s=20)

    min_val = min(y_true.min(), y_pred.min())
    max_val = max(y_true.max(), y_pred.max())
    ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')

    r2 = r2_score(y_true, y_pred)
    rmse = np.sqrt(mean_squared_error(y_true, y_pred))

    ax.set_xlabel('Actual log_area')
    ax.set_ylabel('Predicted log_area')
    ax.set_title(f'{model_name} (test set)\nR²={r2:.4f}, RMSE={rmse:.4f}',
                 fontsize=11, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    model_name: str,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residual diagnostics: residuals vs fitted and residual distribution.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        model_name: Label for the title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    residuals = y_true - y_pred

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    axes[0].scatter(y_pred, residuals, alpha=0.5, s=20)
    axes[0].axhline(0, color='red', linestyle='--', linewidth=2)
    axes[0].set_xlabel('Fitted')
    axes[0].set_ylabel('Residual (Actual - Predicted)')
    axes[0].set_title('Residuals vs Fitted', fontweight='bold')

    sns.histplot(residuals, kde=True, ax=axes[1], bins=30, alpha=0.7)
    axes[1].axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
    axes[1].axvline(np.mean(residuals), color='green', linestyle='--',
                    linewidth=2, label=f'Mean: {np.mean(residuals):.4f}')
    axes[1].set_xlabel('Residual')
    axes[1].set_title(f'Residual Distribution (Std: {np.std(residuals):.4f})',
                      fontweight='bold')
    axes[1].legend(fontsize=8)

    plt.suptitle(f'Residual Analysis - {model_name}', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def compare_models(
    models: Dict[str, CandidateModel],
    X_test: Optional[pd.DataFrame] = None,
    y_test: Optional[pd.Series] = None,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run the full comparison and generate the comparison figures.

    Args:
        models: Mapping of name to fitted CandidateModel
        X_test: Preprocessed hold-out features (optional)
        y_test: Hold-out target (optional)
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing resamples, summary, best_model, per-model
        test metrics and figure names
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL COMPARISON (Phase 5)")
    logger.info("=" * 60)

    resamples = collect_resamples(models)
    summary = summarize_resamples(resamples)
    best_model = select_best_model(resamples)
    figures: List[str] = []

    plot_resample_dotplot(resamples, save_path=str(output_dir / "comparison_dotplot.png"))
    figures.append("comparison_dotplot.png")

    plot_tuning_profiles(models, save_path=str(output_dir / "comparison_tuning_profiles.png"))
    figures.append("comparison_tuning_profiles.png")

    test_metrics: Dict[str, Dict[str, float]] = {}
    if X_test is not None and y_test is not None:
        for name, model in models.items():
            test_metrics[name] = calculate_metrics(y_test, model.predict(X_test))

        y_pred = models[best_model].predict(X_test)
        plot_actual_vs_predicted(
            y_test, y_pred, best_model,
            save_path=str(output_dir / "test_actual_vs_predicted.png")
        )
        figures.append("test_actual_vs_predicted.png")

        plot_residuals(
            y_test, y_pred, best_model,
            save_path=str(output_dir / "test_residuals.png")
        )
        figures.append("test_residuals.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'resamples': resamples,
        'summary': summary,
        'best_model': best_model,
        'best_params': models[best_model].best_params_,
        'test_metrics': test_metrics,
        'figures': figures
    }

    logger.info("=" * 60)
    logger.info("COMPARISON COMPLETE")
    logger.info(f"  Selected model: {best_model} {result['best_params']}")
    logger.info(f"  Mean CV RMSE: {summary['rmse'].loc[best_model, 'Mean']:.6f}")
    logger.info("=" * 60)

    return result


def print_comparison_report(result: Dict[str, Any]) -> None:
    """
    Print a formatted comparison report to console.

    Args:
        result: Dictionary from compare_models
    """
    print("\n" + "=" * 70)
    print("MODEL COMPARISON REPORT")
    print("=" * 70)

    n_folds = result['resamples']['fold'].nunique()
    print(f"\nResampled performance ({n_folds} folds):")
    for metric, table in result['summary'].items():
        print(f"\n{metric.upper() if metric == 'rmse' else 'R²'}")
        print("-" * 70)
        print(table.round(4).to_string())

    if result['test_metrics']:
        print("\nHold-out test set:")
        print("-" * 70)
        print(f"{'Model':<20} {'RMSE':<12} {'MAE':<12} {'R²':<12}")
        print("-" * 70)
        for name, metrics in result['test_metrics'].items():
            print(f"{name:<20} {metrics['rmse']:<12.6f} {metrics['mae']:<12.6f} "
                  f"{metrics['r2']:<12.6f}")

    print("-" * 70)
    print(f"\n✓ Selected model: {result['best_model']} {result['best_params']}")
    print("  (lowest mean cross-validated RMSE)")
    print("=" * 70 + "\n")
