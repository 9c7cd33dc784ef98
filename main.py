#!/usr/bin/env python3
"""
Forest Fire Regression - Main Pipeline
=======================================

Orchestrates the analysis of burned area in forest-fire observations.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Features - log target, weekend flag, season, one-hot encodings
    3. Preprocessing - Stratified split, centring, near-zero-variance filter
    4. Training - Forward selection, ridge and lasso tuned by 10-fold CV
    5. Comparison - Resampled RMSE / R² and hold-out evaluation

Usage:
    # Run complete pipeline
    python main.py --data data/raw/forestfires.tsv

    # Run specific phase
    python main.py --data data/raw/forestfires.tsv --phase eda

    # Run with custom config
    python main.py --data data/raw/forestfires.tsv --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from forestfire.data_loader import load_config, load_data, validate_data, print_data_summary
from forestfire.eda import generate_eda_report, print_correlation_insights
from forestfire.features import engineer_features
from forestfire.preprocessing import preprocess_pipeline, print_preprocessing_summary
from forestfire.model import train_models, print_model_summary, CandidateModel
from forestfire.evaluation import compare_models, print_comparison_report

PHASES = ['eda', 'features', 'preprocess', 'train', 'compare', 'all']


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(df, output_dir=output_dir, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    Execute Phase 2: Feature Engineering.

    Args:
        df: Raw data

    Returns:
        Engineered numeric table including log_area
    """
    print("\n" + "=" * 70)
    print("PHASE 2: FEATURE ENGINEERING")
    print("=" * 70)

    engineered = engineer_features(df)

    print(f"Engineered table: {engineered.shape[0]} rows × {engineered.shape[1]} columns")
    print(f"Columns: {', '.join(engineered.columns)}")

    return engineered


def run_preprocessing(engineered: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 3: Data Preprocessing.

    Args:
        engineered: Output of run_features
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 3: DATA PREPROCESSING")
    print("=" * 70)

    result = preprocess_pipeline(engineered, config)
    print_preprocessing_summary(result)

    return result


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, CandidateModel]:
    """
    Execute Phase 4: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Tuned candidates keyed by name
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL TRAINING")
    print("=" * 70)

    model_path = config.get('output', {}).get('model_path')

    models = train_models(
        prep_result['X_train'],
        prep_result['y_train'],
        config,
        save_path=model_path
    )

    print_model_summary(models)

    return models


def run_comparison(
    models: Dict[str, CandidateModel],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Model Comparison.

    Args:
        models: Tuned candidates
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Comparison result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: MODEL COMPARISON")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    result = compare_models(
        models,
        X_test=prep_result['X_test'],
        y_test=prep_result['y_test'],
        output_dir=output_dir,
        show_plots=False
    )

    print_comparison_report(result)

    return result


def _load_inputs(data_path: str, config: Dict[str, Any]) -> pd.DataFrame:
    df = load_data(data_path, sep=config.get('data', {}).get('separator', '\t'))
    print_data_summary(df)

    is_valid, validation_report = validate_data(df, strict=False)
    if not is_valid:
        raise ValueError(f"Data validation failed: {validation_report['issues']}")

    return df


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml"
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to the input table
        config_path: Path to configuration file

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("FOREST FIRE REGRESSION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    df = _load_inputs(data_path, config)

    results = {
        'config': config,
        'data_shape': df.shape
    }

    results['eda'] = run_eda(df, config)
    results['features'] = run_features(df)
    results['preprocessing'] = run_preprocessing(results['features'], config)
    results['models'] = run_training(results['preprocessing'], config)
    results['comparison'] = run_comparison(
        results['models'],
        results['preprocessing'],
        config
    )

    best = results['comparison']['best_model']
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Train/Test rows: {len(results['preprocessing']['train_index'])}"
          f"/{len(results['preprocessing']['test_index'])}")
    print(f"  • Selected model: {best} {results['comparison']['best_params']}")
    print(f"  • Mean CV RMSE: {results['comparison']['summary']['rmse'].loc[best, 'Mean']:.4f}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml"
) -> Any:
    """
    Execute a single phase of the pipeline, running its prerequisites first.

    Args:
        phase: Phase to run ('eda', 'features', 'preprocess', 'train', 'compare')
        data_path: Path to the input table
        config_path: Path to configuration file

    Returns:
        Phase result
    """
    if phase not in PHASES or phase == 'all':
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES[:-1])}")

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    df = _load_inputs(data_path, config)

    if phase == 'eda':
        return run_eda(df, config)

    engineered = run_features(df)
    if phase == 'features':
        return engineered

    prep_result = run_preprocessing(engineered, config)
    if phase == 'preprocess':
        return prep_result

    models = run_training(prep_result, config)
    if phase == 'train':
        return {'models': models, 'preprocessing': prep_result}

    return run_comparison(models, prep_result, config)


def main(argv: Optional[list] = None) -> int:
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Burned-area regression for forest-fire observations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/forestfires.tsv
  python main.py --data data/raw/forestfires.tsv --phase eda
  python main.py --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default=None,
        help='Path to the input table (default: data.path from the config)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    args = parser.parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    data_path = args.data or load_config(args.config).get('data', {}).get('path')
    if not data_path or not Path(data_path).exists():
        print(f"Error: Data file not found: {data_path}")
        print("\nExpected format: tab-separated table with header "
              "X Y month day FFMC DMC DC ISI temp RH wind rain area")
        return 1

    try:
        if args.phase == 'all':
            run_full_pipeline(data_path, args.config)
        else:
            run_single_phase(args.phase, data_path, args.config)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
