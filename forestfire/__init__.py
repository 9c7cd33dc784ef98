"""
Forest Fire Regression
======================

Exploratory analysis and linear-regression modelling of burned area
in forest-fire observations.

Modules:
    - data_loader: Delimited-table ingestion and validation
    - eda: Exploratory Data Analysis (Phase 1)
    - features: Derived target and categorical encodings (Phase 2)
    - preprocessing: Stratified split, centring and near-zero-variance filtering (Phase 3)
    - model: Cross-validated forward-selection, ridge and lasso regression (Phase 4)
    - evaluation: Resampling comparison and hold-out evaluation (Phase 5)
"""

__version__ = "1.0.0"
__author__ = "Forest Fire Analytics Team"
