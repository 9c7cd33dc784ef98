"""
Shared fixtures: synthetic forest-fire observation tables.
"""

import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from forestfire.features import MONTH_LEVELS, DAY_LEVELS


def make_fire_table(n_rows: int = 200, seed: int = 42) -> pd.DataFrame:
    """Raw table shaped like the forest-fire dataset, with area driven by temp and wind."""
    rng = np.random.default_rng(seed)

    month_weights = np.array([2, 2, 10, 2, 1, 3, 6, 35, 33, 3, 1, 2], dtype=float)
    month = rng.choice(MONTH_LEVELS, size=n_rows, p=month_weights / month_weights.sum())
    day = rng.choice(DAY_LEVELS, size=n_rows)

    temp = rng.normal(19, 5.5, n_rows).clip(2, 33)
    wind = rng.gamma(4, 1, n_rows).clip(0.4, 9.4)
    rh = rng.normal(44, 16, n_rows).clip(15, 100)
    rain = np.where(rng.random(n_rows) < 0.03, rng.uniform(0.2, 6.4, n_rows), 0.0)

    signal = 0.06 * temp + 0.08 * wind - 0.01 * rh + rng.normal(0, 0.4, n_rows)
    burned = rng.random(n_rows) < 0.5
    area = np.where(burned, np.power(10, np.clip(signal, 0, None)) - 1 + rng.exponential(2, n_rows), 0.0)

    return pd.DataFrame({
        'X': rng.integers(1, 10, n_rows),
        'Y': rng.integers(2, 10, n_rows),
        'month': month,
        'day': day,
        'FFMC': rng.normal(90, 5, n_rows).clip(18, 96),
        'DMC': rng.gamma(3, 37, n_rows).clip(1, 291),
        'DC': rng.normal(548, 248, n_rows).clip(7, 860),
        'ISI': rng.gamma(3, 3, n_rows).clip(0, 56),
        'temp': temp.round(1),
        'RH': rh.round(0),
        'wind': wind.round(1),
        'rain': rain.round(1),
        'area': area.round(2),
    })


@pytest.fixture
def fire_data():
    """200-row synthetic observation table."""
    return make_fire_table(200, seed=42)


@pytest.fixture(scope="session")
def fire_table_factory():
    """Factory for synthetic tables of arbitrary size and seed."""
    return make_fire_table
