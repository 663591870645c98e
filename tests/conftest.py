"""
Shared fixtures for standardization tests.
"""
import numpy as np
import pandas as pd
import pytest


def _make_frame(n_per_group, seed: int) -> pd.DataFrame:
    rng = np.random.RandomState(seed)
    groups = np.repeat(['s1', 's2', 's3'], n_per_group)
    n = len(groups)
    group_shift = pd.Series(groups).map({'s1': 0.0, 's2': 5.0, 's3': -3.0}).to_numpy()

    return pd.DataFrame({
        'y': rng.randn(n) * 3 + 10,
        'x': rng.randn(n) * 2 + 5,
        'z': rng.exponential(2.0, n) + 0.1,
        'w': rng.randn(n) + group_shift,
        'f': rng.choice(['a', 'b', 'c'], n),
        'b': rng.choice(['TRUE', 'FALSE'], n),
        'o': pd.Categorical(
            rng.choice(['low', 'mid', 'high'], n),
            categories=['low', 'mid', 'high'],
            ordered=True
        ),
        'g': groups,
        'exposure': rng.uniform(1.0, 3.0, n),
        'success': rng.randint(0, 2, n),
    })


@pytest.fixture
def train_df() -> pd.DataFrame:
    """Training table: 3 groups of unequal size (60/40/20)."""
    return _make_frame([60, 40, 20], seed=42)


@pytest.fixture
def new_df() -> pd.DataFrame:
    """New data drawn with the same levels and groups as train_df."""
    return _make_frame([5, 5, 5], seed=7)


@pytest.fixture
def full_formula() -> str:
    return "y ~ x + log(z) + scale_by(w ~ g) + f + b + o + (1 | g)"
