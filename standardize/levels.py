"""
Factor level labels.

Levels are always strings so that fit-time and prediction-time values compare
the same way regardless of storage type: ``1``, ``1.0`` and ``np.int64(1)``
all become ``'1'``; booleans become ``'True'``/``'False'``.
"""
from typing import Iterable, List

import numpy as np
import pandas as pd

from standardize.config.constants import BOOLEAN_LEVEL_PAIRS


def level_label(value) -> str:
    """String label of a single non-missing value."""
    if isinstance(value, (bool, np.bool_)):
        return str(bool(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        v = float(value)
        return str(int(v)) if v.is_integer() else repr(v)
    return str(value)


def level_labels(values: pd.Series) -> pd.Series:
    """Labels of a Series, element-wise; missing values stay missing."""
    return values.astype(object).map(level_label, na_action='ignore')


def observed_levels(values: pd.Series) -> List[str]:
    """Distinct non-missing labels in order of first appearance."""
    return list(dict.fromkeys(level_labels(values).dropna()))


def sort_levels(levels: Iterable[str]) -> List[str]:
    """
    Sort level labels.

    Labels that all parse as numbers sort numerically; anything else sorts
    case-insensitively (ties broken by the exact text).
    """
    levels = list(dict.fromkeys(levels))
    try:
        keys = [float(level) for level in levels]
    except ValueError:
        return sorted(levels, key=lambda s: (s.casefold(), s))
    return [level for _, level in sorted(zip(keys, levels))]


def order_boolean_like(levels: List[str]) -> List[str]:
    """
    Put the positive token first in a two-level boolean-like set.

    ``['FALSE', 'TRUE']`` becomes ``['TRUE', 'FALSE']`` so that under sum
    contrasts the positive level receives the ``+scale`` coefficient. Any
    other level set is returned unchanged.
    """
    if len(levels) != 2:
        return list(levels)
    folded = {level.casefold() for level in levels}
    for negative, positive in BOOLEAN_LEVEL_PAIRS:
        if folded == {negative, positive}:
            return sorted(levels, key=lambda level: level.casefold() != positive)
    return list(levels)


def ordered_levels(values: pd.Series) -> List[str]:
    """Levels of an ordered categorical in declared order, unused levels dropped."""
    observed = set(observed_levels(values))
    declared = [level_label(c) for c in values.cat.categories]
    return [level for level in declared if level in observed]
