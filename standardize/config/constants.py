"""
Constants shared by the formula parser, the contrast builder and the engine.
"""
from typing import Dict, FrozenSet, List, Tuple

# Two-level sets whose levels are ordered positive-first (case-insensitive).
BOOLEAN_LEVEL_PAIRS: List[Tuple[str, str]] = [
    ('false', 'true'),
    ('0', '1'),
    ('no', 'yes'),
    ('n', 'y'),
    ('f', 't'),
]

# Family tokens treated as the gaussian (identity link) family.
GAUSSIAN_FAMILIES: FrozenSet[str] = frozenset({'gaussian', 'identity', 'normal'})

DEFAULT_SCALE = 1.0
DEFAULT_FAMILY = 'gaussian'
DEFAULT_N_JOBS = 1

# Recognized wrapper calls
LOG_FUNCTION = 'log'
SCALE_BY_FUNCTION = 'scale_by'
POLY_FUNCTION = 'poly'
OFFSET_FUNCTION = 'offset'
IDENTITY_FUNCTION = 'I'

# Names of the first polynomial contrast columns; higher degrees use P<d>
POLY_DUMMY_NAMES: Dict[int, str] = {
    1: 'L',
    2: 'Q',
    3: 'C',
}


def poly_dummy_name(degree: int) -> str:
    """Name of the polynomial contrast column for a given degree."""
    return POLY_DUMMY_NAMES.get(degree, f"P{degree}")
