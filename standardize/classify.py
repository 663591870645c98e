"""
Variable classification.

Each term is assigned a class from its wrapper, its role and the observed
training values. The class is frozen into the term's descriptor, so
prediction never re-classifies.
"""
import logging
from enum import Enum

import pandas as pd

from standardize.formula.terms import Role, Term, Wrapper

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class VariableClass(Enum):
    """Class of a standardized variable; also the descriptor kind."""
    CONTINUOUS = 'continuous'
    GROUPED_CONTINUOUS = 'grouped_continuous'
    UNORDERED_FACTOR = 'unordered_factor'
    ORDERED_FACTOR = 'ordered_factor'
    GROUPING_FACTOR = 'grouping_factor'
    POLYNOMIAL = 'polynomial'
    IDENTITY = 'identity'
    OFFSET = 'offset'


def is_textual(values: pd.Series) -> bool:
    """Whether values are strings, booleans or an unordered categorical."""
    dtype = values.dtype
    if isinstance(dtype, pd.CategoricalDtype):
        return not dtype.ordered
    return (
        pd.api.types.is_object_dtype(dtype)
        or pd.api.types.is_string_dtype(dtype)
        or pd.api.types.is_bool_dtype(dtype)
    )


def is_ordered_categorical(values: pd.Series) -> bool:
    dtype = values.dtype
    return isinstance(dtype, pd.CategoricalDtype) and bool(dtype.ordered)


def classify_term(term: Term, values: pd.Series) -> VariableClass:
    """
    Class of a predictor term.

    Rules, in priority order:
        1. random-effect grouping variable -> grouping factor
        2. ``scale_by`` wrapper -> grouped continuous
        3. ``poly`` wrapper -> polynomial; ``log`` or opaque expression -> continuous
        4. textual values or exactly two distinct values -> unordered factor
        5. ordered categorical -> ordered factor
        6. anything else -> continuous

    Args:
        term: Fixed or random-group term
        values: The term's training column (its inner variable)

    Returns:
        VariableClass
    """
    if term.role is Role.RANDOM_GROUP:
        return VariableClass.GROUPING_FACTOR
    if term.wrapper is Wrapper.GROUPED_SCALE:
        return VariableClass.GROUPED_CONTINUOUS
    if term.wrapper is Wrapper.POLYNOMIAL:
        return VariableClass.POLYNOMIAL
    if term.wrapper in (Wrapper.LOG, Wrapper.EXPRESSION):
        return VariableClass.CONTINUOUS

    if is_textual(values) or values.nunique(dropna=True) == 2:
        return VariableClass.UNORDERED_FACTOR
    if is_ordered_categorical(values):
        return VariableClass.ORDERED_FACTOR
    return VariableClass.CONTINUOUS
