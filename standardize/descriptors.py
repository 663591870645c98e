"""
Transform descriptors.

A descriptor is plain data: the parameters needed to re-apply one variable's
fit-time transform without the training table. ``replay()`` interprets a
descriptor against any table; it is used both to build the standardized
training table and to map new data at prediction time, so both go through
exactly the same arithmetic.

Descriptor kinds (``VariableClass`` values):
    continuous          (x - center) / scale * target, x optionally logged
    grouped_continuous  same, with center/scale looked up per group
    unordered_factor    categorical with stored levels + sum contrast
    ordered_factor      categorical with stored levels + polynomial contrast
    grouping_factor     categorical with stored levels
    polynomial          scaled orthogonal polynomial columns
    identity            copied unchanged (non-gaussian response)
    offset              divided by the response standard deviation
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from standardize.classify import VariableClass
from standardize.contrasts import ContrastSpec
from standardize.exceptions import (
    FormulaError,
    MissingVariableError,
    NonNumericError,
    UnseenLevelError,
)
from standardize.formula.names import expanded_names
from standardize.levels import level_labels
from standardize.scaling import (
    GroupedScalingParams,
    PolyBasis,
    ScalingParams,
    apply_grouped_scaling,
    apply_scaling,
    evaluate_poly_basis,
    group_keys,
    require_numeric,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# =============================================================================
# SOURCE VALUES
# =============================================================================

@dataclass(frozen=True)
class Source:
    """
    Where a numeric column comes from before scaling.

    Exactly one of ``variable`` or ``expression`` is set. ``log`` applies the
    natural log to a variable; ``requires`` lists the columns an expression
    reads.
    """
    variable: Optional[str] = None
    expression: Optional[str] = None
    log: bool = False
    requires: Tuple[str, ...] = ()

    @property
    def variables(self) -> Tuple[str, ...]:
        if self.expression is not None:
            return self.requires
        return (self.variable,)

    @property
    def label(self) -> str:
        if self.expression is not None:
            return self.expression
        return f"log({self.variable})" if self.log else str(self.variable)

    def values(self, data: pd.DataFrame) -> pd.Series:
        """
        Evaluate the source against a table.

        Raises:
            MissingVariableError: If the variable is not a column of ``data``
            NonNumericError: If logged values are not numeric or not positive
            FormulaError: If pandas cannot evaluate the expression
        """
        missing = [v for v in self.variables if v not in data.columns]
        if missing:
            raise MissingVariableError(missing)

        if self.expression is not None:
            try:
                result = data.eval(self.expression, engine='python')
            except (ValueError, SyntaxError, TypeError) as e:
                raise FormulaError(
                    f"Could not evaluate expression '{self.expression}': {e}"
                ) from e
            if not isinstance(result, pd.Series):
                result = pd.Series(result, index=data.index)
            return require_numeric(result, self.expression)

        values = data[self.variable]
        if not self.log:
            return values
        values = require_numeric(values, self.variable)
        if (values.dropna() <= 0).any():
            raise NonNumericError(f"log({self.variable}) requires positive values")
        return np.log(values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variable': self.variable,
            'expression': self.expression,
            'log': self.log,
            'requires': list(self.requires)
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Source':
        return cls(
            variable=d.get('variable'),
            expression=d.get('expression'),
            log=bool(d.get('log', False)),
            requires=tuple(d.get('requires', ()))
        )


def _column(data: pd.DataFrame, variable: str) -> pd.Series:
    if variable not in data.columns:
        raise MissingVariableError([variable])
    return data[variable]


# =============================================================================
# DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class ContinuousDescriptor:
    name: str
    term: str
    role: str
    source: Source
    params: ScalingParams
    target: float
    kind: VariableClass = field(default=VariableClass.CONTINUOUS, init=False)


@dataclass(frozen=True)
class GroupedContinuousDescriptor:
    name: str
    term: str
    role: str
    source: Source
    params: GroupedScalingParams
    target: float
    kind: VariableClass = field(default=VariableClass.GROUPED_CONTINUOUS, init=False)

    @property
    def grouping(self) -> str:
        return self.params.grouping


@dataclass(frozen=True)
class UnorderedFactorDescriptor:
    name: str
    term: str
    role: str
    variable: str
    contrast: ContrastSpec
    kind: VariableClass = field(default=VariableClass.UNORDERED_FACTOR, init=False)

    @property
    def levels(self) -> Tuple[str, ...]:
        return self.contrast.levels


@dataclass(frozen=True)
class OrderedFactorDescriptor:
    name: str
    term: str
    role: str
    variable: str
    contrast: ContrastSpec
    kind: VariableClass = field(default=VariableClass.ORDERED_FACTOR, init=False)

    @property
    def levels(self) -> Tuple[str, ...]:
        return self.contrast.levels


@dataclass(frozen=True)
class GroupingFactorDescriptor:
    name: str
    term: str
    role: str
    variable: str
    levels: Tuple[str, ...]
    kind: VariableClass = field(default=VariableClass.GROUPING_FACTOR, init=False)


@dataclass(frozen=True)
class PolynomialDescriptor:
    name: str
    term: str
    role: str
    variable: str
    basis: PolyBasis
    column_scales: Tuple[float, ...]
    target: float
    kind: VariableClass = field(default=VariableClass.POLYNOMIAL, init=False)


@dataclass(frozen=True)
class IdentityDescriptor:
    name: str
    term: str
    role: str
    source: Source
    kind: VariableClass = field(default=VariableClass.IDENTITY, init=False)


@dataclass(frozen=True)
class OffsetDescriptor:
    """
    Offset divided by the response's standard deviation.

    ``divisor`` holds the global response standard deviation; when the
    response was scaled within groups, ``grouped`` holds the per-group values
    instead. With neither set (non-gaussian family) the offset is unchanged.
    """
    name: str
    term: str
    role: str
    source: Source
    divisor: Optional[float] = None
    grouped: Optional[GroupedScalingParams] = None
    kind: VariableClass = field(default=VariableClass.OFFSET, init=False)


Descriptor = Union[
    ContinuousDescriptor,
    GroupedContinuousDescriptor,
    UnorderedFactorDescriptor,
    OrderedFactorDescriptor,
    GroupingFactorDescriptor,
    PolynomialDescriptor,
    IdentityDescriptor,
    OffsetDescriptor,
]


def output_columns(descriptor: Descriptor) -> List[str]:
    """Names of the columns a descriptor produces."""
    if descriptor.kind is VariableClass.POLYNOMIAL:
        return expanded_names(descriptor.name, descriptor.basis.degree)
    return [descriptor.name]


def required_variables(descriptor: Descriptor) -> List[str]:
    """Raw data columns a descriptor reads."""
    kind = descriptor.kind
    if kind is VariableClass.GROUPED_CONTINUOUS:
        return list(descriptor.source.variables) + [descriptor.grouping]
    if kind is VariableClass.OFFSET and descriptor.grouped is not None:
        return list(descriptor.source.variables) + [descriptor.grouped.grouping]
    if kind in (VariableClass.CONTINUOUS, VariableClass.IDENTITY, VariableClass.OFFSET):
        return list(descriptor.source.variables)
    return [descriptor.variable]


# =============================================================================
# REPLAY
# =============================================================================

def _categorical(
    data: pd.DataFrame,
    variable: str,
    levels: Tuple[str, ...],
    ordered: bool,
    error: type
) -> pd.Categorical:
    labels = level_labels(_column(data, variable))
    unseen = set(labels.dropna()) - set(levels)
    if unseen:
        raise error(variable, unseen, levels)
    return pd.Categorical(labels, categories=list(levels), ordered=ordered)


def replay(descriptor: Descriptor, data: pd.DataFrame) -> pd.DataFrame:
    """
    Apply a stored transform to a table.

    Args:
        descriptor: Fit-time descriptor
        data: Raw table holding the descriptor's source columns

    Returns:
        DataFrame with the descriptor's output columns, indexed like ``data``

    Raises:
        MissingVariableError: If a source column is absent
        UnseenLevelError: If a factor has a level not stored in the descriptor
        UnseenGroupError: If a group key was not stored in the descriptor
    """
    kind = descriptor.kind
    index = data.index

    if kind is VariableClass.CONTINUOUS:
        values = require_numeric(descriptor.source.values(data), descriptor.source.label)
        result = apply_scaling(values, descriptor.params, descriptor.target)

    elif kind is VariableClass.GROUPED_CONTINUOUS:
        result = apply_grouped_scaling(
            require_numeric(descriptor.source.values(data), descriptor.source.label),
            _column(data, descriptor.grouping),
            descriptor.params,
            descriptor.target,
            descriptor.grouping
        )

    elif kind is VariableClass.UNORDERED_FACTOR:
        result = _categorical(data, descriptor.variable, descriptor.levels, False, UnseenLevelError)

    elif kind is VariableClass.ORDERED_FACTOR:
        result = _categorical(data, descriptor.variable, descriptor.levels, True, UnseenLevelError)

    elif kind is VariableClass.GROUPING_FACTOR:
        labels = group_keys(
            _column(data, descriptor.variable), list(descriptor.levels), descriptor.variable
        )
        result = pd.Categorical(labels, categories=list(descriptor.levels), ordered=False)

    elif kind is VariableClass.POLYNOMIAL:
        values = require_numeric(_column(data, descriptor.variable), descriptor.variable)
        basis = evaluate_poly_basis(values, descriptor.basis)
        scaled = basis / np.asarray(descriptor.column_scales) * descriptor.target
        return pd.DataFrame(scaled, index=index, columns=output_columns(descriptor))

    elif kind is VariableClass.IDENTITY:
        result = descriptor.source.values(data)

    elif kind is VariableClass.OFFSET:
        values = require_numeric(descriptor.source.values(data), descriptor.source.label)
        if descriptor.grouped is not None:
            keys = group_keys(
                _column(data, descriptor.grouped.grouping),
                descriptor.grouped.levels,
                descriptor.grouped.grouping
            )
            scales = keys.map(
                {k: p.scale for k, p in descriptor.grouped.groups.items()}
            ).astype(np.float64)
            result = values / scales
        elif descriptor.divisor is not None:
            result = values / descriptor.divisor
        else:
            result = values

    else:
        raise ValueError(f"Unknown descriptor kind: {kind}")

    if isinstance(result, pd.Series):
        column = result.rename(descriptor.name)
    else:
        column = pd.Series(result, index=index, name=descriptor.name)
    return column.to_frame()


# =============================================================================
# SERIALIZATION
# =============================================================================

def descriptor_to_dict(descriptor: Descriptor) -> Dict[str, Any]:
    """Plain-dict form of a descriptor (JSON serializable)."""
    kind = descriptor.kind
    d: Dict[str, Any] = {
        'kind': kind.value,
        'name': descriptor.name,
        'term': descriptor.term,
        'role': descriptor.role,
    }
    if kind in (VariableClass.CONTINUOUS, VariableClass.GROUPED_CONTINUOUS):
        d['source'] = descriptor.source.to_dict()
        d['params'] = descriptor.params.to_dict()
        d['target'] = descriptor.target
    elif kind in (VariableClass.UNORDERED_FACTOR, VariableClass.ORDERED_FACTOR):
        d['variable'] = descriptor.variable
        d['contrast'] = descriptor.contrast.to_dict()
    elif kind is VariableClass.GROUPING_FACTOR:
        d['variable'] = descriptor.variable
        d['levels'] = list(descriptor.levels)
    elif kind is VariableClass.POLYNOMIAL:
        d['variable'] = descriptor.variable
        d['basis'] = descriptor.basis.to_dict()
        d['column_scales'] = list(descriptor.column_scales)
        d['target'] = descriptor.target
    elif kind is VariableClass.IDENTITY:
        d['source'] = descriptor.source.to_dict()
    elif kind is VariableClass.OFFSET:
        d['source'] = descriptor.source.to_dict()
        d['divisor'] = descriptor.divisor
        d['grouped'] = descriptor.grouped.to_dict() if descriptor.grouped else None
    else:
        raise ValueError(f"Unknown descriptor kind: {kind}")
    return d


def descriptor_from_dict(d: Dict[str, Any]) -> Descriptor:
    """Rebuild a descriptor from ``descriptor_to_dict`` output."""
    kind = VariableClass(d['kind'])
    common = {'name': d['name'], 'term': d['term'], 'role': d['role']}

    if kind is VariableClass.CONTINUOUS:
        return ContinuousDescriptor(
            source=Source.from_dict(d['source']),
            params=ScalingParams.from_dict(d['params']),
            target=float(d['target']),
            **common
        )
    if kind is VariableClass.GROUPED_CONTINUOUS:
        return GroupedContinuousDescriptor(
            source=Source.from_dict(d['source']),
            params=GroupedScalingParams.from_dict(d['params']),
            target=float(d['target']),
            **common
        )
    if kind is VariableClass.UNORDERED_FACTOR:
        return UnorderedFactorDescriptor(
            variable=d['variable'], contrast=ContrastSpec.from_dict(d['contrast']), **common
        )
    if kind is VariableClass.ORDERED_FACTOR:
        return OrderedFactorDescriptor(
            variable=d['variable'], contrast=ContrastSpec.from_dict(d['contrast']), **common
        )
    if kind is VariableClass.GROUPING_FACTOR:
        return GroupingFactorDescriptor(
            variable=d['variable'], levels=tuple(d['levels']), **common
        )
    if kind is VariableClass.POLYNOMIAL:
        return PolynomialDescriptor(
            variable=d['variable'],
            basis=PolyBasis.from_dict(d['basis']),
            column_scales=tuple(float(s) for s in d['column_scales']),
            target=float(d['target']),
            **common
        )
    if kind is VariableClass.IDENTITY:
        return IdentityDescriptor(source=Source.from_dict(d['source']), **common)
    if kind is VariableClass.OFFSET:
        grouped = d.get('grouped')
        return OffsetDescriptor(
            source=Source.from_dict(d['source']),
            divisor=d.get('divisor'),
            grouped=GroupedScalingParams.from_dict(grouped) if grouped else None,
            **common
        )
    raise ValueError(f"Unknown descriptor kind: {kind}")
