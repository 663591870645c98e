"""
Scaling statistics for continuous variables.

Continuous variables are centered on their mean and divided by their sample
standard deviation (ddof=1), then multiplied by the target scale. The
statistics are computed once from training data and stored; applying them is
a pure function of the stored values, so training-time and prediction-time
results are identical for identical inputs.

Grouped scaling computes the statistics independently within each level of a
grouping variable.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from standardize.config.settings import validate_scale
from standardize.exceptions import NonNumericError, UnseenGroupError, ZeroVarianceError
from standardize.levels import level_labels, sort_levels

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Standard deviations at or below this fraction of |mean| count as zero
ZERO_VARIANCE_RTOL = 1e-10


@dataclass(frozen=True)
class ScalingParams:
    """Center and scale (sample standard deviation) of a variable."""
    center: float
    scale: float

    def to_dict(self) -> Dict[str, float]:
        return {'center': self.center, 'scale': self.scale}

    @classmethod
    def from_dict(cls, d: Dict[str, float]) -> 'ScalingParams':
        return cls(center=float(d['center']), scale=float(d['scale']))


@dataclass(frozen=True)
class GroupedScalingParams:
    """Per-group center and scale, keyed by the grouping variable's level labels."""
    grouping: str
    groups: Dict[str, ScalingParams] = field(default_factory=dict)

    @property
    def levels(self) -> List[str]:
        return list(self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'grouping': self.grouping,
            'groups': {k: v.to_dict() for k, v in self.groups.items()}
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'GroupedScalingParams':
        return cls(
            grouping=d['grouping'],
            groups={k: ScalingParams.from_dict(v) for k, v in d['groups'].items()}
        )


def require_numeric(values: pd.Series, name: str) -> pd.Series:
    """
    Return ``values`` as float64, raising if they are not numeric.

    Raises:
        NonNumericError: For textual, boolean or categorical data
    """
    if pd.api.types.is_bool_dtype(values) or not pd.api.types.is_numeric_dtype(values):
        raise NonNumericError(
            f"'{name}' must be numeric for this transform, got dtype {values.dtype}"
        )
    return values.astype(np.float64)


def _checked_params(values: pd.Series, label: str) -> ScalingParams:
    center = float(values.mean())
    sd = float(values.std(ddof=1))
    if not np.isfinite(sd):
        raise ZeroVarianceError(
            f"Standard deviation of {label} is undefined "
            f"({int(values.notna().sum())} non-missing values)"
        )
    if sd <= ZERO_VARIANCE_RTOL * abs(center) or sd == 0.0:
        raise ZeroVarianceError(f"{label} has zero variance (constant value {center:g})")
    return ScalingParams(center=center, scale=sd)


def compute_scaling_params(values: pd.Series, name: str) -> ScalingParams:
    """
    Mean and sample standard deviation of a numeric Series, ignoring NaN.

    Raises:
        NonNumericError: If values are not numeric
        ZeroVarianceError: If the standard deviation is zero or undefined
    """
    return _checked_params(require_numeric(values, name), f"'{name}'")


def compute_grouped_params(
    values: pd.Series,
    by: pd.Series,
    name: str,
    grouping: str
) -> GroupedScalingParams:
    """
    Scaling statistics within each level of ``by``.

    Rows with a missing grouping value are ignored. Groups are stored in
    sorted level order.

    Raises:
        ZeroVarianceError: If any group has zero or undefined variance
    """
    values = require_numeric(values, name)
    keys = level_labels(by)
    groups: Dict[str, ScalingParams] = {}
    for key in sort_levels(keys.dropna()):
        in_group = values[keys == key]
        groups[key] = _checked_params(in_group, f"'{name}' within {grouping}='{key}'")
    return GroupedScalingParams(grouping=grouping, groups=groups)


def apply_scaling(values: pd.Series, params: ScalingParams, target: float) -> pd.Series:
    """``(x - center) / scale * target``"""
    return (values.astype(np.float64) - params.center) / params.scale * target


def group_keys(by: pd.Series, levels: List[str], name: str) -> pd.Series:
    """
    Level labels of ``by``, checked against the stored group set.

    Raises:
        UnseenGroupError: If a non-missing key is not among ``levels``
    """
    keys = level_labels(by)
    unseen = set(keys.dropna()) - set(levels)
    if unseen:
        raise UnseenGroupError(name, unseen, levels)
    return keys


def apply_grouped_scaling(
    values: pd.Series,
    by: pd.Series,
    params: GroupedScalingParams,
    target: float,
    name: str
) -> pd.Series:
    """
    Apply each row's group statistics; rows with a missing group become NaN.

    Raises:
        UnseenGroupError: If a grouping value was not seen when fitting
    """
    keys = group_keys(by, params.levels, name)
    centers = keys.map({k: p.center for k, p in params.groups.items()}).astype(np.float64)
    scales = keys.map({k: p.scale for k, p in params.groups.items()}).astype(np.float64)
    return (values.astype(np.float64) - centers) / scales * target


def scale_by(x: pd.Series, by: pd.Series, scale: float = 1.0) -> pd.Series:
    """
    Center and scale ``x`` within each level of ``by``.

    Args:
        x: Numeric values
        by: Grouping values, aligned with ``x``
        scale: Target standard deviation within each group

    Returns:
        Scaled Series with the index and name of ``x``

    Example:
        >>> scale_by(df['rt'], df['subject'], scale=0.5)
    """
    scale = validate_scale(scale)
    x = pd.Series(x)
    by = pd.Series(by, index=x.index) if not isinstance(by, pd.Series) else by
    name = str(x.name) if x.name is not None else 'x'
    grouping = str(by.name) if by.name is not None else 'by'
    params = compute_grouped_params(x, by, name, grouping)
    return apply_grouped_scaling(x, by, params, scale, name).rename(x.name)


# =============================================================================
# ORTHOGONAL POLYNOMIALS
# =============================================================================

@dataclass(frozen=True)
class PolyBasis:
    """
    Recurrence coefficients of an orthogonal polynomial basis.

    ``alpha`` and ``norm2`` follow the three-term recurrence
    ``p[k+1] = (x - alpha[k]) * p[k] - (norm2[k+1] / norm2[k]) * p[k-1]``
    with ``norm2[0] = 1`` and ``norm2[1] = n``.
    """
    degree: int
    alpha: Tuple[float, ...]
    norm2: Tuple[float, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {'degree': self.degree, 'alpha': list(self.alpha), 'norm2': list(self.norm2)}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'PolyBasis':
        return cls(
            degree=int(d['degree']),
            alpha=tuple(float(a) for a in d['alpha']),
            norm2=tuple(float(n) for n in d['norm2'])
        )


def fit_poly_basis(values: pd.Series, degree: int, name: str) -> PolyBasis:
    """
    Recurrence coefficients of the orthogonal polynomials over ``values``.

    Raises:
        ZeroVarianceError: If there are not more distinct values than ``degree``
    """
    x = require_numeric(values, name).dropna().to_numpy()
    n_unique = len(np.unique(x))
    if n_unique <= degree:
        raise ZeroVarianceError(
            f"poly({name}, {degree}) needs more than {degree} distinct values, "
            f"got {n_unique}"
        )

    alpha = [float(x.mean())]
    norm2 = [1.0, float(len(x))]
    p_prev = np.ones_like(x)
    p = x - alpha[0]
    for k in range(1, degree + 1):
        nk = float((p ** 2).sum())
        norm2.append(nk)
        if k < degree:
            a = float((x * p ** 2).sum() / nk)
            alpha.append(a)
            p_prev, p = p, (x - a) * p - (nk / norm2[k]) * p_prev
    return PolyBasis(degree=degree, alpha=tuple(alpha), norm2=tuple(norm2))


def evaluate_poly_basis(values: pd.Series, basis: PolyBasis) -> np.ndarray:
    """Evaluate the basis at ``values``; returns an (n, degree) array, NaN rows kept."""
    x = values.astype(np.float64).to_numpy()
    z = np.empty((len(x), basis.degree + 1))
    z[:, 0] = 1.0
    z[:, 1] = x - basis.alpha[0]
    for i in range(1, basis.degree):
        z[:, i + 1] = (
            (x - basis.alpha[i]) * z[:, i]
            - (basis.norm2[i + 1] / basis.norm2[i]) * z[:, i - 1]
        )
    z = z / np.sqrt(np.asarray(basis.norm2[1:]))
    return z[:, 1:]
