"""
Contrast matrices for factors.

Two schemes are provided:

- Sum contrasts for unordered factors: the first K-1 levels get ``+scale`` on
  their own column and the last level gets ``-scale`` on every column, so each
  column sums to zero and the intercept is the corrected mean.
- Scaled orthogonal polynomial contrasts for ordered factors: the usual
  orthogonal polynomial basis over K equally spaced points, with every column
  rescaled so its standard deviation equals ``scale`` exactly, whatever K.

Usage:
    from standardize.contrasts import build_sum_contrast, build_poly_contrast

    spec = build_sum_contrast(['a', 'e', 'i', 'o', 'u'])
    spec.to_frame()
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.linalg import qr

from standardize.config.constants import poly_dummy_name
from standardize.config.settings import validate_scale
from standardize.exceptions import DegenerateFactorError
from standardize.formula.names import unique_identifiers
from standardize.levels import observed_levels, order_boolean_like, sort_levels

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True, eq=False)
class ContrastSpec:
    """
    A named contrast matrix.

    Attributes:
        levels: Factor levels, in row order
        matrix: K x (K-1) contrast matrix
        dummy_names: Column names of the matrix
        kind: 'sum' or 'poly'
        scale: Magnitude the matrix was built for
    """
    levels: Tuple[str, ...]
    matrix: np.ndarray
    dummy_names: Tuple[str, ...]
    kind: str
    scale: float

    def to_frame(self) -> pd.DataFrame:
        """Matrix as a DataFrame indexed by level, one column per dummy."""
        return pd.DataFrame(
            self.matrix.copy(),
            index=pd.Index(self.levels),
            columns=list(self.dummy_names)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'levels': list(self.levels),
            'matrix': self.matrix.tolist(),
            'dummy_names': list(self.dummy_names),
            'kind': self.kind,
            'scale': self.scale
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ContrastSpec':
        return cls(
            levels=tuple(d['levels']),
            matrix=np.asarray(d['matrix'], dtype=np.float64),
            dummy_names=tuple(d['dummy_names']),
            kind=d['kind'],
            scale=float(d['scale'])
        )


def build_sum_contrast(levels: Sequence[str], scale: float = 1.0) -> ContrastSpec:
    """
    Sum contrasts with named columns.

    Levels are sorted before the reference (last) level is chosen. When every
    label parses as a number the sort is numeric, so text labels such as
    ``['10', '2', '1']`` become ``('1', '2', '10')`` and '10' is the
    reference level. A set mixing numbers and text sorts case-insensitively as
    text. A boolean-like two-level set is put positive-first.

    Args:
        levels: Distinct level labels in any order
        scale: Magnitude of the non-zero entries

    Returns:
        ContrastSpec whose first K-1 rows form ``scale * I`` and whose last
        row is ``-scale`` in every column

    Raises:
        DegenerateFactorError: If fewer than two distinct levels are given
    """
    scale = validate_scale(scale)
    ordered = order_boolean_like(sort_levels(str(level) for level in levels))
    k = len(ordered)
    if k < 2:
        raise DegenerateFactorError(
            f"Sum contrasts need at least two levels, got {ordered}"
        )

    matrix = np.vstack([
        np.eye(k - 1) * scale,
        np.full((1, k - 1), -scale)
    ])
    return ContrastSpec(
        levels=tuple(ordered),
        matrix=matrix,
        dummy_names=tuple(unique_identifiers(ordered[:-1])),
        kind='sum',
        scale=scale
    )


def _orthogonal_poly(k: int) -> np.ndarray:
    """Orthonormal polynomial basis (degrees 1..k-1) over k equally spaced points."""
    x = np.arange(1, k + 1, dtype=np.float64)
    x = x - x.mean()
    vander = np.vander(x, k, increasing=True)
    q, r = qr(vander, mode='economic')
    # scaling Q's columns by diag(R) fixes each column's sign to follow x**d
    z = q * np.diag(r)
    z = z / np.sqrt((z ** 2).sum(axis=0))
    return z[:, 1:]


def build_poly_contrast(
    levels: Union[int, Sequence[str]],
    scale: float = 1.0
) -> ContrastSpec:
    """
    Scaled orthogonal polynomial contrasts.

    Args:
        levels: Number of levels K, or the ordered level labels
        scale: Standard deviation every column is rescaled to

    Returns:
        ContrastSpec with K-1 zero-mean, mutually uncorrelated columns
        (linear, quadratic, ...), each with sample standard deviation ``scale``

    Raises:
        DegenerateFactorError: If K < 2
    """
    scale = validate_scale(scale)
    if isinstance(levels, (int, np.integer)):
        labels = [str(i) for i in range(1, int(levels) + 1)]
    else:
        labels = [str(level) for level in levels]
    k = len(labels)
    if k < 2:
        raise DegenerateFactorError(
            f"Polynomial contrasts need at least two levels, got {labels}"
        )

    basis = _orthogonal_poly(k)
    sd = basis.std(axis=0, ddof=1)
    matrix = basis * (scale / sd)
    return ContrastSpec(
        levels=tuple(labels),
        matrix=matrix,
        dummy_names=tuple(poly_dummy_name(d) for d in range(1, k)),
        kind='poly',
        scale=scale
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def named_contr_sum(x: Union[pd.Series, Sequence], scale: float = 1.0) -> pd.DataFrame:
    """Sum-contrast matrix for the distinct non-missing values of ``x``."""
    return build_sum_contrast(observed_levels(pd.Series(x)), scale).to_frame()


def scaled_contr_poly(levels: Union[int, Sequence[str]], scale: float = 1.0) -> pd.DataFrame:
    """Scaled orthogonal polynomial contrast matrix as a DataFrame."""
    return build_poly_contrast(levels, scale).to_frame()


def expand_factors(
    frame: pd.DataFrame,
    contrasts: Mapping[str, pd.DataFrame]
) -> pd.DataFrame:
    """
    Replace categorical columns with their contrast-coded dummy columns.

    Each factor ``f`` with contrast columns ``a, b`` becomes numeric columns
    ``fa, fb`` at the factor's position. Rows where the factor is missing
    get NaN in every dummy column. Columns without a contrast are kept as is.

    Args:
        frame: Standardized table (e.g. ``model.data``)
        contrasts: Factor name -> contrast DataFrame (e.g. ``model.contrasts``)

    Returns:
        New DataFrame; ``frame`` is not modified
    """
    pieces = []
    for column in frame.columns:
        series = frame[column]
        contrast = contrasts.get(column)
        if contrast is None or not isinstance(series.dtype, pd.CategoricalDtype):
            pieces.append(series.to_frame())
            continue

        matrix = contrast.reindex(series.cat.categories).to_numpy(dtype=np.float64)
        codes = series.cat.codes.to_numpy()
        coded = np.full((len(series), matrix.shape[1]), np.nan)
        present = codes >= 0
        coded[present] = matrix[codes[present]]
        pieces.append(pd.DataFrame(
            coded,
            index=frame.index,
            columns=[f"{column}{dummy}" for dummy in contrast.columns]
        ))

    if not pieces:
        return frame.copy()
    return pd.concat(pieces, axis=1)
