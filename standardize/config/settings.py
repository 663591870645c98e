"""
Standardization settings.

The settings object is passed explicitly to ``standardize()``; nothing in the
package reads process-wide defaults.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict

from standardize.config.constants import DEFAULT_FAMILY, DEFAULT_N_JOBS, DEFAULT_SCALE


@dataclass(frozen=True)
class StandardizeConfig:
    """
    Settings for a standardization call.

    Attributes:
        scale: Target standard deviation for continuous predictors and the
            magnitude of factor contrasts (must be positive)
        family: Regression family token; gaussian families get a unit-scaled
            response
        n_jobs: Number of threads used to transform independent variables
    """
    scale: float = DEFAULT_SCALE
    family: str = DEFAULT_FAMILY
    n_jobs: int = DEFAULT_N_JOBS

    def __post_init__(self) -> None:
        validate_scale(self.scale)
        if not isinstance(self.family, str) or not self.family.strip():
            raise ValueError(f"family must be a non-empty string, got {self.family!r}")
        if int(self.n_jobs) != self.n_jobs or self.n_jobs < 1:
            raise ValueError(f"n_jobs must be a positive integer, got {self.n_jobs}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scale': self.scale,
            'family': self.family,
            'n_jobs': self.n_jobs
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'StandardizeConfig':
        unknown = set(d) - {'scale', 'family', 'n_jobs'}
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(
            scale=float(d.get('scale', DEFAULT_SCALE)),
            family=d.get('family', DEFAULT_FAMILY),
            n_jobs=int(d.get('n_jobs', DEFAULT_N_JOBS))
        )


def validate_scale(scale: float) -> float:
    """Return ``scale`` as a float, raising ValueError unless positive and finite."""
    try:
        value = float(scale)
    except (TypeError, ValueError) as e:
        raise ValueError(f"scale must be a positive number, got {scale!r}") from e
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"scale must be a positive number, got {scale!r}")
    return value
