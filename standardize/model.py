"""
The standardized model bundle.

``StandardizedModel`` holds everything a standardization call produced: the
rewritten formula, the standardized table, one descriptor per variable and
the derived contrast and group tables. External regression routines consume
``formula`` and ``data``; prediction replays ``descriptors`` on new data.

The bundle is frozen. Callers derive new tables from it (``predict``) and
never modify it in place.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import joblib
import pandas as pd

from standardize.classify import VariableClass
from standardize.descriptors import (
    Descriptor,
    OffsetDescriptor,
    descriptor_from_dict,
    descriptor_to_dict,
    output_columns,
)
from standardize.formula.terms import Role

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_FACTOR_KINDS = (VariableClass.UNORDERED_FACTOR, VariableClass.ORDERED_FACTOR)


@dataclass(frozen=True, eq=False)
class StandardizedModel:
    """
    Result of ``standardize()``.

    Attributes:
        call: Arguments of the standardization call
        scale: Target scale used for predictors and contrasts
        formula: Formula rewritten with the standardized column names
        family: Regression family token
        data: Standardized table (columns named as in ``formula``)
        descriptors: New name -> descriptor, in column order
        variables: Table of original name, new name, class and role
        contrasts: Factor name -> contrast matrix (DataFrame)
        groups: Grouping factor name -> levels
        offset: Offset descriptor, if the model has an offset
    """
    call: Dict[str, Any]
    scale: float
    formula: str
    family: str
    data: pd.DataFrame
    descriptors: Dict[str, Descriptor]
    variables: pd.DataFrame
    contrasts: Dict[str, pd.DataFrame] = field(default_factory=dict)
    groups: Dict[str, List[str]] = field(default_factory=dict)
    offset: Optional[OffsetDescriptor] = None

    @classmethod
    def build(
        cls,
        call: Dict[str, Any],
        scale: float,
        formula: str,
        family: str,
        data: pd.DataFrame,
        descriptors: Dict[str, Descriptor]
    ) -> 'StandardizedModel':
        """Assemble a model, deriving contrasts, groups and the variable table."""
        contrasts = {
            name: d.contrast.to_frame()
            for name, d in descriptors.items() if d.kind in _FACTOR_KINDS
        }
        groups = {
            name: list(d.levels)
            for name, d in descriptors.items() if d.kind is VariableClass.GROUPING_FACTOR
        }
        offsets = [d for d in descriptors.values() if d.kind is VariableClass.OFFSET]
        variables = pd.DataFrame(
            [
                {
                    'variable': d.term,
                    'std_variable': d.name,
                    'class': d.kind.value,
                    'role': d.role,
                }
                for d in descriptors.values()
            ],
            columns=['variable', 'std_variable', 'class', 'role']
        )
        return cls(
            call=dict(call),
            scale=scale,
            formula=formula,
            family=family,
            data=data,
            descriptors=dict(descriptors),
            variables=variables,
            contrasts=contrasts,
            groups=groups,
            offset=offsets[0] if offsets else None
        )

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------

    @property
    def response(self) -> Optional[str]:
        """Standardized name of the response."""
        for name, d in self.descriptors.items():
            if d.role == Role.RESPONSE.value:
                return name
        return None

    def columns_for(self, roles: List[str]) -> List[str]:
        """Data columns produced by descriptors with the given roles, in table order."""
        columns = []
        for d in self.descriptors.values():
            if d.role in roles:
                columns.extend(output_columns(d))
        return columns

    def predict(
        self,
        newdata: pd.DataFrame,
        response: bool = False,
        fixed: bool = True,
        random: bool = True,
        n_jobs: int = 1
    ) -> pd.DataFrame:
        """Standardize new data with the stored parameters; see ``PredictionMapper``."""
        from standardize.prediction import PredictionMapper

        return PredictionMapper(self, n_jobs=n_jobs).transform(
            newdata, response=response, fixed=fixed, random=random
        )

    def summary(self) -> Dict[str, Any]:
        """
        Summary of the standardization.

        Returns:
            Dictionary with the formula, family, scale, row count, per-class
            variable counts and the variable table as records
        """
        class_counts: Dict[str, int] = {}
        for d in self.descriptors.values():
            class_counts[d.kind.value] = class_counts.get(d.kind.value, 0) + 1
        return {
            'formula': self.formula,
            'family': self.family,
            'scale': self.scale,
            'n_rows': len(self.data),
            'class_counts': class_counts,
            'variables': self.variables.to_dict(orient='records'),
            'has_random': bool(self.groups),
            'has_offset': self.offset is not None,
        }

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form of everything except the table."""
        return {
            'call': dict(self.call),
            'scale': self.scale,
            'formula': self.formula,
            'family': self.family,
            'columns': list(self.data.columns),
            'descriptors': [descriptor_to_dict(d) for d in self.descriptors.values()],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any], data: pd.DataFrame) -> 'StandardizedModel':
        """Rebuild a model from ``to_dict`` output and its standardized table."""
        descriptors = [descriptor_from_dict(item) for item in d['descriptors']]
        return cls.build(
            call=d['call'],
            scale=float(d['scale']),
            formula=d['formula'],
            family=d['family'],
            data=data,
            descriptors={desc.name: desc for desc in descriptors}
        )

    def save(self, path: Union[str, Path]) -> None:
        """Save the model (descriptors and table) with joblib."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump({'model': self.to_dict(), 'data': self.data}, path)
        logger.info(f"Standardized model saved to: {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'StandardizedModel':
        """Load a model written by ``save``."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Standardized model not found: {path}")
        state = joblib.load(path)
        model = cls.from_dict(state['model'], state['data'])
        logger.info(f"Standardized model loaded from: {path}")
        logger.info(f"  Variables: {len(model.descriptors)}")
        return model

    def __repr__(self) -> str:
        return (
            f"StandardizedModel(formula='{self.formula}', family='{self.family}', "
            f"scale={self.scale}, n_rows={len(self.data)}, "
            f"n_variables={len(self.descriptors)})"
        )


def is_standardized(obj: Any) -> bool:
    """Whether ``obj`` is a StandardizedModel."""
    return isinstance(obj, StandardizedModel)
