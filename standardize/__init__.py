"""
Formula-driven standardization of regression model data.

Rescales continuous predictors and the response, replaces factor encodings
with magnitude-controlled contrasts, and replays the stored parameters on new
data at prediction time.

Use explicit imports like:
    from standardize import standardize, StandardizedModel
    from standardize.contrasts import build_sum_contrast
"""

__version__ = "0.1.0"

from standardize.config import StandardizeConfig, load_standardize_config
from standardize.contrasts import (
    ContrastSpec,
    build_poly_contrast,
    build_sum_contrast,
    expand_factors,
    named_contr_sum,
    scaled_contr_poly,
)
from standardize.engine import TransformEngine, standardize
from standardize.exceptions import (
    ConfigError,
    DegenerateFactorError,
    FormulaError,
    MissingVariableError,
    NonNumericError,
    StandardizeError,
    UnseenGroupError,
    UnseenLevelError,
    ZeroVarianceError,
)
from standardize.formula import fixed_terms, has_random, parse_formula, random_terms
from standardize.model import StandardizedModel, is_standardized
from standardize.prediction import PredictionMapper, predict
from standardize.scaling import ScalingParams, scale_by
from standardize.transformer import FormulaStandardizer

__all__ = [
    "__version__",
    # Core
    "standardize",
    "predict",
    "TransformEngine",
    "PredictionMapper",
    "StandardizedModel",
    "is_standardized",
    "FormulaStandardizer",
    # Config
    "StandardizeConfig",
    "load_standardize_config",
    # Contrasts and scaling
    "ContrastSpec",
    "build_sum_contrast",
    "build_poly_contrast",
    "named_contr_sum",
    "scaled_contr_poly",
    "expand_factors",
    "ScalingParams",
    "scale_by",
    # Formula helpers
    "parse_formula",
    "fixed_terms",
    "random_terms",
    "has_random",
    # Errors
    "StandardizeError",
    "FormulaError",
    "DegenerateFactorError",
    "ZeroVarianceError",
    "NonNumericError",
    "MissingVariableError",
    "UnseenLevelError",
    "UnseenGroupError",
    "ConfigError",
]
