"""
Configuration for standardization calls.

Provides the explicit settings object, its YAML loaders and shared constants.
"""

from standardize.config.constants import (
    BOOLEAN_LEVEL_PAIRS,
    DEFAULT_FAMILY,
    DEFAULT_N_JOBS,
    DEFAULT_SCALE,
    GAUSSIAN_FAMILIES,
    poly_dummy_name,
)
from standardize.config.loaders import load_standardize_config, load_yaml_config
from standardize.config.settings import StandardizeConfig, validate_scale

__all__ = [
    "BOOLEAN_LEVEL_PAIRS",
    "DEFAULT_FAMILY",
    "DEFAULT_N_JOBS",
    "DEFAULT_SCALE",
    "GAUSSIAN_FAMILIES",
    "poly_dummy_name",
    "StandardizeConfig",
    "validate_scale",
    "load_yaml_config",
    "load_standardize_config",
]
