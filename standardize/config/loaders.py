"""
Reading standardization settings from YAML.

A settings file either holds the ``StandardizeConfig`` fields at top level or
keeps them under a ``standardize:`` section next to unrelated project keys::

    standardize:
      scale: 0.5
      family: poisson
      n_jobs: 4
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from standardize.config.settings import StandardizeConfig
from standardize.exceptions import ConfigError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SECTION_KEY = 'standardize'


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """
    Read a YAML settings file into a mapping.

    Args:
        path: Path to the YAML file

    Returns:
        The top-level mapping; an empty file gives ``{}``

    Raises:
        ConfigError: If the file is missing, is not valid YAML or its top
            level is not a mapping
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Standardization settings file not found: {path.absolute()}")

    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse standardization settings in {path.absolute()}\n"
            f"Error: {e}"
        ) from e

    if raw is None:
        logger.warning(f"Empty settings file {path}; using defaults")
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}, got {type(raw).__name__}")

    logger.debug(f"Read {len(raw)} top-level keys from {path}")
    return raw


def load_standardize_config(path: str | Path) -> StandardizeConfig:
    """
    Build a StandardizeConfig from a YAML file.

    When the file has a ``standardize:`` section only that section is read;
    otherwise the whole file is read as settings.

    Raises:
        ConfigError: If the file cannot be read, the section is not a mapping
            or a value fails validation
    """
    raw = load_yaml_config(path)
    section = raw.get(SECTION_KEY, raw)
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"'{SECTION_KEY}' in {path} must be a mapping, got {type(section).__name__}"
        )
    try:
        config = StandardizeConfig.from_dict(section)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid standardize configuration in {path}: {e}") from e
    logger.info(f"Loaded standardization settings from {path}: scale={config.scale}, "
                f"family={config.family}")
    return config
