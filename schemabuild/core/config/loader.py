"""
Configuration loader — reads schemabuild.yml into a GenerationConfig.

This is the primary entry point for loading build configuration.
It reads YAML, validates against the Pydantic model, and anchors every
relative path at the directory holding the config file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from schemabuild.core.models.config import GenerationConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "schemabuild.yml"


class ConfigError(Exception):
    """Raised when build configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for schemabuild.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to schemabuild.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> GenerationConfig:
    """Load and validate build configuration.

    Args:
        path: Explicit path to schemabuild.yml. If None, searches upward.

    Returns:
        Validated GenerationConfig with absolute paths.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(f"No {CONFIG_FILE} found. Create one, or specify --config.")

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading build config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = GenerationConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid build configuration in {path}: {e}") from e

    config = config.resolve_paths(config_root(path))
    logger.info(
        "Loaded build config '%s' (%d source dir(s), %d plugin(s))",
        config.name or path.parent.name,
        len(config.source_directories),
        len(config.plugins),
    )
    return config


def config_root(config_path: Path) -> Path:
    """Get the directory relative paths are resolved against."""
    return config_path.parent.resolve()
