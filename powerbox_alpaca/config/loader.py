"""
Load, validate and save config.json.

The file path comes from the command line, else the POWERBOX_ALPACA_CONFIG
environment variable, else ``config.json`` in the working directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import AppConfig


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
CONFIG_PATH_ENV = "POWERBOX_ALPACA_CONFIG"
COMMENT_KEY = "_comment"
DEFAULT_COMMENT = "Power box Alpaca driver configuration. Unknown keys are rejected."


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def resolve_config_path(path: Optional[str] = None) -> Path:
    return Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE)


def _describe_validation_error(config_path: Path, error: ValidationError) -> str:
    lines = [f"Configuration validation failed ({config_path}):"]
    for item in error.errors():
        field = " -> ".join(str(part) for part in item["loc"])
        lines.append(f"  - {field}: {item['msg']}")
    return "\n".join(lines)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate the configuration.

    A missing file is created with default values.

    Args:
        path: Explicit path to the config file.

    Returns:
        Validated AppConfig instance.

    Raises:
        ConfigurationError: If the file is unreadable, not a JSON object, or
            fails validation. The message lists every offending field.
    """
    config_path = resolve_config_path(path)

    if not config_path.exists():
        logger.info(f"Config file not found: {config_path}. Creating with default configuration.")
        config = AppConfig()
        try:
            save_config(config, str(config_path))
        except ConfigurationError as e:
            logger.warning(f"Could not write default config: {e}")
        return config

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")

    raw.pop(COMMENT_KEY, None)

    try:
        config = AppConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(_describe_validation_error(config_path, e)) from e

    logger.info(f"Configuration loaded from {config_path}")
    return config


def save_config(config: AppConfig, path: Optional[str] = None) -> None:
    """
    Write the configuration back to disk.

    The file is written next to the target and then moved into place, so a
    crash never leaves a half-written config behind. A leading comment
    already present in the file is kept.

    Raises:
        ConfigurationError: If the file cannot be written.
    """
    config_path = resolve_config_path(path)

    comment = DEFAULT_COMMENT
    if config_path.exists():
        try:
            existing = json.loads(config_path.read_text(encoding="utf-8"))
            if isinstance(existing, dict) and isinstance(existing.get(COMMENT_KEY), str):
                comment = existing[COMMENT_KEY]
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Existing config unreadable, comment not kept: {e}")

    data = {COMMENT_KEY: comment, **config.model_dump()}
    temp_path = config_path.with_name(config_path.name + ".tmp")

    try:
        temp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        os.replace(temp_path, config_path)
    except OSError as e:
        raise ConfigurationError(f"Failed to write {config_path}: {e}") from e

    logger.info(f"Configuration saved to {config_path}")
