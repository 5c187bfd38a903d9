"""Configuration loading from environment variables or JSON files."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from .models import DEFAULT_MODEL_SPECS
from .settings import RelayConfig

logger = logging.getLogger(__name__)

CONFIG_JSON_ENV_VAR = "LLM_RELAY_CONFIG_JSON"
CONFIG_FILE_ENV_VAR = "LLM_RELAY_CONFIG_FILE"
DEFAULT_CONFIG_PATH = Path.home() / ".llm_relay" / "config.json"


class ConfigError(ValueError):
    """Raised when a configuration source exists but cannot be used."""


def default_config() -> RelayConfig:
    """Built-in configuration: default provider settings and the default table."""
    return RelayConfig(models=list(DEFAULT_MODEL_SPECS))


def config_from_dict(data: Dict[str, Any]) -> RelayConfig:
    """
    Build a RelayConfig from a plain dict.

    A dict without a "models" key gets the default capability table, so a
    config file can tune rates and thresholds without restating the table.
    """
    data = dict(data)
    if "models" not in data:
        data["models"] = [spec.model_dump() for spec in DEFAULT_MODEL_SPECS]
    try:
        return RelayConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid relay configuration: {e}") from e


def _read_json_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load relay configuration from {path}: {e}") from e


def load_config(path: Optional[Union[str, Path]] = None) -> RelayConfig:
    """
    Load relay configuration.

    Priority order:
    1. Explicit ``path`` argument
    2. LLM_RELAY_CONFIG_JSON environment variable (JSON string)
    3. LLM_RELAY_CONFIG_FILE environment variable (path to JSON file)
    4. ~/.llm_relay/config.json (if exists)
    5. Built-in defaults

    Environment variables may come from a ``.env`` file.

    Raises:
        ConfigError: If a configured source is unreadable or invalid
    """
    load_dotenv()

    if path is not None:
        data = _read_json_file(Path(path))
        logger.info(f"Loaded relay configuration from {path}")
        return config_from_dict(data)

    json_str = os.getenv(CONFIG_JSON_ENV_VAR)
    if json_str:
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {CONFIG_JSON_ENV_VAR}: {e}") from e
        logger.info(f"Loaded relay configuration from {CONFIG_JSON_ENV_VAR}")
        return config_from_dict(data)

    file_path = os.getenv(CONFIG_FILE_ENV_VAR)
    if file_path:
        data = _read_json_file(Path(file_path))
        logger.info(f"Loaded relay configuration from {file_path}")
        return config_from_dict(data)

    if DEFAULT_CONFIG_PATH.exists():
        data = _read_json_file(DEFAULT_CONFIG_PATH)
        logger.info(f"Loaded relay configuration from {DEFAULT_CONFIG_PATH}")
        return config_from_dict(data)

    logger.debug("No relay configuration found, using defaults")
    return default_config()
