"""Configuration loading with clear priority hierarchy.

Configuration is loaded in the following priority order (lowest to highest):
1. Pydantic model defaults (defined in config_models.py)
2. defaults.yaml, then config.yaml
3. Environment variables (including a .env file)
4. CLI arguments (applied after load_config returns)
"""

from __future__ import annotations

import logging
import os
import zoneinfo
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from .config_models import AppConfig

logger = logging.getLogger(__name__)

# defaults.yaml: shipped with the application
# config.yaml: operator-provided, overrides defaults.yaml
DEFAULT_DEFAULTS_FILE = "defaults.yaml"
DEFAULT_CONFIG_FILE = "config.yaml"


@dataclass
class EnvVarMapping:
    """Defines how an environment variable maps to a config path.

    Attributes:
        env_var: Environment variable name
        config_path: Dot-separated path in config dict (e.g., "scheduler.enabled")
        value_type: Type to convert the value to (str, int, float, bool)
    """

    env_var: str
    config_path: str
    value_type: type = str


# The supported environment variables and where they land
ENV_VAR_MAPPINGS: list[EnvVarMapping] = [
    EnvVarMapping("DATABASE_URL", "database_url"),
    EnvVarMapping("TIMEZONE", "timezone"),
    EnvVarMapping("AUTOMATION_SCHEDULER_ENABLED", "scheduler.enabled", bool),
    EnvVarMapping("AUTOMATION_TICK_MINUTES", "scheduler.tick_interval_minutes", float),
    EnvVarMapping(
        "AUTOMATION_TIMEOUT_SECONDS", "scheduler.automation_timeout_seconds", float
    ),
    EnvVarMapping("AUTOMATION_RUN_ON_STARTUP", "scheduler.run_on_startup", bool),
    EnvVarMapping("SERVER_HOST", "server_host"),
    EnvVarMapping("SERVER_PORT", "server_port", int),
    EnvVarMapping("LOG_LEVEL", "log_level"),
]


def set_nested_value(
    data: dict[str, Any],  # noqa: ANN401
    path: str,
    value: Any,  # noqa: ANN401
) -> None:
    """Set a value at a dot-separated path, creating intermediate dicts."""
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if key not in current:
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def parse_env_value(value: str, value_type: type) -> Any:  # noqa: ANN401
    """Parse an environment variable value to the specified type.

    Raises:
        ValueError: If the value cannot be converted to the target type
    """
    if value_type is bool:
        return value.strip().lower() in {"true", "1", "yes"}
    if value_type is int:
        return int(value)
    if value_type is float:
        return float(value)
    return value


def apply_env_var_overrides(
    config_data: dict[str, Any],  # noqa: ANN401
    mappings: list[EnvVarMapping] | None = None,
) -> None:
    """Apply environment variable overrides to the configuration dict in place."""
    if mappings is None:
        mappings = ENV_VAR_MAPPINGS

    for mapping in mappings:
        env_value = os.getenv(mapping.env_var)
        if env_value is None:
            continue
        try:
            parsed_value = parse_env_value(env_value, mapping.value_type)
        except ValueError as e:
            logger.error(
                f"Invalid value for {mapping.env_var}: {e}. Using previous value."
            )
            continue
        set_nested_value(config_data, mapping.config_path, parsed_value)
        logger.debug(f"Applied env var {mapping.env_var} to {mapping.config_path}")


def validate_timezone(
    config_data: dict[str, Any],  # noqa: ANN401
) -> None:
    """Replace an unknown time zone with UTC, logging the problem."""
    timezone = config_data.get("timezone") or "UTC"
    try:
        zoneinfo.ZoneInfo(timezone)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.error(f"Invalid timezone '{timezone}'. Defaulting to UTC.")
        timezone = "UTC"
    config_data["timezone"] = timezone


def load_config(
    defaults_file_path: str = DEFAULT_DEFAULTS_FILE,
    config_file_path: str = DEFAULT_CONFIG_FILE,
    load_dotenv_file: bool = True,
) -> AppConfig:
    """Load configuration with clear priority hierarchy.

    YAML files are deep-merged via DeepMergedYamlSource, so config.yaml can
    override individual nested keys without replacing whole sections.

    CLI arguments should be applied after this function returns using
    AppConfig.model_copy(update={...}).

    Raises:
        ValidationError: If configuration contains invalid keys or values
    """
    yaml_files = [
        p for p in [defaults_file_path, config_file_path] if os.path.exists(p)
    ]
    with AppConfig.yaml_source_context(yaml_files):
        base_config = AppConfig()
    logger.info("Built config from field defaults + YAML files: %s", yaml_files)

    config_data = base_config.model_dump()

    if load_dotenv_file:
        load_dotenv()

    apply_env_var_overrides(config_data)
    validate_timezone(config_data)

    loggable = {k: v for k, v in config_data.items() if k != "database_url"}
    logger.info(f"Final configuration (excluding secrets): {loggable}")

    try:
        validated_config = AppConfig.model_validate(config_data)
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    logger.info("Configuration validated successfully.")
    return validated_config
