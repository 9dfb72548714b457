"""Configuration sources and utilities for layered config loading.

This module contains:
- Deep merge utilities for combining dictionaries
- YAML file loading
- DeepMergedYamlSource for pydantic-settings integration

Kept separate from config_loader.py so config_models.py can import it.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any

import yaml
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

if TYPE_CHECKING:
    import pathlib

    from pydantic.fields import FieldInfo

logger = logging.getLogger(__name__)


def deep_merge_dicts(
    base_dict: dict[str, Any],
    merge_dict: dict[str, Any],
) -> dict[str, Any]:
    """Return a new dict with ``merge_dict`` merged into ``base_dict`` at any depth.

    Values from ``merge_dict`` win; nested dicts are merged rather than replaced.
    """
    result = copy.deepcopy(base_dict)
    for key, value in merge_dict.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge_dicts(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_yaml_file(
    file_path: str | pathlib.Path,
) -> dict[str, Any]:
    """Load a YAML mapping, returning an empty dict if missing or malformed."""
    try:
        with open(file_path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
            if isinstance(content, dict):
                return content
            if content is not None:
                logger.warning(f"{file_path} is not a valid dictionary. Ignoring.")
            return {}
    except FileNotFoundError:
        logger.info(f"{file_path} not found. Using defaults.")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing {file_path}: {e}. Using defaults.")
        return {}


class DeepMergedYamlSource(PydanticBaseSettingsSource):
    """Loads several YAML files in order and deep-merges them.

    Later files override earlier ones at any nesting depth.
    """

    def __init__(self, settings_cls: type[BaseSettings], yaml_files: list[str]) -> None:
        super().__init__(settings_cls)
        self.yaml_files = yaml_files

    def get_field_value(
        self,
        field: FieldInfo,
        field_name: str,
    ) -> tuple[Any, str, bool]:
        """Required by PydanticBaseSettingsSource; ``__call__`` supplies all values."""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for path in self.yaml_files:
            data = load_yaml_file(path)
            if data:
                merged = deep_merge_dicts(merged, data)
        return merged
