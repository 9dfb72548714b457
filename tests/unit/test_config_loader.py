"""Tests for the configuration loading module.

These tests verify the configuration loading hierarchy:
1. Pydantic model field defaults (lowest priority)
2. defaults.yaml file (shipped with app)
3. config.yaml file (operator-provided)
4. Environment variables
"""

# ast-grep-ignore-block: no-dict-any - Test utilities for dynamically loaded config dicts

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from task_automation.config_loader import (
    ENV_VAR_MAPPINGS,
    apply_env_var_overrides,
    load_config,
    parse_env_value,
    set_nested_value,
    validate_timezone,
)
from task_automation.config_models import AppConfig
from task_automation.config_sources import (
    DeepMergedYamlSource,
    deep_merge_dicts,
    load_yaml_file,
)

if TYPE_CHECKING:
    from pathlib import Path

# Every variable load_config looks at, cleared so the host environment cannot leak in
_CLEAN_ENV = {mapping.env_var: "" for mapping in ENV_VAR_MAPPINGS}


def _write_yaml(path: Path, data: dict[str, Any]) -> str:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


def _load(defaults: str, config: str) -> AppConfig:
    env = {k: v for k, v in os.environ.items() if k not in _CLEAN_ENV}
    with mock.patch.dict(os.environ, env, clear=True):
        return load_config(defaults, config, load_dotenv_file=False)


class TestDeepMergeDicts:
    """Tests for deep_merge_dicts function."""

    def test_nested_merge(self) -> None:
        """Test merging nested dicts."""
        base = {"scheduler": {"enabled": True, "tick_interval_minutes": 5}, "timezone": "UTC"}
        merge = {"scheduler": {"tick_interval_minutes": 1}}
        result = deep_merge_dicts(base, merge)
        assert result == {
            "scheduler": {"enabled": True, "tick_interval_minutes": 1},
            "timezone": "UTC",
        }
        # Original should be unchanged
        assert base["scheduler"]["tick_interval_minutes"] == 5

    def test_non_dict_replaces(self) -> None:
        assert deep_merge_dicts({"a": {"x": 1}}, {"a": "replaced"}) == {"a": "replaced"}


class TestEnvValueHelpers:
    def test_set_nested_value_creates_intermediate_dicts(self) -> None:
        data: dict[str, Any] = {}
        set_nested_value(data, "scheduler.enabled", False)
        assert data == {"scheduler": {"enabled": False}}

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False)],
    )
    def test_parse_bool(self, raw: str, expected: bool) -> None:
        assert parse_env_value(raw, bool) is expected

    def test_parse_numbers(self) -> None:
        assert parse_env_value("8080", int) == 8080
        assert parse_env_value("0.5", float) == 0.5
        with pytest.raises(ValueError):
            parse_env_value("soon", int)

    def test_invalid_env_value_keeps_previous(self) -> None:
        data: dict[str, Any] = {"server_port": 8000}
        with mock.patch.dict(os.environ, {"SERVER_PORT": "not-a-port"}):
            apply_env_var_overrides(data)
        assert data["server_port"] == 8000


class TestValidateTimezone:
    def test_valid_zone_is_kept(self) -> None:
        data: dict[str, Any] = {"timezone": "Asia/Kolkata"}
        validate_timezone(data)
        assert data["timezone"] == "Asia/Kolkata"

    def test_unknown_zone_falls_back_to_utc(self) -> None:
        data: dict[str, Any] = {"timezone": "Mars/Olympus_Mons"}
        validate_timezone(data)
        assert data["timezone"] == "UTC"


class TestLoadYamlFile:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_yaml_file(tmp_path / "nonexistent.yaml") == {}

    def test_non_dict_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "list.yaml"
        yaml_file.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml_file(yaml_file) == {}

    def test_yaml_source_merges_in_order(self, tmp_path: Path) -> None:
        first = _write_yaml(tmp_path / "a.yaml", {"scheduler": {"enabled": False}})
        second = _write_yaml(
            tmp_path / "b.yaml", {"scheduler": {"run_on_startup": False}}
        )
        source = DeepMergedYamlSource(AppConfig, [first, second])
        assert source() == {"scheduler": {"enabled": False, "run_on_startup": False}}


class TestLoadConfig:
    """Tests for the full load_config hierarchy."""

    def test_field_defaults_without_files(self, tmp_path: Path) -> None:
        config = _load(str(tmp_path / "none.yaml"), str(tmp_path / "none2.yaml"))
        assert config.timezone == "UTC"
        assert config.scheduler.enabled is True
        assert config.scheduler.tick_interval_minutes == 5.0
        assert config.scheduler.automation_timeout_seconds == 60.0

    def test_config_yaml_overrides_defaults_yaml(self, tmp_path: Path) -> None:
        defaults = _write_yaml(
            tmp_path / "defaults.yaml",
            {"timezone": "UTC", "scheduler": {"tick_interval_minutes": 5, "enabled": True}},
        )
        operator = _write_yaml(
            tmp_path / "config.yaml",
            {"timezone": "Asia/Kolkata", "scheduler": {"tick_interval_minutes": 1}},
        )
        config = _load(defaults, operator)
        assert config.timezone == "Asia/Kolkata"
        assert config.scheduler.tick_interval_minutes == 1
        assert config.scheduler.enabled is True

    def test_env_vars_override_yaml(self, tmp_path: Path) -> None:
        operator = _write_yaml(
            tmp_path / "config.yaml", {"scheduler": {"enabled": True}, "server_port": 9000}
        )
        env = {
            "AUTOMATION_SCHEDULER_ENABLED": "false",
            "AUTOMATION_TICK_MINUTES": "0.5",
            "SERVER_PORT": "9100",
            "TIMEZONE": "Europe/London",
        }
        with mock.patch.dict(os.environ, env):
            config = load_config(
                str(tmp_path / "none.yaml"), operator, load_dotenv_file=False
            )
        assert config.scheduler.enabled is False
        assert config.scheduler.tick_interval_minutes == 0.5
        assert config.server_port == 9100
        assert config.timezone == "Europe/London"

    def test_invalid_timezone_defaults_to_utc(self, tmp_path: Path) -> None:
        operator = _write_yaml(tmp_path / "config.yaml", {"timezone": "Nowhere/Special"})
        assert _load(str(tmp_path / "none.yaml"), operator).timezone == "UTC"

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        operator = _write_yaml(tmp_path / "config.yaml", {"scheduler": {"tick": 1}})
        with pytest.raises(ValidationError):
            _load(str(tmp_path / "none.yaml"), operator)

    def test_non_positive_interval_is_rejected(self, tmp_path: Path) -> None:
        operator = _write_yaml(
            tmp_path / "config.yaml", {"scheduler": {"tick_interval_minutes": 0}}
        )
        with pytest.raises(ValidationError):
            _load(str(tmp_path / "none.yaml"), operator)

    def test_every_env_mapping_targets_a_config_field(self) -> None:
        config = AppConfig()
        for mapping in ENV_VAR_MAPPINGS:
            target: Any = config
            for part in mapping.config_path.split("."):
                assert hasattr(target, part), mapping.env_var
                target = getattr(target, part)

    def test_dev_mode_is_not_a_setting(self, tmp_path: Path) -> None:
        operator = _write_yaml(tmp_path / "config.yaml", {"dev_mode": True})
        with pytest.raises(ValidationError):
            _load(str(tmp_path / "none.yaml"), operator)
