"""Pydantic models for application configuration.

Configuration priority (lowest to highest):
1. Code defaults (defined in model Field defaults)
2. defaults.yaml, then config.yaml (deep-merged)
3. Environment variables
4. CLI arguments
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .config_sources import DeepMergedYamlSource


class SchedulerConfig(BaseModel):
    """Configuration for the periodic automation check."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    tick_interval_minutes: float = Field(default=5.0, gt=0)
    # Upper bound on processing one automation, in seconds
    automation_timeout_seconds: float = Field(default=60.0, gt=0)
    run_on_startup: bool = True


class AppConfig(BaseSettings):
    """Main application configuration.

    Property access is type-safe: misspelled property names raise AttributeError
    and unknown keys in YAML are rejected.
    """

    model_config = SettingsConfigDict(extra="forbid")

    # YAML files consulted by the next instantiation, see yaml_source_context
    _yaml_files: ClassVar[list[str]] = []

    database_url: str = "sqlite+aiosqlite:///task_automation.db"
    # Organisational IANA time zone used for every calendar decision
    timezone: str = "UTC"

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    server_host: str = "0.0.0.0"
    server_port: int = 8000

    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables are applied explicitly by config_loader
        return (init_settings, DeepMergedYamlSource(settings_cls, cls._yaml_files))

    @classmethod
    @contextmanager
    def yaml_source_context(cls, yaml_files: list[str]) -> Iterator[None]:
        """Use ``yaml_files`` as the YAML layer while the block is active."""
        previous = cls._yaml_files
        cls._yaml_files = list(yaml_files)
        try:
            yield
        finally:
            cls._yaml_files = previous
