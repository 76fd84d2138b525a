"""Dockyard configuration management.

Configuration sources (in priority order):
1. Environment variables (DOCKYARD_ prefix)
2. Config file (dockyard.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class DockerConfig(BaseModel):
    """Docker engine connection."""

    # None lets aiodocker resolve DOCKER_HOST or the default local socket
    url: str | None = None


class WaitConfig(BaseModel):
    """Polling waits on container state."""

    polling_interval: float = Field(default=1.0, ge=0)
    exit_timeout: float = Field(default=60.0, gt=0)
    health_timeout: float = Field(default=60.0, gt=0)


class CleanupConfig(BaseModel):
    """Resource reclamation at session end."""

    # Seconds the engine waits before killing a stopping container
    stop_timeout: int = Field(default=10, ge=0)
    # Upper bound for confirming a stopped container has faded away
    fade_timeout: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    """structlog output."""

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class Settings(BaseSettings):
    """Dockyard settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCKYARD_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    docker: DockerConfig = Field(default_factory=DockerConfig)
    wait: WaitConfig = Field(default_factory=WaitConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Directory for inspect/log dumps; dumping is disabled while unset
    log_dir: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init values carry the YAML file; the environment wins over them
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. DOCKYARD_CONFIG_FILE environment variable
    2. ./dockyard.yaml
    """
    config_paths = [
        os.environ.get("DOCKYARD_CONFIG_FILE"),
        Path("dockyard.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Values from the YAML file are used as initial values; environment
    variables override them via pydantic-settings.
    """
    return Settings(**_load_config_file())
