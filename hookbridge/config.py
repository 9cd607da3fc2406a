"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class WebhooksConfig(BaseModel):
    bind: str = "0.0.0.0"
    port: int = 4050
    base_path: str = "/services/hooks"


class ClientConfig(BaseModel):
    """A Matrix account services can deliver through."""
    user_id: str
    homeserver_url: str
    access_token: str = ""
    sync: bool = True
    sync_timeout_ms: int = 30_000


class ServiceConfig(BaseModel):
    id: str
    type: str
    user_id: str
    config: dict[str, Any] = Field(default_factory=dict)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HOOKBRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    webhooks: WebhooksConfig = Field(default_factory=WebhooksConfig)
    clients: list[ClientConfig] = Field(default_factory=list)
    services: list[ServiceConfig] = Field(default_factory=list)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Env vars outrank init kwargs, which is where load_settings puts YAML
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def default_config_path() -> Path:
    """``config.yaml`` in HOOKBRIDGE_CONFIG_DIR or the per-user config dir."""
    env = os.environ.get("HOOKBRIDGE_CONFIG_DIR")
    if env:
        return Path(env) / "config.yaml"
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "hookbridge" / "config.yaml"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file with HOOKBRIDGE_* env vars on top."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("HOOKBRIDGE_CONFIG")
    if config_path is None:
        default = default_config_path()
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    return Settings(**yaml_data)
