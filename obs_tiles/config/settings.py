"""
config/settings.py — Central configuration via env vars + YAML override.

Priority: ENV > config.yaml > defaults

The obs: section supplies the connect form's defaults and the retry policy.
Credentials that OBS has accepted are saved with the panel properties, not here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from obs_tiles.core.connection_manager import RetryPolicy
from obs_tiles.core.state import AuthCredentials


class _EnvFirstSettings(BaseSettings):
    """Environment variables override values passed in from config.yaml."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings


class OBSSettings(_EnvFirstSettings):
    host: str = Field("localhost", description="Default OBS WebSocket host")
    port: int = Field(4455, ge=1, le=65535, description="Default OBS WebSocket port")
    password: str = Field("", description="Default OBS WebSocket password")
    connect_timeout: float = Field(5.0, gt=0, description="Seconds before a connect attempt fails")
    retry_initial_delay: float = Field(2.0, gt=0, description="Seconds before the first reconnect attempt")
    retry_multiplier: float = Field(2.0, ge=1, description="Backoff growth factor between reconnect attempts")
    retry_max_delay: float = Field(30.0, gt=0, description="Upper bound on the delay between reconnect attempts")
    max_retry_attempts: int = Field(20, ge=0, description="Max reconnect attempts after a drop (0=infinite)")

    model_config = SettingsConfigDict(env_prefix="OBS_")

    def credentials(self) -> AuthCredentials:
        return AuthCredentials(host=self.host, port=self.port, password=self.password)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            initial_delay=self.retry_initial_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.retry_max_delay,
            max_attempts=self.max_retry_attempts,
        )


class APISettings(_EnvFirstSettings):
    host: str = Field("127.0.0.1", description="Dev host bind address")
    port: int = Field(8765, description="Dev host port")
    api_key: Optional[str] = Field(None, description="Bearer token for API auth (optional)")
    cors_origins: list[str] = Field(["*"], description="CORS allowed origins")
    log_level: str = Field("info", description="Log level")

    model_config = SettingsConfigDict(env_prefix="API_")


class PluginSettings(_EnvFirstSettings):
    properties_file: Path = Field(Path("properties.yaml"), description="Where panel/plugin properties are saved")

    model_config = SettingsConfigDict(env_prefix="PLUGIN_")


class Settings(BaseSettings):
    obs: OBSSettings = Field(default_factory=OBSSettings)
    api: APISettings = Field(default_factory=APISettings)
    plugin: PluginSettings = Field(default_factory=PluginSettings)
    config_file: Path = Field(Path("config.yaml"), description="Path to YAML config file")

    model_config = SettingsConfigDict(env_prefix="TILES_")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings, merging YAML file if present."""
        path = config_path or Path(os.environ.get("TILES_CONFIG_FILE", "config.yaml"))
        yaml_data: dict = {}

        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

        # Build sub-settings from YAML + env (env takes priority via pydantic-settings)
        obs = OBSSettings(**yaml_data.get("obs", {}))
        api = APISettings(**yaml_data.get("api", {}))
        plugin = PluginSettings(**yaml_data.get("plugin", {}))

        return cls(obs=obs, api=api, plugin=plugin, config_file=path)

    def to_yaml(self, path: Path) -> None:
        """Save current settings to YAML."""
        data = {
            "obs": self.obs.model_dump(),
            "api": self.api.model_dump(),
            "plugin": {"properties_file": str(self.plugin.properties_file)},
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Singleton accessor: call get_settings() anywhere in the app
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings(config_path: Optional[Path] = None) -> Settings:
    global _settings
    _settings = Settings.load(config_path)
    return _settings
