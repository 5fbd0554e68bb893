"""
config/settings.py — Central configuration via env vars + YAML override.

Priority: ENV > config.yaml > defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ingest_switcher.core import ConnectionConfig
from ingest_switcher.sources import DEFAULT_SUPPORTED_KINDS


class OBSSettings(BaseSettings):
    host: str = Field("localhost", description="OBS WebSocket host")
    port: int = Field(4455, description="OBS WebSocket port")
    password: str = Field("", description="OBS WebSocket password")
    timeout: float = Field(10.0, description="Seconds before a connection attempt is abandoned")

    model_config = SettingsConfigDict(env_prefix="OBS_")

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            host=self.host,
            port=self.port,
            password=self.password,
            timeout=self.timeout,
        )


class APISettings(BaseSettings):
    host: str = Field("127.0.0.1", description="API server bind host")
    port: int = Field(8090, description="API server port")
    api_key: Optional[str] = Field(None, description="Bearer token for API auth (optional)")
    cors_origins: list[str] = Field(["*"], description="CORS allowed origins")
    log_level: str = Field("info", description="Log level")

    model_config = SettingsConfigDict(env_prefix="API_")


class SourceSettings(BaseSettings):
    supported_kinds: list[str] = Field(
        list(DEFAULT_SUPPORTED_KINDS),
        description="OBS input kinds that may be redirected",
    )
    auto_connect: bool = Field(True, description="Connect to OBS when the server starts")

    model_config = SettingsConfigDict(env_prefix="SOURCES_")


class Settings(BaseSettings):
    obs: OBSSettings = Field(default_factory=OBSSettings)
    api: APISettings = Field(default_factory=APISettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    links: list[dict] = Field(default_factory=list, description="Link presets: [{id?, name, url}]")
    config_file: Path = Field(Path("config.yaml"), description="Path to YAML config file")

    model_config = SettingsConfigDict(env_prefix="SWITCHER_")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings, merging YAML file if present."""
        path = config_path or Path(os.environ.get("SWITCHER_CONFIG_FILE", "config.yaml"))
        yaml_data: dict = {}

        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

        # Build sub-settings from YAML + env (env takes priority via pydantic-settings)
        obs = OBSSettings(**yaml_data.get("obs", {}))
        api = APISettings(**yaml_data.get("api", {}))
        sources = SourceSettings(**yaml_data.get("sources", {}))
        links = yaml_data.get("links") or []

        return cls(obs=obs, api=api, sources=sources, links=links, config_file=path)

    def to_yaml(self, path: Path) -> None:
        """Save current settings to YAML."""
        data = {
            "obs": self.obs.model_dump(),
            "api": self.api.model_dump(),
            "sources": self.sources.model_dump(),
            "links": self.links,
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Singleton accessor — call get_settings() anywhere in the app
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
