"""config — Settings, env loading, YAML config."""
from .settings import APISettings, OBSSettings, Settings, SourceSettings, get_settings, reload_settings

__all__ = ["APISettings", "OBSSettings", "Settings", "SourceSettings", "get_settings", "reload_settings"]
