"""config — Settings, env loading, YAML config."""
from .settings import APISettings, OBSSettings, PluginSettings, Settings, get_settings, reload_settings

__all__ = ["APISettings", "OBSSettings", "PluginSettings", "Settings", "get_settings", "reload_settings"]
