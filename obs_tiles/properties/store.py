"""
properties/store.py — Per-panel and plugin-scope property records.

The store is the in-memory view; persistence belongs to the host. A backend
(YamlPropertyFile for the dev host) is told to save after every real change.

File layout:
  plugin:
    auth: {host: localhost, port: 4455, password: ""}
  panels:
    <panel_id>: {scene: <uuid>, ...}

Note: the OBS password is stored in cleartext.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import yaml
from pydantic import ValidationError

from obs_tiles.core.state import AuthCredentials

log = logging.getLogger(__name__)

PanelProperties = dict[str, str]


class PropertyBackend(Protocol):
    def load(self) -> dict: ...

    def save(self, data: dict) -> None: ...


class YamlPropertyFile:
    """Host-side persistence to a single YAML file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            log.info(f"Loaded properties from {self.path}")
            return data
        except (OSError, yaml.YAMLError) as e:
            log.warning(f"Could not load properties from {self.path}: {e}")
            return {}

    def save(self, data: dict) -> None:
        try:
            with open(self.path, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
            log.debug(f"Properties saved → {self.path}")
        except OSError as e:
            log.warning(f"Could not save properties to {self.path}: {e}")


class PropertyStore:
    def __init__(self, backend: Optional[PropertyBackend] = None):
        self._backend = backend
        self._plugin: dict[str, Any] = {}
        self._panels: dict[str, PanelProperties] = {}

    @classmethod
    def load(cls, backend: PropertyBackend) -> "PropertyStore":
        store = cls(backend)
        data = backend.load()
        store._plugin = dict(data.get("plugin") or {})
        store._panels = {
            str(panel_id): {str(k): str(v) for k, v in (props or {}).items()}
            for panel_id, props in (data.get("panels") or {}).items()
        }
        return store

    def _persist(self) -> None:
        if self._backend is not None:
            self._backend.save({"plugin": copy.deepcopy(self._plugin), "panels": copy.deepcopy(self._panels)})

    # ── Panel scope ───────────────────────────────────────────────────

    def get_properties(self, panel_id: str) -> PanelProperties:
        """Current record for a panel; an empty record if it was never configured."""
        return dict(self._panels.get(panel_id, {}))

    def set_property(self, panel_id: str, key: str, value: str) -> bool:
        """Upsert one key. Returns False (and skips persistence) when nothing changed."""
        record = self._panels.setdefault(panel_id, {})
        if record.get(key) == value:
            return False
        record[key] = value
        log.debug(f"Panel {panel_id}: {key} = {value!r}")
        self._persist()
        return True

    def panel_ids(self) -> list[str]:
        return list(self._panels)

    # ── Plugin scope ──────────────────────────────────────────────────

    def get_plugin_properties(self) -> dict[str, Any]:
        return copy.deepcopy(self._plugin)

    def set_plugin_properties(self, properties: dict[str, Any]) -> None:
        if properties == self._plugin:
            return
        self._plugin = copy.deepcopy(properties)
        self._persist()

    def set_plugin_property(self, key: str, value: Any) -> bool:
        if self._plugin.get(key) == value:
            return False
        self._plugin[key] = copy.deepcopy(value)
        self._persist()
        return True

    def get_auth(self) -> Optional[AuthCredentials]:
        """Stored credentials, or None if missing or unreadable."""
        raw = self._plugin.get("auth")
        if not raw:
            return None
        try:
            return AuthCredentials.model_validate(raw)
        except ValidationError as e:
            log.warning(f"Ignoring invalid stored credentials: {e}")
            return None

    def set_auth(self, auth: AuthCredentials) -> bool:
        return self.set_plugin_property("auth", auth.model_dump())
