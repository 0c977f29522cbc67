"""
panels/handle.py — The host's per-panel API, as seen by one panel.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from pydantic import BaseModel

from obs_tiles.properties import PanelProperties, PropertyStore

log = logging.getLogger(__name__)


class TileLabel(BaseModel):
    label: Optional[str] = None


class PanelHandle:
    def __init__(
        self,
        panel_id: str,
        store: PropertyStore,
        on_label: Optional[Callable[[str, TileLabel], None]] = None,
    ):
        self.panel_id = panel_id
        self.label: Optional[TileLabel] = None
        self._store = store
        self._on_label = on_label

    def get_properties(self) -> PanelProperties:
        return self._store.get_properties(self.panel_id)

    def set_property(self, key: str, value: str) -> bool:
        return self._store.set_property(self.panel_id, key, value)

    def set_label(self, info: TileLabel) -> None:
        self.label = info
        log.debug(f"Panel {self.panel_id} label → {info.label!r}")
        if self._on_label:
            self._on_label(self.panel_id, info)
