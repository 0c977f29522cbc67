"""
panels/controller.py — One controller per mounted panel.

A controller owns no connection state. It asks for it on mount, listens for
broadcasts, and renders whatever it last heard:

  LOADING   nothing heard yet
  SETUP     any state other than CONNECTED (connect form + retry)
  CONTROL   connected; dropdown of options for the panel's one property

Everything it receives is tagged with the mount generation it was requested
under, so replies that arrive after unmount (or after a remount) are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from obs_tiles.actions import get_binding
from obs_tiles.core.broadcast import Channel, Subscription
from obs_tiles.core.messages import (
    ClientState,
    Connect,
    GetClientState,
    InspectorMessageOut,
    Profiles,
    Scenes,
    SelectOption,
    options_category,
    options_request,
)
from obs_tiles.core.state import AuthCredentials, ConnectionState
from obs_tiles.plugin import ObsPlugin
from obs_tiles.properties import PanelProperties

from .handle import PanelHandle, TileLabel

log = logging.getLogger(__name__)

# Selection shown when the stored value is missing or no longer offered
NONE_SELECTED = ""


class PanelView(str, Enum):
    LOADING = "loading"
    SETUP = "setup"
    CONTROL = "control"


@dataclass
class PanelRender:
    view: PanelView = PanelView.LOADING
    state: Optional[ConnectionState] = None
    reason: Optional[str] = None
    auth: AuthCredentials = field(default_factory=AuthCredentials)
    options: Optional[list[SelectOption]] = None  # None = request in flight
    selected: str = NONE_SELECTED


class PanelController:
    def __init__(
        self,
        panel: PanelHandle,
        action_id: str,
        plugin: ObsPlugin,
        on_render: Optional[Callable[[PanelRender], None]] = None,
    ):
        binding = get_binding(action_id)
        if binding is None:
            raise ValueError(f"Unknown tile action '{action_id}'")
        self.panel = panel
        self.action_id = action_id
        self.binding = binding
        self.render = PanelRender()
        self.render_count = 0

        self._plugin = plugin
        self._on_render = on_render
        self._properties: PanelProperties = {}
        self._subscriptions: list[Subscription] = []
        self._receiver: Optional[Callable[[InspectorMessageOut], None]] = None
        self._generation = 0
        self._mounted = False

    @property
    def panel_id(self) -> str:
        return self.panel.panel_id

    @property
    def mounted(self) -> bool:
        return self._mounted

    # ── Lifecycle ─────────────────────────────────────────────────────

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._generation += 1
        generation = self._generation

        self._properties = self.panel.get_properties()
        self.render = PanelRender(auth=self._plugin.get_auth_default())
        if self.binding.category is None:
            self.render.options = list(self.binding.static_options)
            self.render.selected = self._selection_for(self.render.options)

        def deliver(message: InspectorMessageOut) -> None:
            self._deliver(generation, message)

        self._subscriptions = [
            self._plugin.subscribe(Channel.CLIENT_STATE, deliver),
            self._plugin.subscribe(Channel.OPTIONS, deliver),
        ]
        self._receiver = deliver
        self._plugin.on_inspector_open(self.panel_id, deliver)
        self._emit_render()

        self._send(GetClientState())

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        self._plugin.on_inspector_close(self.panel_id, self._receiver)
        self._receiver = None
        log.debug(f"Panel {self.panel_id} unmounted")

    # ── Inbound ───────────────────────────────────────────────────────

    def _deliver(self, generation: int, message: InspectorMessageOut) -> None:
        if not self._mounted or generation != self._generation:
            log.debug(f"Panel {self.panel_id} discarded stale {message.type}")
            return
        match message:
            case ClientState():
                self._on_client_state(message)
            case Scenes() | Profiles():
                self._on_options(message)

    def _on_client_state(self, message: ClientState) -> None:
        previous = self.render.state
        self.render.state = message.state
        self.render.reason = message.reason
        if message.state != ConnectionState.CONNECTED:
            self.render.view = PanelView.SETUP
            self._emit_render()
            return

        self.render.view = PanelView.CONTROL
        # Ask once per arrival in CONNECTED, not on repeated CONNECTED notices
        if previous != ConnectionState.CONNECTED and self.binding.category is not None:
            self.render.options = None
            self._send(options_request(self.binding.category))
        self._emit_render()

    def _on_options(self, message: Scenes | Profiles) -> None:
        if self.binding.category is None or options_category(message) != self.binding.category:
            return
        self.render.options = list(message.options)
        self.render.selected = self._selection_for(self.render.options)
        self._emit_render()

    def _selection_for(self, options: list[SelectOption]) -> str:
        stored = self._properties.get(self.binding.key, NONE_SELECTED)
        if any(option.value == stored for option in options):
            return stored
        return NONE_SELECTED

    # ── User interaction ──────────────────────────────────────────────

    def select(self, value: str) -> None:
        """Store the user's dropdown choice and, for scene/profile tiles, relabel the tile."""
        option = next((o for o in self.render.options or [] if o.value == value), None)
        if option is None and value != NONE_SELECTED:
            raise ValueError(f"'{value}' is not one of the current options for panel {self.panel_id}")

        self.panel.set_property(self.binding.key, value)
        self._properties[self.binding.key] = value
        self.render.selected = value
        if self.binding.labels_tile:
            self.panel.set_label(TileLabel(label=option.label if option else None))
        self._emit_render()

    def connect(self, auth: AuthCredentials) -> None:
        self.render.auth = auth
        self._send(Connect(auth=auth))

    def retry(self) -> None:
        self.connect(self.render.auth)

    # ── Internals ─────────────────────────────────────────────────────

    def _send(self, message) -> None:
        self._plugin.on_inspector_message(self.panel_id, message)

    def _emit_render(self) -> None:
        self.render_count += 1
        if self._on_render:
            self._on_render(self.render)
