"""
plugin/obs_plugin.py — Backend-resident entry point the host talks to.

The host calls:
  on_properties()        plugin-scope properties loaded (startup)
  on_inspector_open()    a panel mounted; registers its reply receiver
  on_inspector_close()   a panel unmounted
  on_inspector_message() a panel sent a message (see core/messages.py)
  on_tile_clicked()      a tile was pressed

Every handler returns immediately and does its work in a task. Replies are
routed by panel id; a reply for a panel that has since closed is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Union

from pydantic import BaseModel, ValidationError

from obs_tiles.actions import ActionDispatcher
from obs_tiles.core.broadcast import Channel, Listener, Subscription
from obs_tiles.core.connection_manager import ConnectionManager, NotConnectedError
from obs_tiles.core.messages import (
    ClientState,
    Connect,
    GetClientState,
    GetProfiles,
    GetScenes,
    InspectorMessageOut,
    OptionCategory,
    options_message,
    parse_inbound,
)
from obs_tiles.core.state import AuthCredentials, ConnectionState
from obs_tiles.properties import PropertyStore

log = logging.getLogger(__name__)

Receiver = Callable[[InspectorMessageOut], None]


class ObsPlugin:
    def __init__(
        self,
        manager: ConnectionManager,
        store: PropertyStore,
        default_auth: Optional[AuthCredentials] = None,
    ):
        self.manager = manager
        self.store = store
        self.default_auth = default_auth or AuthCredentials()
        self.dispatcher = ActionDispatcher(manager)

        self._inspectors: dict[str, Receiver] = {}
        self._tasks: set[asyncio.Task] = set()
        self._state_sub = manager.subscribe(Channel.CLIENT_STATE, self._on_client_state)

    # ── Task bookkeeping ──────────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every handler task scheduled so far (and any they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self._state_sub.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self.manager.disconnect()

    # ── Plugin scope ──────────────────────────────────────────────────

    def get_auth_default(self) -> AuthCredentials:
        """Credentials to pre-fill a setup view with."""
        return self.store.get_auth() or self.default_auth

    def subscribe(self, channel: Channel, listener: Listener) -> Subscription:
        return self.manager.subscribe(channel, listener)

    def on_properties(self, properties: Optional[dict[str, Any]] = None) -> asyncio.Task:
        """Plugin-scope properties arrived from the host: run the startup connection check."""
        if properties is not None:
            self.store.set_plugin_properties(properties)
        return self._spawn(self.manager.start(self.store.get_auth()))

    def connect(self, auth: AuthCredentials) -> asyncio.Task:
        """User-initiated connect; progress arrives as CLIENT_STATE broadcasts."""
        return self._spawn(self.manager.connect(auth))

    def _on_client_state(self, message: ClientState) -> None:
        # Remember credentials once OBS has accepted them
        if message.state == ConnectionState.CONNECTED and self.manager.credentials is not None:
            if self.store.set_auth(self.manager.credentials):
                log.info(f"Saved OBS credentials for {self.manager.credentials.address}")

    # ── Inspectors ────────────────────────────────────────────────────

    def on_inspector_open(self, panel_id: str, receiver: Receiver) -> None:
        self._inspectors[panel_id] = receiver
        log.debug(f"Inspector opened: {panel_id}. Total: {len(self._inspectors)}")

    def on_inspector_close(self, panel_id: str, receiver: Optional[Receiver] = None) -> None:
        # Only the receiver that registered may unregister (a panel may remount quickly)
        if receiver is not None and self._inspectors.get(panel_id) is not receiver:
            return
        self._inspectors.pop(panel_id, None)
        log.debug(f"Inspector closed: {panel_id}. Total: {len(self._inspectors)}")

    def inspector_count(self) -> int:
        return len(self._inspectors)

    def _reply(self, panel_id: str, message: InspectorMessageOut) -> None:
        receiver = self._inspectors.get(panel_id)
        if receiver is None:
            log.debug(f"Dropping {message.type} for closed inspector {panel_id}")
            return
        try:
            receiver(message)
        except Exception as e:
            log.error(f"Inspector {panel_id} receiver error: {e}")

    def on_inspector_message(self, panel_id: str, message: Union[BaseModel, dict, str, bytes]) -> None:
        if not isinstance(message, BaseModel):
            try:
                message = parse_inbound(message)
            except ValidationError as e:
                log.debug(f"Ignoring invalid inspector message from {panel_id}: {e}")
                return

        match message:
            case GetClientState():
                self._spawn(self._send_client_state(panel_id))
            case Connect(auth=auth):
                self.connect(auth)
            case GetScenes():
                self._spawn(self._send_options(panel_id, OptionCategory.SCENES))
            case GetProfiles():
                self._spawn(self._send_options(panel_id, OptionCategory.PROFILES))
            case _:
                log.debug(f"Unhandled inspector message from {panel_id}: {message!r}")

    async def _send_client_state(self, panel_id: str) -> None:
        self._reply(panel_id, self.manager.client_state_message())

    async def _send_options(self, panel_id: str, category: OptionCategory) -> None:
        try:
            options = await self.manager.query_options(category)
        except NotConnectedError:
            # Tell the panel why it got no options; it will switch to its setup view
            self._reply(panel_id, self.manager.client_state_message())
            return
        except Exception as e:
            log.error(f"Failed to get {category.value}: {e}")
            return
        self._reply(panel_id, options_message(category, options))

    # ── Tiles ─────────────────────────────────────────────────────────

    def on_tile_clicked(
        self,
        panel_id: str,
        action_id: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> asyncio.Task:
        if properties is None:
            properties = self.store.get_properties(panel_id)
        log.debug(f"Tile {panel_id} clicked ({action_id})")
        return self._spawn(self.dispatcher.execute(action_id, properties))
