"""
core/obs_client.py — Async OBS WebSocket 5.x client.

Thin wrapper around obs-websocket-py. The library is blocking and delivers
events on its own receive thread, so:
  - every call runs in the default executor
  - event callbacks are marshalled back onto the event loop that connected

Reconnecting is not this class's job. ConnectionManager throws a dropped
client away and builds a fresh one for every attempt.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from obswebsocket import obsws, requests as obs_requests, events as obs_events
from obswebsocket import exceptions as obs_exceptions
from websocket import WebSocketException

from .messages import OptionCategory, SelectOption
from .state import AuthCredentials

log = logging.getLogger(__name__)


class OBSConnectionError(Exception):
    pass


class OBSAuthError(OBSConnectionError):
    pass


def classify_connect_failure(error: Exception) -> OBSConnectionError:
    """
    Map a handshake failure from obs-websocket-py onto our two failure kinds.

    Socket-level errors mean OBS was unreachable. OBS 5.x answers a bad
    password by closing the socket during Identify, which surfaces as a
    WebSocket error or an unparseable (empty) reply rather than a message.
    """
    text = str(error) or error.__class__.__name__
    if isinstance(error, OSError):
        return OBSConnectionError(text)
    if isinstance(error, obs_exceptions.ConnectionFailure):
        if "auth" in text.lower():
            return OBSAuthError(text)
        return OBSConnectionError(text)
    if isinstance(error, (WebSocketException, ValueError)):
        return OBSAuthError(f"OBS closed the connection during authentication ({text})")
    return OBSConnectionError(text)


class OBSClient:
    def __init__(self, host: str = "localhost", port: int = 4455, password: str = ""):
        self.host = host
        self.port = port
        self.password = password

        self._ws: Optional[Any] = None
        self._connected = False
        self._closed = False
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._disconnect_listeners: list[Callable[[], None]] = []
        self._options_listeners: list[Callable[[OptionCategory], None]] = []

    @classmethod
    def from_credentials(cls, auth: AuthCredentials) -> "OBSClient":
        return cls(host=auth.host, port=auth.port, password=auth.password)

    # ── Connection ────────────────────────────────────────────────────

    async def connect(self) -> None:
        """
        Open the socket and complete the Identify handshake. Raises OBSConnectionError / OBSAuthError.

        If the caller gives up (timeout, cancelled task) the handshake thread
        keeps running; the client is then closed for good and a socket that
        opens late is shut down by that thread.
        """
        self._loop = asyncio.get_running_loop()
        try:
            await self._loop.run_in_executor(None, self._connect_blocking)
        except asyncio.CancelledError:
            ws = self._close()
            if ws is not None:
                self._loop.run_in_executor(None, self._close_socket, ws)
            raise
        self._connected = True
        log.info(f"Connected to OBS at {self.host}:{self.port}")

    def _connect_blocking(self) -> None:
        # An empty or whitespace password is sent as no password at all
        password = self.password if self.password.strip() else ""
        ws = obsws(self.host, self.port, password)
        ws.register(self._on_exiting, obs_events.Exiting)
        ws.register(self._on_scene_list_changed, obs_events.SceneListChanged)
        ws.register(self._on_scene_list_changed, obs_events.SceneNameChanged)
        ws.register(self._on_profile_list_changed, obs_events.ProfileListChanged)
        try:
            ws.connect()
        except Exception as e:
            raise classify_connect_failure(e) from e
        with self._lock:
            if not self._closed:
                self._ws = ws
                return
        log.debug(f"Closing late OBS socket to {self.host}:{self.port}")
        self._close_socket(ws)

    def _close(self) -> Optional[Any]:
        """Mark the client closed and detach its socket, if any."""
        with self._lock:
            self._closed = True
            self._connected = False
            ws, self._ws = self._ws, None
        return ws

    @staticmethod
    def _close_socket(ws: Any) -> None:
        try:
            ws.disconnect()
        except Exception as e:
            log.debug(f"OBS disconnect error: {e}")

    async def disconnect(self) -> None:
        ws = self._close()
        if ws is not None:
            await asyncio.get_running_loop().run_in_executor(None, self._close_socket, ws)

    def is_connected(self) -> bool:
        return self._connected

    # ── OBS event handlers (receive thread) ───────────────────────────

    def _dispatch(self, callback: Callable, *args: Any) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    def _on_exiting(self, _event: Any = None) -> None:
        log.warning("OBS is shutting down.")
        self._dispatch(self._mark_lost)

    def _on_scene_list_changed(self, _event: Any = None) -> None:
        for cb in self._options_listeners:
            self._dispatch(cb, OptionCategory.SCENES)

    def _on_profile_list_changed(self, _event: Any = None) -> None:
        for cb in self._options_listeners:
            self._dispatch(cb, OptionCategory.PROFILES)

    def _mark_lost(self) -> None:
        if not self._connected:
            return
        self._connected = False
        for cb in self._disconnect_listeners:
            try:
                cb()
            except Exception as e:
                log.error(f"Disconnect listener error: {e}")

    # ── Event subscriptions ───────────────────────────────────────────

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        """Called once, on the event loop, when an established connection drops."""
        self._disconnect_listeners.append(callback)

    def on_options_changed(self, callback: Callable[[OptionCategory], None]) -> None:
        """Called with the category whose option list changed inside OBS."""
        self._options_listeners.append(callback)

    # ── Core request helper ───────────────────────────────────────────

    def _call(self, request: Any) -> Any:
        if not self._connected or not self._ws:
            raise OBSConnectionError("Not connected to OBS")
        try:
            return self._ws.call(request)
        except (obs_exceptions.ConnectionFailure, obs_exceptions.MessageTimeout, WebSocketException, OSError) as e:
            raise OBSConnectionError(f"Lost connection to OBS: {e}") from e

    async def call_async(self, request: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._call, request)
        except OBSConnectionError:
            self._mark_lost()
            raise

    # ── Option lists ──────────────────────────────────────────────────

    async def get_scenes(self) -> list[SelectOption]:
        result = await self.call_async(obs_requests.GetSceneList())
        return [
            SelectOption(value=s.get("sceneUuid", ""), label=s["sceneName"])
            for s in result.datain.get("scenes", [])
        ]

    async def get_profiles(self) -> list[SelectOption]:
        result = await self.call_async(obs_requests.GetProfileList())
        return [SelectOption(value=name, label=name) for name in result.datain.get("profiles", [])]

    async def get_options(self, category: OptionCategory) -> list[SelectOption]:
        match category:
            case OptionCategory.SCENES:
                return await self.get_scenes()
            case OptionCategory.PROFILES:
                return await self.get_profiles()

    # ── Scenes & profiles ─────────────────────────────────────────────

    async def switch_scene(self, scene_uuid: str) -> dict:
        await self.call_async(obs_requests.SetCurrentProgramScene(sceneUuid=scene_uuid))
        log.info(f"Switched to scene: {scene_uuid}")
        return {"scene": scene_uuid, "status": "ok"}

    async def set_profile(self, profile_name: str) -> dict:
        await self.call_async(obs_requests.SetCurrentProfile(profileName=profile_name))
        log.info(f"Switched to profile: {profile_name}")
        return {"profile": profile_name, "status": "ok"}

    # ── Recording ─────────────────────────────────────────────────────

    async def toggle_recording(self) -> dict:
        result = await self.call_async(obs_requests.ToggleRecord())
        return {"active": result.datain.get("outputActive", False), "status": "ok"}

    async def start_recording(self) -> dict:
        await self.call_async(obs_requests.StartRecord())
        return {"status": "recording_started"}

    async def stop_recording(self) -> dict:
        result = await self.call_async(obs_requests.StopRecord())
        return {"status": "recording_stopped", "output_path": result.datain.get("outputPath", "")}

    async def toggle_recording_pause(self) -> dict:
        await self.call_async(obs_requests.ToggleRecordPause())
        return {"status": "recording_pause_toggled"}

    async def pause_recording(self) -> dict:
        await self.call_async(obs_requests.PauseRecord())
        return {"status": "recording_paused"}

    async def resume_recording(self) -> dict:
        await self.call_async(obs_requests.ResumeRecord())
        return {"status": "recording_resumed"}

    # ── Streaming ─────────────────────────────────────────────────────

    async def toggle_stream(self) -> dict:
        result = await self.call_async(obs_requests.ToggleStream())
        return {"active": result.datain.get("outputActive", False), "status": "ok"}

    async def start_stream(self) -> dict:
        await self.call_async(obs_requests.StartStream())
        return {"status": "streaming_started"}

    async def stop_stream(self) -> dict:
        await self.call_async(obs_requests.StopStream())
        return {"status": "streaming_stopped"}

    # ── Virtual camera ────────────────────────────────────────────────

    async def toggle_virtual_cam(self) -> dict:
        result = await self.call_async(obs_requests.ToggleVirtualCam())
        return {"active": result.datain.get("outputActive", False), "status": "ok"}

    async def start_virtual_cam(self) -> dict:
        await self.call_async(obs_requests.StartVirtualCam())
        return {"status": "virtual_cam_started"}

    async def stop_virtual_cam(self) -> dict:
        await self.call_async(obs_requests.StopVirtualCam())
        return {"status": "virtual_cam_stopped"}

    # ── System ────────────────────────────────────────────────────────

    async def get_version(self) -> dict:
        result = await self.call_async(obs_requests.GetVersion())
        d = result.datain
        return {
            "obs_version": d.get("obsVersion", ""),
            "obs_web_socket_version": d.get("obsWebSocketVersion", ""),
            "platform": d.get("platform", ""),
        }
