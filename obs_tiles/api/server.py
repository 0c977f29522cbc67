"""
api/server.py — Dev host: FastAPI REST + WebSocket inspector channel.

Stands in for the tile host application so panels can be driven over the
network. Each WebSocket at /ws/inspector/{panel_id} is one mounted panel:
  - JSON inspector messages in  (GET_CLIENT_STATE, CONNECT, GET_SCENES, GET_PROFILES)
  - JSON messages out           (direct replies + CLIENT_STATE / SCENES / PROFILES broadcasts)

Outbound messages go through a per-socket queue so each panel receives them
in the order they were produced.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from obs_tiles import __version__
from obs_tiles.config import get_settings
from obs_tiles.core.broadcast import Channel
from obs_tiles.core.state import AuthCredentials

log = logging.getLogger(__name__)

_plugin = None


def set_plugin(plugin) -> None:
    global _plugin
    _plugin = plugin


# ──────────────────────────────────────────────────────────────────────────────
# Inspector sockets
# ──────────────────────────────────────────────────────────────────────────────

class InspectorSocket:
    """One remote panel: registers as the panel's receiver and subscribes to both broadcast channels."""

    def __init__(self, panel_id: str, ws: WebSocket, plugin):
        self.panel_id = panel_id
        self.ws = ws
        self._plugin = plugin
        self._queue: asyncio.Queue[Optional[dict]] = asyncio.Queue()
        self._subscriptions = []
        # One bound object, so on_inspector_close can match it by identity
        self._receiver = self._enqueue

    def _enqueue(self, message: BaseModel) -> None:
        self._queue.put_nowait(message.model_dump(mode="json"))

    def open(self) -> None:
        self._subscriptions = [
            self._plugin.subscribe(Channel.CLIENT_STATE, self._receiver),
            self._plugin.subscribe(Channel.OPTIONS, self._receiver),
        ]
        self._plugin.on_inspector_open(self.panel_id, self._receiver)

    def send_error(self, error: str) -> None:
        self._queue.put_nowait({"error": error})

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        self._plugin.on_inspector_close(self.panel_id, self._receiver)
        self._queue.put_nowait(None)

    async def pump(self) -> None:
        while True:
            data = await self._queue.get()
            if data is None:
                return
            await self.ws.send_text(json.dumps(data))


class InspectorPool:
    def __init__(self):
        self._sockets: list[InspectorSocket] = []

    def add(self, sock: InspectorSocket) -> None:
        self._sockets.append(sock)
        log.info(f"Inspector connected: {sock.panel_id}. Total: {len(self._sockets)}")

    def remove(self, sock: InspectorSocket) -> None:
        if sock in self._sockets:
            self._sockets.remove(sock)
        log.info(f"Inspector disconnected: {sock.panel_id}. Total: {len(self._sockets)}")

    def count(self) -> int:
        return len(self._sockets)


inspector_pool = InspectorPool()


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    log.info(f"obs-tiles host starting on {settings.api.host}:{settings.api.port}")
    yield
    log.info("obs-tiles host shutting down.")


class PropertyBody(BaseModel):
    value: str


class ClickBody(BaseModel):
    action_id: str
    properties: Optional[dict[str, Any]] = None


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="obs-tiles",
        description="OBS control tiles — dev host",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── REST auth dependency ──────────────────────────────────────────

    async def verify_api_key(authorization: Optional[str] = Header(None)):
        if settings.api.api_key:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing Bearer token")
            token = authorization.removeprefix("Bearer ").strip()
            if token != settings.api.api_key:
                raise HTTPException(status_code=403, detail="Invalid API key")

    auth = Depends(verify_api_key)

    def plugin():
        if _plugin is None:
            raise HTTPException(status_code=503, detail="Plugin not initialized")
        return _plugin

    # ─────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        p = plugin()
        return {
            "status": "ok",
            "obs_state": p.manager.state.value,
            "inspectors": inspector_pool.count(),
            "version": __version__,
        }

    @app.get("/healthz", tags=["System"])
    async def healthz():
        """Machine-readable health check. Returns 503 unless OBS is connected."""
        p = plugin()
        if not p.manager.is_connected():
            raise HTTPException(
                status_code=503,
                detail={"status": "degraded", "reason": f"OBS {p.manager.state.value}"},
            )
        return {"status": "ok"}

    # ─────────────────────────────────────────────────────────────────
    # Connection
    # ─────────────────────────────────────────────────────────────────

    @app.get("/state", tags=["Connection"], dependencies=[auth])
    async def client_state():
        return plugin().manager.client_state_message().model_dump(mode="json")

    @app.post("/connect", tags=["Connection"], dependencies=[auth], status_code=202)
    async def connect(body: AuthCredentials):
        """Start a connect attempt. Progress is reported as CLIENT_STATE broadcasts."""
        plugin().connect(body)
        return {"status": "connecting", "address": body.address}

    # ─────────────────────────────────────────────────────────────────
    # Panels & tiles
    # ─────────────────────────────────────────────────────────────────

    @app.get("/panels/{panel_id}/properties", tags=["Panels"], dependencies=[auth])
    async def get_properties(panel_id: str):
        return plugin().store.get_properties(panel_id)

    @app.put("/panels/{panel_id}/properties/{key}", tags=["Panels"], dependencies=[auth])
    async def set_property(panel_id: str, key: str, body: PropertyBody):
        changed = plugin().store.set_property(panel_id, key, body.value)
        return {"panel_id": panel_id, "key": key, "value": body.value, "changed": changed}

    @app.post("/tiles/{panel_id}/click", tags=["Panels"], dependencies=[auth])
    async def click_tile(panel_id: str, body: ClickBody):
        p = plugin()
        if not p.manager.is_connected():
            raise HTTPException(status_code=409, detail=f"OBS {p.manager.state.value}")
        return await p.on_tile_clicked(panel_id, body.action_id, body.properties)

    # ─────────────────────────────────────────────────────────────────
    # WebSocket inspector channel (token auth)
    # ─────────────────────────────────────────────────────────────────

    @app.websocket("/ws/inspector/{panel_id}")
    async def inspector_endpoint(
        websocket: WebSocket,
        panel_id: str,
        token: Optional[str] = Query(None),
    ):
        settings = get_settings()

        # Auth check: if API key is set, require it as ?token= query param
        if settings.api.api_key:
            if not token or token != settings.api.api_key:
                await websocket.close(code=4001, reason="Unauthorized")
                return

        p = plugin()
        await websocket.accept()
        sock = InspectorSocket(panel_id, websocket, p)
        sock.open()
        inspector_pool.add(sock)
        pump = asyncio.create_task(sock.pump())

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    p.on_inspector_message(panel_id, json.loads(raw))
                except json.JSONDecodeError:
                    sock.send_error("Invalid JSON")
        except WebSocketDisconnect:
            pass
        finally:
            sock.close()
            inspector_pool.remove(sock)
            pump.cancel()

    return app
