"""
obs-tiles — OBS control tiles for a tile-host application.

Modules:
  core/       — Connection state machine, OBS WebSocket client, broadcast channels, messages
  properties/ — Panel & plugin property store (YAML-backed on the dev host)
  actions/    — Tile action records and execution (recording, streaming, scenes, ...)
  plugin/     — Host-facing message handler
  panels/     — Per-panel reactive controllers
  api/        — FastAPI dev host (REST + WebSocket inspector channel)
  config/     — Settings, env loading, YAML config
"""

__version__ = "0.2.0"
