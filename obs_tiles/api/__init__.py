"""api — FastAPI dev host (REST + WebSocket inspector channel)."""
from .server import create_app, inspector_pool, set_plugin

__all__ = ["create_app", "inspector_pool", "set_plugin"]
