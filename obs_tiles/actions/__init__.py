"""actions — Tile action records and their execution against OBS."""
from .tile_actions import (
    ACTION_BINDINGS,
    ActionBinding,
    ActionDispatcher,
    TileAction,
    get_binding,
    parse_action,
)

__all__ = [
    "ACTION_BINDINGS",
    "ActionBinding",
    "ActionDispatcher",
    "TileAction",
    "get_binding",
    "parse_action",
]
