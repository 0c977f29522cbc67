"""
actions/tile_actions.py — What a tile does when it is pressed.

Each tile is bound to one action id. Its panel properties are validated into
the matching record below and executed against OBS through the connection
manager. Five action kinds:

  recording       action = StartStop | Start | Stop | PauseResume | Pause | Resume
  streaming       action = StartStop | Start | Stop
  virtual_camera  action = StartStop | Start | Stop
  switch_scene    scene  = scene UUID
  switch_profile  profile = profile name

ACTION_BINDINGS tells a panel which single property key it edits and where
its dropdown options come from (a static list or an OBS query).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

from obs_tiles.core.connection_manager import ConnectionManager, NotConnectedError
from obs_tiles.core.messages import OptionCategory, SelectOption

log = logging.getLogger(__name__)


class TileAction(str, Enum):
    RECORDING = "recording"
    STREAMING = "streaming"
    VIRTUAL_CAMERA = "virtual_camera"
    SWITCH_SCENE = "switch_scene"
    SWITCH_PROFILE = "switch_profile"


class RecordingAction(str, Enum):
    START_STOP = "StartStop"
    START = "Start"
    STOP = "Stop"
    PAUSE_RESUME = "PauseResume"
    PAUSE = "Pause"
    RESUME = "Resume"


class OutputAction(str, Enum):
    """Shared by streaming and the virtual camera."""
    START_STOP = "StartStop"
    START = "Start"
    STOP = "Stop"


class RecordingProperties(BaseModel):
    action: Optional[RecordingAction] = None


class StreamingProperties(BaseModel):
    action: Optional[OutputAction] = None


class VirtualCameraProperties(BaseModel):
    action: Optional[OutputAction] = None


class SwitchSceneProperties(BaseModel):
    scene: Optional[str] = None


class SwitchProfileProperties(BaseModel):
    profile: Optional[str] = None


ActionProperties = Union[
    RecordingProperties,
    StreamingProperties,
    VirtualCameraProperties,
    SwitchSceneProperties,
    SwitchProfileProperties,
]

PROPERTY_MODELS: dict[TileAction, type[BaseModel]] = {
    TileAction.RECORDING: RecordingProperties,
    TileAction.STREAMING: StreamingProperties,
    TileAction.VIRTUAL_CAMERA: VirtualCameraProperties,
    TileAction.SWITCH_SCENE: SwitchSceneProperties,
    TileAction.SWITCH_PROFILE: SwitchProfileProperties,
}


# ── Panel bindings ────────────────────────────────────────────────────────────

_LABELS = {
    "StartStop": "Start / Stop",
    "Start": "Start",
    "Stop": "Stop",
    "PauseResume": "Pause / Resume",
    "Pause": "Pause",
    "Resume": "Resume",
}


def _static_options(actions: type[Enum]) -> list[SelectOption]:
    return [SelectOption(value=a.value, label=_LABELS[a.value]) for a in actions]


@dataclass
class ActionBinding:
    """The one property a panel edits, and where its choices come from."""
    key: str
    category: Optional[OptionCategory] = None
    static_options: list[SelectOption] = field(default_factory=list)
    labels_tile: bool = False  # selection also becomes the tile's label


ACTION_BINDINGS: dict[TileAction, ActionBinding] = {
    TileAction.RECORDING: ActionBinding("action", static_options=_static_options(RecordingAction)),
    TileAction.STREAMING: ActionBinding("action", static_options=_static_options(OutputAction)),
    TileAction.VIRTUAL_CAMERA: ActionBinding("action", static_options=_static_options(OutputAction)),
    TileAction.SWITCH_SCENE: ActionBinding("scene", category=OptionCategory.SCENES, labels_tile=True),
    TileAction.SWITCH_PROFILE: ActionBinding("profile", category=OptionCategory.PROFILES, labels_tile=True),
}


def get_binding(action_id: str) -> Optional[ActionBinding]:
    try:
        return ACTION_BINDINGS[TileAction(action_id)]
    except ValueError:
        return None


def parse_action(action_id: str, properties: dict[str, Any]) -> Optional[tuple[TileAction, ActionProperties]]:
    """
    Validate a tile's properties for its action.
    Returns None for an unknown action id; raises pydantic.ValidationError on bad properties.
    """
    try:
        action = TileAction(action_id)
    except ValueError:
        return None
    return action, PROPERTY_MODELS[action].model_validate(properties)


# ── Execution ─────────────────────────────────────────────────────────────────

_RECORDING_CALLS = {
    RecordingAction.START_STOP: "toggle_recording",
    RecordingAction.START: "start_recording",
    RecordingAction.STOP: "stop_recording",
    RecordingAction.PAUSE_RESUME: "toggle_recording_pause",
    RecordingAction.PAUSE: "pause_recording",
    RecordingAction.RESUME: "resume_recording",
}

_STREAMING_CALLS = {
    OutputAction.START_STOP: "toggle_stream",
    OutputAction.START: "start_stream",
    OutputAction.STOP: "stop_stream",
}

_VIRTUAL_CAMERA_CALLS = {
    OutputAction.START_STOP: "toggle_virtual_cam",
    OutputAction.START: "start_virtual_cam",
    OutputAction.STOP: "stop_virtual_cam",
}


class ActionDispatcher:
    """
    Executes tile actions. Nothing here raises to the caller: unconfigured
    tiles, a disconnected OBS and failed requests all come back as a
    {"status": ...} dict and a log line.

    Usage:
        dispatcher = ActionDispatcher(manager)
        await dispatcher.execute("recording", {"action": "StartStop"})
    """

    def __init__(self, manager: ConnectionManager):
        self._manager = manager

    async def execute(self, action_id: str, properties: dict[str, Any]) -> dict:
        try:
            parsed = parse_action(action_id, properties)
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            log.error(f"Invalid properties for action '{action_id}': {e}")
            return {"action": action_id, "status": "invalid_properties"}
        if parsed is None:
            log.debug(f"Unknown tile action requested: {action_id}")
            return {"action": action_id, "status": "unknown_action"}

        action, props = parsed
        call = self._resolve(action, props)
        if call is None:
            return {"action": action.value, "status": "not_configured"}
        method, args = call

        try:
            result = await self._manager.run_with_client(lambda client: getattr(client, method)(*args))
        except NotConnectedError as e:
            log.warning(f"Tile action '{action.value}' skipped: {e}")
            return {"action": action.value, "status": "not_connected"}
        except Exception as e:
            log.error(f"Tile action '{action.value}' failed: {e}")
            return {"action": action.value, "status": "error", "error": str(e)}
        return {"action": action.value, **result}

    @staticmethod
    def _resolve(action: TileAction, props: ActionProperties) -> Optional[tuple[str, tuple]]:
        """Client method name and arguments for an action, or None if the tile isn't configured."""
        match props:
            case RecordingProperties(action=RecordingAction() as a):
                return _RECORDING_CALLS[a], ()
            case StreamingProperties(action=OutputAction() as a):
                return _STREAMING_CALLS[a], ()
            case VirtualCameraProperties(action=OutputAction() as a):
                return _VIRTUAL_CAMERA_CALLS[a], ()
            case SwitchSceneProperties(scene=str(scene)) if _is_uuid(scene):
                return "switch_scene", (scene,)
            case SwitchProfileProperties(profile=str(profile)) if profile:
                return "set_profile", (profile,)
            case _:
                log.debug(f"Tile action '{action.value}' has no usable selection")
                return None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True
