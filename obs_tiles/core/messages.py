"""
core/messages.py — Inspector message protocol.

Inbound (panel → plugin) and outbound (plugin → panel) messages are pydantic
discriminated unions keyed on `type`, so parsing picks the concrete model and
handlers can `match` on it exhaustively.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .state import AuthCredentials, ConnectionState


class SelectOption(BaseModel):
    """One entry of a dropdown menu."""
    value: str
    label: str


class OptionCategory(str, Enum):
    SCENES = "scenes"
    PROFILES = "profiles"


# ── Inbound ───────────────────────────────────────────────────────────────────

class GetClientState(BaseModel):
    type: Literal["GET_CLIENT_STATE"] = "GET_CLIENT_STATE"


class GetProfiles(BaseModel):
    type: Literal["GET_PROFILES"] = "GET_PROFILES"


class GetScenes(BaseModel):
    type: Literal["GET_SCENES"] = "GET_SCENES"


class Connect(BaseModel):
    type: Literal["CONNECT"] = "CONNECT"
    auth: AuthCredentials


InspectorMessageIn = Annotated[
    Union[GetClientState, GetProfiles, GetScenes, Connect],
    Field(discriminator="type"),
]


# ── Outbound ──────────────────────────────────────────────────────────────────

class ClientState(BaseModel):
    type: Literal["CLIENT_STATE"] = "CLIENT_STATE"
    state: ConnectionState
    reason: Optional[str] = None


class Profiles(BaseModel):
    type: Literal["PROFILES"] = "PROFILES"
    profiles: list[SelectOption]

    @property
    def options(self) -> list[SelectOption]:
        return self.profiles


class Scenes(BaseModel):
    type: Literal["SCENES"] = "SCENES"
    scenes: list[SelectOption]

    @property
    def options(self) -> list[SelectOption]:
        return self.scenes


InspectorMessageOut = Annotated[
    Union[ClientState, Profiles, Scenes],
    Field(discriminator="type"),
]

OptionsMessage = Union[Profiles, Scenes]

_inbound = TypeAdapter(InspectorMessageIn)
_outbound = TypeAdapter(InspectorMessageOut)


def parse_inbound(data: Union[dict[str, Any], str, bytes]) -> InspectorMessageIn:
    """Parse a raw inspector message. Raises pydantic.ValidationError on bad input."""
    if isinstance(data, (str, bytes)):
        return _inbound.validate_json(data)
    return _inbound.validate_python(data)


def parse_outbound(data: Union[dict[str, Any], str, bytes]) -> InspectorMessageOut:
    if isinstance(data, (str, bytes)):
        return _outbound.validate_json(data)
    return _outbound.validate_python(data)


def options_message(category: OptionCategory, options: list[SelectOption]) -> OptionsMessage:
    match category:
        case OptionCategory.SCENES:
            return Scenes(scenes=options)
        case OptionCategory.PROFILES:
            return Profiles(profiles=options)


def options_category(message: OptionsMessage) -> OptionCategory:
    match message:
        case Scenes():
            return OptionCategory.SCENES
        case Profiles():
            return OptionCategory.PROFILES


def options_request(category: OptionCategory) -> Union[GetScenes, GetProfiles]:
    match category:
        case OptionCategory.SCENES:
            return GetScenes()
        case OptionCategory.PROFILES:
            return GetProfiles()
