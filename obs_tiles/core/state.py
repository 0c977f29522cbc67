"""
core/state.py — Connection lifecycle state machine.

ConnectionManager is the only caller. It feeds events into transition() and
publishes whatever StateChange records come back, so the table below is the
single source of truth for which state follows which.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    INITIAL = "INITIAL"
    NOT_CONNECTED = "NOT_CONNECTED"
    CONNECTING = "CONNECTING"
    RETRY_CONNECTING = "RETRY_CONNECTING"
    CONNECTED = "CONNECTED"
    CONNECT_ERROR = "CONNECT_ERROR"
    CONNECTION_LOST = "CONNECTION_LOST"
    INVALID_AUTH = "INVALID_AUTH"


class ConnectionEvent(str, Enum):
    NO_CREDENTIALS = "no_credentials"
    AUTO_CONNECT = "auto_connect"
    USER_CONNECT = "user_connect"
    HANDSHAKE_OK = "handshake_ok"
    AUTH_REJECTED = "auth_rejected"
    UNREACHABLE = "unreachable"
    CONNECTION_DROPPED = "connection_dropped"
    RETRY_SCHEDULED = "retry_scheduled"
    RETRY_FAILED = "retry_failed"
    RETRY_EXHAUSTED = "retry_exhausted"


class AuthCredentials(BaseModel):
    """OBS WebSocket credentials. An empty password means no authentication."""
    host: str = Field("localhost", description="OBS WebSocket host")
    port: int = Field(4455, ge=1, le=65535, description="OBS WebSocket port")
    password: str = Field("", description="OBS WebSocket password")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class InvalidTransition(ValueError):
    pass


S = ConnectionState
E = ConnectionEvent

# States from which an explicit user connect is accepted. CONNECTING and
# CONNECTED are absent: a second connect while one is in flight is ignored.
USER_CONNECTABLE: frozenset[ConnectionState] = frozenset({
    S.INITIAL,
    S.NOT_CONNECTED,
    S.CONNECT_ERROR,
    S.INVALID_AUTH,
    S.CONNECTION_LOST,
    S.RETRY_CONNECTING,
})

TRANSITIONS: dict[tuple[ConnectionState, ConnectionEvent], ConnectionState] = {
    (S.INITIAL, E.NO_CREDENTIALS): S.NOT_CONNECTED,
    (S.INITIAL, E.AUTO_CONNECT): S.CONNECTING,
    **{(state, E.USER_CONNECT): S.CONNECTING for state in USER_CONNECTABLE},
    (S.CONNECTING, E.HANDSHAKE_OK): S.CONNECTED,
    (S.CONNECTING, E.AUTH_REJECTED): S.INVALID_AUTH,
    (S.CONNECTING, E.UNREACHABLE): S.CONNECT_ERROR,
    (S.CONNECTED, E.CONNECTION_DROPPED): S.CONNECTION_LOST,
    (S.CONNECTION_LOST, E.RETRY_SCHEDULED): S.RETRY_CONNECTING,
    (S.RETRY_CONNECTING, E.HANDSHAKE_OK): S.CONNECTED,
    (S.RETRY_CONNECTING, E.RETRY_FAILED): S.RETRY_CONNECTING,
    (S.RETRY_CONNECTING, E.AUTH_REJECTED): S.INVALID_AUTH,
    (S.RETRY_CONNECTING, E.RETRY_EXHAUSTED): S.CONNECTION_LOST,
}


@dataclass(frozen=True)
class StateChange:
    previous: ConnectionState
    state: ConnectionState
    event: ConnectionEvent
    reason: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.previous.value} → {self.state.value} ({self.event.value})"
        return f"{text}: {self.reason}" if self.reason else text


def can_transition(state: ConnectionState, event: ConnectionEvent) -> bool:
    return (state, event) in TRANSITIONS


def transition(
    state: ConnectionState,
    event: ConnectionEvent,
    reason: Optional[str] = None,
) -> tuple[ConnectionState, list[StateChange]]:
    """
    Apply one event to the current state.

    Returns the new state and the changes to publish. A self-transition
    (e.g. a failed retry while already retrying) returns no changes.
    Raises InvalidTransition for any (state, event) pair outside the table.
    """
    try:
        new_state = TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"'{event.value}' is not valid in state {state.value}") from None
    if new_state == state:
        return state, []
    return new_state, [StateChange(previous=state, state=new_state, event=event, reason=reason)]
