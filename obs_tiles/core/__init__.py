"""core — OBS connection state machine, client, broadcast channels and message protocol."""
from .state import AuthCredentials, ConnectionEvent, ConnectionState, InvalidTransition, transition
from .messages import OptionCategory, SelectOption
from .broadcast import Broadcaster, Channel, Subscription
from .obs_client import OBSAuthError, OBSClient, OBSConnectionError
from .connection_manager import ConnectionManager, NotConnectedError, RetryPolicy

__all__ = [
    "AuthCredentials",
    "Broadcaster",
    "Channel",
    "ConnectionEvent",
    "ConnectionManager",
    "ConnectionState",
    "InvalidTransition",
    "NotConnectedError",
    "OBSAuthError",
    "OBSClient",
    "OBSConnectionError",
    "OptionCategory",
    "RetryPolicy",
    "SelectOption",
    "Subscription",
    "transition",
]
