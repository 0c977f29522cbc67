"""
core/connection_manager.py — The single owner of the OBS connection.

ConnectionManager runs the state machine from core/state.py, publishes every
transition on Channel.CLIENT_STATE and option-list refreshes on
Channel.OPTIONS. One instance per process, built at startup and handed to
the plugin, which everything else reaches it through.

Retry policy: a failed connect is reported and left alone until the user
tries again. A drop after a successful connect is retried in the background
with capped exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .broadcast import Broadcaster, Channel, Listener, Subscription
from .messages import ClientState, OptionCategory, SelectOption, options_message
from .obs_client import OBSAuthError, OBSClient, OBSConnectionError
from .state import (
    AuthCredentials,
    ConnectionEvent,
    ConnectionState,
    can_transition,
    transition,
)

log = logging.getLogger(__name__)

T = TypeVar("T")
ClientFactory = Callable[[AuthCredentials], Any]


class NotConnectedError(Exception):
    def __init__(self, state: ConnectionState):
        super().__init__(f"OBS is not connected (state: {state.value})")
        self.state = state


@dataclass
class RetryPolicy:
    initial_delay: float = 2.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 20  # 0 = retry forever (delay stays capped)

    def delay(self, attempt: int) -> float:
        """Delay before the given 0-based attempt."""
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)

    def exhausted(self, attempts: int) -> bool:
        return bool(self.max_attempts) and attempts >= self.max_attempts


class ConnectionManager:
    def __init__(
        self,
        broadcaster: Optional[Broadcaster] = None,
        client_factory: ClientFactory = OBSClient.from_credentials,
        connect_timeout: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.broadcaster = broadcaster or Broadcaster()
        self.connect_timeout = connect_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._client_factory = client_factory

        self._state = ConnectionState.INITIAL
        self._reason: Optional[str] = None
        self._client: Optional[Any] = None
        self._credentials: Optional[AuthCredentials] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        """Credentials of the last successful connection (used for retries)."""
        return self._credentials

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def client_state_message(self) -> ClientState:
        return ClientState(state=self._state, reason=self._reason)

    def subscribe(self, channel: Channel, listener: Listener) -> Subscription:
        return self.broadcaster.subscribe(channel, listener)

    def _apply(self, event: ConnectionEvent, reason: Optional[str] = None) -> ConnectionState:
        new_state, changes = transition(self._state, event, reason)
        self._state = new_state
        for change in changes:
            self._reason = change.reason
            log.info(f"OBS connection: {change}")
            self.broadcaster.publish(
                Channel.CLIENT_STATE,
                ClientState(state=change.state, reason=change.reason),
            )
        return new_state

    # ── Connecting ────────────────────────────────────────────────────

    async def start(self, credentials: Optional[AuthCredentials]) -> ConnectionState:
        """Startup check: auto-connect with stored credentials, or wait for the user."""
        if self._state != ConnectionState.INITIAL:
            log.debug(f"Startup check skipped in state {self._state.value}")
            return self._state
        if credentials is None:
            return self._apply(ConnectionEvent.NO_CREDENTIALS)
        self._apply(ConnectionEvent.AUTO_CONNECT, f"Connecting to {credentials.address}")
        return await self._connect(credentials)

    async def connect(self, credentials: AuthCredentials) -> ConnectionState:
        """User-initiated connect. Ignored while already connecting or connected."""
        if not can_transition(self._state, ConnectionEvent.USER_CONNECT):
            log.info(f"Connect request ignored in state {self._state.value}")
            return self._state
        self._cancel_retry()
        self._apply(ConnectionEvent.USER_CONNECT, f"Connecting to {credentials.address}")
        return await self._connect(credentials)

    async def _connect(self, credentials: AuthCredentials) -> ConnectionState:
        event, reason = await self._attempt(credentials)
        if event == ConnectionEvent.HANDSHAKE_OK:
            # A user connect may have superseded this attempt while it was in flight
            if self._state != ConnectionState.CONNECTING:
                await self._discard_client()
                return self._state
        return self._apply(event, reason)

    async def _attempt(self, credentials: AuthCredentials) -> tuple[ConnectionEvent, Optional[str]]:
        """One handshake. Never raises: every outcome becomes a state-machine event."""
        client = self._client_factory(credentials)
        try:
            await asyncio.wait_for(client.connect(), timeout=self.connect_timeout)
        except asyncio.CancelledError:
            await self._close_client(client)
            raise
        except OBSAuthError as e:
            log.warning(f"OBS rejected credentials for {credentials.address}: {e}")
            failure = ConnectionEvent.AUTH_REJECTED, str(e) or "Authentication failed"
        except asyncio.TimeoutError:
            log.warning(f"OBS connect to {credentials.address} timed out after {self.connect_timeout}s")
            failure = ConnectionEvent.UNREACHABLE, f"Connection timed out after {self.connect_timeout:g}s"
        except OBSConnectionError as e:
            log.warning(f"OBS connection failed: {e}")
            failure = ConnectionEvent.UNREACHABLE, str(e) or "OBS unreachable"
        except Exception as e:
            log.error(f"Unexpected OBS connect error: {e}")
            failure = ConnectionEvent.UNREACHABLE, str(e) or e.__class__.__name__
        else:
            await self._discard_client()
            self._client = client
            self._credentials = credentials
            client.on_disconnect(lambda: self._on_client_lost(client))
            client.on_options_changed(self._on_options_changed)
            return ConnectionEvent.HANDSHAKE_OK, None

        await self._close_client(client)
        return failure

    @staticmethod
    async def _close_client(client: Any) -> None:
        try:
            await client.disconnect()
        except Exception as e:
            log.debug(f"Error closing OBS client: {e}")

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await self._close_client(client)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def disconnect(self) -> None:
        """Shutdown: stop retrying and close the socket. Not a state transition."""
        self._cancel_retry()
        for task in list(self._tasks):
            task.cancel()
        await self._discard_client()

    # ── Drops & retry ─────────────────────────────────────────────────

    def _on_client_lost(self, client: Any) -> None:
        if client is not self._client:
            return
        self.connection_lost("OBS connection dropped")

    def connection_lost(self, reason: str = "OBS connection dropped") -> None:
        """An established connection went away. Schedules the background retry loop."""
        if self._state != ConnectionState.CONNECTED:
            return
        lost, self._client = self._client, None
        self._apply(ConnectionEvent.CONNECTION_DROPPED, reason)
        if lost is not None:
            self._spawn(self._close_client(lost))
        if self._credentials is None:
            return
        self._retry_task = asyncio.get_running_loop().create_task(self._retry_loop(self._credentials))

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _retry_loop(self, credentials: AuthCredentials) -> None:
        policy = self.retry_policy
        self._apply(ConnectionEvent.RETRY_SCHEDULED, f"Reconnecting to {credentials.address}")
        attempts = 0
        while True:
            if policy.exhausted(attempts):
                log.error(f"Gave up reconnecting to OBS after {attempts} attempts.")
                self._apply(ConnectionEvent.RETRY_EXHAUSTED, f"Gave up after {attempts} reconnect attempts")
                break
            await asyncio.sleep(policy.delay(attempts))
            if self._state != ConnectionState.RETRY_CONNECTING:
                break
            attempts += 1
            log.info(f"Reconnect attempt {attempts}...")
            event, reason = await self._attempt(credentials)
            if self._state != ConnectionState.RETRY_CONNECTING:
                if event == ConnectionEvent.HANDSHAKE_OK:
                    await self._discard_client()
                break
            if event == ConnectionEvent.UNREACHABLE:
                self._apply(ConnectionEvent.RETRY_FAILED, reason)
                continue
            self._apply(event, reason)
            break
        if self._retry_task is asyncio.current_task():
            self._retry_task = None

    # ── Data queries ──────────────────────────────────────────────────

    async def run_with_client(self, action: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run action(client) if connected. Raises NotConnectedError otherwise,
        including when the connection drops during the call.
        """
        client = self._client
        if self._state != ConnectionState.CONNECTED or client is None:
            raise NotConnectedError(self._state)
        try:
            return await action(client)
        except OBSConnectionError as e:
            if client is self._client:
                self.connection_lost(str(e))
            raise NotConnectedError(self._state) from e

    async def query_options(self, category: OptionCategory) -> list[SelectOption]:
        return await self.run_with_client(lambda client: client.get_options(category))

    async def refresh_options(self, category: OptionCategory) -> None:
        """Re-query one option list and broadcast it to every panel."""
        try:
            options = await self.query_options(category)
        except NotConnectedError:
            return
        except Exception as e:
            log.error(f"Failed to refresh {category.value}: {e}")
            return
        self.broadcaster.publish(Channel.OPTIONS, options_message(category, options))

    def _on_options_changed(self, category: OptionCategory) -> None:
        log.debug(f"OBS reported a {category.value} change")
        self._spawn(self.refresh_options(category))

