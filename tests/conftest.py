"""
Shared fixtures: a scripted fake OBS, plus a manager/plugin/store wired to it.
"""

import asyncio

import pytest

from obs_tiles.core import (
    AuthCredentials,
    Channel,
    ConnectionManager,
    OBSAuthError,
    OBSConnectionError,
    OptionCategory,
    RetryPolicy,
    SelectOption,
)
from obs_tiles.plugin import ObsPlugin
from obs_tiles.properties import PropertyStore

SCENE_MAIN = "6f1f7c5e-3b1a-4a7e-9c55-0d2b7a9e0a01"
SCENE_BRB = "6f1f7c5e-3b1a-4a7e-9c55-0d2b7a9e0a02"


class FakeOBS:
    """
    Scripted OBS. Each connect pops the next outcome from `outcomes`
    ("ok" | "auth" | "unreachable" | "hang"), falling back to `default_outcome`.
    """

    def __init__(self):
        self.outcomes: list[str] = []
        self.default_outcome = "ok"
        self.fail_calls = False
        self.scenes = [
            SelectOption(value=SCENE_MAIN, label="Main"),
            SelectOption(value=SCENE_BRB, label="BRB"),
        ]
        self.profiles = [
            SelectOption(value="Streaming", label="Streaming"),
            SelectOption(value="Recording", label="Recording"),
        ]
        self.clients: list["FakeOBSClient"] = []
        self.calls: list[tuple] = []

    def factory(self, auth: AuthCredentials) -> "FakeOBSClient":
        client = FakeOBSClient(self, auth)
        self.clients.append(client)
        return client

    def next_outcome(self) -> str:
        return self.outcomes.pop(0) if self.outcomes else self.default_outcome

    def drop(self) -> None:
        self.clients[-1].simulate_drop()

    def change_scenes(self, scenes: list[SelectOption]) -> None:
        self.scenes = scenes
        for cb in self.clients[-1].options_listeners:
            cb(OptionCategory.SCENES)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeOBSClient:
    def __init__(self, obs: FakeOBS, auth: AuthCredentials):
        self.obs = obs
        self.auth = auth
        self.connected = False
        self.closed = False
        self.disconnect_listeners = []
        self.options_listeners = []

    async def connect(self) -> None:
        outcome = self.obs.next_outcome()
        if outcome == "hang":
            await asyncio.sleep(3600)
        if outcome == "auth":
            raise OBSAuthError("Authentication failed")
        if outcome == "unreachable":
            raise OBSConnectionError("[Errno 111] Connection refused")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False
        self.closed = True

    def on_disconnect(self, callback) -> None:
        self.disconnect_listeners.append(callback)

    def on_options_changed(self, callback) -> None:
        self.options_listeners.append(callback)

    def simulate_drop(self) -> None:
        self.connected = False
        for cb in self.disconnect_listeners:
            cb()

    async def get_options(self, category: OptionCategory) -> list[SelectOption]:
        self.obs.calls.append(("get_options", category))
        if self.obs.fail_calls:
            raise OBSConnectionError("Lost connection to OBS: socket closed")
        match category:
            case OptionCategory.SCENES:
                return list(self.obs.scenes)
            case OptionCategory.PROFILES:
                return list(self.obs.profiles)

    def __getattr__(self, name: str):
        # Any other client request: record it and succeed
        async def request(*args):
            self.obs.calls.append((name, *args))
            if self.obs.fail_calls:
                raise OBSConnectionError("Lost connection to OBS: socket closed")
            return {"status": "ok"}
        return request


@pytest.fixture
def fake_obs():
    return FakeOBS()


@pytest.fixture
def credentials():
    return AuthCredentials(host="localhost", port=4455, password="x")


@pytest.fixture
def manager(fake_obs):
    return ConnectionManager(
        client_factory=fake_obs.factory,
        connect_timeout=0.05,
        retry_policy=RetryPolicy(initial_delay=0.01, multiplier=2.0, max_delay=0.02, max_attempts=3),
    )


@pytest.fixture
def store():
    return PropertyStore()


@pytest.fixture
def plugin(manager, store):
    return ObsPlugin(manager, store)


@pytest.fixture
def states(manager):
    """Every CLIENT_STATE the manager publishes, in order."""
    seen = []
    manager.subscribe(Channel.CLIENT_STATE, lambda message: seen.append(message.state))
    return seen


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout: float = 1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)
    return _wait
