"""
tests/ — Plugin message handling and tile actions.
"""

import pytest

from conftest import SCENE_BRB

from obs_tiles.core import AuthCredentials, ConnectionState
from obs_tiles.core.messages import ClientState, Profiles, Scenes


def collect(plugin, panel_id="p1"):
    replies = []
    plugin.on_inspector_open(panel_id, replies.append)
    return replies


# ─── Startup ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_startup_without_saved_credentials(plugin, manager):
    state = await plugin.on_properties({})
    assert state == ConnectionState.NOT_CONNECTED
    assert manager.state == ConnectionState.NOT_CONNECTED


@pytest.mark.asyncio
async def test_startup_auto_connects_with_saved_credentials(plugin, store, credentials, fake_obs):
    state = await plugin.on_properties({"auth": credentials.model_dump()})
    assert state == ConnectionState.CONNECTED
    assert fake_obs.clients[0].auth == credentials
    assert store.get_auth() == credentials


@pytest.mark.asyncio
async def test_failed_connect_does_not_save_credentials(plugin, store, fake_obs):
    fake_obs.outcomes = ["auth"]
    await plugin.on_properties()
    await plugin.connect(AuthCredentials(password="wrong"))
    assert store.get_auth() is None


def test_auth_default_falls_back_to_configured(manager, store):
    from obs_tiles.plugin import ObsPlugin

    plugin = ObsPlugin(manager, store, default_auth=AuthCredentials(host="studio", port=4460))
    assert plugin.get_auth_default().address == "studio:4460"
    store.set_auth(AuthCredentials(host="saved"))
    assert plugin.get_auth_default().host == "saved"


# ─── Inspector messages ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_client_state_replies(plugin):
    replies = collect(plugin)
    await plugin.on_properties()
    plugin.on_inspector_message("p1", {"type": "GET_CLIENT_STATE"})
    await plugin.wait_idle()
    assert replies == [ClientState(state=ConnectionState.NOT_CONNECTED)]


@pytest.mark.asyncio
async def test_get_scenes_and_profiles(plugin, credentials):
    replies = collect(plugin)
    await plugin.on_properties({"auth": credentials.model_dump()})
    plugin.on_inspector_message("p1", '{"type": "GET_SCENES"}')
    plugin.on_inspector_message("p1", b'{"type": "GET_PROFILES"}')
    await plugin.wait_idle()

    assert isinstance(replies[0], Scenes)
    assert replies[0].scenes[1].value == SCENE_BRB
    assert isinstance(replies[1], Profiles)
    assert [p.label for p in replies[1].profiles] == ["Streaming", "Recording"]


@pytest.mark.asyncio
async def test_get_scenes_while_disconnected_replies_with_state(plugin, fake_obs):
    replies = collect(plugin)
    await plugin.on_properties()
    plugin.on_inspector_message("p1", {"type": "GET_SCENES"})
    await plugin.wait_idle()
    assert replies == [ClientState(state=ConnectionState.NOT_CONNECTED)]
    assert fake_obs.count("get_options") == 0


@pytest.mark.asyncio
async def test_connect_message(plugin, manager, credentials):
    await plugin.on_properties()
    plugin.on_inspector_message("p1", {"type": "CONNECT", "auth": credentials.model_dump()})
    await plugin.wait_idle()
    assert manager.is_connected()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        {"type": "GET_SOURCES"},
        {"type": "CONNECT", "auth": {"port": "many"}},
        "{broken",
        {},
    ],
)
async def test_invalid_message_is_dropped(plugin, manager, raw):
    replies = collect(plugin)
    plugin.on_inspector_message("p1", raw)
    await plugin.wait_idle()
    assert replies == []
    assert manager.state == ConnectionState.INITIAL


@pytest.mark.asyncio
async def test_reply_for_closed_inspector_is_dropped(plugin, credentials):
    replies = collect(plugin)
    await plugin.on_properties({"auth": credentials.model_dump()})
    plugin.on_inspector_message("p1", {"type": "GET_SCENES"})
    plugin.on_inspector_close("p1")
    await plugin.wait_idle()
    assert replies == []


def test_close_only_removes_own_receiver(plugin):
    old, new = [], []
    plugin.on_inspector_open("p1", old.append)
    plugin.on_inspector_open("p1", new.append)
    plugin.on_inspector_close("p1", old.append)
    assert plugin.inspector_count() == 1


# ─── Tile actions ─────────────────────────────────────────────────────────────

from obs_tiles.actions import ACTION_BINDINGS, TileAction, get_binding, parse_action
from obs_tiles.actions.tile_actions import RecordingAction, SwitchSceneProperties


def test_parse_action():
    action, props = parse_action("switch_scene", {"scene": SCENE_BRB})
    assert action == TileAction.SWITCH_SCENE
    assert props == SwitchSceneProperties(scene=SCENE_BRB)
    assert parse_action("recording", {})[1].action is None
    assert parse_action("launch_rocket", {}) is None


def test_bindings_cover_every_action():
    assert set(ACTION_BINDINGS) == set(TileAction)
    assert get_binding("switch_profile").key == "profile"
    assert get_binding("recording").static_options[3].value == RecordingAction.PAUSE_RESUME.value
    assert get_binding("nope") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "action_id, properties, call",
    [
        ("recording", {"action": "StartStop"}, ("toggle_recording",)),
        ("recording", {"action": "Pause"}, ("pause_recording",)),
        ("recording", {"action": "Resume"}, ("resume_recording",)),
        ("streaming", {"action": "Start"}, ("start_stream",)),
        ("virtual_camera", {"action": "Stop"}, ("stop_virtual_cam",)),
        ("switch_scene", {"scene": SCENE_BRB}, ("switch_scene", SCENE_BRB)),
        ("switch_profile", {"profile": "Streaming"}, ("set_profile", "Streaming")),
    ],
)
async def test_tile_click_executes(plugin, credentials, fake_obs, action_id, properties, call):
    await plugin.on_properties({"auth": credentials.model_dump()})
    result = await plugin.on_tile_clicked("p1", action_id, properties)
    assert result == {"action": action_id, "status": "ok"}
    assert fake_obs.calls[-1] == call


@pytest.mark.asyncio
async def test_tile_click_uses_stored_properties(plugin, store, credentials, fake_obs):
    store.set_property("p1", "action", "PauseResume")
    await plugin.on_properties({"auth": credentials.model_dump()})
    await plugin.on_tile_clicked("p1", "recording")
    assert fake_obs.calls[-1] == ("toggle_recording_pause",)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "action_id, properties, status",
    [
        ("switch_scene", {}, "not_configured"),
        ("switch_scene", {"scene": ""}, "not_configured"),
        ("switch_scene", {"scene": "Main"}, "not_configured"),
        ("switch_profile", {"profile": ""}, "not_configured"),
        ("recording", {"action": "Rewind"}, "invalid_properties"),
        ("launch_rocket", {}, "unknown_action"),
    ],
)
async def test_tile_click_rejected(plugin, credentials, fake_obs, action_id, properties, status):
    await plugin.on_properties({"auth": credentials.model_dump()})
    result = await plugin.on_tile_clicked("p1", action_id, properties)
    assert result["status"] == status
    assert fake_obs.calls == []


@pytest.mark.asyncio
async def test_tile_click_while_disconnected(plugin, fake_obs):
    await plugin.on_properties()
    result = await plugin.on_tile_clicked("p1", "streaming", {"action": "StartStop"})
    assert result == {"action": "streaming", "status": "not_connected"}
    assert fake_obs.calls == []


@pytest.mark.asyncio
async def test_tile_click_during_drop(plugin, manager, credentials, fake_obs):
    await plugin.on_properties({"auth": credentials.model_dump()})
    fake_obs.fail_calls = True
    result = await plugin.on_tile_clicked("p1", "recording", {"action": "Start"})
    assert result["status"] == "not_connected"
    assert manager.state in (ConnectionState.CONNECTION_LOST, ConnectionState.RETRY_CONNECTING)
    await plugin.shutdown()
