"""
tests/ — Property store, panel handles and panel controllers.
"""

from unittest.mock import MagicMock

import pytest

from conftest import SCENE_BRB, SCENE_MAIN


# ─── Property store ───────────────────────────────────────────────────────────

from obs_tiles.core import AuthCredentials
from obs_tiles.properties import PropertyStore, YamlPropertyFile


def test_unknown_panel_has_empty_record(store):
    assert store.get_properties("nope") == {}


def test_set_property_is_idempotent():
    backend = MagicMock()
    store = PropertyStore(backend)
    assert store.set_property("p1", "scene", SCENE_MAIN) is True
    assert store.set_property("p1", "scene", SCENE_MAIN) is False
    backend.save.assert_called_once()
    assert store.get_properties("p1") == {"scene": SCENE_MAIN}


def test_get_properties_returns_a_copy(store):
    store.set_property("p1", "scene", SCENE_MAIN)
    store.get_properties("p1")["scene"] = "mutated"
    assert store.get_properties("p1")["scene"] == SCENE_MAIN


def test_yaml_file_persists_panels_and_auth(tmp_path):
    path = tmp_path / "properties.yaml"
    store = PropertyStore.load(YamlPropertyFile(path))
    store.set_property("p1", "profile", "Streaming")
    store.set_auth(AuthCredentials(host="obs.local", port=4456, password="pw"))

    reloaded = PropertyStore.load(YamlPropertyFile(path))
    assert reloaded.get_properties("p1") == {"profile": "Streaming"}
    assert reloaded.get_auth() == AuthCredentials(host="obs.local", port=4456, password="pw")
    assert reloaded.panel_ids() == ["p1"]


def test_missing_or_broken_file_loads_empty(tmp_path):
    assert PropertyStore.load(YamlPropertyFile(tmp_path / "missing.yaml")).panel_ids() == []
    broken = tmp_path / "broken.yaml"
    broken.write_text("panels: [unclosed\n")
    assert PropertyStore.load(YamlPropertyFile(broken)).get_auth() is None


def test_invalid_stored_auth_is_ignored(store):
    store.set_plugin_property("auth", {"host": "x", "port": 0})
    assert store.get_auth() is None


# ─── Panel handle ─────────────────────────────────────────────────────────────

from obs_tiles.panels import PanelHandle, TileLabel


def test_handle_label_callback(store):
    labels = []
    handle = PanelHandle("p1", store, on_label=lambda panel_id, info: labels.append((panel_id, info.label)))
    handle.set_label(TileLabel(label="BRB"))
    assert handle.label.label == "BRB"
    assert labels == [("p1", "BRB")]


# ─── Panel controller ─────────────────────────────────────────────────────────

from obs_tiles.core import ConnectionState, SelectOption
from obs_tiles.panels import NONE_SELECTED, PanelController, PanelView


def make_panel(plugin, store, action_id="switch_scene", panel_id="p1"):
    handle = PanelHandle(panel_id, store)
    return PanelController(handle, action_id, plugin), handle


def test_unknown_action_rejected(plugin, store):
    with pytest.raises(ValueError):
        make_panel(plugin, store, action_id="launch_rocket")


@pytest.mark.asyncio
async def test_mount_while_connected_requests_options_once(plugin, store, manager, credentials, fake_obs):
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)

    panel.mount()
    assert panel.render.view == PanelView.LOADING
    await plugin.wait_idle()

    assert panel.render.view == PanelView.CONTROL
    assert panel.render.state == ConnectionState.CONNECTED
    assert [o.label for o in panel.render.options] == ["Main", "BRB"]
    assert fake_obs.count("get_options") == 1


@pytest.mark.asyncio
async def test_setup_view_prefills_saved_credentials(plugin, store, manager, credentials):
    store.set_auth(credentials)
    await manager.start(None)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()
    assert panel.render.view == PanelView.SETUP
    assert panel.render.state == ConnectionState.NOT_CONNECTED
    assert panel.render.auth == credentials


@pytest.mark.asyncio
async def test_connect_from_setup_view_loads_scenes(plugin, store, manager, credentials, fake_obs):
    await manager.start(None)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()
    assert panel.render.view == PanelView.SETUP
    assert fake_obs.count("get_options") == 0

    panel.connect(credentials)
    await plugin.wait_idle()

    assert panel.render.view == PanelView.CONTROL
    assert [o.value for o in panel.render.options] == [SCENE_MAIN, SCENE_BRB]
    assert fake_obs.count("get_options") == 1
    assert store.get_auth() == credentials


@pytest.mark.asyncio
async def test_retry_after_failed_connect(plugin, store, manager, credentials, fake_obs):
    fake_obs.outcomes = ["unreachable"]
    await manager.start(None)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    panel.connect(credentials)
    await plugin.wait_idle()
    assert panel.render.state == ConnectionState.CONNECT_ERROR
    assert panel.render.view == PanelView.SETUP

    panel.retry()
    await plugin.wait_idle()
    assert panel.render.view == PanelView.CONTROL


@pytest.mark.asyncio
async def test_stored_selection_kept_when_offered(plugin, store, manager, credentials):
    store.set_property("p1", "scene", SCENE_BRB)
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()
    assert panel.render.selected == SCENE_BRB


@pytest.mark.asyncio
async def test_stale_selection_falls_back_to_none(plugin, store, manager, credentials):
    store.set_property("p1", "scene", "0b7e1c8e-0000-4000-8000-000000000000")
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()

    assert panel.render.selected == NONE_SELECTED
    # Showing "none" does not rewrite what was stored
    assert store.get_properties("p1")["scene"] == "0b7e1c8e-0000-4000-8000-000000000000"


@pytest.mark.asyncio
async def test_scene_removed_in_obs(plugin, store, manager, credentials, fake_obs, wait_until):
    store.set_property("p1", "scene", SCENE_BRB)
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()
    assert panel.render.selected == SCENE_BRB

    fake_obs.change_scenes([SelectOption(value=SCENE_MAIN, label="Main")])
    await wait_until(lambda: panel.render.selected == NONE_SELECTED)
    assert [o.label for o in panel.render.options] == ["Main"]


@pytest.mark.asyncio
async def test_select_stores_value_and_relabels_tile(plugin, store, manager, credentials):
    await manager.start(credentials)
    panel, handle = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()

    panel.select(SCENE_BRB)
    assert store.get_properties("p1") == {"scene": SCENE_BRB}
    assert handle.label.label == "BRB"
    assert panel.render.selected == SCENE_BRB

    panel.select(NONE_SELECTED)
    assert handle.label.label is None

    with pytest.raises(ValueError):
        panel.select("not-an-option")


@pytest.mark.asyncio
async def test_static_options_need_no_obs(plugin, store, manager, fake_obs):
    store.set_property("rec", "action", "PauseResume")
    await manager.start(None)
    panel, handle = make_panel(plugin, store, action_id="recording", panel_id="rec")

    panel.mount()
    assert [o.value for o in panel.render.options] == [
        "StartStop", "Start", "Stop", "PauseResume", "Pause", "Resume",
    ]
    assert panel.render.selected == "PauseResume"

    panel.select("Stop")
    assert store.get_properties("rec")["action"] == "Stop"
    assert handle.label is None
    await plugin.wait_idle()
    assert fake_obs.count("get_options") == 0


@pytest.mark.asyncio
async def test_profile_panel_ignores_scene_updates(plugin, store, manager, credentials, fake_obs, wait_until):
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store, action_id="switch_profile")
    panel.mount()
    await plugin.wait_idle()
    assert [o.value for o in panel.render.options] == ["Streaming", "Recording"]

    renders = panel.render_count
    fake_obs.change_scenes([])
    await wait_until(lambda: fake_obs.count("get_options") == 2)
    await plugin.wait_idle()
    assert panel.render_count == renders


@pytest.mark.asyncio
async def test_unmount_discards_late_replies(plugin, store, manager, credentials, fake_obs):
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    renders = panel.render_count
    panel.unmount()

    await plugin.wait_idle()
    fake_obs.drop()

    assert panel.render_count == renders
    assert panel.render.view == PanelView.LOADING
    assert plugin.inspector_count() == 0
    await manager.disconnect()


@pytest.mark.asyncio
async def test_remount_requests_once(plugin, store, manager, credentials, fake_obs):
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    panel.unmount()
    panel.mount()
    await plugin.wait_idle()

    assert panel.render.view == PanelView.CONTROL
    assert fake_obs.count("get_options") == 1
    assert plugin.inspector_count() == 1


@pytest.mark.asyncio
async def test_drop_shows_setup_then_reloads(plugin, store, manager, credentials, fake_obs, wait_until):
    await manager.start(credentials)
    panel, _ = make_panel(plugin, store)
    panel.mount()
    await plugin.wait_idle()

    fake_obs.drop()
    assert panel.render.view == PanelView.SETUP
    assert panel.render.state == ConnectionState.CONNECTION_LOST

    await wait_until(lambda: fake_obs.count("get_options") == 2)
    await plugin.wait_idle()
    assert panel.render.view == PanelView.CONTROL
    assert panel.render.options is not None


@pytest.mark.asyncio
async def test_two_panels_share_one_connection(plugin, store, manager, credentials, fake_obs):
    await manager.start(None)
    scenes, _ = make_panel(plugin, store, panel_id="a")
    profiles, _ = make_panel(plugin, store, action_id="switch_profile", panel_id="b")
    scenes.mount()
    profiles.mount()
    await plugin.wait_idle()

    scenes.connect(credentials)
    await plugin.wait_idle()

    assert len(fake_obs.clients) == 1
    assert scenes.render.view == profiles.render.view == PanelView.CONTROL
    assert fake_obs.count("get_options") == 2
