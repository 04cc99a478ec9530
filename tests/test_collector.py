"""Tests for per-instance collection against a mocked daemon."""

import asyncio

import httpx

from syncthing_dashboard.client import Deadline, SyncthingClient
from syncthing_dashboard.collector import MAX_RECENT_ERRORS, collect_node, fetch_config
from syncthing_dashboard.models import SyncState
from syncthing_dashboard.registry import Settings

from tests.conftest import (
    DEVICE_ID_LOCAL,
    DEVICE_ID_REMOTE,
    DEVICE_ID_REMOTE2,
    FOLDER_ID,
    NOW,
    make_completion,
    make_config,
)


class TestHappyPath:
    async def test_node_summary(self, mock_api, client, settings):
        node = await collect_node(client, settings, now=NOW)
        assert node.ok
        assert node.error is None
        assert node.name == "local-dev"
        assert node.instance == "test"
        assert node.stats.bytes_sent == 72000
        assert node.stats.bytes_received == 36000
        assert node.stats.avg_send_bps == 20.0
        assert node.stats.avg_recv_bps == 10.0
        assert node.stats.fastest_peer_device_id == DEVICE_ID_REMOTE
        assert node.stats.fastest_peer_total_bps == 150
        assert node.shares.count == 1
        assert node.shares.peers == ["remote-dev"]
        assert node.per_device_folders == {"remote-dev": ["Test Folder"]}
        assert node.paused_folders == []
        assert node.out_of_sync_items == 0
        assert node.errors == []

    async def test_devices(self, mock_api, client, settings):
        node = await collect_node(client, settings, now=NOW)
        by_id = {d.device_id: d for d in node.devices}
        remote = by_id[DEVICE_ID_REMOTE]
        assert remote.name == "remote-dev"
        assert remote.online
        assert remote.uptime == 3600
        assert remote.device_stats.last_connection_duration_s == 42.5
        offline = by_id[DEVICE_ID_REMOTE2]
        assert offline.name == DEVICE_ID_REMOTE2
        assert not offline.online
        assert offline.paused
        assert offline.uptime is None
        assert offline.address is None

    async def test_folder(self, mock_api, client, settings):
        node = await collect_node(client, settings, now=NOW)
        (folder,) = node.folders
        assert folder.id == FOLDER_ID
        assert folder.label == "Test Folder"
        assert folder.state is SyncState.IDLE
        assert folder.completion_pct == 100.0
        assert [p.name for p in folder.peers] == ["local-dev", "remote-dev"]
        assert all(p.online for p in folder.peers)
        assert folder.peers[1].items.synced_items == 100
        assert folder.folder_stats.filename == "test.txt"
        assert folder.latest_changed_file.file == "new.txt"
        assert folder.item_finished_info.total_events == 2

    async def test_events_query(self, mock_api, client, settings):
        await collect_node(client, settings, now=NOW)
        (call,) = [c for c in mock_api.calls if c.request.url.path == "/rest/events"]
        params = call.request.url.params
        assert params["events"] == "ItemFinished"
        assert params["timeout"] == "0"
        assert params["limit"] == str(settings.events_limit)

    async def test_json_uses_camel_case(self, mock_api, client, settings):
        data = (await collect_node(client, settings, now=NOW)).model_dump(by_alias=True)
        assert "perDeviceFolders" in data
        assert "outOfSyncItems" in data
        assert "fastestPeerTotalBps" in data["stats"]


class TestBaselineFailure:
    async def test_status_failure_fails_node(self, mock_api, client, settings):
        mock_api.get("/rest/system/status").respond(status_code=500)
        node = await collect_node(client, settings, now=NOW)
        assert not node.ok
        assert "500" in node.error
        assert node.folders is None
        assert node.devices is None
        assert node.name == "test"

    async def test_unreachable(self, mock_api, client, settings):
        mock_api.get("/rest/system/connections").mock(side_effect=httpx.ConnectError("refused"))
        node = await collect_node(client, settings, now=NOW)
        assert not node.ok
        assert "ConnectError" in node.error
        assert "Cannot connect to Syncthing at http://localhost:8384" in node.error
        assert not node.error.startswith("[")


class TestOptionalFailures:
    async def test_optional_endpoints_degrade(self, mock_api, client, settings):
        mock_api.get("/rest/stats/device").respond(status_code=500)
        mock_api.get("/rest/system/error").respond(status_code=500)
        mock_api.get("/rest/events").respond(status_code=500)
        mock_api.get("/rest/stats/folder").respond(status_code=500)
        node = await collect_node(client, settings, now=NOW)
        assert node.ok
        assert node.errors == []
        assert all(d.device_stats is None for d in node.devices)
        (folder,) = node.folders
        assert folder.folder_stats is None
        assert folder.item_finished_info is None
        assert folder.latest_changed_file.file == "State changed"
        assert folder.latest_changed_file.time == "2025-01-01T00:00:00Z"

    async def test_db_status_failure_leaves_folder_unknown(self, mock_api, client, settings):
        mock_api.get("/rest/db/status").respond(status_code=500)
        node = await collect_node(client, settings, now=NOW)
        (folder,) = node.folders
        assert folder.state is SyncState.UNKNOWN
        assert folder.need_items is None
        assert folder.completion_pct == 100.0
        assert node.out_of_sync_items == 0

    async def test_config_and_fallbacks_fail(self, mock_api, client, settings):
        mock_api.get("/rest/config").respond(status_code=500)
        mock_api.get("/rest/config/folders").respond(status_code=500)
        mock_api.get("/rest/config/devices").respond(status_code=500)
        node = await collect_node(client, settings, now=NOW)
        assert node.ok
        assert node.shares.count == 0
        assert node.shares.peers == []
        assert node.folders == []
        assert node.paused_folders == []
        assert node.per_device_folders == {}
        assert node.out_of_sync_items == 0

    async def test_config_fallback_endpoints(self, mock_api, client, settings):
        cfg = make_config()
        mock_api.get("/rest/config").respond(status_code=404)
        mock_api.get("/rest/config/folders").respond(json=cfg["folders"])
        mock_api.get("/rest/config/devices").respond(json=cfg["devices"])
        node = await collect_node(client, settings, now=NOW)
        assert node.shares.count == 1
        assert [f.id for f in node.folders] == [FOLDER_ID]

    async def test_config_partial_fallback(self, mock_api, client):
        cfg = make_config()
        mock_api.get("/rest/config").respond(status_code=404)
        mock_api.get("/rest/config/folders").respond(json=cfg["folders"])
        mock_api.get("/rest/config/devices").respond(status_code=500)
        config = await fetch_config(client)
        assert [f.id for f in config.folders] == [FOLDER_ID]
        assert config.devices == []


class TestPeers:
    async def test_failed_peer_keeps_entry(self, mock_api, client, settings):
        folder = {
            "id": FOLDER_ID,
            "label": "Shared",
            "devices": [
                {"deviceID": DEVICE_ID_LOCAL},
                {"deviceID": DEVICE_ID_REMOTE},
                {"deviceID": DEVICE_ID_REMOTE2},
            ],
        }
        mock_api.get("/rest/config").respond(json=make_config(folders=[folder]))

        def completion(request):
            device = request.url.params["device"]
            if device == DEVICE_ID_REMOTE2:
                return httpx.Response(500, text="peer unknown")
            if device == DEVICE_ID_REMOTE:
                return httpx.Response(200, json=make_completion(None, global_items=200, need_items=50))
            return httpx.Response(200, json=make_completion(100.0))

        mock_api.get("/rest/db/completion").mock(side_effect=completion)
        node = await collect_node(client, settings, now=NOW)
        (f,) = node.folders
        assert len(f.peers) == 3
        by_id = {p.id: p for p in f.peers}
        failed = by_id[DEVICE_ID_REMOTE2]
        assert failed.items.global_items is None
        assert failed.items.completion_pct is None
        assert not failed.online
        derived = by_id[DEVICE_ID_REMOTE].items
        assert derived.synced_items == 150
        assert derived.completion_pct == 75.0
        assert derived.derived_pct == 75.0
        assert by_id[DEVICE_ID_LOCAL].online


class TestErrorsAndNames:
    async def test_errors_capped_newest_first(self, mock_api, client, settings):
        errors = [
            {"when": f"2025-01-01T0{i}:00:00Z", "message": f"error {i}"} for i in range(8)
        ]
        mock_api.get("/rest/system/error").respond(json={"errors": errors})
        node = await collect_node(client, settings, now=NOW)
        assert len(node.errors) == MAX_RECENT_ERRORS
        assert node.errors[0].message == "error 7"
        assert node.errors[-1].message == "error 3"

    async def test_folder_without_id_skipped(self, mock_api, client, settings):
        folders = [
            {"label": "orphan", "paused": True},
            {"id": FOLDER_ID, "label": "Kept", "devices": [{"deviceID": DEVICE_ID_LOCAL}]},
        ]
        mock_api.get("/rest/config").respond(json=make_config(folders=folders))
        node = await collect_node(client, settings, now=NOW)
        assert [f.label for f in node.folders] == ["Kept"]
        assert node.shares.count == 2
        assert node.paused_folders == ["orphan"]

    async def test_name_falls_back_to_instance(self, mock_api, client, settings):
        mock_api.get("/rest/config").respond(json=make_config(devices=[]))
        node = await collect_node(client, settings, now=NOW)
        assert node.name == "test"


class TestSharedLimiter:
    async def test_events_not_starved_by_queueing(self, mock_api, instance):
        async def slow(request):
            await asyncio.sleep(0.03)
            return httpx.Response(200, json={})

        mock_api.get("/rest/stats/device").mock(side_effect=slow)
        mock_api.get("/rest/system/error").mock(side_effect=slow)
        client = SyncthingClient(instance, deadline=Deadline(5), limiter=asyncio.Semaphore(1))
        node = await collect_node(client, Settings(events_wait_s=0.05), now=NOW)
        (folder,) = node.folders
        assert folder.latest_changed_file.file == "new.txt"
        assert folder.item_finished_info.total_events == 2
