"""Shared fixtures for Syncthing Dashboard tests."""

import json
from datetime import datetime, timezone

import pytest
import respx

from syncthing_dashboard.client import SyncthingClient
from syncthing_dashboard.registry import Instance, Settings


# ---------------------------------------------------------------------------
# Common Syncthing API response fixtures
# ---------------------------------------------------------------------------

DEVICE_ID_LOCAL = "AAAAAAA-AAAAAAA-AAAAAAA-AAAAAAA-AAAAAAA-AAAAAAA-AAAAAAA-AAAAAAA"
DEVICE_ID_REMOTE = "BBBBBBB-BBBBBBB-BBBBBBB-BBBBBBB-BBBBBBB-BBBBBBB-BBBBBBB-BBBBBBB"
DEVICE_ID_REMOTE2 = "CCCCCCC-CCCCCCC-CCCCCCC-CCCCCCC-CCCCCCC-CCCCCCC-CCCCCCC-CCCCCCC"

FOLDER_ID = "test-folder"
API_KEY = "test-api-key-12345"
BASE_URL = "http://localhost:8384"

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_config(
    *,
    folders: list | None = None,
    devices: list | None = None,
) -> dict:
    """Build a minimal Syncthing config response."""
    if devices is None:
        devices = [
            {"deviceID": DEVICE_ID_LOCAL, "name": "local-dev"},
            {"deviceID": DEVICE_ID_REMOTE, "name": "remote-dev"},
        ]
    if folders is None:
        folders = [
            {
                "id": FOLDER_ID,
                "label": "Test Folder",
                "path": "/data/test",
                "type": "sendreceive",
                "paused": False,
                "devices": [
                    {"deviceID": DEVICE_ID_LOCAL},
                    {"deviceID": DEVICE_ID_REMOTE},
                ],
            }
        ]
    return {"folders": folders, "devices": devices}


def make_system_status(my_id: str = DEVICE_ID_LOCAL, uptime: int = 3600) -> dict:
    return {"myID": my_id, "uptime": uptime}


def make_connections(connected: dict | None = None) -> dict:
    if connected is None:
        connected = {
            DEVICE_ID_REMOTE: {
                "connected": True, "paused": False, "address": "192.168.1.2:22000",
                "type": "tcp-client", "crypto": "TLS1.3",
                "connectedAt": "2025-01-01T11:00:00Z",
                "inBytesPerSecond": 100, "outBytesPerSecond": 50,
                "inBytesTotal": 4096, "outBytesTotal": 8192,
            },
            DEVICE_ID_REMOTE2: {
                "connected": False, "paused": True, "address": "",
                "connectedAt": "0001-01-01T00:00:00Z",
                "inBytesTotal": 0, "outBytesTotal": 0,
            },
        }
    return {
        "connections": connected,
        "total": {"inBytesTotal": 36000, "outBytesTotal": 72000},
    }


def make_db_status(*, state: str = "idle", need_items: int = 0, need_bytes: int = 0) -> dict:
    return {
        "state": state,
        "stateChanged": "2025-01-01T00:00:00Z",
        "globalFiles": 100,
        "globalBytes": 1000000,
        "localFiles": 100,
        "localBytes": 1000000,
        "needFiles": need_items,
        "needBytes": need_bytes,
        "inSyncFiles": 100,
    }


def make_completion(pct: float | None = 100.0, *, global_items: int = 100, need_items: int = 0) -> dict:
    data = {
        "globalBytes": 1000000,
        "globalItems": global_items,
        "needBytes": 0,
        "needItems": need_items,
        "needDeletes": 0,
        "remoteState": "valid",
    }
    if pct is not None:
        data["completion"] = pct
    return data


def make_stats_device() -> dict:
    return {
        DEVICE_ID_LOCAL: {"lastSeen": "2025-01-01T12:00:00Z"},
        DEVICE_ID_REMOTE: {"lastSeen": "2025-01-01T12:00:00Z", "lastConnectionDurationS": 42.5},
    }


def make_stats_folder() -> dict:
    return {
        FOLDER_ID: {
            "lastScan": "2025-01-01T12:00:00Z",
            "lastFile": {"filename": "test.txt", "at": "2025-01-01T11:00:00Z", "deleted": False},
        }
    }


def make_events() -> list:
    return [
        {"id": 10, "type": "ItemFinished", "time": "2025-01-01T11:30:00.123456789Z",
         "data": {"folder": FOLDER_ID, "item": "old.txt", "action": "update"}},
        {"id": 12, "type": "ItemFinished", "time": "2025-01-01T11:45:00Z",
         "data": {"folder": FOLDER_ID, "item": "new.txt", "action": "update"}},
        {"id": 11, "type": "ItemStarted", "time": "2025-01-01T11:40:00Z",
         "data": {"folder": FOLDER_ID, "item": "ignored.txt"}},
    ]


def register_daemon(router: respx.MockRouter, base: str = "") -> respx.MockRouter:
    """Register healthy responses for every endpoint the collector calls."""
    router.get(f"{base}/rest/system/status").respond(json=make_system_status())
    router.get(f"{base}/rest/system/connections").respond(json=make_connections())
    router.get(f"{base}/rest/stats/device").respond(json=make_stats_device())
    router.get(f"{base}/rest/config").respond(json=make_config())
    router.get(f"{base}/rest/system/error").respond(json={"errors": []})
    router.get(f"{base}/rest/events").respond(json=make_events())
    router.get(f"{base}/rest/db/status").respond(json=make_db_status())
    router.get(f"{base}/rest/db/completion").respond(json=make_completion())
    router.get(f"{base}/rest/stats/folder").respond(json=make_stats_folder())
    return router


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def instance():
    return Instance(name="test", url=BASE_URL, api_key=API_KEY)


@pytest.fixture
def client(instance):
    """A standalone SyncthingClient for testing."""
    return SyncthingClient(instance)


@pytest.fixture
def settings():
    return Settings(timeout_s=5.0, events_wait_s=1.0)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Isolate every test from the developer's instance configuration."""
    for var in (
        "SYNCTHING_INSTANCES",
        "SYNCTHING_INSTANCES_FILE",
        "SYNCTHING_API_KEY",
        "SYNCTHING_URL",
        "SYNC_TIMEOUT_MS",
        "SYNC_EVENTS_WAIT_MS",
        "SYNC_EVENTS_WINDOW_S",
        "SYNC_EVENTS_LIMIT",
        "SYNC_PARTIAL_RESULTS",
        "SYNC_MAX_CONCURRENCY",
        "DASHBOARD_STATIC_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def single_instance_env(monkeypatch):
    """Set env vars for single-instance mode."""
    monkeypatch.setenv("SYNCTHING_API_KEY", API_KEY)
    monkeypatch.setenv("SYNCTHING_URL", BASE_URL)


@pytest.fixture
def multi_instance_env(monkeypatch):
    """Set env vars for multi-instance mode."""
    instances = {
        "alpha": {"url": "http://alpha.local:8384", "api_key": "key-alpha"},
        "beta": {"url": "http://beta.local:8384", "api_key": "key-beta"},
    }
    monkeypatch.setenv("SYNCTHING_INSTANCES", json.dumps(instances))


@pytest.fixture
def mock_api():
    """Activate respx mock for the default Syncthing base URL.

    Pre-configures every endpoint the collector calls so tests only override
    what they exercise.  Returns the respx mock router.
    """
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        register_daemon(router)
        yield router
