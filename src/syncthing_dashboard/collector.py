"""Per-instance collection: one Syncthing daemon in, one Node record out.

Only the two baseline calls (system status and connections) can fail a
node.  Every other sub-fetch degrades to a default at the narrowest scope
that has one, and never aborts a sibling fetch.
"""

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from syncthing_dashboard.client import SyncthingClient
from syncthing_dashboard.errors import DaemonError
from syncthing_dashboard.metrics import (
    completion_pcts,
    device_names,
    fastest_peer,
    finished_items_by_folder,
    folders_by_peer,
    local_node_name,
    out_of_sync_total,
    parse_time,
    paused_folder_labels,
    resolve_device_name,
    seconds_since,
    synced_items,
    throughput,
)
from syncthing_dashboard.models import (
    ChangedFile,
    Completion,
    Connections,
    DaemonConfig,
    DbStatus,
    Device,
    DeviceStat,
    DeviceStatsInfo,
    ErrorEntry,
    Event,
    Folder,
    FolderConfig,
    FolderStat,
    FolderStatsInfo,
    ItemFinishedInfo,
    Node,
    NodeStats,
    PeerCompletion,
    PeerItems,
    Shares,
    SyncState,
    SystemErrorEntry,
    SystemStatus,
)
from syncthing_dashboard.registry import Settings

logger = logging.getLogger(__name__)

MAX_RECENT_ERRORS = 5

T = TypeVar("T")


def _obj(raw: Any) -> dict:
    return raw if isinstance(raw, dict) else {}


def _describe(exc: BaseException) -> str:
    if isinstance(exc, DaemonError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


async def _optional(client: SyncthingClient, what: str, call: Awaitable[T]) -> T | None:
    """Await an optional sub-fetch; a daemon failure yields ``None``."""
    try:
        return await call
    except DaemonError as exc:
        logger.warning("[%s] %s unavailable: %s", client.name, what, exc)
        return None


# ---------------------------------------------------------------------------
#  Optional node-level fetches
# ---------------------------------------------------------------------------


async def fetch_device_stats(client: SyncthingClient) -> dict[str, DeviceStat]:
    raw = await _optional(client, "device stats", client.get("/rest/stats/device"))
    return {
        device_id: DeviceStat.model_validate(stat)
        for device_id, stat in _obj(raw).items()
        if isinstance(stat, dict)
    }


async def fetch_config(client: SyncthingClient) -> DaemonConfig | None:
    """Full config, else the folder and device endpoints stitched together."""
    try:
        return DaemonConfig.model_validate(_obj(await client.get("/rest/config")))
    except DaemonError as exc:
        logger.info("[%s] /rest/config failed (%s); trying folder/device endpoints", client.name, exc)

    folders, devices = await asyncio.gather(
        client.get("/rest/config/folders"),
        client.get("/rest/config/devices"),
        return_exceptions=True,
    )
    for part in (folders, devices):
        if isinstance(part, BaseException) and not isinstance(part, DaemonError):
            raise part
    if isinstance(folders, DaemonError) and isinstance(devices, DaemonError):
        logger.warning("[%s] config unavailable: %s", client.name, folders)
        return None
    return DaemonConfig.model_validate({
        "folders": [] if isinstance(folders, DaemonError) else folders,
        "devices": [] if isinstance(devices, DaemonError) else devices,
    })


async def fetch_recent_errors(client: SyncthingClient) -> list[ErrorEntry]:
    """The five most recent system errors, newest first."""
    raw = await _optional(client, "system errors", client.get("/rest/system/error"))
    items = raw.get("errors") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []
    entries = []
    for item in items:
        if isinstance(item, dict):
            err = SystemErrorEntry.model_validate(item)
            entries.append(ErrorEntry(when=err.when, message=err.message or str(item)))
        else:
            entries.append(ErrorEntry(message=str(item)))
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    entries.sort(key=lambda e: parse_time(e.when) or epoch, reverse=True)
    return entries[:MAX_RECENT_ERRORS]


async def fetch_events(client: SyncthingClient, settings: Settings) -> list[Event] | None:
    """Recent ``ItemFinished`` events under a short wait; ``None`` when unavailable."""
    raw = await _optional(
        client,
        "events",
        client.get(
            "/rest/events",
            params={
                "events": "ItemFinished",
                "limit": str(settings.events_limit),
                "timeout": "0",
            },
            wait=settings.events_wait_s,
        ),
    )
    if not isinstance(raw, list):
        return None
    return [Event.model_validate(ev) for ev in raw if isinstance(ev, dict)]


# ---------------------------------------------------------------------------
#  Per-folder collection
# ---------------------------------------------------------------------------


def _peer_items(comp: Completion | None) -> PeerItems:
    if comp is None:
        return PeerItems()
    pct, derived = completion_pcts(comp.completion, comp.global_items, comp.need_items)
    return PeerItems(
        global_items=comp.global_items,
        need_items=comp.need_items,
        synced_items=synced_items(comp.global_items, comp.need_items),
        completion_pct=pct,
        derived_pct=derived,
    )


async def fetch_completion(
    client: SyncthingClient, folder_id: str, device_id: str
) -> Completion | None:
    raw = await _optional(
        client,
        f"completion of {folder_id} on {device_id[:7]}",
        client.get("/rest/db/completion", params={"folder": folder_id, "device": device_id}),
    )
    return None if raw is None else Completion.model_validate(_obj(raw))


async def fetch_folder_stat(client: SyncthingClient, folder_id: str) -> FolderStat | None:
    raw = await _optional(
        client,
        f"folder stats for {folder_id}",
        client.get("/rest/stats/folder", params={"folder": folder_id}),
    )
    if raw is None:
        return None
    data = _obj(raw)
    entry = data.get(folder_id)
    if isinstance(entry, dict):
        return FolderStat.model_validate(entry)
    if "lastFile" in data or "lastScan" in data:
        return FolderStat.model_validate(data)
    return None


async def fetch_db_status(client: SyncthingClient, folder_id: str) -> DbStatus | None:
    raw = await _optional(
        client,
        f"status of folder {folder_id}",
        client.get("/rest/db/status", params={"folder": folder_id}),
    )
    return None if raw is None else DbStatus.model_validate(_obj(raw))


def _latest_change(
    finished: list[Event], db: DbStatus | None
) -> tuple[ChangedFile | None, ItemFinishedInfo | None]:
    if finished:
        latest = finished[0]
        action = str(latest.data.get("action") or "unknown")
        item = str(latest.data.get("item") or "unknown")
        return (
            ChangedFile(file=item, time=latest.time, action=action),
            ItemFinishedInfo(
                time=latest.time,
                action=action,
                item=item,
                folder=str(latest.data.get("folder")),
                total_events=len(finished),
            ),
        )
    if db is not None and db.state_changed:
        return ChangedFile(file="State changed", time=db.state_changed, action="state change"), None
    return None, None


async def collect_folder(
    client: SyncthingClient,
    cfg: FolderConfig,
    *,
    my_id: str | None,
    names: Mapping[str, str],
    online_ids: set[str],
    finished: list[Event],
) -> Folder:
    """Status, local completion, stats, and per-peer completion for one folder.

    Each failed sub-fetch leaves only its own fields unknown.  Every
    configured member (self included) gets a peer entry; a failed peer
    query yields null counts.
    """
    folder_id = cfg.id
    members = cfg.member_ids()
    remote_ids = [d for d in members if d != my_id]

    local_call = (
        fetch_completion(client, folder_id, my_id) if my_id else asyncio.sleep(0, result=None)
    )
    db, local, stat, *remote = await asyncio.gather(
        fetch_db_status(client, folder_id),
        local_call,
        fetch_folder_stat(client, folder_id),
        *(fetch_completion(client, folder_id, d) for d in remote_ids),
    )

    peers = [
        PeerCompletion(
            id=device_id,
            name=resolve_device_name(device_id, names, my_id),
            online=device_id in online_ids,
            items=_peer_items(comp),
        )
        for device_id, comp in zip(remote_ids, remote)
    ]
    if my_id and my_id in members:
        peers.append(PeerCompletion(
            id=my_id,
            name=resolve_device_name(my_id, names, my_id),
            online=True,
            items=_peer_items(local),
        ))
    peers.sort(key=lambda p: p.name.lower())

    folder_stats = None
    if stat is not None and stat.last_file and stat.last_file.filename and stat.last_file.at:
        folder_stats = FolderStatsInfo(
            filename=stat.last_file.filename,
            at=stat.last_file.at,
            deleted=stat.last_file.deleted,
            last_scan=stat.last_scan,
        )

    latest_file, finished_info = _latest_change(finished, db)
    local_pct = None
    if local is not None:
        local_pct = completion_pcts(local.completion, local.global_items, local.need_items)[0]

    return Folder(
        id=folder_id,
        label=cfg.display_label,
        description=cfg.description,
        state=SyncState.parse(db.state) if db else SyncState.UNKNOWN,
        raw_state=db.state if db else None,
        need_bytes=db.need_bytes if db else None,
        need_items=db.need_items if db else None,
        completion_pct=local_pct,
        peers=peers,
        paused=db.paused if db is not None and db.paused is not None else cfg.paused,
        latest_changed_file=latest_file,
        item_finished_info=finished_info,
        state_changed=db.state_changed if db else None,
        folder_stats=folder_stats,
    )


# ---------------------------------------------------------------------------
#  Node assembly
# ---------------------------------------------------------------------------


def build_devices(
    conns: Connections,
    stats: Mapping[str, DeviceStat],
    names: Mapping[str, str],
    my_id: str | None,
    now: datetime,
) -> list[Device]:
    devices = []
    for device_id, conn in conns.connections.items():
        stat = stats.get(device_id)
        info = None
        if stat is not None and stat.last_seen:
            info = DeviceStatsInfo(
                last_seen=stat.last_seen,
                last_connection_duration_s=stat.last_connection_duration_s,
                last_connection_started_at=stat.last_connection_started_at,
            )
        devices.append(Device(
            device_id=device_id,
            name=resolve_device_name(device_id, names, my_id),
            online=conn.connected,
            in_bps=conn.in_bps,
            out_bps=conn.out_bps,
            address=conn.address,
            paused=conn.paused,
            uptime=seconds_since(conn.connected_at, now) if conn.connected else None,
            device_stats=info,
        ))
    return devices


async def collect_node(
    client: SyncthingClient, settings: Settings, *, now: datetime | None = None
) -> Node:
    """Build the Node for one instance.  Never raises; failures land in the Node."""
    try:
        return await _collect_node(client, settings, now or datetime.now(timezone.utc))
    except Exception as exc:
        logger.exception("[%s] collection failed", client.name)
        return Node.failed(
            client.instance.name, client.instance.url, client.handle_error(exc, prefixed=False)
        )


async def _collect_node(client: SyncthingClient, settings: Settings, now: datetime) -> Node:
    instance = client.instance

    status_raw, conns_raw = await asyncio.gather(
        client.get("/rest/system/status"),
        client.get("/rest/system/connections"),
        return_exceptions=True,
    )
    for result in (status_raw, conns_raw):
        if isinstance(result, Exception):
            logger.warning("[%s] unreachable: %s", client.name, _describe(result))
            return Node.failed(
                instance.name, instance.url, client.handle_error(result, prefixed=False)
            )
        if isinstance(result, BaseException):
            raise result
    status = SystemStatus.model_validate(_obj(status_raw))
    conns = Connections.model_validate(_obj(conns_raw))

    device_stats, config, errors, events = await asyncio.gather(
        fetch_device_stats(client),
        fetch_config(client),
        fetch_recent_errors(client),
        fetch_events(client, settings),
    )

    my_id = status.my_id
    names = device_names(config)
    online_ids = {d for d, c in conns.connections.items() if c.connected}

    peer_id, peer_bps = fastest_peer(conns.connections)
    sent = conns.total.out_bytes_total
    received = conns.total.in_bytes_total
    node = Node(
        name=local_node_name(names, my_id, status.my_name) or instance.name,
        instance=instance.name,
        base_url=instance.url,
        ok=True,
        stats=NodeStats(
            uptime_seconds=status.uptime,
            bytes_sent=sent,
            bytes_received=received,
            avg_send_bps=throughput(sent, status.uptime),
            avg_recv_bps=throughput(received, status.uptime),
            fastest_peer_device_id=peer_id,
            fastest_peer_total_bps=peer_bps,
        ),
        devices=build_devices(conns, device_stats, names, my_id, now),
        errors=errors,
        shares=Shares(),
        folders=[],
        paused_folders=[],
        per_device_folders={},
        out_of_sync_items=0,
    )
    if config is None:
        return node

    finished = finished_items_by_folder(events or [], now, settings.events_window_s)
    queryable = [f for f in config.folders if f.id]
    folders = await asyncio.gather(*(
        collect_folder(
            client,
            cfg,
            my_id=my_id,
            names=names,
            online_ids=online_ids,
            finished=finished.get(cfg.id, []),
        )
        for cfg in queryable
    ))

    per_peer = folders_by_peer(config.folders, names, my_id)
    node.shares = Shares(count=len(config.folders), peers=sorted(per_peer))
    node.folders = list(folders)
    node.paused_folders = paused_folder_labels(config.folders)
    node.per_device_folders = per_peer
    node.out_of_sync_items = out_of_sync_total(folders)
    return node
