"""Pure derivations from decoded daemon payloads.

Nothing here reads the clock; functions that need "now" take it as input.
"""

import math
import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from syncthing_dashboard.models import (
    ConnectionInfo,
    DaemonConfig,
    Event,
    Folder,
    FolderConfig,
)

LOCAL_DEVICE_NAME = "Local"

_TIMESTAMP = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


def throughput(total_bytes: float, uptime_s: float) -> float:
    """Average bytes/sec over the daemon's uptime; 0 when uptime is not positive."""
    if not uptime_s or uptime_s <= 0:
        return 0.0
    return total_bytes / uptime_s


def fastest_peer(connections: Mapping[str, ConnectionInfo]) -> tuple[str | None, float]:
    """Connection with the highest inbound+outbound rate.

    Ties keep the first connection in iteration order.  With no connection
    above 0 B/s the result is ``(None, 0.0)``.
    """
    best_id: str | None = None
    best_bps = 0.0
    for device_id, conn in connections.items():
        total = conn.in_bps + conn.out_bps
        if total > best_bps:
            best_id, best_bps = device_id, total
    return best_id, best_bps


def synced_items(global_items: int, need_items: int) -> int:
    return max(0, global_items - need_items)


def completion_pcts(
    reported: float | None, global_items: int, need_items: int
) -> tuple[float, float]:
    """(trusted, derived) completion percentages for one peer.

    The daemon-reported value is trusted when present; otherwise the
    synced/global ratio stands in.  An empty folder is 0% derived.
    """
    synced = synced_items(global_items, need_items)
    derived = (synced / global_items) * 100 if global_items else 0.0
    return (derived if reported is None else reported), derived


def device_names(config: DaemonConfig | None) -> dict[str, str]:
    """Map device ID to configured name (falls back to the ID itself)."""
    if config is None:
        return {}
    return {
        d.device_id: d.name or d.device_id
        for d in config.devices
        if d.device_id
    }


def resolve_device_name(device_id: str, names: Mapping[str, str], my_id: str | None) -> str:
    if device_id in names:
        return names[device_id]
    if my_id and device_id == my_id:
        return LOCAL_DEVICE_NAME
    return device_id


def local_node_name(
    names: Mapping[str, str], my_id: str | None, reported_name: str | None
) -> str | None:
    """The daemon's own identity, preferring its configured device name."""
    return (my_id and names.get(my_id)) or reported_name or None


def paused_folder_labels(folders: Iterable[FolderConfig]) -> list[str]:
    return sorted(f.display_label for f in folders if f.paused and f.display_label)


def folders_by_peer(
    folders: Iterable[FolderConfig], names: Mapping[str, str], my_id: str | None
) -> dict[str, list[str]]:
    """Peer display name to the sorted labels of folders shared with it.

    The local device is excluded.
    """
    shared: dict[str, list[str]] = {}
    for folder in folders:
        for device_id in folder.member_ids():
            if device_id == my_id:
                continue
            name = names.get(device_id, device_id)
            shared.setdefault(name, []).append(folder.display_label)
    return {name: sorted(labels) for name, labels in shared.items()}


def out_of_sync_total(folders: Iterable[Folder]) -> int:
    """Sum of needed items across folders; unknown counts add nothing."""
    total = 0
    for folder in folders:
        n = folder.need_items
        if isinstance(n, (int, float)) and not isinstance(n, bool) and math.isfinite(n):
            total += int(n)
    return total


def parse_time(value: str | None) -> datetime | None:
    """Parse a daemon RFC 3339 timestamp (nanosecond precision allowed)."""
    if not value:
        return None
    m = _TIMESTAMP.match(value.strip())
    if m is None:
        return None
    text = m.group("base")
    if m.group("frac"):
        text += "." + m.group("frac")[:6].ljust(6, "0")
    tz = m.group("tz")
    text += "+00:00" if tz in (None, "Z") else tz
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def seconds_since(value: str | None, now: datetime) -> int | None:
    then = parse_time(value)
    if then is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, math.floor((now - then).total_seconds()))


def finished_items_by_folder(
    events: Iterable[Event], now: datetime, window_s: float
) -> dict[str, list[Event]]:
    """``ItemFinished`` events inside the window, grouped by folder, newest first.

    Events without a parseable time are kept; ordering uses the daemon's
    monotonically increasing event ID.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    grouped: dict[str, list[Event]] = {}
    for ev in events:
        if ev.type != "ItemFinished":
            continue
        folder_id = ev.data.get("folder")
        if not folder_id:
            continue
        when = parse_time(ev.time)
        if when is not None and (now - when).total_seconds() > window_s:
            continue
        grouped.setdefault(str(folder_id), []).append(ev)
    for items in grouped.values():
        items.sort(key=lambda e: e.id, reverse=True)
    return grouped
