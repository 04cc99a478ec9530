"""Render helpers for node records.

Collection keeps raw daemon values (a completion of 100.3% stays 100.3);
clamping and human-readable units are applied here, at render time only.
"""

import json
from typing import Any

from syncthing_dashboard.models import Folder, Node

CHARACTER_LIMIT = 25_000
SHORT_ID_LEN = 7


def fmt(data: Any, *, concise: bool = True) -> str:
    """Serialize to JSON.  Compact by default for token efficiency."""
    if concise:
        return json.dumps(data, separators=(",", ":"))
    return json.dumps(data, indent=2)


def short_id(device_id: str) -> str:
    """Truncate a Syncthing device ID to its first block."""
    return device_id[:SHORT_ID_LEN] if device_id else ""


def format_bytes(n: int | float) -> str:
    """Human-readable byte size."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(n) < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} PB"


def format_rate(bps: int | float) -> str:
    return f"{format_bytes(bps)}/s"


def clamp_pct(value: float | None) -> int | None:
    """Round a completion percentage into [0, 100] for display."""
    if value is None:
        return None
    return round(max(0.0, min(100.0, value)))


def truncate(text: str, limit: int = CHARACTER_LIMIT) -> str:
    """Truncate text that exceeds the character limit, with guidance."""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    last_nl = cut.rfind("\n")
    if last_nl > limit * 0.8:
        cut = cut[:last_nl]
    return (
        cut
        + f"\n... truncated ({len(text):,} chars, limit {limit:,})."
        " Narrow it with the names or hosts parameters, or keep concise=true."
    )


def summarize_folder(folder: Folder) -> dict:
    row: dict[str, Any] = {
        "label": folder.label,
        "state": folder.state.value,
        "completion": clamp_pct(folder.completion_pct),
        "needItems": folder.need_items,
    }
    if folder.paused:
        row["paused"] = True
    if folder.latest_changed_file:
        row["lastChange"] = folder.latest_changed_file.file
    row["peers"] = {
        p.name: clamp_pct(p.items.completion_pct) for p in folder.peers
    }
    return row


def summarize_node(node: Node) -> dict:
    """One compact row per node, as the dashboard table shows it."""
    if not node.ok:
        return {"name": node.name, "ok": False, "error": node.error}
    stats = node.stats
    fastest = None
    if stats and stats.fastest_peer_device_id:
        names = {d.device_id: d.name for d in node.devices or []}
        peer = stats.fastest_peer_device_id
        fastest = f"{names.get(peer, short_id(peer))} @ {format_rate(stats.fastest_peer_total_bps)}"
    return {
        "name": node.name,
        "ok": True,
        "online": sum(1 for d in node.devices or [] if d.online),
        "devices": len(node.devices or []),
        "avgSend": format_rate(stats.avg_send_bps) if stats else None,
        "avgRecv": format_rate(stats.avg_recv_bps) if stats else None,
        "fastestPeer": fastest,
        "shares": node.shares.count if node.shares else 0,
        "outOfSync": node.out_of_sync_items,
        "pausedFolders": node.paused_folders or [],
        "errors": len(node.errors or []),
        "folders": [summarize_folder(f) for f in node.folders or []],
    }
