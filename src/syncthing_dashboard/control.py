"""Pause / resume a folder or device on one configured instance."""

import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

from syncthing_dashboard.client import SyncthingClient
from syncthing_dashboard.errors import ControlActionFailed, DaemonError, ErrorKind
from syncthing_dashboard.models import ControlRequest
from syncthing_dashboard.registry import Instance, get_instance

logger = logging.getLogger(__name__)


async def set_folder_paused(client: SyncthingClient, folder_id: str, paused: bool) -> dict[str, Any]:
    """Read the folder's config and write it back with ``paused`` toggled."""
    path = f"/rest/config/folders/{quote(folder_id, safe='')}"
    folder_cfg = await client.get(path)
    if not isinstance(folder_cfg, dict):
        raise DaemonError(ErrorKind.NETWORK, f"Unexpected config payload for folder {folder_id}")
    folder_cfg["paused"] = paused
    await client.patch(path, body=folder_cfg)
    return folder_cfg


async def set_device_paused(client: SyncthingClient, device_id: str, paused: bool) -> None:
    endpoint = "/rest/system/pause" if paused else "/rest/system/resume"
    await client.post(endpoint, params={"device": device_id})


async def pause_resume(
    instances: Sequence[Instance], request: ControlRequest
) -> dict[str, Any]:
    """Apply ``request`` against the named instance.

    Raises ``ValueError`` when the node is not configured and
    ``ControlActionFailed`` (carrying the daemon's message) when the write fails.
    """
    instance = get_instance(list(instances), request.node)
    client = SyncthingClient(instance)
    paused = request.action == "pause"
    if request.folder:
        target, kind = request.folder, "folder"
    else:
        target, kind = request.device, "device"

    try:
        if request.folder:
            await set_folder_paused(client, request.folder, paused)
        else:
            await set_device_paused(client, request.device, paused)
    except DaemonError as exc:
        logger.warning("[%s] %s %s %s failed: %s", client.name, request.action, kind, target, exc)
        raise ControlActionFailed(
            request.action, kind, exc, hint=client.handle_error(exc)
        ) from exc

    logger.info("[%s] %s %s %s", client.name, request.action, kind, target)
    return {
        "success": True,
        "status": "paused" if paused else "resumed",
        kind: target,
        "instance": client.name,
    }
