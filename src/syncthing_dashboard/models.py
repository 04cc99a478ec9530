"""Pydantic models: daemon payload decoding, dashboard records, and request inputs.

Daemon payloads are decoded at the boundary with explicit per-field defaults,
so the collector never has to guess at missing or malformed values:

  - counts and byte totals (``Count``) decode missing / null / non-numeric as 0
  - rates and durations (``Number``) decode missing / null / non-numeric as 0.0
  - flags (``Flag``) decode missing / null as False and strings by value
    (``"false"`` is False)
  - ``Completion.completion`` stays ``None`` when the daemon does not report it,
    so a derived ratio can be substituted
"""

import math
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _number_or_zero(value: Any) -> float:
    parsed = _to_float(value)
    return 0.0 if parsed is None else parsed


def _count_or_zero(value: Any) -> int:
    parsed = _to_float(value)
    return 0 if parsed is None else int(parsed)


def _empty_to_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _text_or_empty(value: Any) -> str:
    return "" if value is None else str(value)


def _to_flag(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _flag_or_false(value: Any) -> bool:
    return bool(_to_flag(value))


Number = Annotated[float, BeforeValidator(_number_or_zero)]
Count = Annotated[int, BeforeValidator(_count_or_zero)]
OptionalNumber = Annotated[float | None, BeforeValidator(_to_float)]
Flag = Annotated[bool, BeforeValidator(_flag_or_false)]
OptionalText = Annotated[str | None, BeforeValidator(_empty_to_none)]
Text = Annotated[str, BeforeValidator(_text_or_empty)]
OptionalFlag = Annotated[bool | None, BeforeValidator(_to_flag)]


# ---------------------------------------------------------------------------
#  Daemon payloads (decoded, never re-serialised)
# ---------------------------------------------------------------------------


class DaemonPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SystemStatus(DaemonPayload):
    """``/rest/system/status``"""

    my_id: OptionalText = Field(None, validation_alias=AliasChoices("myID", "myID6"))
    my_name: OptionalText = Field(None, validation_alias="myName")
    uptime: Number = 0.0


class ConnectionInfo(DaemonPayload):
    """One entry of ``/rest/system/connections`` (or its ``total`` block)."""

    connected: Flag = False
    paused: Flag = False
    address: OptionalText = None
    connected_at: OptionalText = Field(None, validation_alias="connectedAt")
    in_bps: Number = Field(0.0, validation_alias="inBytesPerSecond")
    out_bps: Number = Field(0.0, validation_alias="outBytesPerSecond")
    in_bytes_total: Count = Field(
        0, validation_alias=AliasChoices("inBytesTotal", "bytesReceived")
    )
    out_bytes_total: Count = Field(
        0, validation_alias=AliasChoices("outBytesTotal", "bytesSent")
    )


class Connections(DaemonPayload):
    """``/rest/system/connections``"""

    connections: dict[str, ConnectionInfo] = Field(default_factory=dict)
    total: ConnectionInfo = Field(default_factory=ConnectionInfo)

    @field_validator("connections", mode="before")
    @classmethod
    def _only_objects(cls, v: Any) -> dict:
        if not isinstance(v, dict):
            return {}
        return {k: c for k, c in v.items() if isinstance(c, dict)}

    @field_validator("total", mode="before")
    @classmethod
    def _total_object(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}


class DeviceStat(DaemonPayload):
    """One entry of ``/rest/stats/device``."""

    last_seen: OptionalText = Field(None, validation_alias="lastSeen")
    last_connection_duration_s: OptionalNumber = Field(
        None, validation_alias="lastConnectionDurationS"
    )
    last_connection_started_at: OptionalText = Field(
        None, validation_alias="lastConnectionStartedAt"
    )


class FolderMember(DaemonPayload):
    device_id: OptionalText = Field(
        None, validation_alias=AliasChoices("deviceID", "deviceId")
    )


class FolderConfig(DaemonPayload):
    id: OptionalText = Field(None, validation_alias=AliasChoices("id", "ID", "folder"))
    label: OptionalText = None
    description: OptionalText = None
    paused: Flag = False
    devices: list[FolderMember] = Field(default_factory=list)

    @field_validator("devices", mode="before")
    @classmethod
    def _member_list(cls, v: Any) -> list:
        return [m for m in v if isinstance(m, dict)] if isinstance(v, list) else []

    @property
    def display_label(self) -> str:
        return self.label or self.id or ""

    def member_ids(self) -> list[str]:
        """Distinct member device IDs in configuration order."""
        seen: list[str] = []
        for member in self.devices:
            if member.device_id and member.device_id not in seen:
                seen.append(member.device_id)
        return seen


class DeviceConfig(DaemonPayload):
    device_id: OptionalText = Field(
        None, validation_alias=AliasChoices("deviceID", "deviceId")
    )
    name: OptionalText = None


class DaemonConfig(DaemonPayload):
    """``/rest/config``, or the folder/device endpoints stitched together."""

    folders: list[FolderConfig] = Field(default_factory=list)
    devices: list[DeviceConfig] = Field(default_factory=list)

    @field_validator("folders", "devices", mode="before")
    @classmethod
    def _object_list(cls, v: Any) -> list:
        return [x for x in v if isinstance(x, dict)] if isinstance(v, list) else []


class DbStatus(DaemonPayload):
    """``/rest/db/status?folder=``"""

    state: str = "unknown"
    state_changed: OptionalText = Field(None, validation_alias="stateChanged")
    need_bytes: Count = Field(0, validation_alias="needBytes")
    need_items: Count = Field(
        0, validation_alias=AliasChoices("needItems", "needFiles")
    )
    paused: OptionalFlag = None

    @field_validator("state", mode="before")
    @classmethod
    def _state_text(cls, v: Any) -> str:
        return str(v) if v else "unknown"


class Completion(DaemonPayload):
    """``/rest/db/completion?folder=&device=``"""

    completion: OptionalNumber = Field(
        None, validation_alias=AliasChoices("completion", "completionPct")
    )
    global_items: Count = Field(
        0, validation_alias=AliasChoices("globalItems", "globalFiles")
    )
    need_items: Count = Field(
        0, validation_alias=AliasChoices("needItems", "needFiles")
    )


class LastFile(DaemonPayload):
    filename: OptionalText = None
    at: OptionalText = None
    deleted: Flag = False


class FolderStat(DaemonPayload):
    """One entry of ``/rest/stats/folder``."""

    last_scan: OptionalText = Field(None, validation_alias="lastScan")
    last_file: LastFile | None = Field(None, validation_alias="lastFile")

    @field_validator("last_file", mode="before")
    @classmethod
    def _file_object(cls, v: Any) -> dict | None:
        return v if isinstance(v, dict) else None


class SystemErrorEntry(DaemonPayload):
    """One entry of ``/rest/system/error``."""

    when: OptionalText = None
    message: Text = ""


class Event(DaemonPayload):
    """One entry of ``/rest/events``."""

    id: Count = 0
    type: Text = ""
    time: OptionalText = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _data_object(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}


# ---------------------------------------------------------------------------
#  Dashboard records (serialised with camelCase keys)
# ---------------------------------------------------------------------------


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncState(str, Enum):
    UNKNOWN = "unknown"
    IDLE = "idle"
    SCANNING = "scanning"
    SYNCING = "syncing"
    ERROR = "error"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str | None) -> "SyncState":
        if not raw or raw == "unknown":
            return cls.UNKNOWN
        if raw == "idle":
            return cls.IDLE
        if raw.startswith("scan"):
            return cls.SCANNING
        if raw.startswith("sync"):
            return cls.SYNCING
        if raw == "error":
            return cls.ERROR
        return cls.OTHER


class NodeStats(Record):
    uptime_seconds: float = 0.0
    bytes_sent: int = 0
    bytes_received: int = 0
    avg_send_bps: float = 0.0
    avg_recv_bps: float = 0.0
    fastest_peer_device_id: str | None = None
    fastest_peer_total_bps: float = 0.0


class DeviceStatsInfo(Record):
    last_seen: str
    last_connection_duration_s: float | None = None
    last_connection_started_at: str | None = None


class Device(Record):
    device_id: str
    name: str
    online: bool = False
    in_bps: float = 0.0
    out_bps: float = 0.0
    address: str | None = None
    paused: bool = False
    uptime: int | None = None
    device_stats: DeviceStatsInfo | None = None


class PeerItems(Record):
    """Per-peer item counts.

    ``completion_pct`` is the daemon-reported value when present and the
    derived ratio otherwise; ``derived_pct`` is always the ratio itself.
    All fields are ``None`` when the peer's completion query failed.
    """

    global_items: int | None = None
    need_items: int | None = None
    synced_items: int | None = None
    completion_pct: float | None = None
    derived_pct: float | None = None


class PeerCompletion(Record):
    id: str
    name: str
    online: bool = False
    items: PeerItems = Field(default_factory=PeerItems)


class ChangedFile(Record):
    file: str
    time: str | None = None
    action: str = "unknown"


class ItemFinishedInfo(Record):
    type: str = "ItemFinished"
    time: str | None = None
    action: str = "unknown"
    item: str = "unknown"
    folder: str
    total_events: int = 0


class FolderStatsInfo(Record):
    filename: str
    at: str
    deleted: bool = False
    last_scan: str | None = None


class Folder(Record):
    id: str
    label: str
    description: str | None = None
    state: SyncState = SyncState.UNKNOWN
    raw_state: str | None = None
    need_bytes: int | None = None
    need_items: int | None = None
    completion_pct: float | None = None
    peers: list[PeerCompletion] = Field(default_factory=list)
    paused: bool = False
    latest_changed_file: ChangedFile | None = None
    item_finished_info: ItemFinishedInfo | None = None
    state_changed: str | None = None
    folder_stats: FolderStatsInfo | None = None


class Shares(Record):
    count: int = 0
    peers: list[str] = Field(default_factory=list)


class ErrorEntry(Record):
    when: str | None = None
    message: str


class Node(Record):
    """Aggregated status for one instance.

    ``name`` is the daemon-reported identity when resolvable; ``instance`` is
    always the registry name, which control actions address.  Either fully
    populated (``ok=True``) or carrying only names, base URL and error
    (``ok=False``).
    """

    name: str
    instance: str
    base_url: str
    ok: bool = False
    error: str | None = None
    stats: NodeStats | None = None
    devices: list[Device] | None = None
    errors: list[ErrorEntry] | None = None
    shares: Shares | None = None
    folders: list[Folder] | None = None
    paused_folders: list[str] | None = None
    per_device_folders: dict[str, list[str]] | None = None
    out_of_sync_items: int | None = None

    @classmethod
    def failed(cls, instance: str, base_url: str, error: str) -> "Node":
        return cls(name=instance, instance=instance, base_url=base_url, ok=False, error=error)


class NodesResult(Record):
    nodes: list[Node] = Field(default_factory=list)
    error: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "nodes": [n.model_dump(mode="json", by_alias=True) for n in self.nodes]
        }
        if self.error:
            data["error"] = self.error
        return data


# ---------------------------------------------------------------------------
#  Request inputs
# ---------------------------------------------------------------------------


class ControlRequest(BaseModel):
    """Pause or resume one folder or one device on a named node."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    node: str = Field(..., description="Configured instance name", min_length=1)
    folder: str | None = Field(None, description="Folder ID to pause/resume")
    device: str | None = Field(None, description="Device ID to pause/resume")
    action: Literal["pause", "resume"] = Field(..., description="pause or resume")

    @model_validator(mode="after")
    def _one_target(self) -> "ControlRequest":
        if not self.folder and not self.device:
            raise ValueError("Either 'folder' or 'device' is required.")
        if self.folder and self.device:
            raise ValueError("Specify only one of 'folder' or 'device'.")
        return self


class NodesQueryParams(BaseModel):
    """Input for the node-listing tool."""

    model_config = ConfigDict(extra="forbid")
    hosts: list[Literal["all", "local", "loopback", "private", "remote"]] | None = Field(
        None,
        description="Host classes to include (e.g. ['local']). Omit for all hosts.",
    )
    names: list[str] | None = Field(
        None, description="Only include nodes with these names."
    )
    concise: bool = Field(
        True,
        description="Compact summary rows (default). Set false for full node records.",
    )
