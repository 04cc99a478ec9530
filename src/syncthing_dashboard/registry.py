"""Instance registry: load Syncthing instances and runtime settings from the environment."""

import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:8384"
DEFAULT_CONFIG_FILES = (
    Path("config") / "instances.json",
    Path("config") / "instances.example.json",
)


class Instance(BaseModel):
    """One configured Syncthing daemon endpoint."""

    model_config = ConfigDict(frozen=True)
    name: str
    url: str
    api_key: str = ""

    @field_validator("url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or ""


class Settings(BaseModel):
    """Per-process aggregation settings."""

    model_config = ConfigDict(frozen=True)
    timeout_s: float = Field(10.0, gt=0)
    events_wait_s: float = Field(0.1, gt=0)
    events_window_s: float = Field(2 * 60 * 60, gt=0)
    events_limit: int = Field(50, ge=1)
    max_concurrency: int = Field(16, ge=1)
    partial_results: bool = False


def _env_ms(name: str, default_ms: int) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default_ms / 1000
    try:
        return int(raw) / 1000
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer number of milliseconds.") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc


def load_settings() -> Settings:
    """Build aggregation settings from ``SYNC_*`` environment variables."""
    partial = os.environ.get("SYNC_PARTIAL_RESULTS", "").strip().lower()
    return Settings(
        timeout_s=_env_ms("SYNC_TIMEOUT_MS", 10_000),
        events_wait_s=_env_ms("SYNC_EVENTS_WAIT_MS", 100),
        events_window_s=_env_int("SYNC_EVENTS_WINDOW_S", 2 * 60 * 60),
        events_limit=_env_int("SYNC_EVENTS_LIMIT", 50),
        max_concurrency=_env_int("SYNC_MAX_CONCURRENCY", 16),
        partial_results=partial in ("1", "true", "yes", "on"),
    )


def parse_instances(cfg: Any, source: str = "SYNCTHING_INSTANCES") -> list[Instance]:
    """Decode either instance-config shape into an ordered instance list.

    Accepts an object mapping names to ``{"url", "api_key"}`` or an array of
    ``{"name", "baseUrl", "apiKey"}`` entries.
    """
    if isinstance(cfg, dict):
        entries = []
        for name, entry in cfg.items():
            if not isinstance(entry, dict):
                raise ValueError(f"Instance '{name}' config must be a JSON object.")
            entries.append({"name": name, **entry})
    elif isinstance(cfg, list):
        entries = cfg
    else:
        raise ValueError(f"{source} must be a JSON object or array.")

    instances: list[Instance] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{source} entry #{i} must be a JSON object.")
        url = entry.get("url") or entry.get("baseUrl") or DEFAULT_URL
        api_key = entry.get("api_key") or entry.get("apiKey") or ""
        name = entry.get("name") or url
        instances.append(Instance(name=name, url=url, api_key=api_key))
    return instances


def _config_file() -> Path | None:
    explicit = os.environ.get("SYNCTHING_INSTANCES_FILE", "").strip()
    if explicit:
        return Path(explicit)
    for candidate in DEFAULT_CONFIG_FILES:
        if candidate.is_file():
            return candidate
    return None


def load_instances() -> list[Instance]:
    """Build the instance list from environment variables or a config file.

    Resolution order:
      - SYNCTHING_INSTANCES (JSON object or array)
      - SYNCTHING_INSTANCES_FILE, else config/instances.json,
        else config/instances.example.json
      - SYNCTHING_API_KEY + SYNCTHING_URL as a single 'default' instance
    An empty list means nothing is configured.
    """
    instances_json = os.environ.get("SYNCTHING_INSTANCES", "").strip()
    if instances_json:
        try:
            cfg = json.loads(instances_json)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid SYNCTHING_INSTANCES JSON: {exc}") from exc
        return parse_instances(cfg)

    path = _config_file()
    if path is not None:
        try:
            cfg = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ValueError(f"Instance config file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
        logger.debug("Loaded instance config from %s", path)
        return parse_instances(cfg, source=str(path))

    api_key = os.environ.get("SYNCTHING_API_KEY", "").strip()
    if api_key:
        url = os.environ.get("SYNCTHING_URL", DEFAULT_URL)
        return [Instance(name="default", url=url, api_key=api_key)]
    return []


def get_instance(instances: list[Instance], name: str) -> Instance:
    """Resolve an instance by name."""
    for inst in instances:
        if inst.name == name:
            return inst
    raise ValueError(
        f"Instance '{name}' not found. Available: {[i.name for i in instances]}"
    )


def handle_error_global(e: Exception) -> str:
    """Fallback error handler when instance cannot be determined."""
    if isinstance(e, ValueError):
        return f"Error: {e}"
    return f"Error: {type(e).__name__}: {e}"
