"""Syncthing Dashboard: aggregated status for many Syncthing instances."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("syncthing-dashboard")
except PackageNotFoundError:
    __version__ = "0.3.0"  # fallback for editable installs / development
