"""Import all tool sub-modules so their @mcp.tool / @mcp.custom_route decorators run at import time."""

from syncthing_dashboard.tools import control  # noqa: F401
from syncthing_dashboard.tools import nodes  # noqa: F401
