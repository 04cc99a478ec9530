"""FastMCP server creation, lifespan, and the HTTP app that serves the dashboard."""

import os
import sys
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.staticfiles import StaticFiles

from syncthing_dashboard.aggregator import Aggregator
from syncthing_dashboard.registry import load_instances


@asynccontextmanager
async def app_lifespan(app):
    try:
        instances = load_instances()
    except ValueError as exc:
        print(f"WARNING: instance configuration is invalid: {exc}", file=sys.stderr)
        yield {}
        return
    missing = [i.name for i in instances if not i.api_key]
    if missing:
        print(f"WARNING: API key missing for instance(s): {missing}", file=sys.stderr)
    print(
        f"Syncthing Dashboard: {len(instances)} instance(s) configured: "
        f"{[i.name for i in instances]}",
        file=sys.stderr,
    )
    yield {}


mcp = FastMCP("syncthing_dashboard", lifespan=app_lifespan)

# Shared by the HTTP routes and MCP tools so overlapping refreshes coalesce.
aggregator = Aggregator()


@mcp.custom_route("/health", methods=["GET"])
async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def build_http_app():
    """Streamable-HTTP app with the dashboard API, plus static files when configured."""
    app = mcp.streamable_http_app()
    static_dir = os.environ.get("DASHBOARD_STATIC_DIR", "").strip()
    if static_dir:
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    return app


# Import all tool modules so they register with `mcp` via decorators.
import syncthing_dashboard.tools  # noqa: E402, F401
