"""Aggregated node listing: the dashboard's query endpoint and its MCP tool."""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from syncthing_dashboard.errors import BatchTimeout
from syncthing_dashboard.filters import NodeFilter
from syncthing_dashboard.formatters import fmt, summarize_node, truncate
from syncthing_dashboard.models import NodesQueryParams
from syncthing_dashboard.registry import handle_error_global, load_instances, load_settings
from syncthing_dashboard.server import aggregator, mcp

logger = logging.getLogger(__name__)

NO_INSTANCES = "No instances configured"


@mcp.custom_route("/api/nodes", methods=["GET"])
async def api_nodes(request: Request) -> JSONResponse:
    """``{nodes: [...], error?}`` for every configured instance admitted by the query filter.

    200 on success (including per-node failures), 400 for a bad filter,
    500 for broken configuration, 504 when the batch deadline fires.
    """
    try:
        node_filter = NodeFilter.from_query(request.query_params)
    except ValueError as exc:
        return JSONResponse({"nodes": [], "error": str(exc)}, status_code=400)
    try:
        instances = load_instances()
        settings = load_settings()
    except ValueError as exc:
        logger.error("Configuration error: %s", exc)
        return JSONResponse({"nodes": [], "error": str(exc)}, status_code=500)
    if not instances:
        return JSONResponse({"nodes": [], "error": NO_INSTANCES})

    try:
        result = await aggregator.query(instances, node_filter, settings)
    except BatchTimeout as exc:
        return JSONResponse({"nodes": [], "error": str(exc)}, status_code=504)
    return JSONResponse(result.to_json())


@mcp.tool(
    name="syncthing_dashboard_nodes",
    annotations={
        "title": "Aggregated Node Status",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def syncthing_dashboard_nodes(params: NodesQueryParams) -> str:
    """Status of every configured Syncthing instance in one call: throughput,
    devices, folder completion per peer, paused folders, out-of-sync items."""
    try:
        node_filter = NodeFilter.from_keywords(params.hosts, params.names)
        instances = load_instances()
        if not instances:
            return fmt({"nodes": [], "error": NO_INSTANCES})
        result = await aggregator.query(instances, node_filter, load_settings())
        if params.concise:
            data = {"nodes": [summarize_node(n) for n in result.nodes]}
            if result.error:
                data["error"] = result.error
        else:
            data = result.to_json()
        return truncate(fmt(data, concise=params.concise))
    except BatchTimeout as e:
        return fmt({"nodes": [], "error": str(e)})
    except Exception as e:
        return handle_error_global(e)
