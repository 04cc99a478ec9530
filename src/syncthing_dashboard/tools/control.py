"""Folder / device pause and resume: the dashboard's control endpoint and its MCP tool."""

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from syncthing_dashboard.control import pause_resume
from syncthing_dashboard.errors import ControlActionFailed
from syncthing_dashboard.formatters import fmt
from syncthing_dashboard.models import ControlRequest
from syncthing_dashboard.registry import handle_error_global, load_instances
from syncthing_dashboard.server import mcp


@mcp.custom_route("/api/pause-resume", methods=["POST"])
async def api_pause_resume(request: Request) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    try:
        control = ControlRequest.model_validate(body)
    except ValidationError as exc:
        return JSONResponse(
            {
                "error": "Missing required parameters",
                "detail": [err["msg"] for err in exc.errors()],
            },
            status_code=400,
        )
    try:
        instances = load_instances()
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=500)

    try:
        result = await pause_resume(instances, control)
    except ControlActionFailed as exc:
        return JSONResponse({"error": str(exc)}, status_code=502)
    except ValueError:
        return JSONResponse({"error": "Node not found"}, status_code=404)
    return JSONResponse(result)


@mcp.tool(
    name="syncthing_dashboard_pause_resume",
    annotations={
        "title": "Pause or Resume a Folder / Device",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def syncthing_dashboard_pause_resume(params: ControlRequest) -> str:
    """Pause or resume one folder or one device on a configured instance.
    Pausing stops syncing only; no data is removed."""
    try:
        return fmt(await pause_resume(load_instances(), params))
    except ControlActionFailed as e:
        return e.hint
    except Exception as e:
        return handle_error_global(e)
