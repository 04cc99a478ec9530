"""Entry point for `python -m syncthing_dashboard` and the `syncthing-dashboard` console script."""

import logging
import os
import sys


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    transport = os.environ.get("MCP_TRANSPORT", "streamable-http").strip().lower()

    if transport == "stdio":
        from syncthing_dashboard.server import mcp

        mcp.run()
    else:
        _run_http()


def _run_http() -> None:
    """Serve the dashboard API and Streamable HTTP MCP endpoint, with optional bearer auth."""
    import uvicorn

    from syncthing_dashboard.server import build_http_app

    host = os.environ.get("MCP_HOST", "0.0.0.0")
    port = int(os.environ.get("MCP_PORT", "3000"))
    token = os.environ.get("MCP_AUTH_TOKEN", "").strip()

    app = build_http_app()
    if token:
        from syncthing_dashboard.auth import BearerAuthMiddleware

        app.add_middleware(BearerAuthMiddleware, token=token)
        print("Bearer-token authentication enabled", file=sys.stderr)
    else:
        print(
            "WARNING: MCP_AUTH_TOKEN not set, server is unauthenticated",
            file=sys.stderr,
        )
    print(f"Syncthing dashboard listening on {host}:{port}", file=sys.stderr)
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
