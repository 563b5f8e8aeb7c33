"""
Main entry point for the ArcGIS feature edit MCP server.

Transports:
- stdio (default): the MCP client spawns this process
- http: FastAPI app with the MCP endpoint under /mcp, served by uvicorn
"""
from __future__ import annotations

import os
import sys

import uvicorn

from .env_utils import is_production_env
from .server import _server_host, _server_port, mcp, server_cfg


def _transport() -> str:
    return os.getenv("MCP_TRANSPORT", str(server_cfg.get("transport", "stdio"))).strip().lower()


def run_http() -> None:
    if is_production_env() and not os.getenv("MCP_SERVER_TOKEN", "").strip():
        raise RuntimeError(
            "MCP_SERVER_TOKEN is required in production. "
            "Set MCP_SERVER_TOKEN environment variable before starting the MCP server."
        )
    from .http_app import create_app

    app = create_app()
    print(f"Starting MCP server on http://{_server_host}:{_server_port}", file=sys.stderr)
    print(f"MCP endpoint: http://{_server_host}:{_server_port}/mcp", file=sys.stderr)
    print(f"Healthcheck: http://{_server_host}:{_server_port}/health", file=sys.stderr)
    uvicorn.run(
        app,
        host=_server_host,
        port=_server_port,
        log_level=str(server_cfg.get("log_level", "INFO")).lower(),
        server_header=False,
    )


def main() -> None:
    transport = _transport()
    try:
        if transport == "stdio":
            # stdout belongs to the protocol; status goes to stderr
            print(f"{mcp.name} running on stdio", file=sys.stderr)
            mcp.run(transport="stdio")
        elif transport in {"http", "streamable-http"}:
            run_http()
        else:
            print(f"Unknown MCP_TRANSPORT '{transport}' (expected stdio or http)", file=sys.stderr)
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nServer shutdown requested...", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"Fatal error in main(): {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
