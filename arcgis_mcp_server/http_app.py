"""
FastAPI/ASGI app for running the MCP server over streamable HTTP.

- Bearer token auth middleware on /mcp
- MCP streamable-HTTP app mounted so that its endpoint is /mcp
- Healthcheck under /health, Prometheus metrics under /metrics
- Tool discovery under /mcp/discovery
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .env_utils import is_production_env
from .observability import format_prometheus
from .server import APP, SERVER_NAME, SERVER_VERSION, mcp, server_cfg

logger = logging.getLogger("arcgis_mcp_server.http_app")

PUBLIC_PATHS = ("/health", "/metrics", "/mcp/discovery")


class BearerTokenAuthMiddleware(BaseHTTPMiddleware):
    """Bearer token authentication for the /mcp endpoint."""

    def __init__(self, app: ASGIApp, expected_token: str | None = None):
        super().__init__(app)
        self.expected_token = (
            expected_token if expected_token is not None else os.getenv("MCP_SERVER_TOKEN", "")
        ).strip()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in PUBLIC_PATHS or not path.startswith("/mcp"):
            return await call_next(request)

        if is_production_env() and not self.expected_token:
            logger.error("[Auth] MCP_SERVER_TOKEN not set in production")
            return JSONResponse(
                {"error": "server_error", "message": "MCP_SERVER_TOKEN not configured"},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        if self.expected_token:
            auth_header = request.headers.get("authorization", "")
            if not auth_header.startswith("Bearer "):
                logger.warning(f"[Auth] Missing or invalid Authorization header for {request.method} {path}")
                return JSONResponse(
                    {"error": "unauthorized", "message": "Missing or invalid Authorization header"},
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    headers={"WWW-Authenticate": "Bearer"},
                )
            token = auth_header[len("Bearer "):]
            if not hmac.compare_digest(token, self.expected_token):
                logger.warning(f"[Auth] Invalid token for {request.method} {path}")
                return JSONResponse(
                    {"error": "unauthorized", "message": "Invalid token"},
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    headers={"WWW-Authenticate": "Bearer"},
                )

        return await call_next(request)


async def list_tool_names() -> list[str]:
    tools = await mcp.list_tools()
    return sorted(tool.name for tool in tools)


def compute_tools_hash(tool_names: list[str]) -> str:
    """SHA-256 of the sorted tool names joined by newlines."""
    content = "\n".join(sorted(tool_names))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def create_app(expected_token: str | None = None) -> FastAPI:
    mcp_asgi = mcp.streamable_http_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Mounted sub-apps do not get their own lifespan, so the MCP session
        # manager has to be started here.
        async with mcp.session_manager.run():
            yield

    app = FastAPI(
        title=SERVER_NAME,
        description="MCP tools for querying and editing ArcGIS feature layers",
        version=SERVER_VERSION,
        lifespan=lifespan,
    )
    app.add_middleware(BearerTokenAuthMiddleware, expected_token=expected_token)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "status": "healthy"}

    @app.get("/metrics")
    async def metrics() -> Response:
        content = format_prometheus(APP.metrics.snapshot())
        return Response(content=content, media_type="text/plain; version=0.0.4")

    @app.get("/mcp/discovery")
    async def discovery() -> dict[str, Any]:
        tool_names = await list_tool_names()
        tools_hash = compute_tools_hash(tool_names)
        response: dict[str, Any] = {
            "version": "1.0",
            "server": server_cfg.get("name", SERVER_NAME),
            "transport": "streamable-http",
            "endpoint": "/mcp",
            "tools": [{"name": name} for name in tool_names],
            "tool_count": len(tool_names),
            "tools_hash": tools_hash,
        }
        pinned_hash = os.environ.get("PINNED_TOOLS_HASH", "").strip()
        if pinned_hash:
            response["pinned_hash"] = pinned_hash
            response["hash_mismatch"] = tools_hash != pinned_hash
            if response["hash_mismatch"]:
                logger.warning(
                    f"Tools hash mismatch: expected {pinned_hash}, got {tools_hash}. "
                    "Tool set may have changed unexpectedly."
                )
        return response

    # The MCP app serves its own /mcp route; mounting at the root keeps that path.
    app.mount("/", mcp_asgi)
    return app
