from __future__ import annotations

import logging
import sys
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx
from mcp.server.fastmcp import FastMCP
from pydantic import Field

from . import gateway
from .client import ClientSettings
from .config import load_server_config
from .env_utils import env_flag, first_env
from .errors import GatewayClientError, GatewayServerError
from .observability import AuditLogger, InMemoryMetrics

SERVER_NAME = "ArcgisOnline Tools MCP Server"
SERVER_VERSION = "0.1.0"

CONFIG = load_server_config()

GatewayOperation = Callable[..., Awaitable[Dict[str, Any]]]


def setup_logger(config: Dict[str, Any]) -> logging.Logger:
    logger = logging.getLogger("arcgis_mcp_server")
    if logger.handlers:
        return logger
    server_cfg = config.get("server", {})
    level_name = str(server_cfg.get("log_level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)
    # stderr: stdout carries the protocol when running over stdio
    handler = logging.StreamHandler(sys.stderr)

    class StructuredFormatter(logging.Formatter):
        """Fills the structured fields a record did not set."""

        def format(self, record: logging.LogRecord) -> str:
            for name in ("tool", "layer", "correlation_id", "duration_ms"):
                if not hasattr(record, name):
                    setattr(record, name, "")
            return super().format(record)

    handler.setFormatter(StructuredFormatter(
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","tool":"%(tool)s",'
        '"layer":"%(layer)s","correlation_id":"%(correlation_id)s","duration_ms":"%(duration_ms)s",'
        '"msg":"%(message)s"}'
    ))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


@dataclass
class AppContext:
    config: Dict[str, Any]
    logger: logging.Logger
    audit: AuditLogger
    metrics: InMemoryMetrics
    client_settings: ClientSettings
    # Swapped for httpx.MockTransport in tests; None means real network.
    transport: Optional[httpx.AsyncBaseTransport] = field(default=None)


def build_app_context(config: Dict[str, Any]) -> AppContext:
    logger = setup_logger(config)
    audit_cfg = config.get("audit", {}) or {}
    audit_path = Path(str(audit_cfg.get("path", "logs/audit.log")))
    if not audit_path.is_absolute():
        audit_path = Path.cwd() / audit_path
    audit_enabled = env_flag("MCP_AUDIT_ENABLED", "1" if audit_cfg.get("enabled", False) else "0")
    return AppContext(
        config=config,
        logger=logger,
        audit=AuditLogger(path=str(audit_path), enabled=audit_enabled),
        metrics=InMemoryMetrics(),
        client_settings=ClientSettings.from_config(config),
    )


APP = build_app_context(CONFIG)

server_cfg = CONFIG.get("server", {})

# Default bind is localhost; set MCP_SERVER_HOST=0.0.0.0 explicitly behind a proxy.
_server_host = first_env("MCP_SERVER_HOST", "MCP_HOST") or str(server_cfg.get("host", "127.0.0.1"))
_server_port = int(first_env("MCP_SERVER_PORT", "MCP_PORT") or server_cfg.get("port", 9000))

mcp = FastMCP(
    server_cfg.get("name", SERVER_NAME),
    host=_server_host,
    port=_server_port,
)


def _generate_correlation_id() -> str:
    return str(uuid.uuid4())


def _layer_label(url: Any) -> str:
    """Scheme, host and path of the layer URL; the query string is never logged."""
    if not isinstance(url, str):
        return ""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}" if parsed.netloc else ""


async def _call_gateway_tool(
    tool_name: str,
    operation: GatewayOperation,
    **arguments: Any,
) -> str:
    """
    Tool boundary: run one gateway operation and render its JSON response.

    Every failure is converted into a ``success=false`` response here, after
    being logged, counted and audited. Nothing is retried.
    """
    app = APP
    correlation_id = _generate_correlation_id()
    layer = _layer_label(arguments.get("url"))
    log_extra = {"tool": tool_name, "layer": layer, "correlation_id": correlation_id}

    start = time.perf_counter()
    status = "ok"
    error_code: Optional[str] = None

    try:
        response = await operation(
            **arguments,
            settings=app.client_settings,
            transport=app.transport,
        )
    except GatewayClientError as exc:
        status = "rejected"
        error_code = exc.code
        response = exc.to_response()
        app.logger.warning(f"Request rejected: {exc}", extra=log_extra)
    except GatewayServerError as exc:
        status = "failed"
        error_code = exc.code
        response = exc.to_response()
        app.logger.error(f"Feature service error: {exc}", extra=log_extra)
    except Exception as exc:
        status = "error"
        error_code = "InternalError"
        response = {"success": False, "error": error_code, "details": str(exc)}
        app.logger.error(
            f"Unexpected error: {exc}",
            extra={**log_extra, "error_type": type(exc).__name__},
            exc_info=True,
        )

    duration_ms = (time.perf_counter() - start) * 1000.0
    app.metrics.record(tool_name, duration_ms, error=status != "ok")
    try:
        app.audit.log_call(
            tool=tool_name,
            layer=layer,
            status=status,
            duration_ms=duration_ms,
            error_code=error_code,
            correlation_id=correlation_id,
        )
    except OSError as exc:
        app.logger.warning(f"Audit log write failed: {exc}", extra=log_extra)

    if status == "ok":
        app.logger.info("Tool call succeeded", extra={**log_extra, "duration_ms": round(duration_ms, 2)})
    return gateway.render_response(response)


# Parameters are typed Any so pydantic accepts every value and validation.py
# reports bad input as an InvalidArgument response. json_schema_extra keeps
# the advertised JSON types.
Url = Annotated[Any, Field(description="Feature layer URL", json_schema_extra={"type": "string"})]
ApiKey = Annotated[
    Optional[Any],
    Field(description="ArcGIS Online API key (required for execution)", json_schema_extra={"type": "string"}),
]
ObjectId = Annotated[Any, Field(description="Object ID of the feature", json_schema_extra={"type": "integer"})]
Latitude = Annotated[Any, Field(description="Latitude (Y coordinate)", json_schema_extra={"type": "number"})]
Longitude = Annotated[Any, Field(description="Longitude (X coordinate)", json_schema_extra={"type": "number"})]
Wkid = Annotated[
    Any,
    Field(description="Spatial reference WKID (default: 4326 WGS84)", json_schema_extra={"type": "integer"}),
]
Attributes = Annotated[Any, Field(description="Feature attributes", json_schema_extra={"type": "object"})]
Coordinates = Annotated[
    Any,
    Field(
        description="Array of {latitude, longitude} objects for the vertices",
        json_schema_extra={"type": "array", "items": {"type": "object"}},
    ),
]
Where = Annotated[
    Any,
    Field(description="SQL WHERE clause for filtering features", json_schema_extra={"type": "string"}),
]


@mcp.tool(
    name="query",
    description="Query features of an ArcGIS Online FeatureLayer with an optional SQL WHERE clause.",
)
async def query(
    url: Url,
    apikey: ApiKey = None,
    where: Where = "1=1",
) -> str:
    return await _call_gateway_tool("query", gateway.query_features, url=url, apikey=apikey, where=where)


@mcp.tool(
    name="updateFeatureAttributes",
    description="Update only the attributes of an existing feature in an ArcGIS Online FeatureLayer.",
)
async def update_feature_attributes(
    url: Url,
    objectId: ObjectId,
    attributes: Attributes,
    apikey: ApiKey = None,
) -> str:
    return await _call_gateway_tool(
        "updateFeatureAttributes",
        gateway.update_feature_attributes,
        url=url,
        apikey=apikey,
        objectId=objectId,
        attributes=attributes,
    )


@mcp.tool(
    name="updatePointGeometry",
    description="Update only the geometry of an existing point feature using latitude and longitude.",
)
async def update_point_geometry(
    url: Url,
    objectId: ObjectId,
    latitude: Latitude,
    longitude: Longitude,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "updatePointGeometry",
        gateway.update_point_geometry,
        url=url,
        apikey=apikey,
        objectId=objectId,
        latitude=latitude,
        longitude=longitude,
        wkid=wkid,
    )


@mcp.tool(
    name="updateLineGeometry",
    description="Update only the geometry of an existing line feature using an array of at least 2 coordinates.",
)
async def update_line_geometry(
    url: Url,
    objectId: ObjectId,
    coordinates: Coordinates,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "updateLineGeometry",
        gateway.update_line_geometry,
        url=url,
        apikey=apikey,
        objectId=objectId,
        coordinates=coordinates,
        wkid=wkid,
    )


@mcp.tool(
    name="updatePolygonGeometry",
    description=(
        "Update only the geometry of an existing polygon feature using an array of at least "
        "3 coordinates. The ring is closed automatically."
    ),
)
async def update_polygon_geometry(
    url: Url,
    objectId: ObjectId,
    coordinates: Coordinates,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "updatePolygonGeometry",
        gateway.update_polygon_geometry,
        url=url,
        apikey=apikey,
        objectId=objectId,
        coordinates=coordinates,
        wkid=wkid,
    )


@mcp.tool(
    name="deleteFeature",
    description="Delete a feature from an ArcGIS Online FeatureLayer.",
)
async def delete_feature(
    url: Url,
    objectId: ObjectId,
    apikey: ApiKey = None,
) -> str:
    return await _call_gateway_tool(
        "deleteFeature",
        gateway.delete_feature,
        url=url,
        apikey=apikey,
        objectId=objectId,
    )


@mcp.tool(
    name="addPointFeature",
    description="Add a new point feature to an ArcGIS Online FeatureLayer using latitude and longitude.",
)
async def add_point_feature(
    url: Url,
    attributes: Attributes,
    latitude: Latitude,
    longitude: Longitude,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "addPointFeature",
        gateway.add_point_feature,
        url=url,
        apikey=apikey,
        attributes=attributes,
        latitude=latitude,
        longitude=longitude,
        wkid=wkid,
    )


@mcp.tool(
    name="addLineFeature",
    description="Add a new line feature to an ArcGIS Online FeatureLayer using an array of at least 2 coordinates.",
)
async def add_line_feature(
    url: Url,
    attributes: Attributes,
    coordinates: Coordinates,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "addLineFeature",
        gateway.add_line_feature,
        url=url,
        apikey=apikey,
        attributes=attributes,
        coordinates=coordinates,
        wkid=wkid,
    )


@mcp.tool(
    name="addPolygonFeature",
    description=(
        "Add a new polygon feature to an ArcGIS Online FeatureLayer using an array of at least "
        "3 coordinates. The ring is closed automatically."
    ),
)
async def add_polygon_feature(
    url: Url,
    attributes: Attributes,
    coordinates: Coordinates,
    apikey: ApiKey = None,
    wkid: Wkid = 4326,
) -> str:
    return await _call_gateway_tool(
        "addPolygonFeature",
        gateway.add_polygon_feature,
        url=url,
        apikey=apikey,
        attributes=attributes,
        coordinates=coordinates,
        wkid=wkid,
    )
