"""
Feature service client for one ArcGIS feature layer.

One client serves one tool invocation: it owns its own httpx.AsyncClient
and sends the caller's API key as the ``token`` parameter of every request,
so concurrent invocations never share a credential. Requests are not
retried.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

import httpx

from .errors import EditFailed, GatewayServerError, LayerUnavailable, QueryFailed
from .models import Feature, FeatureLayerRef, QueryResult, SpatialReference
from .results import EditVerdict, interpret_edit_results

logger = logging.getLogger("arcgis_mcp_server.client")

ADDS = "adds"
UPDATES = "updates"
DELETES = "deletes"

EDIT_RESULT_KEYS = {
    ADDS: "addResults",
    UPDATES: "updateResults",
    DELETES: "deleteResults",
}

OID_FIELD_TYPE = "esriFieldTypeOID"


@dataclass
class ClientSettings:
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    write_timeout: float = 10.0
    pool_timeout: float = 5.0
    user_agent: str = "arcgis-mcp-server/0.1.0"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ClientSettings":
        arcgis_cfg = config.get("arcgis", {}) or {}
        defaults = cls()
        return cls(
            connect_timeout=float(arcgis_cfg.get("connect_timeout", defaults.connect_timeout)),
            read_timeout=float(arcgis_cfg.get("read_timeout", defaults.read_timeout)),
            write_timeout=float(arcgis_cfg.get("write_timeout", defaults.write_timeout)),
            pool_timeout=float(arcgis_cfg.get("pool_timeout", defaults.pool_timeout)),
            user_agent=str(arcgis_cfg.get("user_agent", defaults.user_agent)),
        )

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.pool_timeout,
        )


def describe_esri_error(error: Any) -> str:
    """Render an Esri JSON error object as one line."""
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or error.get("description") or "unknown error"
        details = [str(d) for d in error.get("details") or [] if d]
        text = f"code {code}: {message}" if code is not None else str(message)
        if details:
            text = f"{text} ({'; '.join(details)})"
        return text
    return str(error)


def find_identity_field(metadata: Dict[str, Any]) -> Optional[str]:
    name = metadata.get("objectIdField")
    if isinstance(name, str) and name:
        return name
    for field in metadata.get("fields") or []:
        if isinstance(field, dict) and field.get("type") == OID_FIELD_TYPE and field.get("name"):
            return str(field["name"])
    return None


class FeatureServiceClient:
    def __init__(
        self,
        layer: FeatureLayerRef,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.layer = layer
        self.settings = settings or ClientSettings()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._identity_field: Optional[str] = None

    async def __aenter__(self) -> "FeatureServiceClient":
        self._http = httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.timeout(),
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _post(
        self,
        path: str,
        form: Dict[str, str],
        failure: Type[GatewayServerError],
        action: str,
    ) -> Dict[str, Any]:
        if self._http is None:
            raise RuntimeError("FeatureServiceClient must be used as an async context manager")
        url = f"{self.layer.url}{path}"
        data = {**form, "f": "json", "token": self.layer.api_key}
        try:
            response = await self._http.post(url, data=data)
        except httpx.HTTPError as exc:
            raise failure(f"{action} failed: {type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise failure(f"{action} failed: HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise failure(f"{action} failed: response is not JSON") from exc
        if not isinstance(body, dict):
            raise failure(f"{action} failed: unexpected response {body!r}")
        # The REST API reports most errors with HTTP 200 and an error object.
        if "error" in body:
            raise failure(f"{action} failed: {describe_esri_error(body['error'])}")
        return body

    async def identity_field(self) -> str:
        """Resolve the layer's identity field, once per client."""
        if self._identity_field is None:
            metadata = await self._post("", {}, LayerUnavailable, "Loading layer metadata")
            name = find_identity_field(metadata)
            if not name:
                raise LayerUnavailable(
                    f"Layer {self.layer.url} has no resolvable identity field"
                )
            self._identity_field = name
            logger.debug("Resolved identity field %s for %s", name, self.layer.url)
        return self._identity_field

    async def query(self, where: str) -> QueryResult:
        await self.identity_field()
        body = await self._post(
            "/query",
            {"where": where, "outFields": "*", "returnGeometry": "true"},
            QueryFailed,
            "Query",
        )
        default_sr = SpatialReference.from_json(body.get("spatialReference"))
        features = [
            Feature.from_json(item, default_sr)
            for item in body.get("features") or []
            if isinstance(item, dict)
        ]
        return QueryResult(
            features=features,
            object_id_field_name=body.get("objectIdFieldName"),
            geometry_type=body.get("geometryType"),
            exceeded_transfer_limit=bool(body.get("exceededTransferLimit")),
        )

    async def apply_edits(self, kind: str, features: List[Feature]) -> EditVerdict:
        if kind not in EDIT_RESULT_KEYS:
            raise ValueError(f"Unknown edit kind '{kind}'")
        if kind == DELETES:
            oid_field = await self.identity_field()
            payload = ",".join(str(f.attributes[oid_field]) for f in features)
        else:
            payload = json.dumps([f.to_json() for f in features])
        body = await self._post(
            "/applyEdits",
            {kind: payload, "rollbackOnFailure": "true"},
            EditFailed,
            f"applyEdits ({kind})",
        )
        raw_results = body.get(EDIT_RESULT_KEYS[kind])
        if not isinstance(raw_results, list):
            raw_results = []
        return interpret_edit_results(kind, raw_results)
