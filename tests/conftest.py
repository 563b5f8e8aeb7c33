"""
Shared fixtures: an in-memory ArcGIS feature layer behind httpx.MockTransport.
"""
from __future__ import annotations

import json
import os
import re
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import httpx
import pytest

# Keep test runs from appending to the real audit log.
os.environ.setdefault("MCP_AUDIT_ENABLED", "0")

project_root = Path(__file__).parent.parent.resolve()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


LAYER_URL = "https://services.arcgis.com/abc123/arcgis/rest/services/Parks/FeatureServer/0"
API_KEY = "AAPK-test-key"

_WHERE_EQUALS = re.compile(r"^\s*(\w+)\s*=\s*(-?\d+)\s*$")


class FakeFeatureService:
    """
    Minimal ArcGIS REST feature layer.

    Answers layer metadata, /query and /applyEdits for a single layer and
    records every request it receives. Set ``metadata`` or
    ``edit_response`` to force specific bodies.
    """

    def __init__(
        self,
        api_key: str = API_KEY,
        oid_field: str = "OBJECTID",
        geometry_type: str = "esriGeometryPoint",
    ) -> None:
        self.api_key = api_key
        self.oid_field = oid_field
        self.geometry_type = geometry_type
        self.metadata: Optional[Dict[str, Any]] = None
        self.edit_response: Optional[Dict[str, Any]] = None
        self.status_code = 200
        self.features: Dict[int, Dict[str, Any]] = {}
        self.next_oid = 1
        self.requests: List[Tuple[str, Dict[str, str]]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> List[str]:
        return [path for path, _ in self.requests]

    def last_form(self, suffix: str) -> Dict[str, str]:
        for path, form in reversed(self.requests):
            if path.endswith(suffix):
                return form
        raise AssertionError(f"no request to *{suffix}")

    def seed(self, attributes: Dict[str, Any], geometry: Optional[Dict[str, Any]] = None) -> int:
        oid = self.next_oid
        self.next_oid += 1
        self.features[oid] = {
            "attributes": {**attributes, self.oid_field: oid},
            "geometry": geometry,
        }
        return oid

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode("utf-8")))
        path = request.url.path
        self.requests.append((path, form))
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream failure")
        if form.get("token") != self.api_key:
            return httpx.Response(200, json={"error": {"code": 498, "message": "Invalid token.", "details": []}})
        if path.endswith("/query"):
            return httpx.Response(200, json=self._query(form))
        if path.endswith("/applyEdits"):
            if self.edit_response is not None:
                return httpx.Response(200, json=self.edit_response)
            return httpx.Response(200, json=self._apply_edits(form))
        return httpx.Response(200, json=self._metadata())

    def _metadata(self) -> Dict[str, Any]:
        if self.metadata is not None:
            return self.metadata
        return {
            "id": 0,
            "name": "Parks",
            "type": "Feature Layer",
            "geometryType": self.geometry_type,
            "objectIdField": self.oid_field,
            "fields": [
                {"name": self.oid_field, "type": "esriFieldTypeOID"},
                {"name": "NAME", "type": "esriFieldTypeString"},
            ],
        }

    def _query(self, form: Dict[str, str]) -> Dict[str, Any]:
        where = form.get("where", "1=1")
        if where == "1=1":
            selected = list(self.features.values())
        else:
            match = _WHERE_EQUALS.match(where)
            if not match:
                return {"error": {"code": 400, "message": "Unable to complete operation.",
                                  "details": ["'where' parameter is invalid"]}}
            field, value = match.group(1), int(match.group(2))
            selected = [f for f in self.features.values() if f["attributes"].get(field) == value]
        features = []
        for feature in selected:
            item: Dict[str, Any] = {"attributes": dict(feature["attributes"])}
            geometry = feature.get("geometry")
            if geometry is not None:
                item["geometry"] = {k: v for k, v in geometry.items() if k != "spatialReference"}
            features.append(item)
        return {
            "objectIdFieldName": self.oid_field,
            "geometryType": self.geometry_type,
            "spatialReference": {"wkid": 4326, "latestWkid": 4326},
            "features": features,
        }

    def _apply_edits(self, form: Dict[str, str]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"addResults": [], "updateResults": [], "deleteResults": []}
        for feature in json.loads(form.get("adds", "[]")):
            oid = self.seed(
                {k: v for k, v in feature.get("attributes", {}).items() if k != self.oid_field},
                feature.get("geometry"),
            )
            body["addResults"].append(
                {"objectId": oid, "globalId": "{" + str(uuid.uuid4()).upper() + "}", "success": True}
            )
        for feature in json.loads(form.get("updates", "[]")):
            oid = feature.get("attributes", {}).get(self.oid_field)
            stored = self.features.get(oid)
            if stored is None:
                body["updateResults"].append(
                    {"objectId": oid, "success": False,
                     "error": {"code": 1019, "description": "Object is missing."}}
                )
                continue
            stored["attributes"].update(feature.get("attributes", {}))
            if "geometry" in feature:
                stored["geometry"] = feature["geometry"]
            body["updateResults"].append({"objectId": oid, "success": True})
        deletes = form.get("deletes", "")
        for raw in filter(None, deletes.split(",")):
            oid = int(raw)
            if self.features.pop(oid, None) is None:
                body["deleteResults"].append(
                    {"objectId": oid, "success": False,
                     "error": {"code": 1019, "description": "Object is missing."}}
                )
            else:
                body["deleteResults"].append({"objectId": oid, "success": True})
        return body


@pytest.fixture
def service() -> FakeFeatureService:
    return FakeFeatureService()


@pytest.fixture
def server_app(service: FakeFeatureService):
    """Route the MCP tools in arcgis_mcp_server.server to the fake service."""
    from arcgis_mcp_server.server import APP

    original = APP.transport
    APP.transport = service.transport
    yield APP
    APP.transport = original


EXPECTED_TOOLS = {
    "query",
    "updateFeatureAttributes",
    "updatePointGeometry",
    "updateLineGeometry",
    "updatePolygonGeometry",
    "deleteFeature",
    "addPointFeature",
    "addLineFeature",
    "addPolygonFeature",
}
