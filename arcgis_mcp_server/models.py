"""
Value types exchanged with an ArcGIS feature layer.

Geometries serialize to Esri JSON (``x``/``y``, ``paths``, ``rings`` plus
``spatialReference``). All values are created per tool invocation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

DEFAULT_WKID = 4326

Vertex = List[float]


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_vertex(self) -> Vertex:
        return [self.longitude, self.latitude]


@dataclass(frozen=True)
class SpatialReference:
    wkid: int = DEFAULT_WKID

    def to_json(self) -> Dict[str, Any]:
        return {"wkid": self.wkid}

    @classmethod
    def from_json(cls, data: Any) -> Optional["SpatialReference"]:
        if not isinstance(data, dict):
            return None
        wkid = data.get("latestWkid") or data.get("wkid")
        if isinstance(wkid, int) and wkid > 0:
            return cls(wkid=wkid)
        return None


def _with_sr(data: Dict[str, Any], sr: Optional[SpatialReference]) -> Dict[str, Any]:
    if sr is not None:
        data["spatialReference"] = sr.to_json()
    return data


@dataclass
class Point:
    x: float
    y: float
    spatial_reference: Optional[SpatialReference] = None

    geometry_type = "esriGeometryPoint"

    @property
    def latitude(self) -> float:
        return self.y

    @property
    def longitude(self) -> float:
        return self.x

    def to_json(self) -> Dict[str, Any]:
        return _with_sr({"x": self.x, "y": self.y}, self.spatial_reference)


@dataclass
class Polyline:
    paths: List[List[Vertex]]
    spatial_reference: Optional[SpatialReference] = None

    geometry_type = "esriGeometryPolyline"

    def to_json(self) -> Dict[str, Any]:
        return _with_sr({"paths": self.paths}, self.spatial_reference)


@dataclass
class Polygon:
    rings: List[List[Vertex]]
    spatial_reference: Optional[SpatialReference] = None

    geometry_type = "esriGeometryPolygon"

    def to_json(self) -> Dict[str, Any]:
        return _with_sr({"rings": self.rings}, self.spatial_reference)


Geometry = Union[Point, Polyline, Polygon]


def decode_geometry(
    data: Any,
    default_sr: Optional[SpatialReference] = None,
) -> Union[Geometry, Dict[str, Any], None]:
    """
    Decode Esri JSON geometry returned by a query.

    Features in a query response usually omit their own spatialReference,
    so the response-level one is passed as ``default_sr``. Geometry types
    other than point/polyline/polygon are returned unchanged.
    """
    if not isinstance(data, dict):
        return None
    sr = SpatialReference.from_json(data.get("spatialReference")) or default_sr
    if "x" in data and "y" in data:
        if data["x"] is None or data["y"] is None:
            return None
        return Point(x=data["x"], y=data["y"], spatial_reference=sr)
    if "paths" in data:
        return Polyline(paths=data["paths"], spatial_reference=sr)
    if "rings" in data:
        return Polygon(rings=data["rings"], spatial_reference=sr)
    return data


@dataclass
class Feature:
    attributes: Dict[str, Any] = field(default_factory=dict)
    geometry: Union[Geometry, Dict[str, Any], None] = None

    def to_json(self, null_geometry: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"attributes": dict(self.attributes)}
        if self.geometry is None:
            if null_geometry:
                data["geometry"] = None
        else:
            if isinstance(self.geometry, dict):
                data["geometry"] = self.geometry
            else:
                data["geometry"] = self.geometry.to_json()
        return data

    @classmethod
    def from_json(
        cls,
        data: Dict[str, Any],
        default_sr: Optional[SpatialReference] = None,
    ) -> "Feature":
        return cls(
            attributes=dict(data.get("attributes") or {}),
            geometry=decode_geometry(data.get("geometry"), default_sr),
        )


@dataclass(frozen=True)
class FeatureLayerRef:
    url: str
    api_key: str


@dataclass(frozen=True)
class EditOutcome:
    success: bool
    object_id: Optional[int] = None
    global_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "EditOutcome":
        if not isinstance(data, dict):
            return cls(success=False, error=f"Unrecognized edit result: {data!r}")
        error = data.get("error")
        message: Optional[str] = None
        if isinstance(error, dict):
            description = error.get("description") or error.get("message") or ""
            message = f"code {error.get('code')}: {description}".strip()
        elif error:
            message = str(error)
        return cls(
            success=data.get("success") is True,
            object_id=data.get("objectId"),
            global_id=data.get("globalId"),
            error=message,
        )

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.object_id is not None:
            data["objectId"] = self.object_id
        if self.global_id is not None:
            data["globalId"] = self.global_id
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class QueryResult:
    features: List[Feature]
    object_id_field_name: Optional[str] = None
    geometry_type: Optional[str] = None
    exceeded_transfer_limit: bool = False

    @property
    def total_features(self) -> int:
        return len(self.features)

    def to_response(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "totalFeatures": self.total_features,
            "features": [f.to_json(null_geometry=True) for f in self.features],
        }
        if self.object_id_field_name:
            data["objectIdFieldName"] = self.object_id_field_name
        if self.geometry_type:
            data["geometryType"] = self.geometry_type
        if self.exceeded_transfer_limit:
            data["exceededTransferLimit"] = True
        return data
