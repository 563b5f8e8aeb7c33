"""
Payload validation for tool arguments.

Each validator returns the normalized value or raises the first violation
it finds. Nothing here touches the network.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import InsufficientVertices, InvalidArgument, MissingCredential
from .models import DEFAULT_WKID, Coordinate, FeatureLayerRef

DEFAULT_WHERE = "1=1"
MIN_LINE_VERTICES = 2
MIN_POLYGON_VERTICES = 3

_SCALAR_TYPES = (str, int, float, bool, type(None))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_api_key(api_key: Any) -> str:
    if not isinstance(api_key, str) or not api_key.strip():
        raise MissingCredential()
    return api_key.strip()


def validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidArgument("url", "a feature layer URL is required")
    candidate = url.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError as exc:
        raise InvalidArgument("url", f"malformed URL ({exc})") from exc
    if parsed.scheme not in {"http", "https"}:
        raise InvalidArgument("url", "only http/https URLs are allowed")
    if not parsed.netloc or not parsed.hostname:
        raise InvalidArgument("url", "URL has no host")
    # Operation paths are appended to the layer URL, so it must end at the path.
    layer_url = parsed._replace(params="", query="", fragment="").geturl()
    return layer_url.rstrip("/")


def validate_layer(url: Any, api_key: Any) -> FeatureLayerRef:
    # The credential is checked first so a missing key is always reported
    # as MissingCredential.
    key = validate_api_key(api_key)
    return FeatureLayerRef(url=validate_url(url), api_key=key)


def validate_object_id(object_id: Any, field: str = "objectId") -> int:
    if object_id is None:
        raise InvalidArgument(field, "is required")
    if not _is_number(object_id):
        raise InvalidArgument(field, "must be a positive integer")
    if isinstance(object_id, float):
        if not object_id.is_integer():
            raise InvalidArgument(field, "must be a positive integer")
        object_id = int(object_id)
    if object_id <= 0:
        raise InvalidArgument(field, "must be a positive integer")
    return object_id


def _validate_ordinate(value: Any, field: str, limit: float) -> float:
    if value is None:
        raise InvalidArgument(field, "is required")
    if not _is_number(value) or not math.isfinite(value):
        raise InvalidArgument(field, "must be a finite number")
    if value < -limit or value > limit:
        raise InvalidArgument(field, f"must be between {-limit:g} and {limit:g}")
    return value


def validate_latitude(value: Any, field: str = "latitude") -> float:
    return _validate_ordinate(value, field, 90.0)


def validate_longitude(value: Any, field: str = "longitude") -> float:
    return _validate_ordinate(value, field, 180.0)


def validate_wkid(wkid: Any) -> int:
    if wkid is None:
        return DEFAULT_WKID
    if not isinstance(wkid, int) or isinstance(wkid, bool) or wkid <= 0:
        raise InvalidArgument("wkid", "must be a positive integer")
    return wkid


def validate_coordinate(item: Any, field: str) -> Coordinate:
    if not isinstance(item, dict):
        raise InvalidArgument(field, "must be an object with latitude and longitude")
    return Coordinate(
        latitude=validate_latitude(item.get("latitude"), f"{field}.latitude"),
        longitude=validate_longitude(item.get("longitude"), f"{field}.longitude"),
    )


def validate_coordinates(
    coordinates: Any,
    minimum: int,
    field: str = "coordinates",
) -> List[Coordinate]:
    if coordinates is None:
        raise InvalidArgument(field, "is required")
    if not isinstance(coordinates, (list, tuple)):
        raise InvalidArgument(field, "must be an array of coordinates")
    if len(coordinates) < minimum:
        raise InsufficientVertices(field, minimum, len(coordinates))
    return [
        validate_coordinate(item, f"{field}[{index}]")
        for index, item in enumerate(coordinates)
    ]


def validate_attributes(attributes: Any) -> Dict[str, Any]:
    if attributes is None:
        raise InvalidArgument("attributes", "is required")
    if not isinstance(attributes, dict):
        raise InvalidArgument("attributes", "must be an object of field values")
    for name, value in attributes.items():
        if not isinstance(name, str) or not name:
            raise InvalidArgument("attributes", "field names must be non-empty strings")
        if not isinstance(value, _SCALAR_TYPES):
            raise InvalidArgument(
                f"attributes.{name}", "must be a string, number, boolean or null"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidArgument(f"attributes.{name}", "must be a finite number")
    return dict(attributes)


def validate_where(where: Optional[Any]) -> str:
    if where is None:
        return DEFAULT_WHERE
    if not isinstance(where, str):
        raise InvalidArgument("where", "must be a SQL WHERE clause string")
    return where.strip() or DEFAULT_WHERE
