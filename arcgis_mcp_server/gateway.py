"""
Tool operations of the feature-edit gateway.

Every operation validates its arguments, builds the feature to submit,
talks to the layer through a FeatureServiceClient and returns the response
mapping. Errors are raised as GatewayError subclasses; turning them into
responses is the job of the tool boundary in ``server.py``.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .client import ADDS, DELETES, UPDATES, ClientSettings, FeatureServiceClient
from .geometry import build_point, build_polygon, build_polyline
from .models import Feature, FeatureLayerRef, Geometry
from .validation import (
    DEFAULT_WHERE,
    MIN_LINE_VERTICES,
    MIN_POLYGON_VERTICES,
    validate_attributes,
    validate_coordinates,
    validate_latitude,
    validate_layer,
    validate_longitude,
    validate_object_id,
    validate_where,
    validate_wkid,
)

logger = logging.getLogger("arcgis_mcp_server.gateway")

FeatureFactory = Callable[[str], Feature]


def render_response(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def attribute_update_feature(oid_field: str, object_id: int, attributes: Dict[str, Any]) -> Feature:
    return Feature(attributes={**attributes, oid_field: object_id})


def geometry_update_feature(oid_field: str, object_id: int, geometry: Geometry) -> Feature:
    return Feature(attributes={oid_field: object_id}, geometry=geometry)


def delete_feature_shape(oid_field: str, object_id: int) -> Feature:
    return Feature(attributes={oid_field: object_id})


def new_feature(oid_field: str, attributes: Dict[str, Any], geometry: Geometry) -> Feature:
    if oid_field in attributes:
        logger.debug("Dropping caller-supplied identity field %s from new feature", oid_field)
    clean = {k: v for k, v in attributes.items() if k != oid_field}
    return Feature(attributes=clean, geometry=geometry)


async def _submit_edit(
    layer: FeatureLayerRef,
    kind: str,
    make_feature: FeatureFactory,
    settings: Optional[ClientSettings],
    transport: Optional[httpx.AsyncBaseTransport],
) -> Dict[str, Any]:
    async with FeatureServiceClient(layer, settings, transport) as client:
        oid_field = await client.identity_field()
        verdict = await client.apply_edits(kind, [make_feature(oid_field)])
    verdict.raise_for_failure()
    return verdict.to_response()


async def query_features(
    url: Any,
    apikey: Any,
    where: Any = DEFAULT_WHERE,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    clause = validate_where(where)
    if clause == DEFAULT_WHERE:
        logger.warning(
            "Unfiltered query (where=%s) requested; the full layer will be returned",
            clause,
            extra={"layer": layer.url},
        )
    async with FeatureServiceClient(layer, settings, transport) as client:
        result = await client.query(clause)
    return result.to_response()


async def update_feature_attributes(
    url: Any,
    apikey: Any,
    objectId: Any,
    attributes: Any,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    object_id = validate_object_id(objectId)
    attrs = validate_attributes(attributes)
    return await _submit_edit(
        layer,
        UPDATES,
        lambda oid_field: attribute_update_feature(oid_field, object_id, attrs),
        settings,
        transport,
    )


async def update_point_geometry(
    url: Any,
    apikey: Any,
    objectId: Any,
    latitude: Any,
    longitude: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    object_id = validate_object_id(objectId)
    point = build_point(validate_latitude(latitude), validate_longitude(longitude), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        UPDATES,
        lambda oid_field: geometry_update_feature(oid_field, object_id, point),
        settings,
        transport,
    )


async def update_line_geometry(
    url: Any,
    apikey: Any,
    objectId: Any,
    coordinates: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    object_id = validate_object_id(objectId)
    line = build_polyline(validate_coordinates(coordinates, MIN_LINE_VERTICES), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        UPDATES,
        lambda oid_field: geometry_update_feature(oid_field, object_id, line),
        settings,
        transport,
    )


async def update_polygon_geometry(
    url: Any,
    apikey: Any,
    objectId: Any,
    coordinates: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    object_id = validate_object_id(objectId)
    polygon = build_polygon(validate_coordinates(coordinates, MIN_POLYGON_VERTICES), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        UPDATES,
        lambda oid_field: geometry_update_feature(oid_field, object_id, polygon),
        settings,
        transport,
    )


async def delete_feature(
    url: Any,
    apikey: Any,
    objectId: Any,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    object_id = validate_object_id(objectId)
    return await _submit_edit(
        layer,
        DELETES,
        lambda oid_field: delete_feature_shape(oid_field, object_id),
        settings,
        transport,
    )


async def add_point_feature(
    url: Any,
    apikey: Any,
    attributes: Any,
    latitude: Any,
    longitude: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    attrs = validate_attributes(attributes)
    point = build_point(validate_latitude(latitude), validate_longitude(longitude), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        ADDS,
        lambda oid_field: new_feature(oid_field, attrs, point),
        settings,
        transport,
    )


async def add_line_feature(
    url: Any,
    apikey: Any,
    attributes: Any,
    coordinates: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    attrs = validate_attributes(attributes)
    line = build_polyline(validate_coordinates(coordinates, MIN_LINE_VERTICES), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        ADDS,
        lambda oid_field: new_feature(oid_field, attrs, line),
        settings,
        transport,
    )


async def add_polygon_feature(
    url: Any,
    apikey: Any,
    attributes: Any,
    coordinates: Any,
    wkid: Any = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    layer = validate_layer(url, apikey)
    attrs = validate_attributes(attributes)
    polygon = build_polygon(validate_coordinates(coordinates, MIN_POLYGON_VERTICES), validate_wkid(wkid))
    return await _submit_edit(
        layer,
        ADDS,
        lambda oid_field: new_feature(oid_field, attrs, polygon),
        settings,
        transport,
    )
