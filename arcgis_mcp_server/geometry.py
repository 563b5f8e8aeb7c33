"""
Build Esri geometries from validated caller coordinates.

Callers speak latitude/longitude; the feature service expects x/y, so every
vertex is emitted as ``[longitude, latitude]``. Input order is kept as-is.
"""
from __future__ import annotations

from typing import List, Sequence

from .models import Coordinate, Point, Polygon, Polyline, SpatialReference, Vertex


def to_path(coordinates: Sequence[Coordinate]) -> List[Vertex]:
    return [c.as_vertex() for c in coordinates]


def close_ring(ring: List[Vertex]) -> List[Vertex]:
    """
    Append a copy of the first vertex when the ring is open.

    Both ordinates are compared with exact equality. A ring that is open by
    a floating point epsilon gets an extra, near-duplicate vertex.
    """
    if not ring:
        return ring
    first, last = ring[0], ring[-1]
    if first[0] != last[0] or first[1] != last[1]:
        ring.append([first[0], first[1]])
    return ring


def build_point(latitude: float, longitude: float, wkid: int) -> Point:
    return Point(x=longitude, y=latitude, spatial_reference=SpatialReference(wkid))


def build_polyline(coordinates: Sequence[Coordinate], wkid: int) -> Polyline:
    return Polyline(paths=[to_path(coordinates)], spatial_reference=SpatialReference(wkid))


def build_polygon(coordinates: Sequence[Coordinate], wkid: int) -> Polygon:
    ring = close_ring(to_path(coordinates))
    return Polygon(rings=[ring], spatial_reference=SpatialReference(wkid))
