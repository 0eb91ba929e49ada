"""Boundary parsing and geodesic measurements.

Accepts the GeoJSON shapes a boundary resolver hands over (a bare Polygon or
MultiPolygon geometry, a Feature wrapping one, or a FeatureCollection whose
polygonal features are merged) and turns them into an immutable `Boundary`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import shapely
from pyproj import Geod
from shapely.errors import ShapelyError
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .engines.types import Boundary, BoundingBox
from .exceptions import InvalidBoundary

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")
_POLYGONAL = ("Polygon", "MultiPolygon")


def _extract_geometry(geojson: Mapping[str, Any]) -> BaseGeometry:
    kind = geojson.get("type")
    if kind == "Feature":
        geometry = geojson.get("geometry")
        if not isinstance(geometry, Mapping):
            raise InvalidBoundary("Feature has no geometry.")
        return _extract_geometry(geometry)
    if kind == "FeatureCollection":
        parts = [
            _extract_geometry(feature)
            for feature in geojson.get("features") or []
            if isinstance(feature, Mapping)
        ]
        if not parts:
            raise InvalidBoundary("FeatureCollection has no features.")
        return unary_union(parts)
    if kind not in _POLYGONAL:
        raise InvalidBoundary(f"Unsupported boundary geometry type: {kind}")
    try:
        return shape(geojson)
    except (ShapelyError, ValueError, TypeError, IndexError) as exc:
        raise InvalidBoundary(
            f"Malformed boundary coordinates: {exc}"
        ) from exc


def geodesic_area_km2(geometry: BaseGeometry) -> float:
    area_m2, _ = _GEOD.geometry_area_perimeter(geometry)
    return abs(area_m2) / 1_000_000


def from_geometry(geometry: BaseGeometry) -> Boundary:
    if geometry.is_empty:
        raise InvalidBoundary("Boundary geometry is empty.")
    if geometry.geom_type not in _POLYGONAL:
        raise InvalidBoundary(
            f"Boundary must be polygonal, got {geometry.geom_type}."
        )
    if not geometry.is_valid:
        logger.warning("greenspace.boundary.repaired reason=invalid")
        geometry = shapely.make_valid(geometry)
        if geometry.geom_type not in _POLYGONAL:
            geometry = unary_union(
                [
                    part
                    for part in getattr(geometry, "geoms", [geometry])
                    if part.geom_type in _POLYGONAL
                ]
            )

    west, south, east, north = geometry.bounds
    if west < -180 or east > 180 or south < -90 or north > 90:
        raise InvalidBoundary("Boundary coordinates must be lon/lat degrees.")
    degenerate = west >= east or south >= north
    if geometry.is_empty or geometry.area <= 0 or degenerate:
        raise InvalidBoundary("Boundary geometry is degenerate.")

    centroid = geometry.centroid
    return Boundary(
        geometry=geometry,
        bbox=BoundingBox(west, south, east, north),
        area_km2=geodesic_area_km2(geometry),
        centroid_lat=centroid.y,
        centroid_lon=centroid.x,
    )


def parse_boundary(geojson: Mapping[str, Any] | None) -> Boundary:
    """Return a validated `Boundary` or raise `InvalidBoundary`."""

    if not isinstance(geojson, Mapping) or not geojson:
        raise InvalidBoundary("Boundary is required.")
    return from_geometry(_extract_geometry(geojson))


def boundary_from_centroid(
    latitude: float, longitude: float, buffer_deg: float
) -> Boundary:
    """Square around a geocoded centroid, for cities without a polygon."""

    if buffer_deg <= 0:
        raise InvalidBoundary("Centroid buffer must be positive.")
    west = max(-180.0, longitude - buffer_deg)
    east = min(180.0, longitude + buffer_deg)
    south = max(-90.0, latitude - buffer_deg)
    north = min(90.0, latitude + buffer_deg)
    return from_geometry(box(west, south, east, north))
