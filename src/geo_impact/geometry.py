"""Geometry validation, repair and shape construction for footprint matching.

Division geometries are GeoJSON ``Polygon``/``MultiPolygon`` objects in
``[lng, lat]`` order. Drawn footprints (``map_coords``) are stored in Leaflet
``[lat, lng]`` order and are swapped here before any shapely work.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, List, Sequence

from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiPoint, Point, Polygon, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from .errors import InputError
from .models import MapCoords

_log = logging.getLogger(__name__)

METERS_PER_DEGREE = 111320.0
POLYGON_TYPES = {"Polygon", "MultiPolygon"}

Ring = List[List[float]]


# ── Validation & repair ──────────────────────────────────────────────


def _check_position(position: Any) -> List[float]:
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        raise InputError(f"Invalid coordinate: {position!r}")
    lng, lat = position[0], position[1]
    if isinstance(lng, bool) or isinstance(lat, bool):
        raise InputError(f"Invalid coordinate: {position!r}")
    if not isinstance(lng, (int, float)) or not isinstance(lat, (int, float)):
        raise InputError(f"Invalid coordinate: {position!r}")
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise InputError(f"Invalid coordinate: {position!r}")
    if abs(lng) > 180 or abs(lat) > 90:
        raise InputError(f"Coordinate out of range: {position!r}")
    return [float(lng), float(lat)]


def _check_polygon(rings: Any) -> List[Ring]:
    if not isinstance(rings, list):
        raise InputError("Polygon coordinates must be a list of rings")
    checked = []
    for ring in rings:
        if not isinstance(ring, list):
            raise InputError("Polygon ring must be a list of positions")
        checked.append([_check_position(p) for p in ring])
    return checked


def validate_geometry(geometry: Any) -> dict[str, Any] | None:
    """Return a clean copy of a Polygon/MultiPolygon, or None if unusable.

    Accepts a GeoJSON dict or its JSON text. Any non-finite or out-of-range
    coordinate rejects the whole geometry.
    """
    if geometry is None:
        return None
    if isinstance(geometry, str):
        try:
            geometry = json.loads(geometry)
        except json.JSONDecodeError as exc:
            _log.error("Error parsing geometry string: %s", exc)
            return None
    if not isinstance(geometry, dict):
        _log.warning("Unsupported geometry payload: %r", type(geometry).__name__)
        return None

    kind = geometry.get("type")
    if kind not in POLYGON_TYPES:
        _log.warning("Unsupported geometry type: %r", kind)
        return None

    try:
        if kind == "Polygon":
            coordinates: Any = _check_polygon(geometry.get("coordinates"))
        else:
            polygons = geometry.get("coordinates")
            if not isinstance(polygons, list):
                raise InputError("MultiPolygon coordinates must be a list of polygons")
            coordinates = [_check_polygon(p) for p in polygons]
    except InputError as exc:
        _log.error("Rejected %s geometry: %s", kind, exc)
        return None

    return {"type": kind, "coordinates": coordinates}


def close_ring(ring: Sequence[Sequence[float]]) -> Ring:
    """Append a copy of the first point when the ring is open."""
    closed = [list(p) for p in ring]
    if closed and closed[0] != closed[-1]:
        closed.append(list(closed[0]))
    return closed


def ring_signed_area(ring: Sequence[Sequence[float]]) -> float:
    """Shoelace area; positive for counter-clockwise rings."""
    area = 0.0
    for i in range(len(ring) - 1):
        area += ring[i][0] * ring[i + 1][1] - ring[i + 1][0] * ring[i][1]
    return area / 2.0


def ensure_right_hand_rule(ring: Sequence[Sequence[float]], *, exterior: bool = True) -> Ring:
    """Wind exterior rings counter-clockwise and holes clockwise."""
    oriented = [list(p) for p in ring]
    area = ring_signed_area(oriented)
    if (exterior and area < 0) or (not exterior and area > 0):
        oriented.reverse()
    return oriented


def _repair_polygon(rings: List[Ring]) -> List[Ring]:
    return [
        ensure_right_hand_rule(close_ring(ring), exterior=(index == 0))
        for index, ring in enumerate(rings)
    ]


def normalize_geometry(geometry: Any) -> dict[str, Any] | None:
    """Validate, close every ring and apply the right-hand rule."""
    clean = validate_geometry(geometry)
    if clean is None:
        return None
    if clean["type"] == "Polygon":
        clean["coordinates"] = _repair_polygon(clean["coordinates"])
    else:
        clean["coordinates"] = [_repair_polygon(p) for p in clean["coordinates"]]
    return clean


def to_shape(geometry: Any, *, repair: bool = True) -> BaseGeometry | None:
    """Shapely shape for a division geometry, or None when it cannot be built."""
    clean = normalize_geometry(geometry)
    if clean is None:
        return None
    try:
        geom = shape(clean)
    except (ShapelyError, ValueError, TypeError) as exc:
        _log.error("Cannot build %s shape: %s", clean["type"], exc)
        return None
    if geom.is_empty:
        return None
    if not geom.is_valid:
        if not repair:
            _log.warning("Invalid %s geometry left unrepaired", clean["type"])
            return geom
        geom = make_valid(geom)
    return geom


# ── Footprint shapes ─────────────────────────────────────────────────


def _lnglat(latlng: Sequence[float]) -> tuple[float, float]:
    """Swap a Leaflet ``[lat, lng]`` pair into ``(lng, lat)``."""
    if len(latlng) < 2:
        raise InputError(f"Invalid map coordinate: {list(latlng)!r}")
    lat, lng = float(latlng[0]), float(latlng[1])
    if not (math.isfinite(lat) and math.isfinite(lng)) or abs(lat) > 90 or abs(lng) > 180:
        raise InputError(f"Map coordinate out of range: {list(latlng)!r}")
    return lng, lat


def _path_shape(points: List[tuple[float, float]]) -> BaseGeometry:
    if len(points) == 1:
        return Point(points[0])
    return LineString(points)


def markers_shape(coords: MapCoords) -> BaseGeometry:
    points = [_lnglat(c) for c in coords.coordinates]
    if not points:
        raise InputError("Markers footprint has no coordinates")
    return Point(points[0]) if len(points) == 1 else MultiPoint(points)


def lines_shape(coords: MapCoords) -> BaseGeometry:
    points = [_lnglat(c) for c in coords.coordinates]
    if not points:
        raise InputError("Lines footprint has no coordinates")
    return _path_shape(points)


def circle_shape(coords: MapCoords, *, meters_per_degree: float = METERS_PER_DEGREE) -> BaseGeometry:
    if not coords.center:
        raise InputError("Circle footprint has no center")
    center = Point(_lnglat(coords.center))
    radius = coords.radius or 0.0
    if radius <= 0:
        return center
    return center.buffer(radius / meters_per_degree)


def rectangle_shape(coords: MapCoords) -> BaseGeometry:
    if len(coords.coordinates) < 2:
        raise InputError("Rectangle footprint needs two corner coordinates")
    (lng1, lat1), (lng2, lat2) = _lnglat(coords.coordinates[0]), _lnglat(coords.coordinates[1])
    if lng1 == lng2 or lat1 == lat2:
        return _path_shape([(lng1, lat1), (lng2, lat2)])
    return box(min(lng1, lng2), min(lat1, lat2), max(lng1, lng2), max(lat1, lat2))


def polygon_shape(coords: MapCoords) -> BaseGeometry:
    points = [_lnglat(c) for c in coords.coordinates]
    if not points:
        raise InputError("Polygon footprint has no coordinates")
    ring = close_ring(points)
    # Fewer than three distinct vertices cannot enclose an area.
    if len(ring) < 4:
        return _path_shape([tuple(p) for p in ring[:-1]] or [tuple(ring[0])])
    polygon = Polygon(ring)
    return polygon if polygon.is_valid else make_valid(polygon)


def map_coords_shape(
    coords: MapCoords, *, meters_per_degree: float = METERS_PER_DEGREE
) -> BaseGeometry:
    if coords.mode == "markers":
        return markers_shape(coords)
    if coords.mode == "lines":
        return lines_shape(coords)
    if coords.mode == "circle":
        return circle_shape(coords, meters_per_degree=meters_per_degree)
    if coords.mode == "rectangle":
        return rectangle_shape(coords)
    if coords.mode == "polygon":
        return polygon_shape(coords)
    raise InputError(f"Unsupported map mode: {coords.mode!r}")


def feature_shape(feature: dict[str, Any]) -> BaseGeometry:
    """Shape of a GeoJSON feature's geometry (``[lng, lat]`` order)."""
    geometry = feature.get("geometry") if feature.get("type") == "Feature" else feature
    if not isinstance(geometry, dict):
        raise InputError("Feature has no geometry")
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, AttributeError, KeyError) as exc:
        raise InputError(f"Invalid {geometry.get('type')} feature geometry: {exc}") from exc
    if not geom.is_valid:
        geom = make_valid(geom)
    return geom
