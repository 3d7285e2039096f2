"""Geographic helpers: coordinate extraction, validation and GeoJSON handling."""

import math
from typing import Any, Optional

from shapely.errors import ShapelyError
from shapely.geometry import mapping, shape

GEOMETRY_TYPES = {
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
    "GeometryCollection",
}


def is_valid_coordinates(lat: float, lon: float) -> bool:
    """Check if latitude and longitude are valid.

    Args:
        lat: Latitude in degrees
        lon: Longitude in degrees

    Returns:
        True if coordinates are valid, False otherwise
    """
    return -90 <= lat <= 90 and -180 <= lon <= 180


def to_float(value) -> Optional[float]:
    """Coerce a raw coordinate to float; None for blanks, junk, NaN and inf."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def point_geometry(lat, lon) -> Optional[dict[str, Any]]:
    """Build a GeoJSON Point from raw lat/lon, or None when they are unusable."""
    lat_f = to_float(lat)
    lon_f = to_float(lon)
    if lat_f is None or lon_f is None:
        return None
    if not is_valid_coordinates(lat_f, lon_f):
        return None
    return {"type": "Point", "coordinates": [lon_f, lat_f]}


def parse_lat_lon_pair(value) -> Optional[dict[str, Any]]:
    """Parse "lat,lon" or "lat lon" (EDH koordinaten, georss:point) into a Point."""
    if not isinstance(value, str):
        return None
    parts = value.replace(",", " ").split()
    if len(parts) != 2:
        return None
    return point_geometry(parts[0], parts[1])


def parse_lon_lat_array(value) -> Optional[dict[str, Any]]:
    """Parse a [lon, lat] array (Pleiades reprPoint) into a Point."""
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    return point_geometry(value[1], value[0])


def parse_wkt_point(wkt: str) -> Optional[dict[str, Any]]:
    """Parse a WKT POINT string ("POINT(lon lat)") into a GeoJSON Point.

    Args:
        wkt: WKT string like "POINT(lon lat)" or "POINT (lon lat)"

    Returns:
        GeoJSON Point dict, or None if parsing fails
    """
    if not wkt or not isinstance(wkt, str):
        return None

    wkt = wkt.strip().upper()
    if not wkt.startswith("POINT"):
        return None

    coords_str = wkt.replace("POINT", "").strip().strip("()")
    parts = coords_str.replace(",", " ").split()
    if len(parts) < 2:
        return None
    return point_geometry(parts[1], parts[0])


def _positions(coords) -> list[tuple[float, float]]:
    """Flatten nested GeoJSON coordinate arrays into (lon, lat) positions."""
    if isinstance(coords, (list, tuple)) and coords and isinstance(coords[0], (int, float)) \
            and not isinstance(coords[0], bool):
        if len(coords) < 2:
            raise ValueError("position needs at least two numbers")
        return [(float(coords[0]), float(coords[1]))]
    if not isinstance(coords, (list, tuple)):
        raise ValueError(f"unexpected coordinate value {coords!r}")
    positions = []
    for item in coords:
        positions.extend(_positions(item))
    return positions


def _all_positions(geometry: dict[str, Any]) -> list[tuple[float, float]]:
    if geometry.get("type") == "GeometryCollection":
        positions = []
        for member in geometry.get("geometries") or []:
            if not isinstance(member, dict):
                raise ValueError("geometry collection member is not an object")
            positions.extend(_all_positions(member))
        return positions
    return _positions(geometry.get("coordinates"))


def validate_geometry(geometry) -> Optional[dict[str, Any]]:
    """
    Validate a GeoJSON geometry object.

    Every position must be inside WGS84 lat/lon ranges and shapely must be
    able to build the shape.

    Returns:
        The geometry re-serialized by shapely (lists, floats), or None
    """
    if not isinstance(geometry, dict) or geometry.get("type") not in GEOMETRY_TYPES:
        return None

    try:
        positions = _all_positions(geometry)
        if not positions:
            return None
        if not all(is_valid_coordinates(lat, lon) for lon, lat in positions):
            return None
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, IndexError, KeyError, AttributeError):
        return None

    if geom.is_empty:
        return None
    return _as_lists(mapping(geom))


def _as_lists(value):
    """shapely.mapping returns tuples; JSON columns and hashes want lists."""
    if isinstance(value, dict):
        return {k: _as_lists(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


def geometry_bounds(geometry: Optional[dict[str, Any]]) -> Optional[tuple[float, float, float, float]]:
    """(min_lon, min_lat, max_lon, max_lat) of a valid geometry."""
    if not geometry:
        return None
    return shape(geometry).bounds


def geometry_wkt(geometry: Optional[dict[str, Any]]) -> Optional[str]:
    """WKT for a valid geometry, used for the PostGIS column."""
    if not geometry:
        return None
    return shape(geometry).wkt
