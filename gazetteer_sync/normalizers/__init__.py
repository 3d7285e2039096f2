"""Normalizers for converting raw source records into PlaceRecords."""

from gazetteer_sync.normalizers.dates import (
    parse_timestamp,
    parse_year,
    parse_year_range,
    to_astronomical,
)
from gazetteer_sync.normalizers.geometry import (
    geometry_bounds,
    geometry_wkt,
    is_valid_coordinates,
    point_geometry,
    validate_geometry,
)
from gazetteer_sync.normalizers.normalizer import Normalizer, extract_id_from_uri

__all__ = [
    "Normalizer",
    "extract_id_from_uri",
    # Dates
    "parse_year",
    "parse_year_range",
    "parse_timestamp",
    "to_astronomical",
    # Geometry
    "is_valid_coordinates",
    "point_geometry",
    "validate_geometry",
    "geometry_bounds",
    "geometry_wkt",
]
