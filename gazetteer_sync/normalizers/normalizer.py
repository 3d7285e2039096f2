"""
Normalizer: maps a raw source record onto the canonical PlaceRecord.

The per-source FieldMapping is applied as-is. Coordinates and dates that can't
be used are kept verbatim in attributes instead of failing the record; only a
missing natural key or title drops it (NormalizationError).
"""

import re
from typing import Any, Optional

from gazetteer_sync.errors import ConfigurationError, NormalizationError
from gazetteer_sync.normalizers.dates import parse_timestamp, parse_year, parse_year_range
from gazetteer_sync.normalizers.geometry import (
    parse_lat_lon_pair,
    parse_lon_lat_array,
    parse_wkt_point,
    point_geometry,
    validate_geometry,
)
from gazetteer_sync.sources.mappings import FIELD_MAPPINGS, FieldMapping, get_path
from gazetteer_sync.types import PlaceRecord, RawRecord, SourceName
from gazetteer_sync.utils.clock import utcnow

MAX_TITLE_LENGTH = 1000


def extract_id_from_uri(uri: str) -> str:
    """Extract ID from a URI like https://pleiades.stoa.org/places/123 -> 123."""
    return uri.rstrip("/").split("/")[-1].split("#")[-1]


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or value == [] or value == {}


def _as_text(value) -> Optional[str]:
    """Scalar to stripped text; lists of scalars are joined."""
    if _is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(int(value)) if isinstance(value, float) and value.is_integer() else str(value)
    if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
        return ", ".join(str(v) for v in value if str(v).strip()) or None
    return None


def _attribute_key(path: str) -> Optional[str]:
    """
    Top-level attributes key that a mapping path consumes.

    GeoJSON properties are lifted into attributes, so "properties.name"
    consumes "name". Paths into nested structures consume nothing.
    """
    if path.startswith("properties."):
        path = path[len("properties."):]
    return None if "." in path else path


class Normalizer:
    """Applies FIELD_MAPPINGS to raw records."""

    def __init__(self, mappings: dict[SourceName, FieldMapping] | None = None):
        self.mappings = mappings if mappings is not None else FIELD_MAPPINGS

    def mapping_for(self, source_name: SourceName | str) -> FieldMapping:
        try:
            return self.mappings[SourceName(source_name)]
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"No field mapping for source {source_name!r}", str(source_name)) from e

    def normalize(self, raw: RawRecord, source_name: SourceName | str, fetched_at=None) -> PlaceRecord:
        """
        Convert one raw record into a PlaceRecord.

        Args:
            raw: Decoded raw record
            source_name: Source the record came from
            fetched_at: Timestamp of the fetch that produced it (defaults to now)

        Raises:
            NormalizationError: No usable natural key or title
            ConfigurationError: The source has no field mapping
        """
        mapping = self.mapping_for(source_name)
        name = SourceName(source_name)

        attributes = self._base_attributes(raw, mapping)
        consumed: set[str] = set()

        def consume(path: Optional[str]) -> None:
            key = _attribute_key(path) if path else None
            if key:
                consumed.add(key)

        # Natural key
        source_id = self._extract_id(raw, mapping)
        if not source_id:
            raise NormalizationError(
                f"Record has no usable natural key ({mapping.id_field})",
                source_name=name.value,
            )
        consume(mapping.id_field)

        # Title
        title = None
        for path in mapping.title_fields:
            title = _as_text(get_path(raw, path))
            if title:
                consume(path)
                break
        if not title:
            raise NormalizationError(
                f"Record {source_id} has no title ({', '.join(mapping.title_fields)})",
                source_name=name.value,
                source_id=source_id,
            )

        description = _as_text(get_path(raw, mapping.description_field))
        if description:
            consume(mapping.description_field)

        geometry, geometry_paths = self._extract_geometry(raw, mapping)
        for path in geometry_paths:
            consume(path)

        time_range, time_paths = self._extract_time_range(raw, mapping)
        for path in time_paths:
            consume(path)

        modified_at = None
        if mapping.modified_field:
            raw_modified = get_path(raw, mapping.modified_field)
            modified_at = parse_timestamp(raw_modified)
            if modified_at is not None:
                consume(mapping.modified_field)

        source_url = _as_text(get_path(raw, mapping.source_url_field))
        if not source_url and mapping.source_url_template:
            source_url = mapping.source_url_template.format(id=source_id)

        for key in consumed:
            attributes.pop(key, None)

        return PlaceRecord(
            source_id=source_id,
            source_name=name,
            title=title[:MAX_TITLE_LENGTH],
            description=description,
            geometry=geometry,
            time_range=time_range,
            attributes=attributes,
            source_url=source_url,
            modified_at=modified_at,
            fetched_at=fetched_at or utcnow(),
        )

    def _base_attributes(self, raw: RawRecord, mapping: FieldMapping) -> dict[str, Any]:
        """Raw fields to preserve, with GeoJSON properties lifted to the top."""
        attributes = {k: v for k, v in raw.items() if k != "properties"}
        properties = raw.get("properties")
        if isinstance(properties, dict):
            if not mapping.geometry_field:
                attributes.pop("geometry", None)
            for key, value in properties.items():
                attributes.setdefault(key, value)
        for key in mapping.attribute_exclude:
            attributes.pop(key, None)
        return {k: v for k, v in attributes.items() if not _is_blank(v)}

    def _extract_id(self, raw: RawRecord, mapping: FieldMapping) -> Optional[str]:
        source_id = _as_text(get_path(raw, mapping.id_field))
        if not source_id:
            return None
        if mapping.id_pattern:
            match = re.search(mapping.id_pattern, source_id)
            if not match:
                return None
            source_id = match.group(1)
        elif mapping.id_from_uri and "/" in source_id:
            source_id = extract_id_from_uri(source_id)
        return source_id or None

    def _extract_geometry(self, raw: RawRecord, mapping: FieldMapping):
        """
        First usable geometry in mapping order.

        Returns:
            (geometry or None, paths consumed). Paths are only consumed on
            success so unusable raw values stay in attributes.
        """
        if mapping.geometry_field:
            geometry = validate_geometry(get_path(raw, mapping.geometry_field))
            if geometry:
                return geometry, [mapping.geometry_field]

        if mapping.point_field:
            geometry = parse_lon_lat_array(get_path(raw, mapping.point_field))
            if geometry:
                return geometry, [mapping.point_field]

        if mapping.wkt_field:
            geometry = parse_wkt_point(get_path(raw, mapping.wkt_field))
            if geometry:
                return geometry, [mapping.wkt_field]

        if mapping.latlon_field:
            geometry = parse_lat_lon_pair(get_path(raw, mapping.latlon_field))
            if geometry:
                return geometry, [mapping.latlon_field]

        if mapping.lat_field and mapping.lon_field:
            geometry = point_geometry(get_path(raw, mapping.lat_field), get_path(raw, mapping.lon_field))
            if geometry:
                return geometry, [mapping.lat_field, mapping.lon_field]

        return None, []

    def _extract_time_range(self, raw: RawRecord, mapping: FieldMapping):
        """
        (start, end) in astronomical years plus the paths consumed.

        A blank bound is open. A bound that is present but unparseable makes
        the whole range null, as does a reversed range (start > end); the raw
        values then stay in attributes.
        """
        start = end = None
        consumed: list[str] = []

        if mapping.period_field:
            value = get_path(raw, mapping.period_field)
            if not _is_blank(value):
                parsed = parse_year_range(value)
                if parsed is None:
                    return None, []
                start, end = parsed
                consumed.append(mapping.period_field)

        for path, bound in ((mapping.start_field, "start"), (mapping.end_field, "end")):
            if not path:
                continue
            value = get_path(raw, path)
            if _is_blank(value):
                continue
            year = parse_year(value, bound)
            if year is None:
                return None, []
            if bound == "start":
                start = year
            else:
                end = year
            consumed.append(path)

        if start is None and end is None:
            return None, []
        if start is not None and end is not None and start > end:
            return None, []
        return (start, end), consumed
