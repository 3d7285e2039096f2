"""
Per-source field-mapping tables.

Each source's raw schema is mapped onto PlaceRecord by a fixed table keyed by
SourceName. Paths are dotted ("properties.title", "when.timespans.0.start.in");
numeric segments index into lists. Candidates in title_fields are tried in
order; nothing outside the table is ever consulted.
"""

from dataclasses import dataclass, field

from gazetteer_sync.types import SourceName


@dataclass(frozen=True)
class FieldMapping:
    """How one source's raw record maps onto PlaceRecord."""

    # Natural key
    id_field: str
    id_from_uri: bool = False           # keep only the last path segment of a URI id
    id_pattern: str | None = None       # regex whose first group is the id

    # Display
    title_fields: tuple[str, ...] = ("title",)
    description_field: str | None = None

    # Location, tried in this order: geometry, point array, WKT, "lat,lon", lat/lon
    geometry_field: str | None = None   # GeoJSON geometry object
    point_field: str | None = None      # [lon, lat] array
    wkt_field: str | None = None
    latlon_field: str | None = None     # "lat,lon" or "lat lon" string
    lat_field: str | None = None
    lon_field: str | None = None

    # Time
    start_field: str | None = None
    end_field: str | None = None
    period_field: str | None = None     # one expression holding both ends

    # Provenance
    modified_field: str | None = None
    source_url_template: str | None = None   # formatted with {id}
    source_url_field: str | None = None

    # Raw keys never copied into attributes (bulky or redundant)
    attribute_exclude: tuple[str, ...] = field(default_factory=tuple)


FIELD_MAPPINGS: dict[SourceName, FieldMapping] = {
    # JSON dump: {"@graph": [{"id", "title", "reprPoint": [lon, lat], ...}]}
    SourceName.PLEIADES: FieldMapping(
        id_field="id",
        title_fields=("title",),
        description_field="description",
        point_field="reprPoint",
        start_field="minDate",
        end_field="maxDate",
        modified_field="modified",
        source_url_template="https://pleiades.stoa.org/places/{id}",
        attribute_exclude=("locations", "names", "connections", "features", "history", "@context"),
    ),
    # allCountries.txt columns (see GeoNamesAdapter.FIELDNAMES)
    SourceName.GEONAMES: FieldMapping(
        id_field="geonameid",
        title_fields=("name", "asciiname"),
        lat_field="latitude",
        lon_field="longitude",
        modified_field="modification_date",
        source_url_template="https://www.geonames.org/{id}",
    ),
    SourceName.DARE: FieldMapping(
        id_field="properties.id",
        title_fields=("properties.ancient_name", "properties.name"),
        description_field="properties.description",
        geometry_field="geometry",
        start_field="properties.start",
        end_field="properties.end",
        source_url_template="https://imperium.ahlfeldt.se/places/{id}",
    ),
    SourceName.TOPOSTEXT: FieldMapping(
        id_field="properties.id",
        title_fields=("properties.name", "properties.title", "properties.label"),
        description_field="properties.description",
        geometry_field="geometry",
        source_url_field="properties.url",
        source_url_template="https://topostext.org/place/{id}",
    ),
    # edh_data_geo.csv
    SourceName.EDH: FieldMapping(
        id_field="id",
        title_fields=("fo_antik", "fo_modern"),
        latlon_field="koordinaten_1",
        start_field="dat_jahr_a",
        end_field="dat_jahr_e",
        modified_field="letzte_aenderung",
        source_url_template="https://edh.ub.uni-heidelberg.de/edh/geographie/{id}",
    ),
    # Overpass elements, flattened by OSMHistoricAdapter.prepare
    SourceName.OSM: FieldMapping(
        id_field="osm_id",
        title_fields=("tags.name:en", "tags.name"),
        description_field="tags.description",
        lat_field="lat",
        lon_field="lon",
        start_field="tags.start_date",
        end_field="tags.end_date",
        modified_field="timestamp",
        source_url_template="https://www.openstreetmap.org/{id}",
    ),
    # ORBIS sites table: x = longitude, y = latitude
    SourceName.ORBIS: FieldMapping(
        id_field="id",
        title_fields=("label", "name"),
        lat_field="y",
        lon_field="x",
        source_url_template="https://orbis.stanford.edu/#site-{id}",
    ),
    # Linked Places Format (GeoJSON-LD), as published through Pelagios / WHG
    SourceName.PELAGIOS: FieldMapping(
        id_field="@id",
        id_from_uri=True,
        title_fields=("properties.title", "names.0.toponym"),
        description_field="descriptions.0.value",
        geometry_field="geometry",
        start_field="when.timespans.0.start.in",
        end_field="when.timespans.0.end.in",
        source_url_field="@id",
        attribute_exclude=("@context",),
    ),
    # tDAR RSS/Atom search export: <item> with georss:point "lat lon"
    SourceName.TDAR: FieldMapping(
        id_field="link",
        id_pattern=r"/(\d+)(?:/|$)",
        title_fields=("title",),
        description_field="description",
        latlon_field="point",
        modified_field="pubDate",
        source_url_field="link",
    ),
}


def get_path(record: dict, path: str | None):
    """Resolve a dotted path against nested dicts/lists; None when absent."""
    if not path:
        return None
    if path in record:
        return record[path]

    current = record
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or int(segment) >= len(current):
                return None
            current = current[int(segment)]
        else:
            return None
    return current
