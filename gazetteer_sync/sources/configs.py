"""
Source configurations for the sync engine.

Each source defines:
- name: Display name
- description: What data it contains
- data_url: Where the full payload is downloaded from
- probe_url: URL for the metadata (HEAD) probe; defaults to data_url
- format: Parser format key (see FormatTag)
- poll_interval: Seconds between change checks
- enabled: Whether the scheduler polls it
- license: Data license
- attribution: Attribution text

Any of these can be overridden per source from a JSON file named by
SYNC_SOURCES_FILE, e.g. {"orbis": {"data_url": "file:///data/orbis_sites.csv"}}.
"""

import json
from pathlib import Path
from typing import Optional, TypedDict

from loguru import logger

from gazetteer_sync.config import settings
from gazetteer_sync.errors import ConfigurationError
from gazetteer_sync.sources.mappings import FIELD_MAPPINGS
from gazetteer_sync.types import FormatTag, SourceName


class SourceConfigType(TypedDict, total=False):
    name: str
    description: str
    data_url: str
    probe_url: str
    format: str
    poll_interval: int
    enabled: bool
    license: str
    attribution: str
    bbox: list[float]       # (south, west, north, east) limit for Overpass queries


DAY = 86400

SOURCE_CONFIG: dict[str, SourceConfigType] = {
    # Core ancient world gazetteers
    "pleiades": {
        "name": "Pleiades",
        "description": "Gazetteer of ancient places",
        "data_url": "https://atlantides.org/downloads/pleiades/json/pleiades-places-latest.json.gz",
        "format": "jsonld",
        "poll_interval": DAY,
        "enabled": True,
        "license": "CC BY 3.0",
        "attribution": "Pleiades Project",
    },
    "dare": {
        "name": "DARE",
        "description": "Digital Atlas of the Roman Empire",
        "data_url": "http://imperium.ahlfeldt.se/api/geojson.php",
        "format": "geojson",
        "poll_interval": 7 * DAY,
        "enabled": True,
        "license": "CC BY-SA 3.0",
        "attribution": "DARE Project, Lund University",
    },
    "topostext": {
        "name": "ToposText",
        "description": "Ancient texts linked to places",
        "data_url": "https://topostext.org/downloads/ToposText_places_2025-11-20.geojson",
        "format": "geojson",
        "poll_interval": 7 * DAY,
        "enabled": True,
        "license": "CC BY-NC-SA 4.0",
        "attribution": "ToposText Project",
    },
    "edh": {
        "name": "Epigraphic Database Heidelberg",
        "description": "Find spots of Latin inscriptions",
        "data_url": "https://edh.ub.uni-heidelberg.de/data/download/edh_data_geo.csv",
        "format": "csv",
        "poll_interval": 7 * DAY,
        "enabled": True,
        "license": "CC BY-SA 4.0",
        "attribution": "Epigraphic Database Heidelberg",
    },
    "orbis": {
        "name": "ORBIS",
        "description": "Stanford Geospatial Network Model of the Roman World (sites)",
        "data_url": "https://raw.githubusercontent.com/emeeks/orbis_v2/master/data/sites.csv",
        "format": "csv",
        "poll_interval": 30 * DAY,
        "enabled": True,
        "license": "CC BY 3.0",
        "attribution": "ORBIS, Stanford University",
    },
    "pelagios": {
        "name": "Pelagios",
        "description": "Linked Places gazetteer contributions",
        "data_url": "https://raw.githubusercontent.com/LinkedPasts/linked-places-format/main/examples/lp_example.jsonld",
        "format": "jsonld",
        "poll_interval": 7 * DAY,
        "enabled": True,
        "license": "CC BY 4.0",
        "attribution": "Pelagios Network",
    },

    # Global databases
    "geonames": {
        "name": "GeoNames",
        "description": "Archaeological and historic features from GeoNames",
        "data_url": "https://download.geonames.org/export/dump/allCountries.zip",
        "format": "csv",
        "poll_interval": DAY,
        "enabled": True,
        "license": "CC BY 4.0",
        "attribution": "GeoNames",
    },
    "osm_historic": {
        "name": "OpenStreetMap Historic",
        "description": "Historic sites from OpenStreetMap",
        "data_url": "https://overpass-api.de/api/interpreter",
        "format": "json",
        "poll_interval": 7 * DAY,
        "enabled": True,
        "license": "ODbL",
        "attribution": "OpenStreetMap contributors",
    },
    "tdar": {
        "name": "tDAR",
        "description": "The Digital Archaeological Record (georeferenced projects)",
        "data_url": "https://core.tdar.org/search/rss?resourceTypes=PROJECT&geoMode=ENVELOPE",
        "format": "xml",
        "poll_interval": 7 * DAY,
        "enabled": False,
        "license": "Varies by resource",
        "attribution": "Center for Digital Antiquity, Arizona State University",
    },
}


def validate_source_config(source_name: str, config: SourceConfigType) -> None:
    """
    Check one source's configuration.

    Raises:
        ConfigurationError: Unknown source, missing data URL or format,
            unknown format tag, missing field mapping or bad poll interval
    """
    try:
        name = SourceName(source_name)
    except ValueError as e:
        raise ConfigurationError(f"Unknown source: {source_name!r}", source_name) from e

    if not config.get("data_url"):
        raise ConfigurationError(f"Source {source_name} has no data_url", source_name)

    fmt = config.get("format")
    if not fmt:
        raise ConfigurationError(f"Source {source_name} has no format", source_name)
    try:
        FormatTag(fmt)
    except ValueError as e:
        raise ConfigurationError(f"Source {source_name} has unknown format {fmt!r}", source_name) from e

    if name not in FIELD_MAPPINGS:
        raise ConfigurationError(f"Source {source_name} has no field mapping", source_name)

    poll_interval = config.get("poll_interval", settings.sync.default_poll_interval)
    if not isinstance(poll_interval, int) or poll_interval <= 0:
        raise ConfigurationError(
            f"Source {source_name} has invalid poll_interval {poll_interval!r}", source_name
        )


def load_source_configs(overrides_file: Optional[Path] = None) -> dict[str, SourceConfigType]:
    """
    Built-in source table merged with per-source overrides, validated.

    Args:
        overrides_file: JSON file of {source_name: {key: value}}; defaults to
            settings.sync.sources_file

    Raises:
        ConfigurationError: Unreadable overrides or an invalid resulting config
    """
    configs: dict[str, SourceConfigType] = {k: dict(v) for k, v in SOURCE_CONFIG.items()}

    path = overrides_file or settings.sync.sources_file
    if path:
        try:
            with open(path, encoding="utf-8") as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read source overrides {path}: {e}") from e

        if not isinstance(overrides, dict):
            raise ConfigurationError(f"Source overrides in {path} must be a JSON object")

        for source_name, values in overrides.items():
            if not isinstance(values, dict):
                raise ConfigurationError(f"Overrides for {source_name} must be an object", source_name)
            configs.setdefault(source_name, {}).update(values)
        logger.info(f"Applied source overrides from {path} ({len(overrides)} sources)")

    for source_name, config in configs.items():
        validate_source_config(source_name, config)

    return configs


def get_source_config(source_name: SourceName | str) -> SourceConfigType:
    """Validated configuration for one source."""
    key = source_name.value if isinstance(source_name, SourceName) else str(source_name)
    configs = load_source_configs()
    if key not in configs:
        raise ConfigurationError(f"Unknown source: {source_name!r}", key)
    return configs[key]
