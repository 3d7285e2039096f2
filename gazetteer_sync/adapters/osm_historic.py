"""
OpenStreetMap historic sites adapter.

Queries the Overpass API for historic/archaeological nodes and ways.

Data source: https://www.openstreetmap.org/
License: ODbL (Open Database License)
"""

from typing import Optional

from loguru import logger

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import ChangeIndicator, RawRecord, SourceName


class OSMHistoricAdapter(SourceAdapter):
    """
    Adapter for OpenStreetMap historic sites via Overpass.

    The query is POSTed as form data and the JSON answer streamed to disk.
    Ways come back with a "center" instead of lat/lon; prepare() lifts it and
    builds the "type/id" key used in OSM URLs.
    """

    source_name = SourceName.OSM
    parse_options = {"record_path": "elements.item"}
    file_name = "osm_historic.json"
    fetch_method = "POST"

    # Overpass query timeout in seconds
    TIMEOUT = 900

    # Historic tags to fetch
    HISTORIC_TAGS = [
        "archaeological_site",
        "ruins",
        "tomb",
        "monument",
        "castle",
        "citywalls",
        "fort",
        "roman_road",
        "megalith",
        "city_gate",
        "aqueduct",
        "temple",
    ]

    def build_query(self) -> str:
        tags = "|".join(self.HISTORIC_TAGS)
        bbox = self.config.get("bbox")
        area = f"({bbox[0]},{bbox[1]},{bbox[2]},{bbox[3]})" if bbox else ""
        return f"""[out:json][timeout:{self.TIMEOUT}];
(
  node["historic"~"^({tags})$"]{area};
  way["historic"~"^({tags})$"]{area};
);
out center meta;"""

    def request_data(self) -> Optional[dict]:
        return {"data": self.build_query()}

    def probe(self) -> ChangeIndicator:
        # Overpass answers queries, not documents: no Last-Modified or ETag
        logger.debug(f"{self.name}: Overpass has no change indicator, fetching on schedule")
        return ChangeIndicator()

    def prepare(self, raw: RawRecord) -> RawRecord:
        if raw.get("type") and raw.get("id") is not None:
            raw["osm_id"] = f"{raw['type']}/{raw['id']}"

        center = raw.get("center")
        if isinstance(center, dict) and raw.get("lat") is None:
            raw["lat"] = center.get("lat")
            raw["lon"] = center.get("lon")
            raw.pop("center", None)
        return raw
