"""
ToposText adapter.

Ancient places linked to the texts that mention them.

Data source: https://topostext.org/
License: CC BY-NC-SA 4.0
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import RawRecord, SourceName


class ToposTextAdapter(SourceAdapter):
    """Adapter for the ToposText places GeoJSON export."""

    source_name = SourceName.TOPOSTEXT
    parse_options = {"record_path": "features.item"}
    file_name = "topostext.geojson"

    def prepare(self, raw: RawRecord) -> RawRecord:
        # Older exports keep the place id on the feature, not in properties
        properties = raw.get("properties") or {}
        if not properties.get("id") and raw.get("id") is not None:
            properties["id"] = raw["id"]
            raw["properties"] = properties
        return raw
