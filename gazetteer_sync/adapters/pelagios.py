"""
Pelagios adapter.

Gazetteer contributions in Linked Places Format, the GeoJSON-LD exchange
format of the Pelagios network and the World Historical Gazetteer.

Data source: https://pelagios.org/
License: CC BY 4.0
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import SourceName


class PelagiosAdapter(SourceAdapter):
    """
    Adapter for Linked Places FeatureCollections.

    Each feature is a JSON-LD node ("@id" URI, "properties.title", "names",
    "when.timespans"); the id is the last segment of the URI.
    """

    source_name = SourceName.PELAGIOS
    parse_options = {"record_path": "features.item"}
    file_name = "pelagios.jsonld"
