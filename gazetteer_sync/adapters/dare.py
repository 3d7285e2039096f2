"""
DARE (Digital Atlas of the Roman Empire) adapter.

Data source: https://imperium.ahlfeldt.se/
License: CC BY-SA 3.0
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import SourceName


class DAREAdapter(SourceAdapter):
    """
    Adapter for DARE.

    The API serves a single GeoJSON FeatureCollection of Roman-era places,
    each with its ancient and modern name and an optional date span.
    """

    source_name = SourceName.DARE
    parse_options = {"record_path": "features.item"}
    file_name = "dare.geojson"
