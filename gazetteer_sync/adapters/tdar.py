"""
tDAR (the Digital Archaeological Record) adapter.

Syncs georeferenced resources from the tDAR search RSS feed.

Data source: https://core.tdar.org/
License: varies by resource
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import SourceName


class TDARAdapter(SourceAdapter):
    """
    Adapter for tDAR search results as RSS.

    Every <item> becomes one record; georss:point ("lat lon") gives the
    location and the numeric resource id is taken from the item link.
    """

    source_name = SourceName.TDAR
    parse_options = {"record_tag": "item"}
    file_name = "tdar.xml"
