"""
ORBIS adapter.

Sites of the Stanford Geospatial Network Model of the Roman World.

Data source: https://orbis.stanford.edu/
License: CC BY 3.0
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import SourceName


class ORBISAdapter(SourceAdapter):
    """
    Adapter for the ORBIS sites table (CSV with id, label, x, y columns).

    ORBIS publishes no stable download location, so the URL usually comes from
    SYNC_SOURCES_FILE; a file:// URL reads a local copy.
    """

    source_name = SourceName.ORBIS
    file_name = "orbis_sites.csv"
