"""
Epigraphic Database Heidelberg (EDH) adapter.

Syncs the EDH geography table: find spots of Latin inscriptions with ancient
and modern place names.

Data source: https://edh.ub.uni-heidelberg.de/
License: CC BY-SA 4.0
"""

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import SourceName


class EDHAdapter(SourceAdapter):
    """
    Adapter for edh_data_geo.csv.

    Coordinates come as one "lat,lon" column (koordinaten_1) and are split by
    the normalizer.
    """

    source_name = SourceName.EDH
    parse_options = {"delimiter": ","}
    file_name = "edh_data_geo.csv"
