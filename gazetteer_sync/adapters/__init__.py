"""
Source adapters.

Each adapter handles one upstream gazetteer: where it lives, how to probe it
for changes, how to download it and how its payload is parsed.
"""

from typing import Optional

import httpx

from gazetteer_sync.adapters.base import FetchedPayload, SourceAdapter, indicator_from_headers
from gazetteer_sync.adapters.dare import DAREAdapter
from gazetteer_sync.adapters.edh import EDHAdapter
from gazetteer_sync.adapters.geonames import GeoNamesAdapter
from gazetteer_sync.adapters.orbis import ORBISAdapter
from gazetteer_sync.adapters.osm_historic import OSMHistoricAdapter
from gazetteer_sync.adapters.pelagios import PelagiosAdapter
from gazetteer_sync.adapters.pleiades import PleiadesAdapter
from gazetteer_sync.adapters.tdar import TDARAdapter
from gazetteer_sync.adapters.topostext import ToposTextAdapter
from gazetteer_sync.errors import ConfigurationError
from gazetteer_sync.sources.configs import SourceConfigType
from gazetteer_sync.types import SourceName

# Registry of all available adapters
ADAPTERS: dict[SourceName, type[SourceAdapter]] = {
    SourceName.PLEIADES: PleiadesAdapter,
    SourceName.GEONAMES: GeoNamesAdapter,
    SourceName.DARE: DAREAdapter,
    SourceName.TOPOSTEXT: ToposTextAdapter,
    SourceName.EDH: EDHAdapter,
    SourceName.OSM: OSMHistoricAdapter,
    SourceName.ORBIS: ORBISAdapter,
    SourceName.PELAGIOS: PelagiosAdapter,
    SourceName.TDAR: TDARAdapter,
}


def get_adapter(
    source_name: SourceName | str,
    config: Optional[SourceConfigType] = None,
    client: Optional[httpx.Client] = None,
) -> SourceAdapter:
    """
    Get an adapter instance by source name.

    Args:
        source_name: Source identifier (e.g., "pleiades")
        config: Source configuration override
        client: HTTP client to share

    Raises:
        ConfigurationError: Unknown source
    """
    try:
        adapter_class = ADAPTERS[SourceName(source_name)]
    except (KeyError, ValueError) as e:
        available = ", ".join(s.value for s in ADAPTERS)
        raise ConfigurationError(f"Unknown source: {source_name}. Available: {available}", str(source_name)) from e
    return adapter_class(config=config, client=client)


__all__ = [
    "ADAPTERS",
    "get_adapter",
    "SourceAdapter",
    "FetchedPayload",
    "indicator_from_headers",
    "PleiadesAdapter",
    "GeoNamesAdapter",
    "DAREAdapter",
    "ToposTextAdapter",
    "EDHAdapter",
    "OSMHistoricAdapter",
    "ORBISAdapter",
    "PelagiosAdapter",
    "TDARAdapter",
]
