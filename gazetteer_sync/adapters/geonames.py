"""
GeoNames adapter.

Syncs archaeological and historic features from the GeoNames dump.

Data source: https://www.geonames.org/
License: CC BY 4.0
"""

import csv
from pathlib import PurePosixPath
from urllib.parse import urlparse

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import RawRecord, SourceName


class GeoNamesAdapter(SourceAdapter):
    """
    Adapter for GeoNames.

    The dump is a zip holding one headerless TSV file named after the archive
    (allCountries.zip -> allCountries.txt). Only rows whose feature code is
    archaeological or historic are kept.
    """

    source_name = SourceName.GEONAMES
    file_name = "geonames.zip"

    # GeoNames TSV columns (tab-separated, no header)
    FIELDNAMES = (
        "geonameid",
        "name",
        "asciiname",
        "alternatenames",
        "latitude",
        "longitude",
        "feature_class",
        "feature_code",
        "country_code",
        "cc2",
        "admin1_code",
        "admin2_code",
        "admin3_code",
        "admin4_code",
        "population",
        "elevation",
        "dem",
        "timezone",
        "modification_date",
    )

    parse_options = {
        "delimiter": "\t",
        "fieldnames": FIELDNAMES,
        "quoting": csv.QUOTE_NONE,
    }

    # Feature codes for archaeological/historic sites
    ARCHAEOLOGICAL_FEATURE_CODES: set[str] = {
        "ANS",    # ancient site
        "RUIN",   # ruin(s)
        "RUINS",  # ruins
        "CSTL",   # castle
        "MNMT",   # monument
        "TMPL",   # temple(s)
        "PYR",    # pyramid
        "PYRS",   # pyramids
        "AMTH",   # amphitheater
        "HSTS",   # historic site
        "PAL",    # palace
        "FRT",    # fort
        "WALL",   # wall
        "GRVE",   # grave
        "TMB",    # tomb(s)
        "MOLE",   # mole (ancient harbor structure)
        "AQDC",   # aqueduct
        "SHRN",   # shrine
        "MSTY",   # monastery
        "THTR",   # theater
        "STDM",   # stadium
        "BTHS",   # baths
        "CAVE",   # cave(s)
        "CMPL",   # complex
    }

    @property
    def zip_member(self) -> str:
        return PurePosixPath(urlparse(self.data_url).path).stem + ".txt"

    def accept(self, raw: RawRecord) -> bool:
        return raw.get("feature_code") in self.ARCHAEOLOGICAL_FEATURE_CODES
