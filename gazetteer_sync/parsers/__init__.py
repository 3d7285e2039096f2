"""
Streaming format parsers.

Each parser handles a specific data format (CSV, JSON, GeoJSON, JSON-LD, XML)
and lazily yields raw records. A malformed entry is skipped and logged with its
position; it never fails the batch.
"""

from collections.abc import Iterator
from typing import BinaryIO

from gazetteer_sync.errors import ConfigurationError
from gazetteer_sync.parsers.base import ParseStats
from gazetteer_sync.parsers.csv_parser import parse_csv
from gazetteer_sync.parsers.json_parser import (
    parse_geojson,
    parse_json,
    parse_json_ld,
    parse_json_lines,
)
from gazetteer_sync.parsers.xml_parser import parse_xml
from gazetteer_sync.types import FormatTag, RawRecord


PARSERS = {
    FormatTag.CSV: parse_csv,
    FormatTag.JSON: parse_json,
    FormatTag.JSON_LINES: parse_json_lines,
    FormatTag.JSON_LD: parse_json_ld,
    FormatTag.GEOJSON: parse_geojson,
    FormatTag.XML: parse_xml,
}


def parse(
    stream: BinaryIO,
    format_tag: FormatTag | str,
    stats: ParseStats | None = None,
    source_name: str | None = None,
    **options,
) -> Iterator[RawRecord]:
    """
    Lazily decode a raw payload into RawRecords.

    Args:
        stream: Binary stream positioned at the start of the payload
        format_tag: Payload format
        stats: Optional counters updated as records are yielded or skipped
        source_name: Used in log messages only
        **options: Format-specific options (delimiter, record_path, record_tag, ...)

    Yields:
        RawRecord dicts

    Raises:
        ConfigurationError: Unknown format tag
        ParseError: The document itself is unreadable (truncated JSON, broken XML)
    """
    try:
        tag = FormatTag(format_tag)
    except ValueError as e:
        raise ConfigurationError(f"Unknown format tag: {format_tag!r}", source_name) from e

    parser = PARSERS[tag]
    stats = stats if stats is not None else ParseStats()
    return parser(stream, stats=stats, source_name=source_name, **options)


__all__ = [
    "ParseStats",
    "PARSERS",
    "parse",
    "parse_csv",
    "parse_json",
    "parse_json_lines",
    "parse_json_ld",
    "parse_geojson",
    "parse_xml",
]
