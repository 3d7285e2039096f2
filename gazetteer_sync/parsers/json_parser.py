"""
JSON family parsers: plain JSON, JSON Lines, JSON-LD and GeoJSON.

Documents are streamed item by item with ijson, so a FeatureCollection with a
million features is never materialized as one Python object.
"""

import json
from collections.abc import Iterator
from typing import BinaryIO

import ijson

from gazetteer_sync.errors import ParseError
from gazetteer_sync.types import RawRecord


def _iter_items(stream: BinaryIO, record_path: str, source_name: str | None) -> Iterator[tuple[int, object]]:
    """Yield (index, item) pairs under record_path, wrapping syntax errors."""
    index = -1
    try:
        for index, item in enumerate(ijson.items(stream, record_path, use_float=True)):
            yield index, item
    except ijson.JSONError as e:
        raise ParseError(
            f"Unreadable JSON after item {index}: {e}",
            source_name=source_name,
            offset=index + 1,
        ) from e


def parse_json(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    record_path: str = "item",
) -> Iterator[RawRecord]:
    """
    Parse objects found under record_path.

    Args:
        record_path: ijson prefix of the records ("item" for a top-level
            array, "elements.item" for Overpass output, ...)
    """
    for index, item in _iter_items(stream, record_path, source_name):
        if not isinstance(item, dict):
            stats.skip(index, f"expected an object, got {type(item).__name__}", source_name)
            continue
        stats.yielded += 1
        yield item


def parse_json_ld(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    record_path: str = "@graph.item",
) -> Iterator[RawRecord]:
    """
    Parse JSON-LD nodes.

    Nodes are yielded in their compacted form ("@id", "@type" kept as keys);
    a node without an "@id" or "id" is still passed on so the normalizer can
    report the missing key.
    """
    for index, item in _iter_items(stream, record_path, source_name):
        if not isinstance(item, dict):
            stats.skip(index, f"expected a JSON-LD node, got {type(item).__name__}", source_name)
            continue
        item.pop("@context", None)
        stats.yielded += 1
        yield item


def parse_geojson(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    record_path: str = "features.item",
) -> Iterator[RawRecord]:
    """
    Parse a GeoJSON FeatureCollection.

    Yields:
        {"id": feature id, "geometry": geometry or None, "properties": {...}}
    """
    for index, feature in _iter_items(stream, record_path, source_name):
        if not isinstance(feature, dict):
            stats.skip(index, f"expected a Feature, got {type(feature).__name__}", source_name)
            continue

        properties = feature.get("properties")
        geometry = feature.get("geometry")
        if properties is not None and not isinstance(properties, dict):
            stats.skip(index, "properties is not an object", source_name)
            continue
        if geometry is not None and not isinstance(geometry, dict):
            stats.skip(index, "geometry is not an object", source_name)
            continue
        if properties is None and geometry is None:
            stats.skip(index, "feature has neither properties nor geometry", source_name)
            continue

        stats.yielded += 1
        yield {
            "id": feature.get("id"),
            "geometry": geometry,
            "properties": properties or {},
        }


def parse_json_lines(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    encoding: str = "utf-8",
) -> Iterator[RawRecord]:
    """Parse newline-delimited JSON, one object per line."""
    for line_number, raw_line in enumerate(stream, start=1):
        line = raw_line.decode(encoding, errors="replace").strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            stats.skip(f"line {line_number}", f"invalid JSON ({e.msg})", source_name)
            continue
        if not isinstance(item, dict):
            stats.skip(f"line {line_number}", f"expected an object, got {type(item).__name__}", source_name)
            continue
        stats.yielded += 1
        yield item
