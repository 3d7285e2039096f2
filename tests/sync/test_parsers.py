# SPDX-License-Identifier: MIT
"""Tests for the streaming format parsers."""

import csv
import io
import json

import pytest

from gazetteer_sync.errors import ConfigurationError, ParseError
from gazetteer_sync.parsers import ParseStats, parse


def _stream(text: str) -> io.BytesIO:
    return io.BytesIO(text.encode("utf-8"))


class TestCSVParser:
    """CSV / TSV parsing."""

    def test_rows_keyed_by_header(self):
        stats = ParseStats()
        rows = list(parse(_stream("id,name\n1, Roma \n2,Ostia\n"), "csv", stats=stats))
        assert rows == [{"id": "1", "name": "Roma"}, {"id": "2", "name": "Ostia"}]
        assert stats.yielded == 2
        assert stats.skipped == 0

    def test_wrong_column_count_is_skipped_with_row_number(self):
        stats = ParseStats()
        text = "id,name\n1,Roma\n2,Ostia,extra\n3,Capua\n"
        rows = list(parse(_stream(text), "csv", stats=stats))
        assert [r["id"] for r in rows] == ["1", "3"]
        assert stats.skipped == 1
        assert "row 3" in stats.errors[0]

    def test_tsv_without_header(self):
        stats = ParseStats()
        text = "1\tRoma\t41.9\n2\tOstia\t41.7\n"
        rows = list(parse(
            _stream(text), "csv", stats=stats,
            delimiter="\t", fieldnames=("id", "name", "lat"), quoting=csv.QUOTE_NONE,
        ))
        assert rows[1] == {"id": "2", "name": "Ostia", "lat": "41.7"}

    def test_is_lazy(self):
        stream = _stream("id\n" + "\n".join(str(i) for i in range(1000)))
        iterator = parse(stream, "csv")
        assert next(iterator) == {"id": "0"}


class TestJSONParsers:
    """JSON, JSON-LD, GeoJSON and JSON Lines."""

    def test_json_array_at_record_path(self):
        payload = json.dumps({"elements": [{"id": 1}, {"id": 2}]})
        rows = list(parse(_stream(payload), "json", record_path="elements.item"))
        assert [r["id"] for r in rows] == [1, 2]

    def test_non_object_items_are_skipped(self):
        stats = ParseStats()
        payload = json.dumps([{"id": 1}, "oops", {"id": 2}])
        rows = list(parse(_stream(payload), "json", stats=stats))
        assert len(rows) == 2
        assert stats.skipped == 1
        assert stats.errors[0].startswith("entry 1")

    def test_json_ld_graph(self):
        payload = json.dumps({"@context": {}, "@graph": [{"@id": "a", "title": "A"}]})
        rows = list(parse(_stream(payload), "jsonld"))
        assert rows == [{"@id": "a", "title": "A"}]

    def test_geojson_features(self):
        payload = json.dumps({
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "id": 7, "geometry": {"type": "Point", "coordinates": [1, 2]},
                 "properties": {"name": "A"}},
                {"type": "Feature", "geometry": None, "properties": "broken"},
            ],
        })
        stats = ParseStats()
        rows = list(parse(_stream(payload), "geojson", stats=stats))
        assert rows == [{"id": 7, "geometry": {"type": "Point", "coordinates": [1, 2]}, "properties": {"name": "A"}}]
        assert stats.skipped == 1

    def test_numbers_are_floats_not_decimals(self):
        rows = list(parse(_stream('[{"lat": 41.5}]'), "json"))
        assert isinstance(rows[0]["lat"], float)

    def test_json_lines_skip_bad_lines(self):
        stats = ParseStats()
        text = '{"id": 1}\nnot json\n\n{"id": 2}\n'
        rows = list(parse(_stream(text), "jsonl", stats=stats))
        assert [r["id"] for r in rows] == [1, 2]
        assert stats.skipped == 1
        assert "line 2" in stats.errors[0]

    def test_truncated_document_raises_parse_error(self):
        with pytest.raises(ParseError):
            list(parse(_stream('[{"id": 1}, {"id": 2'), "json"))


class TestXMLParser:
    """XML record streaming."""

    RSS = """<?xml version="1.0"?>
<rss xmlns:georss="http://www.georss.org/georss"><channel>
  <item><title>Site A</title><link>https://core.tdar.org/project/101/site-a</link>
        <georss:point>33.4 -111.9</georss:point></item>
  <item><title>Site B</title><category>x</category><category>y</category></item>
  <item/>
</channel></rss>"""

    def test_items_become_dicts(self):
        stats = ParseStats()
        rows = list(parse(_stream(self.RSS), "xml", stats=stats, record_tag="item"))
        assert rows[0] == {
            "title": "Site A",
            "link": "https://core.tdar.org/project/101/site-a",
            "point": "33.4 -111.9",
        }
        assert rows[1]["category"] == ["x", "y"]
        assert stats.skipped == 1

    def test_converted_records_are_detached_from_tree(self, monkeypatch):
        from xml.etree import ElementTree as ET

        real_iterparse = ET.iterparse
        roots = []

        def recording_iterparse(source, events=None):
            for event, element in real_iterparse(source, events=events):
                if not roots:
                    roots.append(element)
                yield event, element

        monkeypatch.setattr(ET, "iterparse", recording_iterparse)
        body = "".join(f"<item><title>Site {i}</title></item>" for i in range(500))
        rows = list(parse(_stream(f"<rss><channel>{body}</channel></rss>"), "xml", record_tag="item"))

        assert len(rows) == 500
        assert rows[-1] == {"title": "Site 499"}
        root = roots[0]
        assert root.tag == "rss"
        assert [len(channel) for channel in root] == [0]

    def test_broken_xml_raises_parse_error(self):
        with pytest.raises(ParseError):
            list(parse(_stream("<root><record><a>1</a></record><record>"), "xml"))


class TestDispatch:
    """parse() entry point."""

    def test_unknown_format_tag(self):
        with pytest.raises(ConfigurationError):
            parse(_stream(""), "shapefile")
