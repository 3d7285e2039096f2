# SPDX-License-Identifier: MIT
"""Tests for source configuration and field mappings."""

import json

import pytest

from gazetteer_sync.adapters import ADAPTERS
from gazetteer_sync.errors import ConfigurationError
from gazetteer_sync.sources import (
    FIELD_MAPPINGS,
    SOURCE_CONFIG,
    get_path,
    load_source_configs,
    validate_source_config,
)
from gazetteer_sync.types import FormatTag, SourceName


class TestRegistries:
    """Every source has a mapping, an adapter and a config."""

    def test_every_source_has_a_field_mapping(self):
        assert set(FIELD_MAPPINGS) == set(SourceName)

    def test_every_source_has_an_adapter(self):
        assert set(ADAPTERS) == set(SourceName)

    def test_every_source_has_a_config(self):
        assert set(SOURCE_CONFIG) == {s.value for s in SourceName}

    def test_every_mapping_has_an_id_and_title(self):
        for name, mapping in FIELD_MAPPINGS.items():
            assert mapping.id_field, name
            assert mapping.title_fields, name

    @pytest.mark.parametrize("source", list(SOURCE_CONFIG))
    def test_builtin_configs_are_valid(self, source):
        validate_source_config(source, SOURCE_CONFIG[source])
        FormatTag(SOURCE_CONFIG[source]["format"])


class TestValidation:
    """ConfigurationError cases."""

    BASE = {"data_url": "https://example.test/x", "format": "csv"}

    def test_unknown_source(self):
        with pytest.raises(ConfigurationError):
            validate_source_config("atlantis", self.BASE)

    def test_missing_data_url(self):
        with pytest.raises(ConfigurationError):
            validate_source_config("orbis", {"format": "csv"})

    def test_missing_format(self):
        with pytest.raises(ConfigurationError):
            validate_source_config("orbis", {"data_url": "https://example.test/x"})

    def test_unknown_format(self):
        with pytest.raises(ConfigurationError):
            validate_source_config("orbis", {**self.BASE, "format": "shapefile"})

    def test_bad_poll_interval(self):
        with pytest.raises(ConfigurationError):
            validate_source_config("orbis", {**self.BASE, "poll_interval": 0})


class TestOverrides:
    """JSON overrides file."""

    def test_overrides_are_merged(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"orbis": {"data_url": "file:///data/orbis.csv", "poll_interval": 60}}))

        configs = load_source_configs(path)
        assert configs["orbis"]["data_url"] == "file:///data/orbis.csv"
        assert configs["orbis"]["poll_interval"] == 60
        assert configs["orbis"]["format"] == "csv"
        # Built-in table is untouched
        assert SOURCE_CONFIG["orbis"]["data_url"].startswith("https://")

    def test_override_for_unknown_source_is_fatal(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"atlantis": {"data_url": "x", "format": "csv"}}))
        with pytest.raises(ConfigurationError):
            load_source_configs(path)

    def test_unreadable_overrides(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_source_configs(path)


class TestGetPath:
    """Dotted path resolution."""

    RECORD = {
        "a": {"b": [{"c": 1}, {"c": 2}]},
        "tags": {"name:en": "Rome"},
        "dotted.key": "flat",
    }

    def test_nested(self):
        assert get_path(self.RECORD, "a.b.1.c") == 2

    def test_literal_key_wins(self):
        assert get_path(self.RECORD, "dotted.key") == "flat"

    def test_colon_in_segment(self):
        assert get_path(self.RECORD, "tags.name:en") == "Rome"

    def test_missing(self):
        assert get_path(self.RECORD, "a.b.5.c") is None
        assert get_path(self.RECORD, "a.x") is None
        assert get_path(self.RECORD, None) is None
