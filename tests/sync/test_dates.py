# SPDX-License-Identifier: MIT
"""Tests for date parsing and astronomical year conversion."""

from datetime import datetime

import pytest

from gazetteer_sync.normalizers.dates import (
    parse_timestamp,
    parse_year,
    parse_year_range,
    to_astronomical,
)


class TestToAstronomical:
    """Historical year + era -> astronomical year."""

    def test_bc_years_shift_by_one(self):
        assert to_astronomical(1, "BC") == 0
        assert to_astronomical(500, "BCE") == -499

    def test_ad_years_unchanged(self):
        assert to_astronomical(79, "AD") == 79
        assert to_astronomical(79) == 79


class TestParseYear:
    """Single-year parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("500 BC", -499),
        ("500 BCE", -499),
        ("500 B.C.", -499),
        ("500 B.C.E.", -499),
        ("500 B.C.E", -499),
        ("500 B.C", -499),
        ("500 BC.", -499),
        ("500 BCE.", -499),
        ("500 b.c.", -499),
        ("c. 300 BC", -299),
        ("ca. 300 BCE", -299),
        ("AD 79", 79),
        ("79 CE", 79),
        ("79 AD", 79),
        ("1 BC", 0),
    ])
    def test_era_strings(self, value, expected):
        assert parse_year(value) == expected

    def test_signed_numbers_are_already_astronomical(self):
        assert parse_year(-330) == -330
        assert parse_year("-330") == -330
        assert parse_year("+200") == 200
        assert parse_year(-330.0) == -330

    def test_iso_dates_including_expanded_negative_years(self):
        assert parse_year("2024-01-15") == 2024
        assert parse_year("-0330-01-01") == -330
        assert parse_year("0079-08-24T00:00:00Z") == 79

    def test_centuries_depend_on_bound(self):
        # 3rd century BC = 300..201 BC
        assert parse_year("3rd century BC", "start") == -299
        assert parse_year("3rd century BC", "end") == -200
        # 2nd century AD = 101..200
        assert parse_year("2nd century AD", "start") == 101
        assert parse_year("2nd century", "end") == 200

    def test_dotted_era_on_centuries(self):
        assert parse_year("3rd century B.C", "start") == -299
        assert parse_year("3rd century B.C.E.", "end") == -200
        assert parse_year("1st century A.D.", "end") == 100

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", "sometime", True, {"year": 1}, float("nan")])
    def test_unparseable_returns_none(self, value):
        assert parse_year(value) is None


class TestParseYearRange:
    """Period expressions."""

    def test_explicit_range(self):
        assert parse_year_range("500 BC - 300 BC") == (-499, -299)

    def test_era_on_right_applies_to_both(self):
        assert parse_year_range("500-300 BC") == (-499, -299)

    def test_to_separator(self):
        assert parse_year_range("-0330 to 0200") == (-330, 200)

    def test_single_century_spans_hundred_years(self):
        assert parse_year_range("1st century AD") == (1, 100)

    def test_single_year(self):
        assert parse_year_range("AD 79") == (79, 79)
        assert parse_year_range(-50) == (-50, -50)

    def test_iso_date_is_not_split(self):
        assert parse_year_range("2024-01-15") == (2024, 2024)

    def test_unparseable(self):
        assert parse_year_range("the bronze age") is None
        assert parse_year_range(None) is None


class TestParseTimestamp:
    """Modification timestamps -> naive UTC."""

    def test_iso_with_z(self):
        assert parse_timestamp("2024-01-15T08:30:00Z") == datetime(2024, 1, 15, 8, 30)

    def test_iso_with_offset_converted_to_utc(self):
        assert parse_timestamp("2024-01-15T10:30:00+02:00") == datetime(2024, 1, 15, 8, 30)

    def test_bare_date(self):
        assert parse_timestamp("2022-04-12") == datetime(2022, 4, 12)

    def test_rfc_2822(self):
        assert parse_timestamp("Mon, 01 Jan 2024 00:00:00 GMT") == datetime(2024, 1, 1)

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1)

    def test_unparseable(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None
