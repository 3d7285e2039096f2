"""
Date parsing and normalization utilities.

All years come out in astronomical numbering: year 0 exists and 1 BCE == 0,
so "500 BC" becomes -499. Signed numbers supplied by a source (Pleiades minDate,
ISO 8601 expanded years like "-0330") are taken to be astronomical already.
"""

import math
import re
from datetime import datetime, timezone
from typing import Literal, Optional

from gazetteer_sync.utils.http import parse_http_date

Bound = Literal["start", "end"]

# Compared after dots and spaces are stripped ("B.C.E" -> "BCE")
BCE_ERAS = {"BC", "BCE"}

_CIRCA = r"(?:c\.|ca\.|circa|c)?\s*"
_ERA = r"(B\.?C\.?(?:E\.?)?|A\.?D\.?|C\.?E\.?)"

SIGNED_INT_RE = re.compile(r"^[+-]?\d+$")
SIGNED_FLOAT_RE = re.compile(r"^[+-]?\d+\.\d*$")
ISO_RE = re.compile(r"^([+-]?\d{4,})-(\d{2})(?:-(\d{2}))?(?:[T ].*)?$")
YEAR_ERA_RE = re.compile(rf"^{_CIRCA}(\d+)\s*{_ERA}$", re.IGNORECASE)
ERA_YEAR_RE = re.compile(rf"^{_CIRCA}(A\.?D\.?|C\.?E\.?)\s*(\d+)$", re.IGNORECASE)
CENTURY_RE = re.compile(
    rf"^{_CIRCA}(\d+)(?:st|nd|rd|th)?\s+(?:century|cent\.?|c\.)\s*{_ERA}?$",
    re.IGNORECASE,
)
RANGE_SPLIT_RE = re.compile(r"\s*(?:–|\bto\b)\s*|\s+-\s+|(?<=[\dA-Za-z.])-(?=\d)")


def _normalize_era(era: str) -> str:
    return era.upper().replace(" ", "").replace(".", "")


def to_astronomical(year: int, era: Optional[str] = None) -> int:
    """Convert a historical year with an era marker into an astronomical year."""
    if era and _normalize_era(era) in BCE_ERAS:
        return 1 - year
    return year


def _century_range(century: int, era: Optional[str]) -> tuple[int, int]:
    """Astronomical (start, end) of a numbered century."""
    if era and _normalize_era(era) in BCE_ERAS:
        # 3rd century BC = 300..201 BC
        return to_astronomical(century * 100, "BC"), to_astronomical((century - 1) * 100 + 1, "BC")
    return (century - 1) * 100 + 1, century * 100


def parse_year(value, bound: Bound = "start") -> Optional[int]:
    """
    Parse a single year from heterogeneous representations.

    Accepts ints, integral floats, signed strings ("-330"), ISO dates
    ("2024-01-15", "-0330-01-01"), era strings ("500 BC", "AD 79", "c. 300 BCE")
    and centuries ("3rd century BC"; bound selects the first or last year).

    Returns:
        Astronomical year, or None if the value can't be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if SIGNED_INT_RE.match(text):
        return int(text)

    if SIGNED_FLOAT_RE.match(text):
        return int(float(text))

    match = ISO_RE.match(text)
    if match:
        return int(match.group(1))

    match = YEAR_ERA_RE.match(text)
    if match:
        return to_astronomical(int(match.group(1)), match.group(2))

    match = ERA_YEAR_RE.match(text)
    if match:
        return int(match.group(2))

    match = CENTURY_RE.match(text)
    if match:
        century = int(match.group(1))
        if century < 1:
            return None
        start, end = _century_range(century, match.group(2))
        return start if bound == "start" else end

    return None


def parse_year_range(value) -> Optional[tuple[Optional[int], Optional[int]]]:
    """
    Parse a period expression into (start, end).

    Handles single values (a century spans its hundred years) and ranges such
    as "500 BC - 300 BC" or "-0330 to 0200". An era written only on the right
    hand side ("500-300 BC") applies to both ends.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        year = parse_year(value)
        return (year, year) if year is not None else None

    text = value.strip()
    if not text or ISO_RE.match(text) or SIGNED_INT_RE.match(text) or SIGNED_FLOAT_RE.match(text):
        parts = [text]
    else:
        parts = RANGE_SPLIT_RE.split(text, maxsplit=1)

    if len(parts) == 2:
        left, right = parts[0].strip(), parts[1].strip()
        era_match = re.search(rf"{_ERA}$", right, re.IGNORECASE)
        if era_match and SIGNED_INT_RE.match(left):
            left = f"{left} {era_match.group(1)}"
        start = parse_year(left, "start")
        end = parse_year(right, "end")
        if start is None or end is None:
            return None
        return start, end

    start = parse_year(text, "start")
    end = parse_year(text, "end")
    if start is None:
        return None
    return start, end


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a source modification timestamp into naive UTC.

    Accepts datetimes, ISO 8601 strings (with or without "Z"), bare dates,
    RFC 2822 dates (HTTP headers, RSS pubDate) and Unix epoch seconds.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = parse_http_date(text)
            if parsed is None:
                return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
