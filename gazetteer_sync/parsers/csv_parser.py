"""
CSV / TSV parser.

Streams rows through csv.DictReader over a text wrapper so that multi-GB dumps
(GeoNames allCountries) never have to be loaded at once.
"""

import csv
import io
import sys
from collections.abc import Iterator
from typing import BinaryIO, Sequence

from gazetteer_sync.types import RawRecord

# GeoNames alternate-name columns and Pleiades descriptions exceed the 128 KB default
csv.field_size_limit(min(sys.maxsize, 2**31 - 1))


def parse_csv(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    delimiter: str = ",",
    fieldnames: Sequence[str] | None = None,
    encoding: str = "utf-8",
    quoting: int = csv.QUOTE_MINIMAL,
    strict_columns: bool = True,
) -> Iterator[RawRecord]:
    """
    Parse delimited text into one dict per row.

    Args:
        delimiter: Field separator ("\\t" for GeoNames)
        fieldnames: Column names when the file has no header row
        quoting: csv quoting mode (GeoNames needs QUOTE_NONE)
        strict_columns: Skip rows whose field count differs from the header

    Yields:
        Row dicts keyed by column name, values stripped
    """
    text = io.TextIOWrapper(stream, encoding=encoding, errors="replace", newline="")
    reader = csv.DictReader(text, fieldnames=fieldnames, delimiter=delimiter, quoting=quoting)

    # Data rows start at line 2 when the header is in the file
    row_number = 0 if fieldnames else 1

    while True:
        row_number += 1
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            stats.skip(f"row {row_number}", str(e), source_name)
            continue

        if strict_columns and (None in row or any(v is None for v in row.values())):
            stats.skip(f"row {row_number}", "wrong number of columns", source_name)
            continue

        record = {
            key.strip(): value.strip() if isinstance(value, str) else value
            for key, value in row.items()
            if key is not None
        }
        stats.yielded += 1
        yield record
