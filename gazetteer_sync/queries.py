"""
Read contracts over the local store.

Results come back as PlaceRecords. Stale rows are left out unless asked for.
On PostGIS bounding-box queries go through the spatial index; elsewhere they
use the stored bbox columns.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from geoalchemy2 import functions as geo_func
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from gazetteer_sync.database import SPATIAL, PlaceRow, SessionLocal
from gazetteer_sync.normalizers.geometry import is_valid_coordinates
from gazetteer_sync.types import PlaceRecord, SourceName


def row_to_record(row: PlaceRow) -> PlaceRecord:
    """Convert a stored row back into a PlaceRecord."""
    time_range = None
    if row.start_year is not None or row.end_year is not None:
        time_range = (row.start_year, row.end_year)

    return PlaceRecord(
        source_id=row.source_id,
        source_name=SourceName(row.source_name),
        title=row.title,
        description=row.description,
        geometry=row.geometry,
        time_range=time_range,
        attributes=row.attributes or {},
        source_url=row.source_url,
        modified_at=row.modified_at,
        fetched_at=row.fetched_at,
    )


@contextmanager
def _session_scope(session: Optional[Session]) -> Iterator[Session]:
    if session is not None:
        yield session
        return
    owned = SessionLocal()
    try:
        yield owned
    finally:
        owned.close()


def _finish(query, session: Session, include_stale: bool, limit: Optional[int], offset: int) -> list[PlaceRecord]:
    if not include_stale:
        query = query.where(PlaceRow.is_stale.is_(False))
    query = query.order_by(PlaceRow.source_name, PlaceRow.source_id).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return [row_to_record(row) for row in session.scalars(query)]


def query_by_bbox(
    min_lon: float,
    min_lat: float,
    max_lon: float,
    max_lat: float,
    source_name: SourceName | str | None = None,
    include_stale: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
    session: Optional[Session] = None,
) -> list[PlaceRecord]:
    """
    Records whose geometry intersects a bounding box (WGS84 degrees).

    Raises:
        ValueError: Coordinates out of range or min > max
    """
    if not (is_valid_coordinates(min_lat, min_lon) and is_valid_coordinates(max_lat, max_lon)):
        raise ValueError("Bounding box coordinates out of range")
    if min_lon > max_lon or min_lat > max_lat:
        raise ValueError("Bounding box minimum exceeds maximum")

    query = select(PlaceRow).where(PlaceRow.geometry.is_not(None))
    if SPATIAL:
        envelope = geo_func.ST_MakeEnvelope(min_lon, min_lat, max_lon, max_lat, 4326)
        query = query.where(geo_func.ST_Intersects(PlaceRow.geom, envelope))
    else:
        query = query.where(
            PlaceRow.min_lon <= max_lon,
            PlaceRow.max_lon >= min_lon,
            PlaceRow.min_lat <= max_lat,
            PlaceRow.max_lat >= min_lat,
        )
    if source_name is not None:
        query = query.where(PlaceRow.source_name == SourceName(source_name).value)

    with _session_scope(session) as s:
        return _finish(query, s, include_stale, limit, offset)


def query_by_time_range(
    start: int,
    end: int,
    source_name: SourceName | str | None = None,
    include_stale: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
    session: Optional[Session] = None,
) -> list[PlaceRecord]:
    """
    Records whose time range overlaps [start, end] (astronomical years).

    A null bound is open-ended; records without any time range never match.

    Raises:
        ValueError: start > end
    """
    if start > end:
        raise ValueError("start must not be after end")

    query = select(PlaceRow).where(
        or_(PlaceRow.start_year.is_not(None), PlaceRow.end_year.is_not(None)),
        and_(
            or_(PlaceRow.start_year.is_(None), PlaceRow.start_year <= end),
            or_(PlaceRow.end_year.is_(None), PlaceRow.end_year >= start),
        ),
    )
    if source_name is not None:
        query = query.where(PlaceRow.source_name == SourceName(source_name).value)

    with _session_scope(session) as s:
        return _finish(query, s, include_stale, limit, offset)


def query_by_source(
    source_name: SourceName | str,
    include_stale: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
    session: Optional[Session] = None,
) -> list[PlaceRecord]:
    """All records of one source, ordered by source_id."""
    query = select(PlaceRow).where(PlaceRow.source_name == SourceName(source_name).value)
    with _session_scope(session) as s:
        return _finish(query, s, include_stale, limit, offset)


def count_by_source(session: Optional[Session] = None) -> dict[str, dict[str, int]]:
    """{source: {"active": n, "stale": m}} for status output."""
    query = (
        select(PlaceRow.source_name, PlaceRow.is_stale, func.count())
        .group_by(PlaceRow.source_name, PlaceRow.is_stale)
    )
    counts: dict[str, dict[str, int]] = {}
    with _session_scope(session) as s:
        for source, is_stale, count in s.execute(query):
            entry = counts.setdefault(source, {"active": 0, "stale": 0})
            entry["stale" if is_stale else "active"] += count
    return counts
