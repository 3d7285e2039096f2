"""
Upsert engine: applies PlaceRecords to the local store.

Keyed on (source_name, source_id). A record is written only when it is new,
newer, or different; an unchanged record causes no write at all, so re-running
a sync over the same payload is a no-op.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gazetteer_sync.database import PlaceRow, SessionLocal, geometry_value
from gazetteer_sync.errors import StorageError
from gazetteer_sync.normalizers.geometry import geometry_bounds, geometry_wkt
from gazetteer_sync.types import PlaceRecord, SourceName, UpsertOutcome
from gazetteer_sync.utils.clock import utcnow

# Max ids per IN (...) clause
LOOKUP_CHUNK = 500


def needs_update(row: PlaceRow, record: PlaceRecord, content_hash: str) -> bool:
    """
    Conflict policy between a stored row and an incoming record.

    With modification times on both sides the newer one wins; an equal time
    falls back to comparing content hashes, as does a missing time on either
    side.
    """
    if row.modified_at is not None and record.modified_at is not None:
        if record.modified_at < row.modified_at:
            return False
        if record.modified_at > row.modified_at:
            return True
    return row.content_hash != content_hash


def apply_record(row: PlaceRow, record: PlaceRecord, content_hash: str) -> None:
    """Copy every PlaceRecord field onto a row."""
    row.title = record.title
    row.description = record.description
    row.source_url = record.source_url

    row.geometry = record.geometry
    row.geom = geometry_value(geometry_wkt(record.geometry))
    bounds = geometry_bounds(record.geometry)
    row.min_lon, row.min_lat, row.max_lon, row.max_lat = bounds if bounds else (None, None, None, None)

    row.start_year = record.start_year
    row.end_year = record.end_year

    row.attributes = record.attributes
    row.content_hash = content_hash
    row.modified_at = record.modified_at
    row.fetched_at = record.fetched_at


def _chunks(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class UpsertEngine:
    """Writes PlaceRecords to the place_records table."""

    def __init__(self, session_factory: sessionmaker = SessionLocal, clock=None):
        self.session_factory = session_factory
        self.clock = clock

    def _now(self) -> datetime:
        return self.clock.now() if self.clock else utcnow()

    def upsert(self, record: PlaceRecord) -> UpsertOutcome:
        """
        Insert or update one record in its own transaction.

        Raises:
            StorageError: The transaction failed and was rolled back
        """
        return self.upsert_batch([record])[0]

    def upsert_batch(self, records: Sequence[PlaceRecord]) -> list[UpsertOutcome]:
        """
        Upsert a batch in one transaction.

        Existing rows are loaded in bulk; a key repeated within the batch
        is resolved against the row pending from its earlier occurrence.

        Returns:
            One outcome per input record, in order

        Raises:
            StorageError: The transaction failed and was rolled back
        """
        if not records:
            return []

        session: Session = self.session_factory()
        try:
            pending = self._load_existing(session, records)
            outcomes = []

            for record in records:
                key = record.natural_key
                content_hash = record.content_hash()
                row = pending.get(key)

                if row is None:
                    row = PlaceRow(source_name=key[0], source_id=key[1], is_stale=False)
                    apply_record(row, record, content_hash)
                    session.add(row)
                    pending[key] = row
                    outcomes.append(UpsertOutcome.INSERTED)
                    continue

                changed = needs_update(row, record, content_hash)
                if not changed and not row.is_stale:
                    outcomes.append(UpsertOutcome.UNCHANGED)
                    continue

                if changed:
                    apply_record(row, record, content_hash)
                if row.is_stale:
                    logger.debug(f"{key[0]}:{key[1]} reappeared, clearing stale flag")
                    row.is_stale = False
                    row.stale_since = None
                outcomes.append(UpsertOutcome.UPDATED)

            session.commit()
            return outcomes

        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Upsert of {len(records)} records failed: {e}", records[0].natural_key[0]) from e
        finally:
            session.close()

    def _load_existing(self, session: Session, records: Sequence[PlaceRecord]) -> dict[tuple[str, str], PlaceRow]:
        """Stored rows for the batch's natural keys."""
        ids_by_source: dict[str, set[str]] = {}
        for record in records:
            source, source_id = record.natural_key
            ids_by_source.setdefault(source, set()).add(source_id)

        existing: dict[tuple[str, str], PlaceRow] = {}
        for source, ids in ids_by_source.items():
            for chunk in _chunks(sorted(ids), LOOKUP_CHUNK):
                rows = session.scalars(
                    select(PlaceRow).where(
                        PlaceRow.source_name == source,
                        PlaceRow.source_id.in_(chunk),
                    )
                )
                for row in rows:
                    existing[(row.source_name, row.source_id)] = row
        return existing

    def mark_stale(self, source_name: SourceName | str, seen_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        """
        Flag rows of a source that a complete run did not see.

        Rows are never deleted; a flagged row is cleared again when its
        record reappears.

        Returns:
            Number of rows newly marked stale

        Raises:
            StorageError: The transaction failed and was rolled back
        """
        source = SourceName(source_name).value
        seen = set(seen_ids)
        now = now or self._now()

        session: Session = self.session_factory()
        try:
            current = session.execute(
                select(PlaceRow.id, PlaceRow.source_id).where(
                    PlaceRow.source_name == source,
                    PlaceRow.is_stale.is_(False),
                )
            )
            missing = [row_id for row_id, source_id in current if source_id not in seen]

            for chunk in _chunks(missing, LOOKUP_CHUNK):
                session.execute(
                    update(PlaceRow)
                    .where(PlaceRow.id.in_(chunk))
                    .values(is_stale=True, stale_since=now)
                )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Stale marking for {source} failed: {e}", source) from e
        finally:
            session.close()

        if missing:
            logger.info(f"{source}: marked {len(missing):,} records stale")
        return len(missing)
