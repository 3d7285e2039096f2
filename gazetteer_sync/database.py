"""
Database models for the gazetteer sync engine.

Uses SQLAlchemy 2.0 with GeoAlchemy2 for PostGIS support. On any other backend
(SQLite for tests and local runs) the geometry is kept as WKT text and spatial
queries fall back to the bounding-box columns.
"""

from datetime import datetime
from typing import Optional

from geoalchemy2 import Geometry, WKTElement
from loguru import logger
from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Float,
    Boolean,
    DateTime,
    Text,
    Index,
    UniqueConstraint,
    JSON,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from gazetteer_sync.config import settings


# =============================================================================
# Database Engine and Session
# =============================================================================

SPATIAL = settings.database.is_postgis


def is_memory_sqlite(url: str) -> bool:
    """True for SQLite URLs that name no file (the database lives in one connection)."""
    if not url.startswith("sqlite"):
        return False
    database = url.split("://", 1)[-1].lstrip("/")
    return database in ("", ":memory:") or "mode=memory" in url


def make_engine(url: str) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    if is_memory_sqlite(url):
        # One shared connection so the database survives across sessions
        # and worker threads
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    if url.startswith("sqlite"):
        # A connection per session; concurrent writers wait on the file lock
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_engine(
        url,
        echo=settings.sync.log_level == "DEBUG",
        pool_pre_ping=True,
        pool_size=max(5, settings.sync.max_workers * 2),
        max_overflow=10,
        pool_timeout=30,        # Connection timeout to prevent hanging
        pool_recycle=1800,      # Recycle connections every 30 minutes
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=300000",  # 5 min for bulk batches
        },
    )


engine = make_engine(settings.database.url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def geometry_value(wkt: str | None):
    """Wrap WKT for the geometry column of the active backend."""
    if wkt is None:
        return None
    if SPATIAL:
        return WKTElement(wkt, srid=4326)
    return wkt


# =============================================================================
# Base Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Place Records
# =============================================================================

class PlaceRow(Base):
    """
    Stored PlaceRecord. One row per (source_name, source_id).

    Rows are never deleted by the sync engine; records that disappear from
    their source are flagged stale instead.
    """
    __tablename__ = "place_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Natural key
    source_name: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(500), nullable=False)

    # Core fields
    title: Mapped[str] = mapped_column(String(1000), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Location (GeoJSON is the canonical copy; bbox columns serve portable queries)
    geometry: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True), nullable=True)
    geom = mapped_column(
        Geometry(geometry_type="GEOMETRY", srid=4326, spatial_index=True) if SPATIAL else Text,
        nullable=True,
    )
    min_lon: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    min_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_lon: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Time range (astronomical years, negative = BCE)
    start_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Provenance
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Lifecycle
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    stale_since: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("source_name", "source_id", name="uq_place_natural_key"),
        Index("idx_place_bbox", "min_lon", "min_lat", "max_lon", "max_lat"),
        Index("idx_place_years", "start_year", "end_year"),
        Index("idx_place_source_stale", "source_name", "is_stale"),
    )

    def __repr__(self) -> str:
        return f"<PlaceRow {self.source_name}:{self.source_id} {self.title!r}>"


# =============================================================================
# Sync Bookkeeping
# =============================================================================

class SyncState(Base):
    """
    Change-detection and failure state for one source.

    Created on the first run of a source, updated after every run, never deleted.
    """
    __tablename__ = "sync_states"

    source_name: Mapped[str] = mapped_column(String(50), primary_key=True)

    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_modified_seen: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_version_seen: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    last_success_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncState {self.source_name} failures={self.consecutive_failures}>"


class SyncRun(Base):
    """Provenance row written for every orchestrated run."""
    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    records_seen: Mapped[int] = mapped_column(Integer, default=0)
    inserted: Mapped[int] = mapped_column(Integer, default=0)
    updated: Mapped[int] = mapped_column(Integer, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, default=0)
    skipped: Mapped[int] = mapped_column(Integer, default=0)
    stale_marked: Mapped[int] = mapped_column(Integer, default=0)

    failed_stage: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncRun {self.source_name} {self.status} @ {self.started_at}>"


def create_all_tables(bind: Engine | None = None):
    """Create all tables (and the PostGIS extension on PostgreSQL)."""
    bind = bind or engine
    if bind.dialect.name == "postgresql":
        with bind.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
    Base.metadata.create_all(bind=bind)
    logger.info(f"Tables ready in {bind.url.render_as_string(hide_password=True)}")


def drop_all_tables(bind: Engine | None = None):
    """Drop all tables. USE WITH CAUTION!"""
    bind = bind or engine
    logger.warning(f"Dropping all tables in {bind.url.render_as_string(hide_password=True)}")
    Base.metadata.drop_all(bind=bind)
