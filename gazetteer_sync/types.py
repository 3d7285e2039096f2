"""
Core types for the sync engine.

Defines the canonical PlaceRecord every source is normalized into, plus the
enums and result objects passed between pipeline stages.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# A decoded entry from a raw payload, before normalization
RawRecord = dict[str, Any]


class SourceName(str, Enum):
    """Upstream gazetteers the engine knows how to sync."""

    PLEIADES = "pleiades"
    GEONAMES = "geonames"
    DARE = "dare"
    TOPOSTEXT = "topostext"
    EDH = "edh"
    OSM = "osm_historic"
    ORBIS = "orbis"
    PELAGIOS = "pelagios"
    TDAR = "tdar"


class FormatTag(str, Enum):
    """Raw payload formats understood by the parsers."""

    JSON = "json"
    JSON_LINES = "jsonl"
    JSON_LD = "jsonld"
    GEOJSON = "geojson"
    CSV = "csv"
    XML = "xml"


class UpsertOutcome(str, Enum):
    """What the upsert engine did with one record."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class SyncStage(str, Enum):
    """Per-source state machine stages."""

    IDLE = "idle"
    CHECKING = "checking"
    NO_CHANGE = "no_change"
    FETCHING = "fetching"
    PARSING = "parsing"
    NORMALIZING = "normalizing"
    UPSERTING = "upserting"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Final status of one orchestrated run."""

    COMPLETED = "completed"
    NO_CHANGE = "no_change"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PlaceRecord:
    """
    Canonical representation of a place, whatever source it came from.

    (source_name, source_id) is the natural key.
    """
    # Required fields
    source_id: str
    source_name: SourceName
    title: str

    # Optional fields
    description: str | None = None
    geometry: dict[str, Any] | None = None      # GeoJSON geometry, WGS84 lon/lat
    time_range: tuple[int | None, int | None] | None = None  # astronomical years
    attributes: dict[str, Any] = field(default_factory=dict)
    source_url: str | None = None

    # Timestamps (naive UTC)
    modified_at: datetime | None = None
    fetched_at: datetime | None = None

    @property
    def natural_key(self) -> tuple[str, str]:
        return (SourceName(self.source_name).value, self.source_id)

    @property
    def start_year(self) -> int | None:
        return self.time_range[0] if self.time_range else None

    @property
    def end_year(self) -> int | None:
        return self.time_range[1] if self.time_range else None

    def content_hash(self) -> str:
        """
        SHA-256 over every field except fetched_at.

        Used in place of modified_at when a source doesn't report one, and to
        detect content changes behind an unchanged modification date.
        """
        payload = {
            "source_id": self.source_id,
            "source_name": SourceName(self.source_name).value,
            "title": self.title,
            "description": self.description,
            "geometry": self.geometry,
            "time_range": list(self.time_range) if self.time_range else None,
            "attributes": self.attributes,
            "source_url": self.source_url,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
        }
        encoded = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class ChangeIndicator:
    """Last-modification indicator read from a metadata probe."""
    modified_at: datetime | None = None
    version: str | None = None   # ETag or dataset version label

    @property
    def is_empty(self) -> bool:
        return self.modified_at is None and not self.version


@dataclass
class ChangeCheck:
    """Decision of the change detector for one source."""
    source_name: str
    should_fetch: bool
    reason: str
    indicator: ChangeIndicator = field(default_factory=ChangeIndicator)


@dataclass
class SyncSummary:
    """Result of one orchestrated sync run."""
    source_name: str
    status: RunStatus = RunStatus.FAILED
    records_seen: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    parse_skipped: int = 0
    normalize_skipped: int = 0
    stale_marked: int = 0
    failed_stage: SyncStage | None = None
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def skipped(self) -> int:
        return self.parse_skipped + self.normalize_skipped

    @property
    def writes(self) -> int:
        return self.inserted + self.updated

    @property
    def duration_seconds(self) -> float | None:
        """Calculate duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def record_outcome(self, outcome: UpsertOutcome) -> None:
        if outcome is UpsertOutcome.INSERTED:
            self.inserted += 1
        elif outcome is UpsertOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1
