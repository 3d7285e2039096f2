"""
Sync orchestrator.

Runs detect -> fetch -> parse -> normalize -> upsert for one source at a time,
drives the per-source state machine and records SyncState and SyncRun rows.

    IDLE -> CHECKING -> NO_CHANGE -> IDLE
                     -> FETCHING -> PARSING -> NORMALIZING -> UPSERTING
                                       ^                          |
                                       +---- next batch ----------+-> IDLE
    any stage -> FAILED -> IDLE

A failure in one source never touches another. Cancellation is checked
between stages and batches; batches already committed stay committed.
"""

import threading
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from itertools import islice
from typing import Callable, Optional

import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from gazetteer_sync.adapters import FetchedPayload, SourceAdapter, get_adapter
from gazetteer_sync.change_detector import ChangeDetector
from gazetteer_sync.config import settings
from gazetteer_sync.database import SessionLocal, SyncRun, SyncState
from gazetteer_sync.errors import ConfigurationError, NormalizationError, SyncCancelled, SyncError
from gazetteer_sync.normalizers import Normalizer
from gazetteer_sync.parsers import ParseStats
from gazetteer_sync.sources.configs import SourceConfigType, load_source_configs
from gazetteer_sync.types import (
    ChangeIndicator,
    RawRecord,
    RunStatus,
    SourceName,
    SyncStage,
    SyncSummary,
)
from gazetteer_sync.upsert import UpsertEngine
from gazetteer_sync.utils.clock import Clock, SystemClock
from gazetteer_sync.utils.http import new_client
from gazetteer_sync.utils.logging import source_context

MAX_ERROR_LENGTH = 2000


def batched(items: Iterable, size: int) -> Iterator[list]:
    """Yield lists of up to size items."""
    iterator = iter(items)
    while batch := list(islice(iterator, size)):
        yield batch


class SyncOrchestrator:
    """
    Runs syncs and records their outcome.

    Collaborators are injectable so tests can swap the HTTP client, clock or
    store; by default everything comes from settings.
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        client: Optional[httpx.Client] = None,
        configs: Optional[dict[str, SourceConfigType]] = None,
        adapter_factory: Callable[..., SourceAdapter] = get_adapter,
        normalizer: Optional[Normalizer] = None,
        clock: Optional[Clock] = None,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.configs = configs if configs is not None else load_source_configs()
        self.adapter_factory = adapter_factory
        self.clock = clock or SystemClock()
        self.normalizer = normalizer or Normalizer()
        self.detector = ChangeDetector(session_factory, adapter_factory)
        self.upserter = UpsertEngine(session_factory, self.clock)
        self.batch_size = batch_size or settings.sync.batch_size
        self.max_workers = max_workers or settings.sync.max_workers

        self.client = client or new_client()
        self._owns_client = client is None

        self.cancel_event = threading.Event()
        self._stages: dict[str, SyncStage] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ---- state machine ----

    def stage(self, source_name: SourceName | str) -> SyncStage:
        """Current stage of a source (IDLE when not running)."""
        with self._lock:
            return self._stages.get(SourceName(source_name).value, SyncStage.IDLE)

    def _transition(self, source: str, stage: SyncStage) -> None:
        with self._lock:
            previous = self._stages.get(source, SyncStage.IDLE)
            self._stages[source] = stage
        if previous != stage:
            logger.debug(f"{source}: {previous.value} -> {stage.value}")

    def cancel(self) -> None:
        """Ask running syncs to stop at their next stage or batch boundary."""
        logger.warning("Cancellation requested")
        self.cancel_event.set()

    def _check_cancelled(self, source: str) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled(f"{source}: sync cancelled", source)

    # ---- runs ----

    def sync(self, source_name: SourceName | str, force: bool = False) -> SyncSummary:
        """
        Run one full sync of a source.

        Args:
            source_name: Source to sync
            force: Fetch even if the change detector sees no change

        Returns:
            SyncSummary; the run is also recorded as a SyncRun row

        Raises:
            ConfigurationError: Unknown or unconfigured source
        """
        try:
            source = SourceName(source_name).value
        except ValueError as e:
            raise ConfigurationError(f"Unknown source: {source_name!r}", str(source_name)) from e
        if source not in self.configs:
            raise ConfigurationError(f"Source {source} is not configured", source)

        with source_context(source):
            summary = self._sync(source, force)
            self._log_summary(summary)
        return summary

    def _sync(self, source: str, force: bool) -> SyncSummary:
        summary = SyncSummary(source_name=source, started_at=self.clock.now())
        logger.info(f"Starting sync: {source}")

        try:
            with self.adapter_factory(source, config=self.configs[source], client=self.client) as adapter:
                self._run(adapter, summary, force)

        except SyncCancelled as e:
            summary.status = RunStatus.CANCELLED
            summary.failed_stage = self.stage(source)
            summary.errors.append(str(e))
            logger.warning(f"{source}: cancelled during {summary.failed_stage.value}")

        except SyncError as e:
            self._fail(source, summary, e)

        except Exception as e:
            logger.exception(f"{source}: unexpected error")
            self._fail(source, summary, e)

        finally:
            self._transition(source, SyncStage.IDLE)
            summary.completed_at = self.clock.now()
            self._record_run(summary)

        return summary

    def _run(self, adapter: SourceAdapter, summary: SyncSummary, force: bool) -> None:
        source = adapter.source_name.value
        self._check_cancelled(source)

        self._transition(source, SyncStage.CHECKING)
        check = self.detector.check(source, adapter)
        if not check.should_fetch and not force:
            self._transition(source, SyncStage.NO_CHANGE)
            summary.status = RunStatus.NO_CHANGE
            self._record_no_change(source)
            return
        self._check_cancelled(source)

        self._transition(source, SyncStage.FETCHING)
        payload = adapter.fetch()
        payload.fetched_at = payload.fetched_at or self.clock.now()
        logger.info(f"{source}: fetched {payload.size:,} bytes")
        self._check_cancelled(source)

        seen_ids = self._process(adapter, payload, summary)

        if summary.records_seen == 0:
            logger.warning(f"{source}: payload held no records, skipping stale marking")
        else:
            summary.stale_marked = self.upserter.mark_stale(source, seen_ids, self.clock.now())

        indicator = check.indicator if not check.indicator.is_empty else payload.indicator
        self._record_success(source, indicator)
        summary.status = RunStatus.COMPLETED

    def _process(self, adapter: SourceAdapter, payload: FetchedPayload, summary: SyncSummary) -> set[str]:
        """Parse, normalize and upsert the payload batch by batch."""
        source = adapter.source_name.value
        stats = ParseStats()
        seen_ids: set[str] = set()

        self._transition(source, SyncStage.PARSING)
        try:
            for batch in batched(adapter.iter_records(payload, stats), self.batch_size):
                self._check_cancelled(source)

                self._transition(source, SyncStage.NORMALIZING)
                records = self._normalize_batch(source, batch, payload.fetched_at, summary)
                self._check_cancelled(source)

                self._transition(source, SyncStage.UPSERTING)
                for outcome in self.upserter.upsert_batch(records):
                    summary.record_outcome(outcome)
                seen_ids.update(record.source_id for record in records)

                logger.debug(
                    f"{source}: batch of {len(batch)} committed "
                    f"(+{summary.inserted} ~{summary.updated} ={summary.unchanged})"
                )
                self._transition(source, SyncStage.PARSING)
        finally:
            summary.records_seen = stats.yielded - stats.filtered
            summary.parse_skipped = stats.skipped
            summary.errors.extend(stats.errors[:10])

        return seen_ids

    def _normalize_batch(self, source: str, batch: list[RawRecord], fetched_at: datetime, summary: SyncSummary):
        records = []
        for raw in batch:
            try:
                records.append(self.normalizer.normalize(raw, source, fetched_at))
            except NormalizationError as e:
                summary.normalize_skipped += 1
                if len(summary.errors) < 100:
                    summary.errors.append(str(e))
                logger.debug(f"{source}: {e}")
        return records

    def sync_many(self, source_names: Optional[Iterable[SourceName | str]] = None, force: bool = False) -> list[SyncSummary]:
        """
        Sync several sources concurrently (bounded by max_workers).

        Args:
            source_names: Sources to sync; all enabled sources by default

        Returns:
            Summaries in the order the sources were given
        """
        names = list(source_names) if source_names is not None else self.enabled_sources()
        if not names:
            return []

        workers = min(self.max_workers, len(names))
        logger.info(f"Syncing {len(names)} sources with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync") as executor:
            return list(executor.map(lambda name: self.sync(name, force=force), names))

    def enabled_sources(self) -> list[str]:
        return [name for name, config in self.configs.items() if config.get("enabled", True)]

    # ---- bookkeeping ----

    def _fail(self, source: str, summary: SyncSummary, error: Exception) -> None:
        stage = self.stage(source)
        self._transition(source, SyncStage.FAILED)
        summary.status = RunStatus.FAILED
        summary.failed_stage = stage
        summary.errors.append(f"{stage.value}: {error}")
        logger.error(f"{source}: failed during {stage.value}: {error}")
        self._record_failure(source, f"{type(error).__name__} during {stage.value}: {error}")

    def _state(self, session, source: str) -> SyncState:
        state = session.get(SyncState, source)
        if state is None:
            state = SyncState(source_name=source, consecutive_failures=0)
            session.add(state)
        return state

    def _write_state(self, source: str, update: Callable[[SyncState], None]) -> None:
        session = self.session_factory()
        try:
            update(self._state(session, source))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{source}: could not record sync state: {e}")
        finally:
            session.close()

    def _record_no_change(self, source: str) -> None:
        now = self.clock.now()

        def update(state: SyncState) -> None:
            state.last_checked_at = now
            state.last_success_at = now
            state.consecutive_failures = 0
            state.last_error = None

        self._write_state(source, update)

    def _record_success(self, source: str, indicator: ChangeIndicator) -> None:
        now = self.clock.now()

        def update(state: SyncState) -> None:
            state.last_checked_at = now
            state.last_success_at = now
            state.last_modified_seen = indicator.modified_at
            state.last_version_seen = indicator.version
            state.consecutive_failures = 0
            state.last_error = None

        self._write_state(source, update)

    def _record_failure(self, source: str, message: str) -> None:
        now = self.clock.now()

        def update(state: SyncState) -> None:
            state.last_checked_at = now
            state.consecutive_failures = (state.consecutive_failures or 0) + 1
            state.last_error = message[:MAX_ERROR_LENGTH]

        self._write_state(source, update)

    def _record_run(self, summary: SyncSummary) -> None:
        session = self.session_factory()
        try:
            session.add(SyncRun(
                source_name=summary.source_name,
                status=summary.status.value,
                started_at=summary.started_at,
                completed_at=summary.completed_at,
                records_seen=summary.records_seen,
                inserted=summary.inserted,
                updated=summary.updated,
                unchanged=summary.unchanged,
                skipped=summary.skipped,
                stale_marked=summary.stale_marked,
                failed_stage=summary.failed_stage.value if summary.failed_stage else None,
                error_message="\n".join(summary.errors)[:MAX_ERROR_LENGTH] or None,
            ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{summary.source_name}: could not record sync run: {e}")
        finally:
            session.close()

    def _log_summary(self, summary: SyncSummary) -> None:
        duration = f"{summary.duration_seconds:.1f}s" if summary.duration_seconds is not None else "-"
        message = (
            f"{summary.source_name}: {summary.status.value} in {duration} - "
            f"seen {summary.records_seen:,}, inserted {summary.inserted:,}, "
            f"updated {summary.updated:,}, unchanged {summary.unchanged:,}, "
            f"skipped {summary.skipped:,}, stale {summary.stale_marked:,}"
        )
        if summary.status is RunStatus.FAILED:
            logger.error(message)
        elif summary.status is RunStatus.CANCELLED:
            logger.warning(message)
        else:
            logger.info(message)
