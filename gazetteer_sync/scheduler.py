"""
Scheduler: polls each source on its own interval.

A source is due once its poll interval has passed since it was last checked.
After repeated failures the interval backs off exponentially up to a ceiling;
a source is never disabled. Due sources run concurrently on a bounded thread
pool, and a source that is still running is never submitted twice.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from functools import partial
from typing import Optional

from loguru import logger

from gazetteer_sync.config import settings
from gazetteer_sync.database import SyncState
from gazetteer_sync.orchestrator import SyncOrchestrator
from gazetteer_sync.types import SourceName, SyncSummary
from gazetteer_sync.utils.clock import Clock, SystemClock


def effective_interval(
    base: int,
    failures: int,
    threshold: Optional[int] = None,
    ceiling: Optional[int] = None,
) -> int:
    """
    Poll interval in seconds after `failures` consecutive failures.

    Below the threshold the base interval applies. From the threshold on it
    doubles per failure (x2 at the threshold, x4 one later, ...), capped at
    the ceiling but never below the base.
    """
    threshold = threshold if threshold is not None else settings.sync.backoff_failure_threshold
    ceiling = ceiling if ceiling is not None else settings.sync.backoff_ceiling

    if failures < threshold:
        return base
    multiplier = 2 ** (failures - threshold + 1)
    return max(base, min(base * multiplier, ceiling))


class Scheduler:
    """Issues sync ticks per source on independent schedules."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        clock: Optional[Clock] = None,
        max_workers: Optional[int] = None,
        tick_seconds: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.clock = clock or orchestrator.clock or SystemClock()
        self.max_workers = max_workers or settings.sync.max_workers
        self.tick_seconds = tick_seconds or settings.sync.tick_seconds

        self.executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="scheduler")
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> set[str]:
        with self._lock:
            return set(self._in_flight)

    def poll_interval(self, source: str) -> int:
        config = self.orchestrator.configs.get(source, {})
        return config.get("poll_interval", settings.sync.default_poll_interval)

    def _load_state(self, source: str) -> Optional[SyncState]:
        session = self.orchestrator.session_factory()
        try:
            state = session.get(SyncState, source)
            if state is not None:
                session.expunge(state)
            return state
        finally:
            session.close()

    def next_due(self, source_name: SourceName | str) -> Optional[datetime]:
        """When the source is next due; None means due now (never checked)."""
        source = SourceName(source_name).value
        state = self._load_state(source)
        if state is None or state.last_checked_at is None:
            return None
        interval = effective_interval(self.poll_interval(source), state.consecutive_failures or 0)
        return state.last_checked_at + timedelta(seconds=interval)

    def due_sources(self) -> list[str]:
        now = self.clock.now()
        due = []
        for source in self.orchestrator.enabled_sources():
            next_due = self.next_due(source)
            if next_due is None or next_due <= now:
                due.append(source)
        return due

    def tick(self) -> dict[str, Future]:
        """
        Submit every due source that isn't already running.

        Returns:
            Futures of the submitted syncs, keyed by source
        """
        submitted: dict[str, Future] = {}
        for source in self.due_sources():
            with self._lock:
                if source in self._in_flight:
                    logger.debug(f"{source}: still running, not resubmitted")
                    continue
                self._in_flight.add(source)
            submitted[source] = self.executor.submit(self._run, source)

        if submitted:
            logger.info(f"Tick: started {', '.join(submitted)}")
        return submitted

    def _run(self, source: str) -> SyncSummary:
        try:
            return self.orchestrator.sync(source)
        finally:
            with self._lock:
                self._in_flight.discard(source)

    def _report_failure(self, source: str, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.opt(exception=error).error(f"{source}: sync crashed: {error}")

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Tick until stop_event is set, then cancel running syncs and wait for them.
        """
        stop_event = stop_event or threading.Event()
        self.orchestrator.cancel_event.clear()
        logger.info(f"Scheduler started (tick every {self.tick_seconds}s, {self.max_workers} workers)")

        try:
            while not stop_event.is_set():
                for source, future in self.tick().items():
                    future.add_done_callback(partial(self._report_failure, source))
                if stop_event.wait(self.tick_seconds):
                    break
        finally:
            if self.in_flight:
                self.orchestrator.cancel()
            self.shutdown()
            logger.info("Scheduler stopped")

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
