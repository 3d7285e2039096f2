# SPDX-License-Identifier: MIT
"""Tests for poll scheduling and failure backoff."""

import threading
from datetime import datetime, timedelta

import pytest

from gazetteer_sync.database import SyncState
from gazetteer_sync.scheduler import Scheduler, effective_interval
from gazetteer_sync.types import RunStatus, SyncSummary

DAY = 86400
HOUR = 3600


class TestEffectiveInterval:
    """Backoff after consecutive failures."""

    def test_base_below_threshold(self):
        for failures in range(3):
            assert effective_interval(HOUR, failures, threshold=3, ceiling=DAY) == HOUR

    def test_doubles_from_threshold(self):
        assert effective_interval(HOUR, 3, threshold=3, ceiling=DAY) == 2 * HOUR
        assert effective_interval(HOUR, 4, threshold=3, ceiling=DAY) == 4 * HOUR
        assert effective_interval(HOUR, 5, threshold=3, ceiling=DAY) == 8 * HOUR

    def test_capped_at_ceiling(self):
        assert effective_interval(HOUR, 20, threshold=3, ceiling=DAY) == DAY

    def test_never_below_base(self):
        assert effective_interval(7 * DAY, 10, threshold=3, ceiling=DAY) == 7 * DAY


class FakeOrchestrator:
    """Records sync calls; optionally blocks until released."""

    def __init__(self, session_factory, clock, configs):
        self.session_factory = session_factory
        self.clock = clock
        self.configs = configs
        self.cancel_event = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self.calls: list[str] = []
        self.cancelled = False

    def enabled_sources(self) -> list[str]:
        return [name for name, config in self.configs.items() if config.get("enabled", True)]

    def sync(self, source_name, force=False) -> SyncSummary:
        self.calls.append(source_name)
        self.release.wait(5)
        return SyncSummary(source_name=source_name, status=RunStatus.COMPLETED)

    def cancel(self) -> None:
        self.cancelled = True
        self.cancel_event.set()
        self.release.set()


@pytest.fixture
def configs() -> dict:
    return {
        "pleiades": {"poll_interval": DAY, "enabled": True},
        "dare": {"poll_interval": 7 * DAY, "enabled": True},
        "tdar": {"poll_interval": DAY, "enabled": False},
    }


@pytest.fixture
def fake_orchestrator(session_factory, clock, configs) -> FakeOrchestrator:
    return FakeOrchestrator(session_factory, clock, configs)


@pytest.fixture
def scheduler(fake_orchestrator, clock):
    scheduler = Scheduler(fake_orchestrator, clock=clock, max_workers=2, tick_seconds=1)
    yield scheduler
    fake_orchestrator.release.set()
    scheduler.shutdown()


def store_state(session, source, checked_at, failures=0):
    session.add(SyncState(source_name=source, last_checked_at=checked_at, consecutive_failures=failures))
    session.commit()


class TestDue:
    def test_never_checked_is_due(self, scheduler):
        assert scheduler.next_due("pleiades") is None
        assert set(scheduler.due_sources()) == {"pleiades", "dare"}

    def test_disabled_source_never_due(self, scheduler):
        assert "tdar" not in scheduler.due_sources()

    def test_next_due_after_poll_interval(self, scheduler, session, clock):
        store_state(session, "pleiades", clock.now())
        assert scheduler.next_due("pleiades") == clock.now() + timedelta(days=1)
        assert "pleiades" not in scheduler.due_sources()

        clock.advance(days=1)
        assert "pleiades" in scheduler.due_sources()

    def test_next_due_backs_off_after_failures(self, scheduler, session):
        checked = datetime(2024, 3, 1)
        store_state(session, "pleiades", checked, failures=3)
        # Default threshold is 3, so the daily interval doubles
        assert scheduler.next_due("pleiades") == checked + timedelta(days=2)


class TestTick:
    def test_tick_runs_due_sources(self, scheduler, fake_orchestrator):
        futures = scheduler.tick()
        results = {source: future.result(timeout=5) for source, future in futures.items()}

        assert set(results) == {"pleiades", "dare"}
        assert all(r.status is RunStatus.COMPLETED for r in results.values())
        assert sorted(fake_orchestrator.calls) == ["dare", "pleiades"]

    def test_running_source_not_resubmitted(self, scheduler, fake_orchestrator):
        fake_orchestrator.release.clear()
        first = scheduler.tick()
        assert scheduler.in_flight == {"pleiades", "dare"}

        second = scheduler.tick()
        assert second == {}

        fake_orchestrator.release.set()
        for future in first.values():
            future.result(timeout=5)
        assert scheduler.in_flight == set()

    def test_in_flight_cleared_after_error(self, scheduler, fake_orchestrator, mocker):
        mocker.patch.object(fake_orchestrator, "sync", side_effect=RuntimeError("boom"))
        futures = scheduler.tick()
        for future in futures.values():
            with pytest.raises(RuntimeError):
                future.result(timeout=5)
        assert scheduler.in_flight == set()


class TestRunForever:
    def test_stops_when_event_set(self, fake_orchestrator, clock):
        scheduler = Scheduler(fake_orchestrator, clock=clock, max_workers=2, tick_seconds=60)
        stop_event = threading.Event()
        stop_event.set()

        scheduler.run_forever(stop_event)

        assert fake_orchestrator.calls == []

    def test_cancels_running_syncs_on_stop(self, fake_orchestrator, clock):
        scheduler = Scheduler(fake_orchestrator, clock=clock, max_workers=2, tick_seconds=60)
        fake_orchestrator.release.clear()
        stop_event = threading.Event()

        worker = threading.Thread(target=scheduler.run_forever, args=(stop_event,))
        worker.start()
        deadline = datetime.now() + timedelta(seconds=5)
        while not scheduler.in_flight and datetime.now() < deadline:
            threading.Event().wait(0.01)

        stop_event.set()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert fake_orchestrator.cancelled
        assert scheduler.in_flight == set()

    def test_crashed_sync_is_logged(self, fake_orchestrator, clock, mocker):
        mocker.patch.object(fake_orchestrator, "sync", side_effect=RuntimeError("boom"))
        mock_logger = mocker.patch("gazetteer_sync.scheduler.logger")
        scheduler = Scheduler(fake_orchestrator, clock=clock, max_workers=2, tick_seconds=60)
        stop_event = threading.Event()

        worker = threading.Thread(target=scheduler.run_forever, args=(stop_event,))
        worker.start()
        deadline = datetime.now() + timedelta(seconds=5)
        while mock_logger.opt.return_value.error.call_count < 2 and datetime.now() < deadline:
            threading.Event().wait(0.01)

        stop_event.set()
        worker.join(timeout=5)

        messages = [call.args[0] for call in mock_logger.opt.return_value.error.call_args_list]
        assert sorted(messages) == ["dare: sync crashed: boom", "pleiades: sync crashed: boom"]
        for call in mock_logger.opt.call_args_list:
            assert isinstance(call.kwargs["exception"], RuntimeError)
