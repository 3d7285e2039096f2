# SPDX-License-Identifier: MIT
"""End-to-end sync runs against a mocked HTTP source and an in-memory store."""

import json
from datetime import datetime

import httpx
import pytest
from sqlalchemy import func, select

from gazetteer_sync.adapters import get_adapter
from gazetteer_sync.database import PlaceRow, SyncRun, SyncState
from gazetteer_sync.orchestrator import SyncOrchestrator, batched
from gazetteer_sync.types import RunStatus, SyncStage

JAN_1 = "Mon, 01 Jan 2024 00:00:00 GMT"
FEB_1 = "Thu, 01 Feb 2024 00:00:00 GMT"


def dare_feature(place_id: int, name: str | None = "Place") -> dict:
    properties = {"id": place_id, "start": -100, "end": 300}
    if name is not None:
        properties["ancient_name"] = f"{name} {place_id}"
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [10.0 + place_id / 100, 45.0]},
        "properties": properties,
    }


def feature_collection(features: list[dict]) -> bytes:
    return json.dumps({"type": "FeatureCollection", "features": features}).encode("utf-8")


class FakeSource:
    """Serves HEAD and GET for test sources; body and headers can change between runs."""

    def __init__(self):
        self.bodies: dict[str, bytes] = {}
        self.headers: dict[str, dict] = {}
        self.status: dict[str, int] = {}
        self.requests: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        source = request.url.path.rsplit("/", 1)[-1]
        self.requests.append((request.method, source))
        status = self.status.get(source, 200)
        if status >= 400:
            return httpx.Response(status)
        headers = self.headers.get(source, {})
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=self.bodies.get(source, b""))

    def gets(self, source: str) -> int:
        return sum(1 for method, name in self.requests if method == "GET" and name == source)


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def orchestrator(session_factory, make_client, fake_source, test_configs, clock):
    orchestrator = SyncOrchestrator(
        session_factory=session_factory,
        client=make_client(fake_source),
        configs=test_configs,
        clock=clock,
        batch_size=3,
        max_workers=1,
    )
    yield orchestrator
    orchestrator.close()


def place_count(session, stale=None) -> int:
    query = select(func.count()).select_from(PlaceRow)
    if stale is not None:
        query = query.where(PlaceRow.is_stale.is_(stale))
    return session.scalar(query)


class TestBatched:
    def test_batches(self):
        assert list(batched(range(7), 3)) == [[0, 1, 2], [3, 4, 5], [6]]

    def test_empty(self):
        assert list(batched([], 3)) == []


class TestSync:
    """Full runs of one source."""

    def test_malformed_entry_is_skipped(self, orchestrator, fake_source, session):
        features = [dare_feature(i) for i in range(1, 8)]
        features.insert(3, dare_feature(99, name=None))
        fake_source.bodies["dare"] = feature_collection(features)
        fake_source.headers["dare"] = {"Last-Modified": JAN_1}

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.COMPLETED
        assert summary.records_seen == 8
        assert summary.inserted == 7
        assert summary.skipped == 1
        assert place_count(session) == 7

    def test_unchanged_source_is_not_fetched(self, orchestrator, fake_source, session):
        fake_source.bodies["dare"] = feature_collection([dare_feature(i) for i in range(1, 5)])
        fake_source.headers["dare"] = {"Last-Modified": JAN_1}
        orchestrator.sync("dare")

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.NO_CHANGE
        assert summary.writes == 0
        assert fake_source.gets("dare") == 1
        assert place_count(session) == 4

    def test_newer_source_is_fetched(self, orchestrator, fake_source, session):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1), dare_feature(2)])
        fake_source.headers["dare"] = {"Last-Modified": JAN_1}
        orchestrator.sync("dare")

        fake_source.bodies["dare"] = feature_collection([dare_feature(1, name="Renamed"), dare_feature(2)])
        fake_source.headers["dare"] = {"Last-Modified": FEB_1}
        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.COMPLETED
        assert (summary.inserted, summary.updated, summary.unchanged) == (0, 1, 1)
        assert fake_source.gets("dare") == 2
        state = session.get(SyncState, "dare")
        assert state.last_modified_seen == datetime(2024, 2, 1)

    def test_force_fetches_anyway(self, orchestrator, fake_source):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        fake_source.headers["dare"] = {"Last-Modified": JAN_1}
        orchestrator.sync("dare")

        summary = orchestrator.sync("dare", force=True)

        assert summary.status is RunStatus.COMPLETED
        assert summary.unchanged == 1
        assert fake_source.gets("dare") == 2

    def test_state_recorded_on_success(self, orchestrator, fake_source, session, clock):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        fake_source.headers["dare"] = {"Last-Modified": JAN_1, "ETag": '"abc"'}

        orchestrator.sync("dare")

        state = session.get(SyncState, "dare")
        assert state.last_success_at == clock.now()
        assert state.last_checked_at == clock.now()
        assert state.last_modified_seen == datetime(2024, 1, 1)
        assert state.last_version_seen == '"abc"'
        assert state.consecutive_failures == 0

    def test_run_is_recorded(self, orchestrator, fake_source, session):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1), dare_feature(2)])

        orchestrator.sync("dare")

        run = session.scalars(select(SyncRun)).one()
        assert run.source_name == "dare"
        assert run.status == RunStatus.COMPLETED.value
        assert run.inserted == 2
        assert run.failed_stage is None

    def test_missing_records_marked_stale(self, orchestrator, fake_source, session, clock):
        fake_source.bodies["dare"] = feature_collection([dare_feature(i) for i in range(1, 5)])
        orchestrator.sync("dare")

        clock.advance(days=1)
        fake_source.bodies["dare"] = feature_collection([dare_feature(1), dare_feature(2)])
        summary = orchestrator.sync("dare")

        assert summary.stale_marked == 2
        assert place_count(session, stale=True) == 2
        assert place_count(session, stale=False) == 2

    def test_empty_payload_does_not_mark_stale(self, orchestrator, fake_source, session):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        orchestrator.sync("dare")

        fake_source.bodies["dare"] = feature_collection([])
        summary = orchestrator.sync("dare", force=True)

        assert summary.status is RunStatus.COMPLETED
        assert summary.stale_marked == 0
        assert place_count(session, stale=False) == 1

    def test_unknown_source(self, orchestrator):
        from gazetteer_sync.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            orchestrator.sync("atlantis")


class TestFailures:
    """Failures are contained per source and recorded."""

    def test_fetch_failure(self, orchestrator, fake_source, session):
        fake_source.status["dare"] = 503

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.FAILED
        assert summary.failed_stage is SyncStage.CHECKING
        state = session.get(SyncState, "dare")
        assert state.consecutive_failures == 1
        assert "503" in state.last_error
        assert state.last_success_at is None

    def test_failures_accumulate(self, orchestrator, fake_source, session):
        fake_source.status["dare"] = 500
        for _ in range(3):
            orchestrator.sync("dare")
        assert session.get(SyncState, "dare").consecutive_failures == 3

        fake_source.status["dare"] = 200
        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        orchestrator.sync("dare")
        session.expire_all()
        assert session.get(SyncState, "dare").consecutive_failures == 0

    def test_truncated_document_fails_in_parsing(self, orchestrator, fake_source, session):
        body = feature_collection([dare_feature(i) for i in range(1, 3)])
        fake_source.bodies["dare"] = body[: len(body) // 2]

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.FAILED
        assert summary.failed_stage is SyncStage.PARSING
        assert session.get(SyncState, "dare").last_success_at is None
        assert orchestrator.stage("dare") is SyncStage.IDLE

    def test_one_source_failing_does_not_affect_another(self, orchestrator, fake_source, session):
        fake_source.status["topostext"] = 500
        fake_source.bodies["dare"] = feature_collection([dare_feature(1), dare_feature(2)])

        summaries = orchestrator.sync_many(["topostext", "dare"])

        assert [s.source_name for s in summaries] == ["topostext", "dare"]
        assert summaries[0].status is RunStatus.FAILED
        assert summaries[1].status is RunStatus.COMPLETED
        assert place_count(session) == 2
        assert session.get(SyncState, "topostext").consecutive_failures == 1
        assert session.get(SyncState, "dare").consecutive_failures == 0

    def test_unexpected_error_is_contained(self, session_factory, make_client, fake_source, test_configs, clock):
        def broken_factory(source_name, config=None, client=None):
            adapter = get_adapter(source_name, config=config, client=client)
            adapter.prepare = lambda raw: raise_runtime_error()
            return adapter

        def raise_runtime_error():
            raise RuntimeError("boom")

        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        with SyncOrchestrator(
            session_factory=session_factory,
            client=make_client(fake_source),
            configs=test_configs,
            adapter_factory=broken_factory,
            clock=clock,
        ) as orchestrator:
            summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.FAILED
        assert "boom" in summary.errors[-1]


class TestCancellation:
    def test_cancel_before_start(self, orchestrator, fake_source, session):
        fake_source.bodies["dare"] = feature_collection([dare_feature(1)])
        orchestrator.cancel()

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.CANCELLED
        assert fake_source.requests == []
        assert session.get(SyncState, "dare") is None

    def test_cancel_between_batches_keeps_committed_work(
        self, session_factory, make_client, fake_source, test_configs, clock, session,
    ):
        fake_source.bodies["dare"] = feature_collection([dare_feature(i) for i in range(1, 10)])
        orchestrator = SyncOrchestrator(
            session_factory=session_factory,
            client=make_client(fake_source),
            configs=test_configs,
            clock=clock,
            batch_size=3,
        )
        upsert_batch = orchestrator.upserter.upsert_batch

        def upsert_then_cancel(records):
            outcomes = upsert_batch(records)
            orchestrator.cancel()
            return outcomes

        orchestrator.upserter.upsert_batch = upsert_then_cancel

        summary = orchestrator.sync("dare")

        assert summary.status is RunStatus.CANCELLED
        assert summary.inserted == 3
        assert place_count(session) == 3
        assert session.get(SyncState, "dare") is None
        assert session.scalars(select(SyncRun)).one().status == RunStatus.CANCELLED.value
        orchestrator.close()
