# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for gazetteer sync tests."""

import os
import tempfile
from datetime import datetime
from typing import Callable, Generator

import pytest

# Set test environment variables before importing the package
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SYNC_DATA_RAW_DIR", tempfile.mkdtemp(prefix="gazetteer-sync-test-"))
os.environ.setdefault("SYNC_HTTP_MAX_RETRIES", "1")
os.environ.setdefault("DISABLE_LOGGING", "1")

import httpx  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from gazetteer_sync.database import create_all_tables, make_engine  # noqa: E402
from gazetteer_sync.sources.configs import SOURCE_CONFIG  # noqa: E402
from gazetteer_sync.utils.clock import ManualClock  # noqa: E402

TEST_BASE_URL = "https://data.example.test"


@pytest.fixture
def engine():
    """Fresh in-memory SQLite store per test."""
    engine = make_engine("sqlite://")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory) -> Generator:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def make_client() -> Generator[Callable[[Callable], httpx.Client], None, None]:
    """Build httpx clients answering from a handler function."""
    clients = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def test_configs() -> dict:
    """SOURCE_CONFIG with every data_url pointed at the test host."""
    return {
        name: {**config, "data_url": f"{TEST_BASE_URL}/{name}", "enabled": True}
        for name, config in SOURCE_CONFIG.items()
    }


@pytest.fixture
def sample_pleiades_place() -> dict:
    """One place as it appears in the Pleiades JSON dump."""
    return {
        "id": "423025",
        "uri": "https://pleiades.stoa.org/places/423025",
        "title": "Roma",
        "description": "The capital of the Roman Republic and Empire.",
        "reprPoint": [12.486137, 41.891775],
        "placeTypes": ["settlement"],
        "locations": [
            {"start": -753, "end": 640, "attestations": [{"timePeriod": "roman"}]},
        ],
        "history": [
            {"modified": "2023-06-01T10:00:00Z", "comment": "Edited"},
            {"modified": "2024-01-15T08:30:00Z", "comment": "Added location"},
        ],
    }


@pytest.fixture
def sample_geonames_row() -> dict:
    """A GeoNames TSV row as the CSV parser yields it."""
    return {
        "geonameid": "6946845",
        "name": "Pompeii",
        "asciiname": "Pompeii",
        "alternatenames": "Pompei,Pompeji",
        "latitude": "40.7497",
        "longitude": "14.4869",
        "feature_class": "S",
        "feature_code": "ANS",
        "country_code": "IT",
        "cc2": "",
        "admin1_code": "04",
        "admin2_code": "NA",
        "admin3_code": "",
        "admin4_code": "",
        "population": "0",
        "elevation": "",
        "dem": "14",
        "timezone": "Europe/Rome",
        "modification_date": "2022-04-12",
    }
