"""Utility modules for the sync engine."""

from gazetteer_sync.utils.clock import Clock, ManualClock, SystemClock, utcnow
from gazetteer_sync.utils.http import (
    fetch_with_retry,
    new_client,
    parse_http_date,
    stream_download,
)
from gazetteer_sync.utils.logging import setup_logging, source_context

__all__ = [
    # HTTP utilities
    "fetch_with_retry",
    "stream_download",
    "new_client",
    "parse_http_date",
    # Logging
    "setup_logging",
    "source_context",
    # Clocks
    "Clock",
    "SystemClock",
    "ManualClock",
    "utcnow",
]
