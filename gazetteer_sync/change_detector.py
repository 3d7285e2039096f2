"""
Change detection: decide whether a source needs re-fetching.

Compares the indicator from a metadata probe (Last-Modified, else ETag, else
an adapter-supplied version) with what the last successful sync recorded.
Read-only: the orchestrator records new indicators once a run commits.
"""

from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import sessionmaker

from gazetteer_sync.adapters import SourceAdapter, get_adapter
from gazetteer_sync.database import SessionLocal, SyncState
from gazetteer_sync.types import ChangeCheck, ChangeIndicator, SourceName


def decide(state: Optional[SyncState], indicator: ChangeIndicator) -> tuple[bool, str]:
    """
    Pure fetch decision for a stored state and a fresh indicator.

    Returns:
        (should_fetch, reason)
    """
    if state is None or state.last_success_at is None:
        return True, "no previous successful sync"

    if indicator.is_empty:
        return True, "source reports no change indicator"

    if indicator.modified_at is not None:
        if state.last_modified_seen is None:
            return True, f"modified {indicator.modified_at:%Y-%m-%d %H:%M:%S}, none recorded"
        if indicator.modified_at > state.last_modified_seen:
            return True, (
                f"modified {indicator.modified_at:%Y-%m-%d %H:%M:%S} "
                f"> {state.last_modified_seen:%Y-%m-%d %H:%M:%S}"
            )
        return False, f"not modified since {state.last_modified_seen:%Y-%m-%d %H:%M:%S}"

    if indicator.version != state.last_version_seen:
        return True, f"version {indicator.version!r} != {state.last_version_seen!r}"
    return False, f"version {indicator.version!r} unchanged"


class ChangeDetector:
    """Decides per source whether a fetch is warranted."""

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        adapter_factory: Callable[..., SourceAdapter] = get_adapter,
    ):
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory

    def load_state(self, source_name: SourceName | str) -> Optional[SyncState]:
        session = self.session_factory()
        try:
            state = session.get(SyncState, SourceName(source_name).value)
            if state is not None:
                session.expunge(state)
            return state
        finally:
            session.close()

    def check(self, source_name: SourceName | str, adapter: Optional[SourceAdapter] = None) -> ChangeCheck:
        """
        Probe the source and compare with the stored SyncState.

        Args:
            source_name: Source to check
            adapter: Adapter to probe with (one is created if not provided)

        Raises:
            FetchError: The probe itself failed (network error, 4xx/5xx
                other than a refused HEAD)
        """
        name = SourceName(source_name).value
        owns_adapter = adapter is None
        adapter = adapter or self.adapter_factory(name)
        try:
            indicator = adapter.probe()
        finally:
            if owns_adapter:
                adapter.close()

        should_fetch, reason = decide(self.load_state(name), indicator)
        logger.info(f"{name}: {'fetch' if should_fetch else 'skip'} ({reason})")
        return ChangeCheck(source_name=name, should_fetch=should_fetch, reason=reason, indicator=indicator)

    def should_fetch(self, source_name: SourceName | str, adapter: Optional[SourceAdapter] = None) -> bool:
        return self.check(source_name, adapter).should_fetch
