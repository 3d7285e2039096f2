"""Shared bookkeeping for the format parsers."""

from dataclasses import dataclass, field

from loguru import logger


@dataclass
class ParseStats:
    """Running counters for one parse pass."""
    yielded: int = 0
    skipped: int = 0
    filtered: int = 0   # well-formed but rejected by the adapter (accept hook)
    errors: list[str] = field(default_factory=list)

    # Cap on stored messages; counts keep going
    max_errors: int = 100

    def skip(self, offset: int | str, reason: str, source_name: str | None = None) -> None:
        """Count a malformed entry and log where it was."""
        self.skipped += 1
        message = f"entry {offset}: {reason}"
        logger.warning(f"Skipping malformed {source_name or 'record'} {message}")
        if len(self.errors) < self.max_errors:
            self.errors.append(message)
