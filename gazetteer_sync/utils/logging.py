"""
Logging for the sync engine.

loguru with a console sink and an optional rotating file sink. Everything
logged inside `source_context` carries the source name, so output from
sources syncing concurrently stays attributable.
"""

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from gazetteer_sync.config import settings

NO_SOURCE = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[source]: <12}</magenta> | <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[source]} | "
    "{thread.name} | {name}:{function}:{line} - {message}"
)


def setup_logging(
    level: str | None = None,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "1 week",
    serialize: bool | None = None,
) -> None:
    """
    Configure the console sink and, if a log file is set, a rotating file sink.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); defaults to SYNC_LOG_LEVEL
        log_file: File to log to; defaults to SYNC_LOG_FILE
        rotation: When to rotate the file (e.g. "10 MB", "1 day")
        retention: How long rotated files are kept
        serialize: Write the file as JSON lines; defaults to SYNC_LOG_JSON
    """
    level = (level or settings.sync.log_level).upper()
    log_file = log_file or settings.sync.log_file
    serialize = settings.sync.log_json if serialize is None else serialize

    logger.remove()
    logger.configure(extra={"source": NO_SOURCE})
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize,
            enqueue=True,  # sync workers log from several threads
        )

    logger.debug(f"Logging configured: level={level}, file={log_file or 'none'}")


@contextmanager
def source_context(source: str) -> Iterator[None]:
    """Tag every record logged in this block (and this thread) with a source name."""
    with logger.contextualize(source=source):
        yield


if os.environ.get("DISABLE_LOGGING") != "1":
    setup_logging()
