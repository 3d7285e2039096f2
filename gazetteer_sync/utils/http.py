"""
HTTP utilities for the sync engine.

Provides robust HTTP fetching with retry logic, streamed downloads to disk and
metadata-only probes, with every failure surfaced as a FetchError.
"""

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from loguru import logger

from gazetteer_sync.config import settings
from gazetteer_sync.errors import FetchError


# Default headers for requests
DEFAULT_HEADERS = {
    "User-Agent": f"GazetteerSync/0.1 (historical gazetteer sync; {settings.contact_email})",
    "Accept": "application/json, application/ld+json, application/geo+json, text/csv, application/xml, */*",
}

# Errors worth retrying within a single fetch attempt
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)

CHUNK_SIZE = 1024 * 1024


def _retrying() -> Retrying:
    return Retrying(
        stop=stop_after_attempt(max(1, settings.sync.http_max_retries)),
        wait=wait_exponential(multiplier=settings.sync.http_retry_delay, min=1, max=60),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )


def new_client(timeout: Optional[float] = None) -> httpx.Client:
    """Create an HTTP client with the engine's defaults."""
    return httpx.Client(
        timeout=timeout or settings.sync.http_timeout,
        follow_redirects=True,
        headers=DEFAULT_HEADERS,
    )


def _raise_for_status(response: httpx.Response, url: str) -> None:
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After", "60")
        raise FetchError(
            f"Rate limited by {url}. Retry after {retry_after}s",
            status_code=429,
        )
    if response.status_code >= 400:
        raise FetchError(
            f"HTTP {response.status_code} for {url}",
            status_code=response.status_code,
        )


def fetch_with_retry(
    client: httpx.Client,
    url: str,
    method: str = "GET",
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
    data: Optional[dict] = None,
) -> httpx.Response:
    """
    Fetch URL with automatic retry on transient failures.

    Args:
        client: HTTP client to issue the request with
        url: URL to fetch
        method: HTTP method (GET, POST, HEAD)
        headers: Additional headers to include
        params: Query parameters
        data: Form data for POST requests

    Returns:
        httpx.Response object (status < 400)

    Raises:
        FetchError: For HTTP errors, rate limiting, or exhausted retries
    """
    logger.debug(f"Fetching {method} {url}")

    try:
        for attempt in _retrying():
            with attempt:
                response = client.request(method, url, headers=headers, params=params, data=data)
    except TRANSIENT_ERRORS as e:
        raise FetchError(f"{type(e).__name__} for {url}: {e}") from e
    except httpx.HTTPError as e:
        raise FetchError(f"HTTP transport error for {url}: {e}") from e

    _raise_for_status(response, url)
    return response


def stream_download(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    method: str = "GET",
    data: Optional[dict] = None,
) -> tuple[Path, httpx.Headers]:
    """
    Stream a response body to disk without holding it in memory.

    Writes to a temp file next to dest_path and renames it on success, so a
    failed download never replaces the previous payload.

    Returns:
        (path written, response headers)
    """
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = dest_path.with_suffix(dest_path.suffix + ".tmp")

    logger.info(f"Downloading {url} to {dest_path}")

    try:
        for attempt in _retrying():
            with attempt:
                size = 0
                with client.stream(method, url, data=data) as response:
                    _raise_for_status(response, url)
                    headers = response.headers
                    with open(temp_path, "wb") as f:
                        for chunk in response.iter_bytes(CHUNK_SIZE):
                            f.write(chunk)
                            size += len(chunk)
    except TRANSIENT_ERRORS as e:
        temp_path.unlink(missing_ok=True)
        raise FetchError(f"{type(e).__name__} while downloading {url}: {e}") from e
    except httpx.HTTPError as e:
        temp_path.unlink(missing_ok=True)
        raise FetchError(f"HTTP transport error while downloading {url}: {e}") from e
    except FetchError:
        temp_path.unlink(missing_ok=True)
        raise

    if size == 0:
        temp_path.unlink(missing_ok=True)
        raise FetchError(f"Empty response body from {url}")

    temp_path.replace(dest_path)
    logger.info(f"Downloaded {size:,} bytes from {url}")
    return dest_path, headers


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 7231 date header into naive UTC. None if absent or invalid."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Unparseable HTTP date: {value!r}")
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
