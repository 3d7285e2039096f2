"""
Base adapter class for upstream gazetteers.

All source-specific adapters inherit from SourceAdapter. An adapter knows
where its source lives, how to ask it whether it changed, how to download it
and which parser options decode it. It never touches the local store.
"""

import gzip
import zipfile
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Optional
from urllib.parse import unquote, urlparse

import httpx
from loguru import logger

from gazetteer_sync.config import settings
from gazetteer_sync.errors import ConfigurationError, FetchError, ParseError
from gazetteer_sync.parsers import ParseStats, parse
from gazetteer_sync.sources.configs import SourceConfigType, get_source_config
from gazetteer_sync.types import ChangeIndicator, FormatTag, RawRecord, SourceName
from gazetteer_sync.utils.http import fetch_with_retry, new_client, parse_http_date, stream_download

GZIP_MAGIC = b"\x1f\x8b"
ZIP_MAGIC = b"PK\x03\x04"

# Servers that refuse HEAD; treated as "no indicator available"
HEAD_UNSUPPORTED = {405, 501}


def indicator_from_headers(headers: httpx.Headers, version: Optional[str] = None) -> ChangeIndicator:
    """Read Last-Modified / ETag, falling back to an adapter-supplied version."""
    return ChangeIndicator(
        modified_at=parse_http_date(headers.get("Last-Modified")),
        version=headers.get("ETag") or version,
    )


@dataclass
class FetchedPayload:
    """A downloaded payload on disk, ready to be parsed."""
    source_name: SourceName
    path: Path
    format_tag: FormatTag
    indicator: ChangeIndicator = field(default_factory=ChangeIndicator)
    zip_member: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        """
        Open the payload as a decompressed binary stream.

        gzip and zip are detected from magic bytes, not the file name. A zip
        yields zip_member, or its only file.

        Raises:
            ParseError: Zip archive without the expected member
        """
        with open(self.path, "rb") as raw:
            magic = raw.read(4)
            raw.seek(0)

            if magic[:2] == GZIP_MAGIC:
                with gzip.GzipFile(fileobj=raw) as stream:
                    yield stream
            elif magic == ZIP_MAGIC:
                with zipfile.ZipFile(raw) as archive:
                    member = self.zip_member or self._only_member(archive)
                    try:
                        info = archive.getinfo(member)
                    except KeyError as e:
                        raise ParseError(
                            f"{self.path.name} has no member {member!r}",
                            source_name=self.source_name.value,
                        ) from e
                    with archive.open(info) as stream:
                        yield stream
            else:
                yield raw

    def _only_member(self, archive: zipfile.ZipFile) -> str:
        files = [name for name in archive.namelist() if not name.endswith("/")]
        if len(files) != 1:
            raise ParseError(
                f"{self.path.name} holds {len(files)} files; zip_member must be set",
                source_name=self.source_name.value,
            )
        return files[0]


class SourceAdapter:
    """
    Base class for source adapters.

    Subclasses set source_name and, when needed, override:
    - parse_options: keyword options for the format parser
    - accept(raw): drop records the sync should not keep
    - prepare(raw): reshape a raw record before normalization
    - dataset_version(): version label when the server sends no headers
    """

    # Class attributes to be set by subclasses
    source_name: SourceName = None
    parse_options: dict[str, Any] = {}
    file_name: str = "payload"          # local file under data_raw_dir/<source>/
    zip_member: Optional[str] = None
    fetch_method: str = "GET"

    def __init__(self, config: Optional[SourceConfigType] = None, client: Optional[httpx.Client] = None):
        """
        Initialize the adapter.

        Args:
            config: Source configuration (defaults to the validated SOURCE_CONFIG entry)
            client: HTTP client (optional, one is created if not provided)
        """
        if self.source_name is None:
            raise ConfigurationError("source_name must be set in subclass")

        self.config = config if config is not None else get_source_config(self.source_name)
        self.data_url = self.config.get("data_url")
        if not self.data_url:
            raise ConfigurationError(f"Source {self.source_name.value} has no data_url", self.source_name.value)
        self.probe_url = self.config.get("probe_url") or self.data_url
        try:
            self.format_tag = FormatTag(self.config.get("format"))
        except ValueError as e:
            raise ConfigurationError(
                f"Source {self.source_name.value} has unknown format {self.config.get('format')!r}",
                self.source_name.value,
            ) from e

        self.client = client or new_client()
        self._owns_client = client is None

        self.raw_data_dir = settings.sync.data_raw_dir / self.source_name.value

    @property
    def name(self) -> str:
        return self.config.get("name", self.source_name.value)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ---- hooks ----

    def accept(self, raw: RawRecord) -> bool:
        """Whether a parsed record belongs in the sync at all."""
        return True

    def prepare(self, raw: RawRecord) -> RawRecord:
        """Source-specific reshaping before normalization."""
        return raw

    def dataset_version(self) -> Optional[str]:
        """Version label used when the probe returns no Last-Modified or ETag."""
        return None

    def request_data(self) -> Optional[dict]:
        """Form body for POST downloads."""
        return None

    # ---- protocol ----

    def _local_path(self) -> Optional[Path]:
        if self.data_url.startswith("file://"):
            return Path(unquote(urlparse(self.data_url).path))
        return None

    def probe(self) -> ChangeIndicator:
        """
        Metadata-only request for the source's modification indicator.

        Returns an empty indicator when the server refuses HEAD.

        Raises:
            FetchError: Network failure or error status other than 405/501
        """
        local = self._local_path()
        if local is not None:
            if not local.exists():
                raise FetchError(f"{local} does not exist", self.source_name.value)
            mtime = datetime.fromtimestamp(local.stat().st_mtime, tz=timezone.utc).replace(tzinfo=None)
            return ChangeIndicator(modified_at=mtime, version=self.dataset_version())

        try:
            response = fetch_with_retry(self.client, self.probe_url, method="HEAD")
        except FetchError as e:
            if e.status_code in HEAD_UNSUPPORTED:
                logger.debug(f"{self.name}: HEAD not supported ({e.status_code}), no change indicator")
                return ChangeIndicator(version=self.dataset_version())
            e.source_name = self.source_name.value
            raise

        return indicator_from_headers(response.headers, self.dataset_version())

    def fetch(self) -> FetchedPayload:
        """
        Download the full payload to data_raw_dir/<source>/<file_name>.

        Raises:
            FetchError: Timeout, error status or empty body
        """
        local = self._local_path()
        if local is not None:
            if not local.exists() or local.stat().st_size == 0:
                raise FetchError(f"{local} is missing or empty", self.source_name.value)
            logger.info(f"{self.name}: reading local payload {local}")
            return FetchedPayload(
                source_name=self.source_name,
                path=local,
                format_tag=self.format_tag,
                indicator=self.probe(),
                zip_member=self.zip_member,
            )

        try:
            path, headers = stream_download(
                self.client,
                self.data_url,
                self.raw_data_dir / self.file_name,
                method=self.fetch_method,
                data=self.request_data(),
            )
        except FetchError as e:
            e.source_name = self.source_name.value
            raise

        return FetchedPayload(
            source_name=self.source_name,
            path=path,
            format_tag=self.format_tag,
            indicator=indicator_from_headers(headers, self.dataset_version()),
            zip_member=self.zip_member,
        )

    def iter_records(self, payload: FetchedPayload, stats: Optional[ParseStats] = None) -> Iterator[RawRecord]:
        """
        Lazily parse a fetched payload into prepared raw records.

        Malformed entries are skipped into stats; records rejected by accept()
        are counted as filtered.

        Raises:
            ParseError: The payload can't be read any further (truncated
                archive, broken document structure)
        """
        stats = stats if stats is not None else ParseStats()
        source = self.source_name.value
        try:
            with payload.open() as stream:
                for raw in parse(stream, payload.format_tag, stats=stats, source_name=source, **self.parse_options):
                    if not self.accept(raw):
                        stats.filtered += 1
                        continue
                    yield self.prepare(raw)
        except (OSError, EOFError, zlib.error, zipfile.BadZipFile) as e:
            raise ParseError(f"Unreadable {payload.path.name}: {e}", source_name=source) from e
