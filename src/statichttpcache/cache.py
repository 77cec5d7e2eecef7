"""Cache-coherence engine.

``Cache.get(url)`` decides, per call, between three outcomes:

- no usable record: download unconditionally; failures propagate because
  there is nothing to fall back to;
- record found: revalidate with a conditional GET built from the stored
  ``Last-Modified`` / ``ETag``. ``304`` serves the stored body. Network
  failures and 4xx/5xx statuses are logged and the stored body is served
  anyway, so losing connectivity never makes cached data unavailable;
- any other response: persist it as the new body for this URL.

Persisting allocates a fresh random file, opens a metadata transaction that
points the URL at it, streams the body, and commits only once the body is
complete. A failure at any step leaves the transaction rolled back, so a
committed row always names a fully written file.

Replaced bodies are never deleted; their files stay on disk, unreferenced.
Two callers downloading the same URL at once both write a file and the last
commit wins.
"""

from __future__ import annotations

import os
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

import httpx
import structlog

from statichttpcache.content import ContentStore
from statichttpcache.errors import (
    ErrorCode,
    MetadataError,
    SetupError,
    StaticHttpCacheError,
    StatusError,
    StorageError,
    TransportError,
)
from statichttpcache.models.cache import CacheRecord
from statichttpcache.store import MetadataStore, normalize_url
from statichttpcache.transport import (
    HttpxTransport,
    build_http_client,
    check_status,
    header_as_string,
    is_header_text,
)

if TYPE_CHECKING:
    from types import TracebackType

    from statichttpcache.config import Settings
    from statichttpcache.content import RandomSource
    from statichttpcache.protocols import HttpResponse, Transport

log = structlog.get_logger()

DB_FILENAME = "cache.db"
CONTENT_DIRNAME = "content"


def build_conditional_request(url: str, record: CacheRecord) -> httpx.Request:
    """Build the revalidation GET for *url* from the validators in *record*.

    Both ``If-Modified-Since`` and ``If-None-Match`` are sent when both are
    stored; the server decides which one wins.
    """
    headers: list[tuple[str, str]] = []
    for header, value in (
        ("If-Modified-Since", record.last_modified),
        ("If-None-Match", record.etag),
    ):
        if value is None:
            continue
        if not is_header_text(value.encode("utf-8")):
            log.warning("validator_not_sendable", url=url, header=header, value=value)
            continue
        headers.append((header, value))
    return httpx.Request("GET", url, headers=headers)


class Cache:
    """A directory of cached HTTP bodies, revalidated on every ``get``.

    Layout under *root*::

        cache.db            metadata store
        content/<token>     one file per downloaded body

    *transport* is any object implementing ``protocols.Transport``. *rng*
    overrides the random source used for content file names.

    After a ``MetadataError`` the underlying sqlite connection may be in an
    unknown state; build a new ``Cache`` rather than reusing this one.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        transport: Transport,
        *,
        rng: RandomSource | None = None,
        busy_timeout: float = 5.0,
    ) -> None:
        self._root = Path(root)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SetupError(f"Cannot create cache root {self._root}: {exc}") from exc

        self._store = MetadataStore.open(self._root / DB_FILENAME, timeout=busy_timeout)
        self._content = ContentStore(self._root / CONTENT_DIRNAME, rng)
        self._transport = transport
        self._owns_transport = False

    @classmethod
    def from_settings(cls, settings: Settings) -> Cache:
        """Build a cache with an ``HttpxTransport`` configured from *settings*.

        The transport's client is closed together with the cache.
        """
        transport = HttpxTransport(build_http_client(settings.http))
        try:
            cache = cls(
                settings.cache.root,
                transport,
                busy_timeout=settings.cache.busy_timeout_seconds,
            )
        except StaticHttpCacheError:
            transport.close()
            raise
        cache._owns_transport = True
        return cache

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, url: str | httpx.URL) -> BinaryIO:
        """Return a readable binary handle on the current body of *url*.

        The URL fragment is ignored. The caller owns (and must close) the
        returned handle.

        Raises:
            TransportError, StatusError: The URL is not cached and could not
                be downloaded.
            StorageError: A content file could not be written, or a stored
                body has gone missing.
            MetadataError: The new record could not be committed.
        """
        key = normalize_url(url)

        record = self._lookup(key)
        if record is None:
            log.info("cache_miss", url=key)
            response = self._send(httpx.Request("GET", key), key)
            return self._persist(key, response)

        request = build_conditional_request(key, record)
        log.info("revalidation_sent", url=key, headers=dict(request.headers))
        try:
            response = self._send(request, key)
        except (TransportError, StatusError) as exc:
            log.warning("revalidation_failed", url=key, error=str(exc))
            return self._open_content(key, record.path)

        if response.status_code == httpx.codes.NOT_MODIFIED:
            response.close()
            log.info("cache_not_modified", url=key, path=record.path)
            return self._open_content(key, record.path)

        log.info("cache_stale", url=key, status_code=response.status_code)
        return self._persist(key, response)

    def close(self) -> None:
        self._store.close()
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            self._transport.close()

    def __enter__(self) -> Cache:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cache):
            return NotImplemented
        return self._store == other._store

    def __hash__(self) -> int:
        return hash(self._store)

    def __repr__(self) -> str:
        return f"Cache(root={str(self._root)!r}, store={self._store!r})"

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _lookup(self, url: str) -> CacheRecord | None:
        """Return the stored record, or ``None`` when it is absent or unusable."""
        try:
            return self._store.get(url)
        except MetadataError as exc:
            if exc.code != ErrorCode.RECORD_NOT_FOUND:
                log.warning("metadata_lookup_failed", url=url, code=exc.code, error=str(exc))
            return None

    def _send(self, request: httpx.Request, url: str) -> HttpResponse:
        response = self._transport.execute(request)
        log.info("http_response", url=url, status_code=response.status_code)
        return check_status(response, url)

    def _open_content(self, url: str, relative_path: str) -> BinaryIO:
        path = self._root / relative_path
        try:
            return open(path, "rb")  # noqa: SIM115 - returned to the caller
        except FileNotFoundError as exc:
            raise StorageError(
                f"Cached body for {url} is missing: {path}",
                code=ErrorCode.CONTENT_MISSING,
                url=url,
            ) from exc
        except OSError as exc:
            raise StorageError(f"Cannot open cached body {path}: {exc}", url=url) from exc

    def _persist(self, url: str, response: HttpResponse) -> BinaryIO:
        """Store *response* as the new body of *url* and return a handle on it."""
        committed = False
        try:
            handle, path = self._content.allocate()
            try:
                with handle:
                    record = CacheRecord(
                        path=path.relative_to(self._root).as_posix(),
                        last_modified=header_as_string(response.headers, "Last-Modified"),
                        etag=header_as_string(response.headers, "ETag"),
                    )
                    with self._store.set(url, record) as txn:
                        count = self._copy_body(url, response, handle)
                        txn.commit()
                        committed = True
            except BaseException:
                # Nothing refers to an uncommitted file.
                if not committed:
                    with suppress(OSError):
                        path.unlink()
                raise
        finally:
            response.close()

        log.info("download_complete", url=url, path=record.path, bytes=count)
        return self._open_content(url, record.path)

    @staticmethod
    def _copy_body(url: str, response: HttpResponse, handle: BinaryIO) -> int:
        count = 0
        try:
            for chunk in response.iter_bytes():
                handle.write(chunk)
                count += len(chunk)
            handle.flush()
            os.fsync(handle.fileno())
        except httpx.HTTPError as exc:
            raise TransportError(f"Error reading body of {url}: {exc}", url=url) from exc
        except OSError as exc:
            raise StorageError(f"Error writing body of {url}: {exc}", url=url) from exc
        return count
