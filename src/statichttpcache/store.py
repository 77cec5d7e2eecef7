"""SQLite metadata store: URL -> content path + validators.

One table, keyed by the fragment-less URL. Writes go through
:class:`Transaction`, which is only durable after ``commit()``; a transaction
that is left without a commit (exception, early return, dropped handle) is
rolled back so readers keep seeing the previous row, or no row at all.

The connection runs with ``isolation_level=None`` so that ``BEGIN`` /
``COMMIT`` / ``ROLLBACK`` are issued explicitly by this module and never
implicitly by the sqlite3 driver. Cross-process safety relies on SQLite's own
file locking: a writer holding a transaction can stall other instances until
it commits or the busy timeout expires.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import structlog

from statichttpcache.errors import (
    CorruptMetadataError,
    ErrorCode,
    MetadataError,
    RecordNotFoundError,
    SetupError,
    StaticHttpCacheError,
)
from statichttpcache.models.cache import CacheRecord

if TYPE_CHECKING:
    import os
    from types import TracebackType

log = structlog.get_logger()

MEMORY_PATH = ":memory:"

_CREATE_URLS_TABLE = """
CREATE TABLE urls (
    url           TEXT NOT NULL UNIQUE,
    path          TEXT NOT NULL,
    last_modified TEXT,
    etag          TEXT
)
"""


def normalize_url(url: str | object) -> str:
    """Return the cache key for *url*: the URL as given, minus its fragment.

    Accepts anything whose ``str()`` is a URL (``httpx.URL`` included).
    Scheme, host, path and query are kept verbatim.
    """
    text = str(url)
    parts = urlsplit(text)
    if not parts.scheme or not parts.netloc:
        raise StaticHttpCacheError(
            f"Not an absolute URL: {text!r}",
            code=ErrorCode.INVALID_URL,
            url=text,
        )
    return text.partition("#")[0]


def canonicalize_db_path(path: str | os.PathLike[str]) -> str:
    """Resolve *path* so differently spelled paths to one file compare equal.

    The parent directory must exist; the file itself need not.
    """
    if str(path) == MEMORY_PATH:
        return MEMORY_PATH
    path = Path(path)
    return str(path.parent.resolve(strict=True) / path.name)


def _optional_text(column: str, value: object, url: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    log.warning("metadata_validator_wrong_type", url=url, column=column, value=repr(value))
    return None


class Transaction:
    """An open write against the metadata store.

    Use as a context manager; leaving the block without calling
    :meth:`commit` rolls the write back::

        with store.set(url, record) as txn:
            write_body()
            txn.commit()
    """

    def __init__(self, conn: sqlite3.Connection, url: str) -> None:
        self._conn = conn
        self._url = url
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def commit(self) -> None:
        if self._finished:
            raise MetadataError(
                "Transaction already finished",
                code=ErrorCode.METADATA_WRITE_FAILED,
                url=self._url,
            )
        self._finished = True
        log.debug("metadata_commit", url=self._url)
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            log.debug("metadata_commit_failed", url=self._url, error=str(exc))
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error:
                # The commit failure is the one worth reporting.
                log.debug("metadata_rollback_failed", url=self._url, exc_info=True)
            raise MetadataError(
                f"Could not commit metadata for {self._url}: {exc}",
                code=ErrorCode.METADATA_WRITE_FAILED,
                url=self._url,
            ) from exc

    def rollback(self) -> None:
        if self._finished:
            return
        self._finished = True
        log.debug("metadata_rollback", url=self._url)
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            # Raised only when the connection already dropped the transaction.
            log.debug("metadata_rollback_failed", url=self._url, exc_info=True)

    def __enter__(self) -> Transaction:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.rollback()

    def __del__(self) -> None:
        if not self._finished:
            self.rollback()


class MetadataStore:
    """SQLite-backed table of :class:`CacheRecord` rows keyed by URL."""

    def __init__(self, path: str, conn: sqlite3.Connection) -> None:
        self._path = path
        self._conn = conn

    @property
    def path(self) -> str:
        return self._path

    @classmethod
    def open(cls, path: str | os.PathLike[str], *, timeout: float = 5.0) -> MetadataStore:
        """Open (creating if needed) the store at *path*.

        ``":memory:"`` opens a private in-memory store. The schema is created
        only when the database has no tables at all; an existing database
        that lacks the ``urls`` table is rejected.
        """
        try:
            canonical = canonicalize_db_path(path)
        except OSError as exc:
            raise SetupError(f"Cannot open metadata store at {path}: {exc}") from exc

        log.debug("metadata_store_open", path=canonical)
        try:
            conn = sqlite3.connect(canonical, timeout=timeout, isolation_level=None)
        except sqlite3.Error as exc:
            raise SetupError(f"Cannot open metadata store at {canonical}: {exc}") from exc

        try:
            cls._init_schema(conn, canonical)
        except sqlite3.Error as exc:
            conn.close()
            raise SetupError(f"Unreadable metadata store at {canonical}: {exc}") from exc
        except SetupError:
            conn.close()
            raise

        return cls(canonical, conn)

    @staticmethod
    def _init_schema(conn: sqlite3.Connection, path: str) -> None:
        (table_count,) = conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        if table_count == 0:
            log.debug("metadata_schema_create", path=path)
            conn.execute(_CREATE_URLS_TABLE)
        else:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'urls'"
            ).fetchone()
            if row is None:
                raise SetupError(f"Metadata store at {path} has no urls table")

        if path != MEMORY_PATH:
            conn.execute("PRAGMA journal_mode = WAL")

    def get(self, url: str | object) -> CacheRecord:
        """Return the record for *url* (fragment ignored).

        Raises:
            RecordNotFoundError: No row for this URL.
            CorruptMetadataError: The stored path is not text.
            MetadataError: The query itself failed.
        """
        key = normalize_url(url)
        try:
            row = self._conn.execute(
                "SELECT path, last_modified, etag FROM urls WHERE url = ?",
                (key,),
            ).fetchone()
        except sqlite3.OperationalError as exc:
            # Raised for TEXT columns holding bytes that are not UTF-8.
            if "decode" in str(exc).lower():
                raise CorruptMetadataError(
                    f"Stored metadata for {key} cannot be decoded: {exc}", url=key
                ) from exc
            raise MetadataError(f"Could not read metadata for {key}: {exc}", url=key) from exc
        except sqlite3.Error as exc:
            raise MetadataError(f"Could not read metadata for {key}: {exc}", url=key) from exc

        if row is None:
            raise RecordNotFoundError(f"URL not found in cache: {key}", url=key)

        path, last_modified, etag = row
        if not isinstance(path, str):
            raise CorruptMetadataError(f"Path had wrong type: {path!r}", url=key)

        record = CacheRecord(
            path=path,
            last_modified=_optional_text("last_modified", last_modified, key),
            etag=_optional_text("etag", etag, key),
        )
        log.debug(
            "metadata_hit",
            url=key,
            path=record.path,
            etag=record.etag,
            last_modified=record.last_modified,
        )
        return record

    def set(self, url: str | object, record: CacheRecord) -> Transaction:
        """Upsert *record* for *url* inside a new, uncommitted transaction."""
        key = normalize_url(url)
        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise MetadataError(
                f"Could not start a transaction for {key}: {exc}",
                code=ErrorCode.METADATA_WRITE_FAILED,
                url=key,
            ) from exc

        # Built right after BEGIN so every exit path below is covered by it.
        txn = Transaction(self._conn, key)
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO urls (url, path, last_modified, etag) "
                "VALUES (?, ?, ?, ?)",
                (key, record.path, record.last_modified, record.etag),
            )
        except sqlite3.Error as exc:
            txn.rollback()
            raise MetadataError(
                f"Could not record metadata for {key}: {exc}",
                code=ErrorCode.METADATA_WRITE_FAILED,
                url=key,
            ) from exc
        return txn

    def close(self) -> None:
        self._conn.close()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetadataStore):
            return NotImplemented
        return self._path == other._path

    def __hash__(self) -> int:
        return hash(self._path)

    def __repr__(self) -> str:
        return f"MetadataStore(path={self._path!r})"
