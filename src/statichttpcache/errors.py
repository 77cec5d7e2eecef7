from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    SETUP_FAILED = "SETUP_FAILED"
    INVALID_URL = "INVALID_URL"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"
    HTTP_STATUS = "HTTP_STATUS"
    STORAGE_FAILED = "STORAGE_FAILED"
    CONTENT_MISSING = "CONTENT_MISSING"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    CORRUPT_METADATA = "CORRUPT_METADATA"
    METADATA_READ_FAILED = "METADATA_READ_FAILED"
    METADATA_WRITE_FAILED = "METADATA_WRITE_FAILED"


class StaticHttpCacheError(Exception):
    """Base class for every failure raised by the cache.

    The underlying cause, when there is one, is chained via ``__cause__``.
    ``recoverable`` tells the caller whether the same ``Cache`` instance can
    keep being used: metadata store failures leave the connection in an
    unknown state, so callers should build a new ``Cache`` after them.
    """

    default_code: ErrorCode = ErrorCode.INVALID_URL

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        url: str | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.url = url
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "url": self.url,
                "recoverable": self.recoverable,
            }
        }


class SetupError(StaticHttpCacheError):
    """The cache root or metadata store could not be prepared."""

    default_code = ErrorCode.SETUP_FAILED

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class TransportError(StaticHttpCacheError):
    """The request never produced an HTTP response (DNS, TLS, timeout, ...)."""

    default_code = ErrorCode.TRANSPORT_FAILED


class StatusError(StaticHttpCacheError):
    """The server answered with a 4xx or 5xx status."""

    default_code = ErrorCode.HTTP_STATUS

    def __init__(self, message: str, *, status_code: int, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class StorageError(StaticHttpCacheError):
    """Reading or writing a content file failed."""

    default_code = ErrorCode.STORAGE_FAILED


class MetadataError(StaticHttpCacheError):
    """The metadata store failed to answer a query or record a change."""

    default_code = ErrorCode.METADATA_READ_FAILED

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class RecordNotFoundError(MetadataError):
    default_code = ErrorCode.RECORD_NOT_FOUND

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class CorruptMetadataError(MetadataError):
    """A stored row does not have the shape the cache expects."""

    default_code = ErrorCode.CORRUPT_METADATA

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
