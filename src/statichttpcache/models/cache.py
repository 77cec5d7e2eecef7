from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CacheRecord(BaseModel):
    """Everything the metadata store knows about one URL."""

    model_config = ConfigDict(frozen=True)

    path: str  # Body location relative to the cache root, POSIX separators
    last_modified: str | None = None  # Verbatim Last-Modified header, never parsed
    etag: str | None = None  # Verbatim ETag header, quotes included
