from __future__ import annotations

from statichttpcache.models.cache import CacheRecord

__all__ = [
    "CacheRecord",
]
