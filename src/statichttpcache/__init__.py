"""statichttpcache: a local disk cache for static HTTP resources.

Cached bodies are revalidated against the origin with conditional GETs
(``If-Modified-Since`` / ``If-None-Match``) instead of being downloaded
again on every request.
"""

from __future__ import annotations

import warnings
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("statichttpcache")
except PackageNotFoundError:
    # Source-tree execution without installed package metadata.
    warnings.warn(
        "Package metadata for 'statichttpcache' not found; using fallback version '0.0.0+unknown'.",
        RuntimeWarning,
        stacklevel=2,
    )
    __version__ = "0.0.0+unknown"

from statichttpcache.cache import Cache  # noqa: E402
from statichttpcache.models.cache import CacheRecord  # noqa: E402

__all__ = ["Cache", "CacheRecord", "__version__"]
