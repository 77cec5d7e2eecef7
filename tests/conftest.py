"""Shared test fixtures for the statichttpcache test suite."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from statichttpcache.cache import Cache
from statichttpcache.store import MEMORY_PATH, MetadataStore
from statichttpcache.testing import FakeTransport

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture()
def store() -> Iterator[MetadataStore]:
    """Fresh in-memory metadata store."""
    db = MetadataStore.open(MEMORY_PATH)
    yield db
    db.close()


@pytest.fixture()
def transport() -> FakeTransport:
    """Scripted transport with nothing queued yet."""
    return FakeTransport()


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture()
def cache(cache_root: Path, transport: FakeTransport) -> Iterator[Cache]:
    """Cache rooted in a temp dir, seeded file names, scripted transport."""
    c = Cache(cache_root, transport, rng=random.Random(1234))
    yield c
    c.close()
