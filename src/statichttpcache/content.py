"""Collision-free allocation of content files.

Bodies are stored under randomly named files so that concurrent writers,
in this process or another, never pick the same name. Names carry no
information about the URL.
"""

from __future__ import annotations

import secrets
import string
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol

import structlog

from statichttpcache.errors import StorageError

if TYPE_CHECKING:
    import os

log = structlog.get_logger()

TOKEN_LENGTH = 20
_ALPHABET = string.ascii_letters + string.digits


class RandomSource(Protocol):
    """The part of :class:`random.Random` used to build file names."""

    def choice(self, seq: str) -> str: ...


def random_token(rng: RandomSource, length: int = TOKEN_LENGTH) -> str:
    return "".join(rng.choice(_ALPHABET) for _ in range(length))


def make_random_file(
    directory: str | os.PathLike[str], rng: RandomSource
) -> tuple[BinaryIO, Path]:
    """Create a new, empty, randomly named file in *directory*.

    Returns the file opened for binary writing and its path. A name that is
    already taken is retried with a fresh token; any other error is raised
    as :class:`StorageError` without retrying.
    """
    directory = Path(directory)
    while True:
        candidate = directory / random_token(rng)
        try:
            handle = open(candidate, "xb")  # noqa: SIM115 - caller owns the handle
        except FileExistsError:
            log.debug("content_name_collision", path=str(candidate))
            continue
        except OSError as exc:
            raise StorageError(f"Cannot create content file {candidate}: {exc}") from exc
        return handle, candidate


class ContentStore:
    """Allocates content files inside one directory.

    The directory is created on first use. *rng* defaults to the operating
    system's random source; pass a seeded ``random.Random`` to make names
    reproducible.
    """

    def __init__(self, directory: str | os.PathLike[str], rng: RandomSource | None = None) -> None:
        self._directory = Path(directory)
        self._rng: RandomSource = rng if rng is not None else secrets.SystemRandom()

    @property
    def directory(self) -> Path:
        return self._directory

    def allocate(self) -> tuple[BinaryIO, Path]:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"Cannot create content directory {self._directory}: {exc}"
            ) from exc
        return make_random_file(self._directory, self._rng)
