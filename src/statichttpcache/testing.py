"""Deterministic ``Transport`` double for tests.

``FakeTransport`` hands out scripted outcomes in order: a ``FakeResponse``
is returned, an exception is raised. Every request is recorded so tests can
assert on the conditional headers the cache sent::

    transport = FakeTransport(FakeResponse(200, body=b"hello"))
    cache = Cache(tmp_path, transport)
    cache.get("http://example.com/").read()
    assert transport.requests[0].headers.get("If-None-Match") is None
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from statichttpcache.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

CONDITIONAL_HEADERS = ("If-Modified-Since", "If-None-Match")


@dataclass
class FakeResponse:
    """A canned response. ``fail_after`` makes the body stream break after
    that many bytes, the way a dropped connection would."""

    status_code: int = 200
    headers: httpx.Headers | Mapping[str, str | bytes] = field(default_factory=httpx.Headers)
    body: bytes = b""
    chunk_size: int = 4
    fail_after: int | None = None
    closed: bool = False

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    def iter_bytes(self) -> Iterator[bytes]:
        limit = len(self.body) if self.fail_after is None else self.fail_after
        for start in range(0, limit, self.chunk_size):
            yield self.body[start : min(start + self.chunk_size, limit)]
        if self.fail_after is not None:
            raise httpx.ReadError("connection dropped mid-body")

    def close(self) -> None:
        self.closed = True


def conditional_headers(request: httpx.Request) -> dict[str, str]:
    """The revalidation headers carried by *request*."""
    return {name: request.headers[name] for name in CONDITIONAL_HEADERS if name in request.headers}


class FakeTransport:
    """Scripted ``Transport``.

    When ``expected_url`` / ``expected_headers`` are set, every request must
    target that URL and carry exactly those conditional headers.
    """

    def __init__(
        self,
        *outcomes: FakeResponse | BaseException,
        expected_url: str | None = None,
        expected_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._outcomes: deque[FakeResponse | BaseException] = deque(outcomes)
        self.expected_url = expected_url
        self.expected_headers = dict(expected_headers) if expected_headers is not None else None
        self.requests: list[httpx.Request] = []

    def queue(self, *outcomes: FakeResponse | BaseException) -> None:
        self._outcomes.extend(outcomes)

    @property
    def called(self) -> bool:
        return bool(self.requests)

    @property
    def pending(self) -> int:
        return len(self._outcomes)

    def execute(self, request: httpx.Request) -> FakeResponse:
        self.requests.append(request)
        if request.method != "GET":
            raise AssertionError(f"unexpected method {request.method}")
        if self.expected_url is not None and str(request.url) != self.expected_url:
            raise AssertionError(f"expected a request to {self.expected_url}, got {request.url}")
        if self.expected_headers is not None:
            sent = conditional_headers(request)
            if sent != self.expected_headers:
                raise AssertionError(
                    f"expected conditional headers {self.expected_headers}, got {sent}"
                )
        if not self._outcomes:
            raise AssertionError(f"no scripted response left for {request.url}")

        outcome = self._outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def connection_refused(url: str = "http://example.com/") -> TransportError:
    """The error an unreachable origin produces through ``HttpxTransport``."""
    return TransportError(f"Network error fetching {url}: [Errno 111] Connection refused", url=url)
