"""Protocol interfaces for the swappable HTTP capability.

The cache engine only ever talks to these protocols, never to a concrete
client. This allows:
- Production use with any ``httpx.Client`` via ``HttpxTransport``
- Tests to script responses and failures with ``statichttpcache.testing``
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterator

    import httpx


class HttpResponse(Protocol):
    """A response whose body has not been read yet.

    ``httpx.Response`` (as returned by ``Client.send(..., stream=True)``)
    satisfies this protocol.
    """

    @property
    def status_code(self) -> int: ...

    @property
    def headers(self) -> httpx.Headers: ...

    def iter_bytes(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class Transport(Protocol):
    """Sends one GET request and returns the response, body unread.

    Implementations raise ``TransportError`` when no response was obtained.
    They must not raise for 4xx/5xx statuses; the cache classifies statuses
    itself.
    """

    def execute(self, request: httpx.Request) -> HttpResponse: ...
