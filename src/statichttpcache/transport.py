"""HTTP transport backed by httpx.

All network I/O goes through a ``Transport``. ``HttpxTransport`` receives an
``httpx.Client`` via constructor injection; whoever builds the client owns
its lifecycle (timeouts, TLS verification, redirects, connection pool).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from statichttpcache.errors import StatusError, TransportError

if TYPE_CHECKING:
    from statichttpcache.config import HttpSettings
    from statichttpcache.protocols import HttpResponse

log = structlog.get_logger()


def build_http_client(settings: HttpSettings) -> httpx.Client:
    """Create the httpx client used by the CLI and ``Cache.from_settings``."""
    return httpx.Client(
        follow_redirects=settings.follow_redirects,
        verify=settings.verify_tls,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
    )


def is_header_text(value: bytes) -> bool:
    return all(byte == 0x09 or 0x20 <= byte < 0x7F for byte in value)


def header_as_string(headers: httpx.Headers, name: str) -> str | None:
    """Return the first *name* header as text, or ``None``.

    Values that are not plain visible ASCII are logged and treated as absent
    rather than guessed at with a lossy decoding.
    """
    wanted = name.lower().encode("ascii")
    for key, value in headers.raw:
        if key.lower() != wanted:
            continue
        if not is_header_text(value):
            log.warning("header_not_text", header=name, value=repr(value))
            return None
        return value.decode("ascii")
    return None


def check_status(response: HttpResponse, url: str) -> HttpResponse:
    """Raise :class:`StatusError` for 4xx and 5xx responses.

    Unlike ``httpx.Response.raise_for_status`` this lets 1xx/3xx through,
    so that ``304 Not Modified`` reaches the caller.
    """
    status = response.status_code
    if 400 <= status < 600:
        response.close()
        raise StatusError(f"HTTP {status} fetching {url}", status_code=status, url=url)
    return response


class HttpxTransport:
    """``Transport`` implementation that sends requests with an ``httpx.Client``."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def execute(self, request: httpx.Request) -> httpx.Response:
        """Send *request* and return the response with its body still unread.

        Raises :class:`TransportError` on connection, TLS, timeout and
        protocol failures. HTTP error statuses are returned, not raised.
        """
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Network error fetching {request.url}: {exc}",
                url=str(request.url),
            ) from exc
        log.debug("http_response", url=str(request.url), status_code=response.status_code)
        return response

    def close(self) -> None:
        self._client.close()
