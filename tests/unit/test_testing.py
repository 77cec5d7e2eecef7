"""Tests for the scripted transport double."""

from __future__ import annotations

import httpx
import pytest

from statichttpcache.testing import FakeResponse, FakeTransport

URL = "http://example.com/"


class TestFakeTransportExpectations:
    def test_wrong_url_is_rejected(self) -> None:
        transport = FakeTransport(FakeResponse(200), expected_url=URL)
        with pytest.raises(AssertionError, match="expected a request to"):
            transport.execute(httpx.Request("GET", "http://example.com/other"))
        assert transport.pending == 1

    def test_wrong_conditional_headers_are_rejected(self) -> None:
        transport = FakeTransport(FakeResponse(304), expected_headers={"If-None-Match": '"a"'})
        request = httpx.Request("GET", URL, headers={"If-None-Match": '"b"'})
        with pytest.raises(AssertionError, match="expected conditional headers"):
            transport.execute(request)

    def test_non_get_is_rejected(self) -> None:
        transport = FakeTransport(FakeResponse(200))
        with pytest.raises(AssertionError, match="unexpected method POST"):
            transport.execute(httpx.Request("POST", URL))

    def test_matching_request_gets_scripted_response(self) -> None:
        response = FakeResponse(304)
        transport = FakeTransport(
            response, expected_url=URL, expected_headers={"If-None-Match": '"a"'}
        )
        request = httpx.Request("GET", URL, headers={"If-None-Match": '"a"'})
        assert transport.execute(request) is response
        assert transport.called
        assert transport.pending == 0

    def test_exhausted_script_is_rejected(self) -> None:
        transport = FakeTransport()
        with pytest.raises(AssertionError, match="no scripted response left"):
            transport.execute(httpx.Request("GET", URL))
