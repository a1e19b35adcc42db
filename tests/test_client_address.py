"""Tests for caller address resolution."""

from __future__ import annotations

from starlette.requests import Request

from gatehouse.core.client_address import ClientAddressResolver


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.1", 5555)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestPrecedence:
    def test_override_header_wins(self):
        resolve = ClientAddressResolver()
        request = _request({"X-Test-IP": "203.0.113.7", "X-Forwarded-For": "198.51.100.1"})

        assert resolve(request) == "203.0.113.7"

    def test_forwarded_for_used_whole(self):
        resolve = ClientAddressResolver()
        request = _request({"X-Forwarded-For": " 198.51.100.1, 10.0.0.2 "})

        assert resolve(request) == "198.51.100.1, 10.0.0.2"

    def test_connection_address_fallback(self):
        resolve = ClientAddressResolver()

        assert resolve(_request()) == "10.0.0.1"

    def test_empty_when_nothing_resolves(self):
        resolve = ClientAddressResolver()

        assert resolve(_request(client=None)) == ""

    def test_blank_override_is_ignored(self):
        resolve = ClientAddressResolver()

        assert resolve(_request({"X-Test-IP": "   "})) == "10.0.0.1"


class TestConfiguration:
    def test_untrusted_override_header_is_ignored(self):
        resolve = ClientAddressResolver(trust_override_header=False)
        request = _request({"X-Test-IP": "203.0.113.7"})

        assert resolve(request) == "10.0.0.1"

    def test_custom_override_header(self):
        resolve = ClientAddressResolver(override_header="X-Real-IP")
        request = _request({"X-Real-IP": "192.0.2.5", "X-Test-IP": "203.0.113.7"})

        assert resolve(request) == "192.0.2.5"
