"""End-to-end scenarios for the request lifecycle.

Each test drives the public client surface against a scripted transport.
"""

import asyncio

import pytest

from conftest import BASE, REFRESH_URL, ok, refresh_ok, wait_for_calls
from http_lifecycle.exceptions import CanceledError, NotFoundError, TokenRefreshError

DATA = f"{BASE}/data"
SECURE = f"{BASE}/secure"
MISSING = f"{BASE}/missing"


@pytest.mark.asyncio
@pytest.mark.integration
class TestLifecycleScenarios:
    """Caching, supersession, refresh-and-retry and not-found handling."""

    async def test_repeated_get_within_ttl_hits_transport_once(self, client, transport):
        transport.add("GET", DATA, ok({"value": 1}))

        first = await client.get("/data", {"key": "value"})
        second = await client.get("/data", {"key": "value"})

        assert first == second == {"value": 1}
        calls = transport.calls_to(DATA)
        assert len(calls) == 1
        assert calls[0].params == {"key": "value"}

    async def test_concurrent_duplicate_get_cancels_the_first(self, client, transport, observer):
        gate = asyncio.Event()

        async def slow(call):
            await gate.wait()
            return ok({"value": "stale"})

        transport.add("GET", DATA, slow, ok({"value": "live"}))

        first = asyncio.ensure_future(client.get("/data"))
        await wait_for_calls(transport, 1)
        second = await client.get("/data")

        assert second == {"value": "live"}
        with pytest.raises(CanceledError) as exc_info:
            await first
        assert exc_info.value.message == "Request canceled by user"
        observer.on_unhandled_error.assert_not_called()
        assert len(client.registry) == 0

    async def test_401_refreshes_and_retries_once(self, client, transport, observer):
        transport.add("GET", SECURE, ok({"error": "expired"}, status=401), ok({"secret": 42}))
        transport.add("POST", REFRESH_URL, refresh_ok("T2", 3600))

        assert await client.get("/secure") == {"secret": 42}

        secure_calls = transport.calls_to(SECURE)
        assert [c.headers["Authorization"] for c in secure_calls] == ["Bearer T1", "Bearer T2"]
        refresh_calls = transport.calls_to(REFRESH_URL)
        assert len(refresh_calls) == 1
        assert refresh_calls[0].body == {"refreshToken": "refresh-1"}
        observer.on_unhandled_error.assert_not_called()

    async def test_refresh_failure_surfaces_token_refresh_error(self, client, transport, observer):
        transport.add("GET", SECURE, ok({"error": "expired"}, status=401))
        transport.add("POST", REFRESH_URL, ok({"error": "invalid_grant"}, status=400))

        with pytest.raises(TokenRefreshError) as exc_info:
            await client.get("/secure")

        assert exc_info.value.status == 400
        assert len(transport.calls_to(SECURE)) == 1
        observer.on_unhandled_error.assert_called_once_with(exc_info.value)

    async def test_404_is_not_found_without_refresh_or_retry(self, client, transport, observer):
        transport.add("GET", MISSING, ok({"error": "nope"}, status=404))

        with pytest.raises(NotFoundError) as exc_info:
            await client.get("/missing")

        assert exc_info.value.body == {"error": "nope"}
        assert len(transport.calls_to(MISSING)) == 1
        assert transport.calls_to(REFRESH_URL) == []
        observer.on_unhandled_error.assert_called_once_with(exc_info.value)
