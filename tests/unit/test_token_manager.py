"""Tests for TokenManager status, hydration and coalesced refresh."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from conftest import REFRESH_URL, FakeClock, ScriptedTransport, ok, refresh_ok
from http_lifecycle.auth.token_manager import TokenManager, TokenStatus
from http_lifecycle.auth.token_store import InMemoryTokenStore
from http_lifecycle.exceptions import TokenRefreshError
from http_lifecycle.transport.base import TransportFailure


def make_manager(transport, clock, **kwargs):
    kwargs.setdefault("refresh_token", "refresh-1")
    return TokenManager(transport, REFRESH_URL, clock=clock, **kwargs)


@pytest.mark.unit
@pytest.mark.auth
class TestTokenStatus:
    """Test status computation against the refresh threshold."""

    def test_states(self):
        clock = FakeClock()
        manager = make_manager(ScriptedTransport(), clock, refresh_threshold=300)
        assert manager.status() is TokenStatus.NO_TOKEN
        assert manager.is_expired()

        manager.set_token("T1", 1000)
        assert manager.status() is TokenStatus.VALID

        clock.advance(750)
        assert manager.status() is TokenStatus.EXPIRING
        assert not manager.is_expired()

        clock.advance(250)
        assert manager.status() is TokenStatus.EXPIRED
        assert manager.is_expired()

    def test_invalidate_forgets_token(self):
        manager = make_manager(ScriptedTransport(), FakeClock())
        manager.set_token("T1", 1000)
        manager.invalidate()
        assert manager.status() is TokenStatus.NO_TOKEN


@pytest.mark.asyncio
@pytest.mark.auth
class TestTokenRefresh:
    """Test the refresh exchange and its coalescing."""

    async def test_valid_token_is_returned_without_refresh(self):
        transport = ScriptedTransport()
        manager = make_manager(transport, FakeClock())
        manager.set_token("T1", 3600)
        assert await manager.get_token() == "T1"
        assert transport.calls == []

    async def test_refresh_posts_refresh_token_and_sets_state(self):
        clock = FakeClock()
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2", 3600))
        manager = make_manager(transport, clock)

        assert await manager.get_token() == "T2"
        call = transport.calls[0]
        assert call.method == "POST"
        assert call.body == {"refreshToken": "refresh-1"}
        expected = datetime.fromtimestamp(clock.now, tz=timezone.utc) + timedelta(seconds=3600)
        assert manager.state.expires_at == expected
        assert manager.status() is TokenStatus.VALID

    async def test_concurrent_callers_share_one_refresh(self):
        gate = asyncio.Event()

        async def slow_refresh(call):
            await gate.wait()
            return refresh_ok("T2")

        transport = ScriptedTransport().add("POST", REFRESH_URL, slow_refresh)
        manager = make_manager(transport, FakeClock())

        tasks = [asyncio.ensure_future(manager.get_token()) for _ in range(10)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert manager.refreshing
        gate.set()
        tokens = await asyncio.gather(*tasks)

        assert tokens == ["T2"] * 10
        assert len(transport.calls_to(REFRESH_URL)) == 1
        assert manager.refresh_count == 1

    async def test_refresh_after_completion_starts_new_exchange(self):
        transport = ScriptedTransport().add(
            "POST", REFRESH_URL, refresh_ok("T2"), refresh_ok("T3")
        )
        manager = make_manager(transport, FakeClock())
        assert (await manager.refresh()).token == "T2"
        assert (await manager.refresh()).token == "T3"
        assert len(transport.calls) == 2

    async def test_expiring_token_returned_while_background_refresh_runs(self):
        clock = FakeClock()
        gate = asyncio.Event()

        async def slow_refresh(call):
            await gate.wait()
            return refresh_ok("T2")

        transport = ScriptedTransport().add("POST", REFRESH_URL, slow_refresh)
        manager = make_manager(transport, clock, refresh_threshold=300)
        manager.set_token("T1", 1000)
        clock.advance(800)

        assert await manager.get_token() == "T1"
        assert await manager.get_token() == "T1"
        await asyncio.sleep(0)
        assert len(transport.calls) == 1

        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert manager.state.token == "T2"

    async def test_background_refresh_failure_is_logged_not_raised(self, caplog):
        transport = ScriptedTransport().add("POST", REFRESH_URL, ok({"error": "x"}, status=500))
        clock = FakeClock()
        manager = make_manager(transport, clock, refresh_threshold=300)
        manager.set_token("T1", 1000)
        clock.advance(800)

        assert await manager.get_token() == "T1"
        for _ in range(5):
            await asyncio.sleep(0)
        assert manager.state.token == "T1"
        assert not manager.refreshing
        assert "Failed to refresh token" in caplog.text

    @pytest.mark.parametrize(
        "step",
        [
            ok({"error": "nope"}, status=500),
            ok({"token": "T2"}),
            ok({"expiresIn": 10}),
            ok("not json"),
            TransportFailure("connection refused"),
            ConnectionError("reset"),
        ],
    )
    async def test_failed_refresh_leaves_state_unchanged(self, step):
        clock = FakeClock()
        transport = ScriptedTransport().add("POST", REFRESH_URL, step)
        manager = make_manager(transport, clock)
        manager.set_token("T1", 10)
        clock.advance(20)

        with pytest.raises(TokenRefreshError):
            await manager.get_token()
        assert manager.state.token == "T1"
        assert manager.status() is TokenStatus.EXPIRED

    async def test_missing_refresh_token_fails_without_exchange(self):
        transport = ScriptedTransport()
        manager = TokenManager(transport, REFRESH_URL, clock=FakeClock())
        with pytest.raises(TokenRefreshError, match="No refresh token"):
            await manager.get_token()
        assert transport.calls == []

    async def test_refresh_token_falls_back_to_store(self):
        store = InMemoryTokenStore()
        await store.set_refresh_token(REFRESH_URL, "stored-refresh")
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2"))
        manager = TokenManager(transport, REFRESH_URL, token_store=store, clock=FakeClock())

        assert await manager.get_token() == "T2"
        assert transport.calls[0].body == {"refreshToken": "stored-refresh"}

    async def test_configured_refresh_token_wins_over_store(self):
        store = InMemoryTokenStore()
        await store.set_refresh_token(REFRESH_URL, "stored-refresh")
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2"))
        manager = make_manager(transport, FakeClock(), token_store=store)

        await manager.refresh()
        assert transport.calls[0].body == {"refreshToken": "refresh-1"}
        assert await store.get_refresh_token(REFRESH_URL) == "stored-refresh"

    async def test_refreshed_token_is_persisted_and_hydrated(self):
        store = InMemoryTokenStore()
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2"))
        first = make_manager(transport, FakeClock(), token_store=store)
        await first.get_token()

        second = make_manager(transport, FakeClock(), token_store=store)
        assert await second.get_token() == "T2"
        assert len(transport.calls) == 1

    async def test_rotated_refresh_token_is_used_next_time(self):
        transport = ScriptedTransport().add(
            "POST",
            REFRESH_URL,
            ok({"token": "T2", "expiresIn": 3600, "refreshToken": "refresh-2"}),
            refresh_ok("T3"),
        )
        manager = make_manager(transport, FakeClock())
        await manager.refresh()
        await manager.refresh()
        assert transport.calls[1].body == {"refreshToken": "refresh-2"}

    async def test_authorization_header(self):
        manager = make_manager(ScriptedTransport(), FakeClock())
        manager.set_token("T1", 3600)
        assert await manager.authorization_header() == {"Authorization": "Bearer T1"}

    async def test_store_failure_surfaces_as_refresh_error(self):
        store = InMemoryTokenStore()
        store.set_access_token = AsyncMock(side_effect=OSError("disk full"))
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2"))
        manager = make_manager(transport, FakeClock(), token_store=store)

        with pytest.raises(TokenRefreshError) as exc_info:
            await manager.refresh()
        assert isinstance(exc_info.value.__cause__, OSError)
        assert manager.state is None


@pytest.mark.asyncio
@pytest.mark.auth
class TestShortLivedTokens:
    """Tokens whose whole lifetime fits inside the refresh threshold."""

    async def test_short_lived_token_is_not_refreshed_early(self):
        clock = FakeClock()
        transport = ScriptedTransport().add("POST", REFRESH_URL, refresh_ok("T2", 60))
        manager = make_manager(transport, clock, refresh_threshold=300)

        assert await manager.get_token() == "T2"
        assert manager.status() is TokenStatus.EXPIRING
        for _ in range(3):
            assert await manager.get_token() == "T2"
            await asyncio.sleep(0)
        assert len(transport.calls) == 1

    async def test_short_lived_token_is_refreshed_once_expired(self):
        clock = FakeClock()
        transport = ScriptedTransport().add(
            "POST", REFRESH_URL, refresh_ok("T2", 60), refresh_ok("T3", 60)
        )
        manager = make_manager(transport, clock, refresh_threshold=300)
        await manager.get_token()

        clock.advance(61)
        assert await manager.get_token() == "T3"
        assert len(transport.calls) == 2

    async def test_lifetime_of_seeded_token(self):
        manager = make_manager(ScriptedTransport(), FakeClock())
        state = manager.set_token("T1", 120)
        assert state.lifetime_seconds() == pytest.approx(120)
