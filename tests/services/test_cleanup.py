# tests/services/test_cleanup.py
"""
Тесты периодической очистки.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from location_hub.services.presence.cleanup import CleanupScheduler
from location_hub.services.presence.rate_limiter import RateLimiter
from location_hub.services.presence.registry import PresenceRegistry
from location_hub.services.presence.session import Session
from location_hub.services.presence.store import LocationHistoryStore
from location_hub.shared.models.location import LocationRecord


def _register(registry: PresenceRegistry, name: str, session: Session, when) -> None:
    registry.upsert(name, LocationRecord(name=name, latitude=0, longitude=0, last_update=when), session)


class TestCleanupScheduler:
    """Тесты для CleanupScheduler."""

    @pytest.mark.asyncio
    async def test_tick_evicts_inactive_users(self, clock, memory_redis, websocket_factory) -> None:
        registry = PresenceRegistry()
        limiter = RateLimiter(2.0)
        websocket = websocket_factory()
        idle_session = Session(websocket)

        _register(registry, "idle", idle_session, clock.now - timedelta(seconds=31))
        _register(registry, "active", Session(websocket_factory()), clock.now - timedelta(seconds=5))
        limiter.record("idle", 0.0)

        scheduler = CleanupScheduler(
            registry, limiter, LocationHistoryStore(memory_redis), user_timeout=30, clock=clock
        )
        evicted = await scheduler.tick()

        assert evicted == ["idle"]
        assert "idle" not in registry
        assert "active" in registry
        assert len(limiter) == 0
        # Соединение вытесненного пользователя остаётся открытым
        assert websocket.closed is False
        assert idle_session.is_closed is False

    @pytest.mark.asyncio
    async def test_tick_purges_history(self, clock) -> None:
        store = AsyncMock(spec=LocationHistoryStore)
        scheduler = CleanupScheduler(PresenceRegistry(), RateLimiter(2.0), store, clock=clock)

        await scheduler.tick()

        store.purge_expired.assert_awaited_once_with(clock.now)

    @pytest.mark.asyncio
    async def test_start_and_stop(self, clock) -> None:
        store = AsyncMock(spec=LocationHistoryStore)
        store.purge_expired.return_value = 0
        scheduler = CleanupScheduler(PresenceRegistry(), RateLimiter(2.0), store, interval=0.01, clock=clock)

        await scheduler.start()
        assert scheduler.is_running is True
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert scheduler.is_running is False
        assert store.purge_expired.await_count >= 1

    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_loop(self, clock) -> None:
        store = AsyncMock(spec=LocationHistoryStore)
        calls: list = []

        async def purge(now):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        store.purge_expired.side_effect = purge
        scheduler = CleanupScheduler(PresenceRegistry(), RateLimiter(2.0), store, interval=0.01, clock=clock)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert store.purge_expired.await_count >= 2
