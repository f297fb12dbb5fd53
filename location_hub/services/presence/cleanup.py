# location_hub/services/presence/cleanup.py
"""
Периодическая очистка: вытеснение неактивных пользователей
и удаление устаревших записей истории.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable

from location_hub.common.constants import TypeMsg
from location_hub.common.logger import log_error, log_info
from location_hub.services.presence.rate_limiter import RateLimiter
from location_hub.services.presence.registry import PresenceRegistry
from location_hub.services.presence.store import LocationHistoryStore


class CleanupScheduler:
    """
    Фоновая задача очистки.

    Каждые interval секунд:
    1. Удаляет из реестра пользователей без обновлений дольше user_timeout
       (соединение при этом не закрывается)
    2. Вызывает purge_expired() у хранилища истории
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        rate_limiter: RateLimiter,
        store: LocationHistoryStore,
        *,
        interval: float = 30.0,
        user_timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._store = store
        self._interval = interval
        self._user_timeout = user_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает фоновую задачу."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        await log_info(
            f"Очистка запущена (интервал {self._interval}с, таймаут {self._user_timeout}с)",
            type_msg=TypeMsg.DEBUG,
        )

    async def stop(self) -> None:
        """Останавливает фоновую задачу."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def tick(self) -> list[str]:
        """
        Один проход очистки.

        Returns:
            Имена вытесненных пользователей
        """
        stale = self._registry.stale_usernames(self._clock(), self._user_timeout)
        for username in stale:
            self._registry.remove(username)
            self._rate_limiter.forget(username)
            await log_info(f"Вытеснен неактивный пользователь: {username}", type_msg=TypeMsg.DEBUG)

        if stale:
            await log_info(f"Вытеснено неактивных пользователей: {len(stale)}", type_msg=TypeMsg.INFO)

        await self._store.purge_expired(self._clock())
        return stale

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Сбой одного прохода не останавливает очистку
                await log_error(f"Ошибка очистки: {e}", exc_info=True)
