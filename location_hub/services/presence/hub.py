# location_hub/services/presence/hub.py
"""
Хаб присутствия: собирает компоненты и ведёт жизненный цикл сессий.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from location_hub.common.constants import ErrorCode, MessageType, TypeMsg
from location_hub.common.logger import log_error, log_info
from location_hub.services.presence.broadcaster import Broadcaster
from location_hub.services.presence.cleanup import CleanupScheduler
from location_hub.services.presence.dispatcher import MessageDispatcher
from location_hub.services.presence.rate_limiter import RateLimiter
from location_hub.services.presence.registry import PresenceRegistry
from location_hub.services.presence.session import Session
from location_hub.services.presence.store import LocationHistoryStore
from location_hub.shared.models.common import HealthStatus, StatsResponse
from location_hub.shared.models.location import format_timestamp
from location_hub.shared.models.messages import error_message, server_message

if TYPE_CHECKING:
    from fastapi import WebSocket

    from location_hub.config.loader import Settings
    from location_hub.infra.redis_client import RedisClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationHub:
    """
    Фасад сервиса.

    Ответственности:
    - Открытие сессии: приветствие connected и текущий users_list
    - Передача входящих сообщений диспетчеру
    - Закрытие сессии: удаление пользователя из реестра
    - Health/статистика
    - Фоновая очистка и корректная остановка
    """

    def __init__(
        self,
        settings: "Settings",
        redis: "RedisClient",
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._redis = redis
        self._clock = clock or _utcnow
        self.server_id = f"server-{uuid.uuid4().hex[:12]}"

        presence = settings.presence
        history = settings.history

        self.registry = PresenceRegistry(max_users=presence.MAX_USERS)
        self.rate_limiter = RateLimiter(presence.LOCATION_UPDATE_INTERVAL_MS / 1000)
        self.store = LocationHistoryStore(
            redis,
            max_entries=history.MAX_LOCATION_ENTRIES,
            location_ttl=history.LOCATION_TTL,
            user_ttl=history.USER_TTL,
        )
        self.broadcaster = Broadcaster(self.registry)
        self.dispatcher = MessageDispatcher(
            self.registry,
            self.rate_limiter,
            self.store,
            self.broadcaster,
            clock=self._clock,
            max_name_length=presence.MAX_NAME_LENGTH,
            stale_threshold=presence.USER_TIMEOUT,
        )
        self.cleanup = CleanupScheduler(
            self.registry,
            self.rate_limiter,
            self.store,
            interval=presence.CLEANUP_INTERVAL,
            user_timeout=presence.USER_TIMEOUT,
            clock=self._clock,
        )

        self._sessions: set[Session] = set()
        self._connections_opened = 0

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def start(self) -> None:
        """Запускает фоновую очистку."""
        await self.cleanup.start()
        await log_info(
            f"Хаб {self.server_id} запущен (хранилище: "
            f"{'redis' if self.store.is_connected else 'только память'})",
            type_msg=TypeMsg.INFO,
        )

    async def shutdown(self) -> None:
        """
        Остановка: уведомляет клиентов, закрывает сессии,
        очищает состояние и останавливает очистку.
        """
        message = error_message(ErrorCode.SERVER_SHUTDOWN, "Server is shutting down")
        notified = self.broadcaster.notify_all(message)
        # Сессии, которых нет в реестре (без имени или вытесненные)
        for session in self._sessions:
            entry = self.registry.get(session.username) if session.username else None
            if entry is not None and entry.session is session:
                continue
            if self.dispatcher.reply(session, message):
                notified += 1
        await log_info(f"Остановка хаба, уведомлено сессий: {notified}", type_msg=TypeMsg.INFO)

        for session in list(self._sessions):
            await session.close(code=1001)
        self._sessions.clear()

        self.registry.clear()
        self.rate_limiter.clear()
        await self.cleanup.stop()

    # =========================================================================
    # СЕССИИ
    # =========================================================================

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def on_open(self, websocket: "WebSocket") -> Session:
        """Регистрирует новое соединение и отправляет приветствие."""
        session = Session(websocket, max_queue=self._settings.presence.SEND_QUEUE_SIZE)
        session.start()
        self._sessions.add(session)
        self._connections_opened += 1

        await log_info(
            f"Новое соединение: {session.session_id}",
            type_msg=TypeMsg.DEBUG,
            extra={"active_sessions": len(self._sessions)},
        )

        self.dispatcher.reply(session, server_message(MessageType.CONNECTED, {
            "message": "Connected to location sharing server",
            "serverId": self.server_id,
            "timestamp": format_timestamp(self._clock()),
        }))
        await self.dispatcher.send_users_list(session)
        return session

    async def on_message(self, session: Session, raw: str | bytes) -> None:
        """Обрабатывает входящее сообщение; непредвиденная ошибка не закрывает соединение."""
        try:
            await self.dispatcher.dispatch(session, raw)
        except Exception as e:
            await log_error(
                f"Ошибка обработки сообщения: {e}",
                extra={"session": session.session_id, "username": session.username},
                exc_info=True,
            )

    async def on_close(self, session: Session) -> None:
        """Соединение закрыто (клиентом, сетью или сервером)."""
        session.mark_closed()
        self._sessions.discard(session)
        self.dispatcher.unbind(session)
        await log_info(
            f"Соединение закрыто: {session.session_id}",
            type_msg=TypeMsg.DEBUG,
            extra={"username": session.username, "active_sessions": len(self._sessions)},
        )

    # =========================================================================
    # HEALTH / СТАТИСТИКА
    # =========================================================================

    async def health(self) -> HealthStatus:
        """Без Redis статус degraded: сервис работает только с памятью."""
        persistence_connected = await self._redis.health_check()
        return HealthStatus(
            service=self._settings.system.PROJECT_NAME,
            status="healthy" if persistence_connected else "degraded",
            version=self._settings.system.VERSION,
            server_id=self.server_id,
            connected_users=len(self.registry),
            persistence_connected=persistence_connected,
            timestamp=format_timestamp(self._clock()),
        )

    def stats(self) -> StatsResponse:
        return StatsResponse(
            accepted_updates=self.dispatcher.stats.accepted_updates,
            rejected_updates=self.dispatcher.stats.rejected_updates,
            broadcasts_sent=self.broadcaster.total_sent,
            connections_opened=self._connections_opened,
            active_sessions=len(self._sessions),
            connected_users=len(self.registry),
        )
