# location_hub/services/presence/dispatcher.py
"""
Обработка сообщений одной сессии.

Порядок для location_update:
валидация → ограничение частоты → лимит пользователей →
реестр присутствия → история → рассылка остальным.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from location_hub.common.constants import ErrorCode, MessageType, TypeMsg
from location_hub.common.logger import get_logger, log_debug, log_info
from location_hub.services.presence.broadcaster import Broadcaster
from location_hub.services.presence.protocol import ProtocolError, decode_message
from location_hub.services.presence.rate_limiter import RateLimiter
from location_hub.services.presence.registry import PresenceRegistry
from location_hub.services.presence.session import Session, SessionSendError
from location_hub.services.presence.store import LocationHistoryStore
from location_hub.services.presence.validator import (
    build_location_record,
    validate_location_update,
)
from location_hub.shared.models.location import UserPresence
from location_hub.shared.models.messages import (
    GetLocationHistoryMessage,
    GetUsersMessage,
    LocationUpdateMessage,
    UserDisconnectMessage,
    error_message,
    server_message,
)

logger = get_logger("location_hub.dispatcher")


@dataclass
class DispatchStats:
    """Счётчики обработанных обновлений."""
    accepted_updates: int = 0
    rejected_updates: int = 0


class MessageDispatcher:
    """
    Переключатель по типу сообщения.

    Ошибки протокола, валидации и политик отправляются клиенту
    сообщением error; состояние при этом не меняется.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        rate_limiter: RateLimiter,
        store: LocationHistoryStore,
        broadcaster: Broadcaster,
        *,
        clock: Callable[[], datetime],
        max_name_length: int = 50,
        stale_threshold: float = 30.0,
    ) -> None:
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._store = store
        self._broadcaster = broadcaster
        self._clock = clock
        self._max_name_length = max_name_length
        self._stale_threshold = stale_threshold
        self.stats = DispatchStats()

    # =========================================================================
    # ОТПРАВКА
    # =========================================================================

    @staticmethod
    def reply(session: Session, message: dict[str, Any]) -> bool:
        """Ставит ответ в очередь сессии; ошибка отправки только логируется."""
        try:
            session.send(message)
        except SessionSendError as e:
            logger.warning(f"Ответ {message.get('type')} не отправлен: {e}")
            return False
        return True

    def reply_error(
        self,
        session: Session,
        code: ErrorCode,
        message: str,
        details: str | None = None,
    ) -> None:
        self.reply(session, error_message(code, message, details))

    # =========================================================================
    # ДИСПЕТЧЕРИЗАЦИЯ
    # =========================================================================

    async def dispatch(self, session: Session, raw: str | bytes) -> None:
        """Разбирает сообщение и вызывает обработчик его типа."""
        try:
            message = decode_message(raw)
        except ProtocolError as e:
            await log_debug(
                f"Отклонено сообщение: {e.code.value}",
                extra={"session": session.session_id, "details": e.details},
            )
            self.reply(session, e.to_message())
            return

        match message:
            case LocationUpdateMessage():
                await self.handle_location_update(session, message.data)
            case GetUsersMessage():
                await self.send_users_list(session)
            case GetLocationHistoryMessage():
                await self.handle_location_history(session, message)
            case UserDisconnectMessage():
                await self.handle_disconnect_request(session, message)

    # =========================================================================
    # ОБРАБОТЧИКИ
    # =========================================================================

    def _reject(self, session: Session, code: ErrorCode, message: str, details: str | None = None) -> None:
        self.stats.rejected_updates += 1
        self.reply_error(session, code, message, details)

    async def handle_location_update(self, session: Session, data: dict[str, Any]) -> None:
        """Принимает координаты, сохраняет их и рассылает остальным."""
        now = self._clock()

        rejection = validate_location_update(
            data,
            now,
            max_name_length=self._max_name_length,
            stale_threshold=self._stale_threshold,
        )
        if rejection is not None:
            self._reject(session, rejection.code, rejection.message, rejection.details)
            return

        username = data.get("name", data.get("username"))

        if session.username is not None and session.username != username:
            self._reject(
                session,
                ErrorCode.INVALID_NAME,
                "Session is already bound to another name",
                f"Bound to: {session.username}",
            )
            return

        if not self._rate_limiter.allow(username, now.timestamp()):
            self._reject(
                session,
                ErrorCode.RATE_LIMITED,
                "Location updates too frequent",
                f"Minimum interval is {int(self._rate_limiter.min_interval * 1000)}ms",
            )
            return

        if self._registry.capacity_exceeded(username):
            self._reject(
                session,
                ErrorCode.USER_LIMIT_EXCEEDED,
                f"Maximum {self._registry.max_users} users allowed",
            )
            return

        self._rate_limiter.record(username, now.timestamp())
        record = build_location_record(data, now)
        is_new = self._registry.upsert(username, record, session)
        session.bind(username)
        self.stats.accepted_updates += 1

        await log_info(
            f"{'Новый пользователь' if is_new else 'Обновление'}: {username}",
            type_msg=TypeMsg.DEBUG,
            extra={"latitude": record.latitude, "longitude": record.longitude},
        )

        # Ошибка Redis не мешает обновлению присутствия и рассылке
        await self._store.append(username, record, received_at=now)

        if session.is_closed:
            return

        self._broadcaster.notify_others(
            username,
            server_message(MessageType.USER_LOCATION, record.to_wire()),
        )

    async def collect_users(self) -> list[UserPresence]:
        """
        Пользователи из истории с флагом connected из реестра.

        Подключённые берутся из памяти (свежее), в том числе те,
        кого нет в Redis (режим без хранилища или сбой записи).
        """
        connected = {user.name: user for user in self._registry.snapshot()}
        users: list[UserPresence] = []
        seen: set[str] = set()

        for record in await self._store.all_users_latest():
            if record.name in seen:
                continue
            seen.add(record.name)
            users.append(connected.get(record.name) or UserPresence(**dict(record), connected=False))

        users.extend(user for name, user in connected.items() if name not in seen)
        return users

    async def send_users_list(self, session: Session) -> None:
        users = await self.collect_users()
        self.reply(
            session,
            server_message(MessageType.USERS_LIST, [user.to_wire() for user in users]),
        )

    async def handle_location_history(self, session: Session, message: GetLocationHistoryMessage) -> None:
        """История координат пользователя, от новых к старым."""
        request = message.data
        if request.has_range and request.start_time > request.end_time:
            self.reply_error(
                session,
                ErrorCode.HISTORY_ERROR,
                "Failed to retrieve location history",
                "startTime must not be after endTime",
            )
            return

        history = await self._store.history(request.username, request.start_time, request.end_time)
        self.reply(
            session,
            server_message(MessageType.LOCATION_HISTORY, {
                "username": request.username,
                "history": [record.to_wire() for record in history],
            }),
        )

    async def handle_disconnect_request(self, session: Session, message: UserDisconnectMessage) -> None:
        """Отключение разрешено только для собственной сессии."""
        if session.username is None or session.username != message.data.name:
            self.reply_error(
                session,
                ErrorCode.UNAUTHORIZED_DISCONNECT,
                "Can only disconnect your own session",
            )
            return

        self.unbind(session)
        await session.close()

    def unbind(self, session: Session) -> bool:
        """
        Убирает пользователя сессии из реестра присутствия.
        История в Redis не трогается: она истекает по TTL.
        """
        username = session.username
        if username is None:
            return False
        if self._registry.remove(username, session) is None:
            return False
        self._rate_limiter.forget(username)
        logger.info(f"Пользователь отключён: {username}")
        return True
