# location_hub/services/presence/session.py
"""
WebSocket-сессия клиента.
Ограниченная очередь исходящих сообщений и отдельная задача-отправитель.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from location_hub.common.constants import SessionState
from location_hub.common.logger import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger("location_hub.session")

# Маркер закрытия в очереди отправки
_CLOSE = object()


class SessionSendError(Exception):
    """Сообщение не поставлено в очередь отправки."""


class SessionClosedError(SessionSendError):
    """Сессия уже закрыта."""


class BackpressureError(SessionSendError):
    """Очередь отправки переполнена (клиент не успевает читать)."""


class Session:
    """
    Одно WebSocket-соединение.

    Состояния: UNASSOCIATED → ASSOCIATED (после первого принятого
    location_update) → CLOSED. Имя пользователя привязывается один раз.
    """

    def __init__(self, websocket: "WebSocket", *, max_queue: int = 256) -> None:
        self.websocket = websocket
        self.session_id = uuid.uuid4().hex
        self.connected_at = datetime.now(timezone.utc)
        self._state = SessionState.UNASSOCIATED
        self._username: str | None = None
        self._outbox: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue)
        self._writer: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"Session(id={self.session_id[:8]}, user={self._username!r}, state={self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    def bind(self, username: str) -> None:
        """Привязывает имя пользователя к сессии (однократно)."""
        if self._username is not None and self._username != username:
            raise ValueError(f"Сессия уже привязана к {self._username!r}")
        self._username = username
        if self._state is SessionState.UNASSOCIATED:
            self._state = SessionState.ASSOCIATED

    def start(self) -> None:
        """Запускает задачу отправки сообщений."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: dict[str, Any]) -> None:
        """
        Ставит сообщение в очередь отправки без ожидания.

        Raises:
            SessionClosedError: сессия закрыта
            BackpressureError: очередь переполнена
        """
        if self.is_closed:
            raise SessionClosedError(f"{self!r} закрыта")
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            raise BackpressureError(
                f"Очередь отправки {self!r} переполнена ({self._outbox.maxsize})"
            ) from None

    async def close(self, code: int = 1000) -> None:
        """
        Закрывает сессию по инициативе сервера.
        Уже поставленные в очередь сообщения отправляются до закрытия сокета.
        """
        if self.is_closed:
            return
        self._state = SessionState.CLOSED

        if self._writer is not None:
            try:
                self._outbox.put_nowait(_CLOSE)
            except asyncio.QueueFull:
                self._writer.cancel()
            await asyncio.gather(self._writer, return_exceptions=True)

        try:
            await self.websocket.close(code=code)
        except Exception as e:
            # Клиент мог уже закрыть соединение
            logger.debug(f"Ошибка при закрытии сокета {self!r}: {e}")

    def mark_closed(self) -> None:
        """Соединение закрыто клиентом: дальнейшая отправка невозможна."""
        self._state = SessionState.CLOSED
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    async def _write_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            if message is _CLOSE:
                return
            try:
                await self.websocket.send_text(json.dumps(message, ensure_ascii=False))
            except Exception as e:
                logger.warning(f"Не удалось отправить сообщение {self!r}: {e}")
                self._state = SessionState.CLOSED
                return
