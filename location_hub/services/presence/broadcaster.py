# location_hub/services/presence/broadcaster.py
"""
Рассылка сообщений подключённым пользователям.

Доставка "не более одного раза": без подтверждений и повторов.
Ошибка отправки одному получателю логируется и не прерывает рассылку.
"""

from __future__ import annotations

from typing import Any

from location_hub.common.logger import get_logger
from location_hub.services.presence.registry import PresenceRegistry
from location_hub.services.presence.session import Session, SessionSendError

logger = get_logger("location_hub.broadcast")


class Broadcaster:
    """Рассылка по сессиям из реестра присутствия."""

    def __init__(self, registry: PresenceRegistry) -> None:
        self._registry = registry
        self._total_sent = 0

    @property
    def total_sent(self) -> int:
        return self._total_sent

    def notify_others(self, sender_username: str, message: dict[str, Any]) -> int:
        """
        Отправляет сообщение всем, кроме sender_username.

        Returns:
            Количество сессий, в очередь которых сообщение поставлено
        """
        return self._deliver(
            [(u, s) for u, s in self._registry.sessions() if u != sender_username],
            message,
        )

    def notify_all(self, message: dict[str, Any]) -> int:
        """Отправляет сообщение всем зарегистрированным сессиям."""
        return self._deliver(self._registry.sessions(), message)

    def _deliver(self, targets: list[tuple[str, Session]], message: dict[str, Any]) -> int:
        sent_count = 0
        for username, session in targets:
            try:
                session.send(message)
            except SessionSendError as e:
                logger.warning(
                    f"Сообщение {message.get('type')} не доставлено {username}: {e}",
                    extra={"extra_data": {"username": username}},
                )
                continue
            sent_count += 1

        self._total_sent += sent_count
        return sent_count
