# location_hub/services/presence/registry.py
"""
Реестр присутствия: кто подключён сейчас и где находится.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from location_hub.services.presence.session import Session
from location_hub.shared.models.location import LocationRecord, UserPresence, to_utc


@dataclass
class PresenceEntry:
    """Последняя координата пользователя и его сессия."""
    location: LocationRecord
    session: Session


class PresenceRegistry:
    """
    username → {последняя координата, живая сессия}.

    Все методы синхронные и выполняются в потоке event loop,
    поэтому мутация не прерывается другими корутинами.
    """

    def __init__(self, max_users: int = 100) -> None:
        self._max_users = max_users
        self._entries: dict[str, PresenceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, username: object) -> bool:
        return username in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    @property
    def max_users(self) -> int:
        return self._max_users

    def get(self, username: str) -> PresenceEntry | None:
        return self._entries.get(username)

    def capacity_exceeded(self, username: str) -> bool:
        """Новый пользователь не помещается в лимит max_users."""
        return username not in self._entries and len(self._entries) >= self._max_users

    def upsert(self, username: str, location: LocationRecord, session: Session) -> bool:
        """
        Записывает координату пользователя.

        Returns:
            True если пользователь новый
        """
        is_new = username not in self._entries
        self._entries[username] = PresenceEntry(location=location, session=session)
        return is_new

    def remove(self, username: str, session: Session | None = None) -> PresenceEntry | None:
        """
        Удаляет пользователя.

        Если передана session, запись удаляется только когда принадлежит ей:
        закрытие старой сессии не выкидывает пользователя, переподключившегося
        с новой.
        """
        entry = self._entries.get(username)
        if entry is None:
            return None
        if session is not None and entry.session is not session:
            return None
        return self._entries.pop(username)

    def snapshot(self) -> list[UserPresence]:
        """Копия текущих записей (все с connected=True)."""
        return [
            UserPresence(**dict(entry.location), connected=True)
            for entry in self._entries.values()
        ]

    def sessions(self) -> list[tuple[str, Session]]:
        """Пары (username, session) в порядке вставки."""
        return [(username, entry.session) for username, entry in self._entries.items()]

    def stale_usernames(self, now: datetime, timeout: float) -> list[str]:
        """Пользователи, чьё последнее обновление старше timeout секунд."""
        now = to_utc(now)
        return [
            username
            for username, entry in self._entries.items()
            if (now - entry.location.last_update).total_seconds() > timeout
        ]

    def clear(self) -> None:
        self._entries.clear()
