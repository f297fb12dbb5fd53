# location_hub/services/presence/rate_limiter.py
"""
Ограничение частоты обновлений координат.
"""

from __future__ import annotations


class RateLimiter:
    """
    Минимальный интервал между принятыми обновлениями одного пользователя.

    Хранится только в памяти процесса и сбрасывается при перезапуске:
    это косметическое ограничение нагрузки, а не механизм безопасности.
    Время передаётся в секундах Unix.
    """

    def __init__(self, min_interval: float) -> None:
        self._min_interval = min_interval
        self._last_accepted: dict[str, float] = {}

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def allow(self, username: str, now: float) -> bool:
        """False, если с последнего принятого обновления прошло меньше min_interval."""
        last = self._last_accepted.get(username)
        if last is None:
            return True
        return (now - last) >= self._min_interval

    def record(self, username: str, now: float) -> None:
        """Запоминает время принятого обновления."""
        self._last_accepted[username] = now

    def forget(self, username: str) -> None:
        self._last_accepted.pop(username, None)

    def clear(self) -> None:
        self._last_accepted.clear()

    def __len__(self) -> int:
        return len(self._last_accepted)
