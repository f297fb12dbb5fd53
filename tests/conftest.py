# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from location_hub.config.loader import (  # noqa: E402
    HistorySettings,
    PresenceSettings,
    Settings,
)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Тестовая конфигурация",
        "PROJECT_NAME": "location_hub_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "HOST": "127.0.0.1",
        "PORT": 9000,
        "LOG_FORMAT": "json",
        "LOG_TO_FILE": False,
        "REDIS_HOST": "redis.test",
        "REDIS_PORT": 6380,
        "REDIS_DB": 2,
        "REDIS_NAMESPACE": "location_test",
        "MAX_USERS": 5,
        "LOCATION_UPDATE_INTERVAL_MS": 1000,
        "USER_TIMEOUT": 60,
        "MAX_NAME_LENGTH": 20,
        "CLEANUP_INTERVAL": 10,
        "MAX_LOCATION_ENTRIES": 10,
        "LOCATION_TTL": 3600,
        "USER_TTL": 7200,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def hub_settings() -> Settings:
    """Настройки хаба со значениями по умолчанию (очистка вручную через tick)."""
    return Settings(
        presence=PresenceSettings(CLEANUP_INTERVAL=3600),
        history=HistorySettings(),
    )


# =============================================================================
# ВРЕМЯ
# =============================================================================

class FakeClock:
    """Управляемые часы: время двигается только через advance()."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

class InMemoryRedis:
    """
    Sorted set / hash в памяти с интерфейсом RedisClient.

    available=False имитирует отсутствие подключения при старте,
    failing=True — обрыв соединения (каждая команда падает).
    """

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, float]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.available = True
        self.failing = False

    @property
    def is_available(self) -> bool:
        return self.available

    @property
    def is_connected(self) -> bool:
        return self.available and not self.failing

    def _check(self) -> None:
        if self.failing:
            raise RedisConnectionError("Connection refused")

    def _ordered(self, key: str) -> list[str]:
        members = self.zsets.get(key, {})
        return [m for m, _ in sorted(members.items(), key=lambda item: (item[1], item[0]))]

    @staticmethod
    def _slice(items: list[str], start: int, end: int) -> list[str]:
        size = len(items)
        if start < 0:
            start = max(size + start, 0)
        if end < 0:
            end = size + end
        if start >= size or start > end:
            return []
        return items[start:end + 1]

    async def zadd(self, key: str, member: str, score: float) -> int:
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = member not in zset
        zset[member] = score
        return int(added)

    async def zrange(self, key: str, start: int, end: int, *, desc: bool = False) -> list[str]:
        self._check()
        ordered = self._ordered(key)
        if desc:
            ordered.reverse()
        return self._slice(ordered, start, end)

    async def zrevrangebyscore(self, key: str, max_score: float, min_score: float) -> list[str]:
        self._check()
        zset = self.zsets.get(key, {})
        return [m for m in reversed(self._ordered(key)) if min_score <= zset[m] <= max_score]

    async def zremrangebyrank(self, key: str, start: int, end: int) -> int:
        self._check()
        doomed = self._slice(self._ordered(key), start, end)
        for member in doomed:
            del self.zsets[key][member]
        return len(doomed)

    async def zremrangebyscore(self, key: str, min_score: float | str, max_score: float | str) -> int:
        self._check()
        low = float(min_score)
        high = float(max_score)
        zset = self.zsets.get(key, {})
        doomed = [m for m, score in zset.items() if low <= score <= high]
        for member in doomed:
            del zset[member]
        return len(doomed)

    async def hset(self, name: str, mapping: dict[str, Any]) -> int:
        self._check()
        self.hashes.setdefault(name, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    async def hgetall(self, name: str) -> dict[str, str]:
        self._check()
        return dict(self.hashes.get(name, {}))

    async def expire(self, key: str, ttl: int) -> bool:
        self._check()
        self.ttls[key] = ttl
        return True

    async def scan_keys(self, prefix: str, count: int = 100) -> list[str]:
        self._check()
        return [key for key, zset in self.zsets.items() if key.startswith(prefix) and zset]

    async def health_check(self) -> bool:
        return self.is_connected


@pytest.fixture
def memory_redis() -> InMemoryRedis:
    """Redis в памяти."""
    return InMemoryRedis()


@pytest.fixture
def offline_redis() -> InMemoryRedis:
    """Redis, к которому не удалось подключиться при старте."""
    redis = InMemoryRedis()
    redis.available = False
    return redis


# =============================================================================
# WEBSOCKET
# =============================================================================

class FakeWebSocket:
    """WebSocket, запоминающий отправленные сообщения."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: int | None = None

    async def send_text(self, text: str) -> None:
        if self.closed:
            raise RuntimeError("WebSocket is closed")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]

    def errors(self) -> list[str]:
        return [m["data"]["code"] for m in self.of_type("error")]


@pytest.fixture
def websocket_factory() -> Callable[[], FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture
def flush() -> Callable[[], Awaitable[None]]:
    """Даёт задачам-отправителям сессий выгрузить очереди."""

    async def _flush() -> None:
        for _ in range(10):
            await asyncio.sleep(0)

    return _flush
