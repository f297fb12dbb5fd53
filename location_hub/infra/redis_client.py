# location_hub/infra/redis_client.py
"""
Асинхронный клиент Redis для хранения истории координат.
Поддерживает пространство имён ключей, подключение с экспоненциальной
задержкой между попытками и отслеживание состояния соединения.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

import redis.asyncio as redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from location_hub.common.logger import get_logger, log_error, log_info, log_warning
from location_hub.common.constants import TypeMsg

logger = get_logger("location_hub.redis")

T = TypeVar("T")


class RedisClient:
    """
    Асинхронный клиент Redis.
    Поддерживает:
    - Подключение с ограниченным числом попыток (после — режим "только память")
    - Sorted set операции (история координат)
    - Hash операции (метаданные пользователя)
    - TTL и перебор ключей по префиксу
    """

    _instance: RedisClient | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (выполняется один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client: redis.Redis | None = None
        self._namespace = "location_share"
        self._connected = False

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_available(self) -> bool:
        """Клиент создан (подключение удалось хотя бы раз)."""
        return self._client is not None

    @property
    def is_connected(self) -> bool:
        """Результат последнего обращения к Redis."""
        return self._client is not None and self._connected

    @property
    def namespace(self) -> str:
        return self._namespace

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    def _strip_key(self, full_key: str) -> str:
        """Убирает namespace из ключа."""
        prefix = f"{self._namespace}:"
        return full_key[len(prefix):] if full_key.startswith(prefix) else full_key

    async def connect(
        self,
        url: str | None = None,
        *,
        max_connections: int = 50,
        namespace: str | None = None,
        retry_attempts: int = 10,
        backoff_base: float = 0.1,
        backoff_cap: float = 3.0,
    ) -> bool:
        """
        Подключается к Redis.

        Делает до retry_attempts попыток с экспоненциальной задержкой.
        Если все попытки неудачны — клиент остаётся неинициализированным,
        и сервис работает только с данными в памяти.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Размер пула соединений
            namespace: Префикс ключей
            retry_attempts: Максимальное число попыток
            backoff_base: Начальная задержка, секунды
            backoff_cap: Максимальная задержка, секунды

        Returns:
            True если подключение установлено
        """
        if self._client is not None:
            return True

        if url is None:
            from location_hub.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = settings.redis.REDIS_NAMESPACE
            retry_attempts = settings.redis.REDIS_RETRY_ATTEMPTS
            backoff_base = settings.redis.REDIS_BACKOFF_BASE
            backoff_cap = settings.redis.REDIS_BACKOFF_CAP

        if namespace:
            self._namespace = namespace

        backoff = ExponentialBackoff(cap=backoff_cap, base=backoff_base)
        client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        for attempt in range(1, retry_attempts + 1):
            try:
                await client.ping()
            except (RedisError, OSError) as e:
                delay = backoff.compute(attempt)
                await log_warning(
                    f"Redis недоступен (попытка {attempt}/{retry_attempts}): {e}",
                    extra={"retry_in": delay},
                )
                if attempt < retry_attempts:
                    await asyncio.sleep(delay)
                continue

            self._client = client
            self._connected = True
            await log_info(f"Подключение к Redis установлено: {url.rsplit('@', 1)[-1]}", type_msg=TypeMsg.INFO)
            return True

        await client.aclose()
        self._connected = False
        await log_error(
            f"Не удалось подключиться к Redis после {retry_attempts} попыток, "
            "работаем в режиме только памяти"
        )
        return False

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                await log_warning(f"Ошибка при закрытии Redis: {e}")
            self._client = None
            self._connected = False
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def _tracked(self, operation: Awaitable[T]) -> T:
        """Выполняет команду и обновляет флаг состояния соединения."""
        try:
            result = await operation
        except (RedisConnectionError, RedisTimeoutError):
            if self._connected:
                logger.warning("Соединение с Redis потеряно")
            self._connected = False
            raise
        self._connected = True
        return result

    # =========================================================================
    # SORTED SET ОПЕРАЦИИ
    # =========================================================================

    async def zadd(self, key: str, member: str, score: float) -> int:
        """Добавляет элемент в sorted set."""
        return await self._tracked(self.client.zadd(self._make_key(key), {member: score}))

    async def zrange(self, key: str, start: int, end: int, *, desc: bool = False) -> list[str]:
        """Элементы по рангу (desc=True — от большего score к меньшему)."""
        return await self._tracked(self.client.zrange(self._make_key(key), start, end, desc=desc))

    async def zrevrangebyscore(self, key: str, max_score: float, min_score: float) -> list[str]:
        """Элементы со score в [min_score, max_score], от большего к меньшему."""
        return await self._tracked(
            self.client.zrevrangebyscore(self._make_key(key), max_score, min_score)
        )

    async def zremrangebyrank(self, key: str, start: int, end: int) -> int:
        """Удаляет элементы по рангу."""
        return await self._tracked(self.client.zremrangebyrank(self._make_key(key), start, end))

    async def zremrangebyscore(self, key: str, min_score: float | str, max_score: float | str) -> int:
        """Удаляет элементы со score в [min_score, max_score]."""
        return await self._tracked(
            self.client.zremrangebyscore(self._make_key(key), min_score, max_score)
        )

    # =========================================================================
    # HASH ОПЕРАЦИИ
    # =========================================================================

    async def hset(self, name: str, mapping: dict[str, Any]) -> int:
        """Записывает поля хеша."""
        return await self._tracked(self.client.hset(self._make_key(name), mapping=mapping))

    async def hgetall(self, name: str) -> dict[str, str]:
        """Получает все поля хеша."""
        return await self._tracked(self.client.hgetall(self._make_key(name)))

    # =========================================================================
    # КЛЮЧИ И TTL
    # =========================================================================

    async def expire(self, key: str, ttl: int) -> bool:
        """Устанавливает TTL для ключа."""
        return await self._tracked(self.client.expire(self._make_key(key), ttl))

    async def scan_keys(self, prefix: str, count: int = 100) -> list[str]:
        """
        Перебирает ключи по префиксу через SCAN (без блокировки Redis, в отличие от KEYS).

        Returns:
            Ключи без namespace
        """
        pattern = self._make_key(f"{prefix}*")

        async def _collect() -> list[str]:
            return [self._strip_key(k) async for k in self.client.scan_iter(match=pattern, count=count)]

        return await self._tracked(_collect())

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к Redis.

        Returns:
            True если подключение работает
        """
        if self._client is None:
            return False
        try:
            return bool(await self._tracked(self.client.ping()))
        except RedisError as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> bool:
    """
    Инициализирует подключение к Redis по настройкам из конфигурации.

    Returns:
        True если Redis доступен, False — режим только памяти
    """
    return await get_redis().connect()


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
