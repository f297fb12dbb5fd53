# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from location_hub.infra.redis_client import RedisClient


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        """Создаёт экземпляр RedisClient для тестов."""
        # Сбрасываем синглтон для каждого теста
        RedisClient._instance = None
        client = RedisClient()
        client._namespace = "location_share"
        return client

    def test_singleton(self) -> None:
        """Проверяет паттерн Singleton."""
        RedisClient._instance = None

        assert RedisClient() is RedisClient()

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        """Проверяет ошибку при обращении к неинициализированному клиенту."""
        with pytest.raises(RuntimeError, match="Redis клиент не инициализирован"):
            _ = redis_client.client

        assert redis_client.is_available is False
        assert redis_client.is_connected is False

    def test_make_and_strip_key(self, redis_client: RedisClient) -> None:
        """Namespace добавляется к ключу и снимается обратно."""
        assert redis_client._make_key("locations:alice") == "location_share:locations:alice"
        assert redis_client._strip_key("location_share:locations:alice") == "locations:alice"

    @pytest.mark.asyncio
    async def test_connect(self, redis_client: RedisClient) -> None:
        """Проверяет подключение к Redis."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", return_value=mock_redis):
            result = await redis_client.connect(
                url="redis://localhost:6379/0",
                max_connections=10,
                namespace="test_ns",
            )

        assert result is True
        assert redis_client.is_connected is True
        assert redis_client.namespace == "test_ns"
        mock_redis.ping.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_log_hides_password(self, redis_client: RedisClient) -> None:
        """В лог попадает только host:port/db."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with (
            patch("redis.asyncio.from_url", return_value=mock_redis),
            patch("location_hub.infra.redis_client.log_info", new_callable=AsyncMock) as mock_log,
        ):
            await redis_client.connect(url="redis://:secret@cache:6380/2")

        message = mock_log.await_args.args[0]
        assert message.endswith("cache:6380/2")
        assert "secret" not in message

    @pytest.mark.asyncio
    async def test_connect_retries_then_succeeds(self, redis_client: RedisClient) -> None:
        """Неудачные попытки повторяются с задержкой."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(side_effect=[RedisConnectionError("refused"), True])

        with (
            patch("redis.asyncio.from_url", return_value=mock_redis),
            patch("location_hub.infra.redis_client.asyncio.sleep", new=AsyncMock()) as mock_sleep,
        ):
            result = await redis_client.connect(url="redis://localhost:6379/0", retry_attempts=3)

        assert result is True
        assert mock_redis.ping.call_count == 2
        mock_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_gives_up(self, redis_client: RedisClient) -> None:
        """После всех попыток клиент остаётся неинициализированным (режим памяти)."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))

        with (
            patch("redis.asyncio.from_url", return_value=mock_redis),
            patch("location_hub.infra.redis_client.asyncio.sleep", new=AsyncMock()) as mock_sleep,
        ):
            result = await redis_client.connect(url="redis://localhost:6379/0", retry_attempts=3)

        assert result is False
        assert redis_client.is_available is False
        assert mock_redis.ping.call_count == 3
        assert mock_sleep.await_count == 2
        mock_redis.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_already_connected(self, redis_client: RedisClient) -> None:
        """Проверяет, что повторное подключение пропускается."""
        redis_client._client = AsyncMock()

        with patch("redis.asyncio.from_url") as mock_from_url:
            await redis_client.connect(url="redis://localhost:6379/0")

        mock_from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient) -> None:
        """Проверяет отключение от Redis."""
        mock_redis = AsyncMock()
        redis_client._client = mock_redis

        await redis_client.disconnect()

        mock_redis.aclose.assert_called_once()
        assert redis_client._client is None

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self, redis_client: RedisClient) -> None:
        """Проверяет отключение, когда соединение не установлено."""
        # Не должно вызывать исключений
        await redis_client.disconnect()

    @pytest.mark.asyncio
    async def test_zadd_uses_namespace(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.zadd.return_value = 1
        redis_client._client = mock_redis

        await redis_client.zadd("locations:alice", '{"name":"alice"}', 1714564800000)

        mock_redis.zadd.assert_called_once_with(
            "location_share:locations:alice", {'{"name":"alice"}': 1714564800000}
        )

    @pytest.mark.asyncio
    async def test_zrange_desc(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.zrange.return_value = ["b", "a"]
        redis_client._client = mock_redis

        result = await redis_client.zrange("locations:alice", 0, -1, desc=True)

        assert result == ["b", "a"]
        mock_redis.zrange.assert_called_once_with("location_share:locations:alice", 0, -1, desc=True)

    @pytest.mark.asyncio
    async def test_hset_and_expire(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        redis_client._client = mock_redis

        await redis_client.hset("user:alice", {"name": "alice"})
        await redis_client.expire("user:alice", 60)

        mock_redis.hset.assert_called_once_with("location_share:user:alice", mapping={"name": "alice"})
        mock_redis.expire.assert_called_once_with("location_share:user:alice", 60)

    @pytest.mark.asyncio
    async def test_scan_keys_strips_namespace(self, redis_client: RedisClient) -> None:
        """scan_keys возвращает ключи без namespace."""

        async def scan_iter(match: str, count: int):
            for key in ("location_share:locations:alice", "location_share:locations:bob"):
                yield key

        mock_redis = MagicMock()
        mock_redis.scan_iter = scan_iter
        redis_client._client = mock_redis

        keys = await redis_client.scan_keys("locations:")

        assert keys == ["locations:alice", "locations:bob"]

    @pytest.mark.asyncio
    async def test_connection_loss_tracked(self, redis_client: RedisClient) -> None:
        """Обрыв соединения сбрасывает is_connected, успешная команда восстанавливает."""
        mock_redis = AsyncMock()
        redis_client._client = mock_redis
        redis_client._connected = True

        mock_redis.hgetall.side_effect = RedisConnectionError("lost")
        with pytest.raises(RedisConnectionError):
            await redis_client.hgetall("user:alice")
        assert redis_client.is_connected is False

        mock_redis.hgetall.side_effect = None
        mock_redis.hgetall.return_value = {}
        await redis_client.hgetall("user:alice")
        assert redis_client.is_connected is True

    @pytest.mark.asyncio
    async def test_health_check(self, redis_client: RedisClient) -> None:
        assert await redis_client.health_check() is False

        mock_redis = AsyncMock()
        mock_redis.ping.return_value = True
        redis_client._client = mock_redis
        assert await redis_client.health_check() is True

        mock_redis.ping.side_effect = RedisConnectionError("lost")
        assert await redis_client.health_check() is False
