"""
Инфраструктурный слой.
Работа с внешними сервисами: Redis.
"""

from location_hub.infra.redis_client import RedisClient, get_redis, init_redis, close_redis

__all__ = [
    "RedisClient",
    "get_redis",
    "init_redis",
    "close_redis",
]
