# location_hub/services/presence/store.py
"""
История координат пользователей в Redis.

Ключи (внутри namespace клиента):
- locations:{username} — sorted set, member = JSON записи, score = время приёма в мс
- user:{username}      — hash с метаданными (name, lastUpdate)

История ограничена MAX_LOCATION_ENTRIES последними записями и живёт
LOCATION_TTL секунд с последней записи; метаданные живут дольше (USER_TTL).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import ValidationError
from redis.exceptions import RedisError

from location_hub.common.logger import get_logger, log_error
from location_hub.services.presence.validator import parse_timestamp
from location_hub.shared.models.location import LocationRecord, format_timestamp, to_utc

if TYPE_CHECKING:
    from location_hub.infra.redis_client import RedisClient

logger = get_logger("location_hub.store")


class LocationHistoryStore:
    """
    Хранилище истории координат.

    Redis может быть недоступен: тогда запись молча пропускается
    (возвращается False), а чтение возвращает пустой результат.
    Ошибки наружу не пробрасываются.
    """

    LOCATIONS_PREFIX = "locations:"
    USER_PREFIX = "user:"

    def __init__(
        self,
        redis: "RedisClient",
        *,
        max_entries: int = 100,
        location_ttl: int = 7 * 24 * 60 * 60,
        user_ttl: int = 30 * 24 * 60 * 60,
    ) -> None:
        self._redis = redis
        self._max_entries = max_entries
        self._location_ttl = location_ttl
        self._user_ttl = user_ttl

    @property
    def is_connected(self) -> bool:
        return self._redis.is_connected

    def _locations_key(self, username: str) -> str:
        return f"{self.LOCATIONS_PREFIX}{username}"

    def _user_key(self, username: str) -> str:
        return f"{self.USER_PREFIX}{username}"

    async def append(
        self,
        username: str,
        record: LocationRecord,
        received_at: datetime | None = None,
    ) -> bool:
        """
        Добавляет запись в историю.

        Score — время приёма на сервере (received_at); без него берётся
        lastUpdate записи. Время клиента на порядок истории не влияет.

        Шаги выполняются последовательно: ZADD → обрезка до max_entries →
        TTL истории → метаданные пользователя → TTL метаданных.

        Returns:
            True если запись сохранена
        """
        if not self._redis.is_available:
            logger.debug(f"Redis недоступен, история {username} не сохранена")
            return False

        locations_key = self._locations_key(username)
        user_key = self._user_key(username)
        score = (
            int(to_utc(received_at).timestamp() * 1000) if received_at is not None else record.timestamp_ms
        )
        try:
            await self._redis.zadd(
                locations_key,
                record.model_dump_json(by_alias=True),
                score,
            )
            await self._redis.zremrangebyrank(locations_key, 0, -self._max_entries - 1)
            await self._redis.expire(locations_key, self._location_ttl)

            await self._redis.hset(user_key, {
                "name": record.name,
                "lastUpdate": format_timestamp(record.last_update),
            })
            await self._redis.expire(user_key, self._user_ttl)
        except RedisError as e:
            await log_error(
                f"Ошибка сохранения координат: {e}",
                extra={"username": username},
            )
            return False

        return True

    async def latest(self, username: str) -> LocationRecord | None:
        """
        Последняя запись пользователя (максимальный score) с учётом метаданных.

        Если записей истории не осталось, а метаданные ещё живы — None.
        """
        if not self._redis.is_available:
            return None

        try:
            members = await self._redis.zrange(self._locations_key(username), -1, -1)
            if not members:
                return None
            record = LocationRecord.model_validate_json(members[0])
            metadata = await self._redis.hgetall(self._user_key(username))
        except RedisError as e:
            await log_error(f"Ошибка чтения координат: {e}", extra={"username": username})
            return None
        except ValidationError as e:
            await log_error(f"Повреждённая запись истории: {e}", extra={"username": username})
            return None

        return self._merge_metadata(record, metadata)

    @staticmethod
    def _merge_metadata(record: LocationRecord, metadata: dict[str, str]) -> LocationRecord:
        update: dict[str, object] = {}
        if metadata.get("name"):
            update["name"] = metadata["name"]
        meta_timestamp = parse_timestamp(metadata.get("lastUpdate")) if metadata.get("lastUpdate") else None
        if meta_timestamp is not None:
            update["last_update"] = meta_timestamp
        return record.model_copy(update=update) if update else record

    async def history(
        self,
        username: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[LocationRecord]:
        """
        История пользователя, от новых к старым.

        Фильтр [start_time, end_time] (включительно) применяется,
        только если заданы обе границы.
        """
        if not self._redis.is_available:
            return []

        key = self._locations_key(username)
        try:
            if start_time is not None and end_time is not None:
                members = await self._redis.zrevrangebyscore(
                    key,
                    int(to_utc(end_time).timestamp() * 1000),
                    int(to_utc(start_time).timestamp() * 1000),
                )
            else:
                members = await self._redis.zrange(key, 0, -1, desc=True)
        except RedisError as e:
            await log_error(f"Ошибка чтения истории: {e}", extra={"username": username})
            return []

        records: list[LocationRecord] = []
        for member in members:
            try:
                records.append(LocationRecord.model_validate_json(member))
            except ValidationError:
                logger.warning(f"Пропущена повреждённая запись истории {username}")
        return records

    async def all_users_latest(self) -> list[LocationRecord]:
        """Последние записи всех пользователей, у которых осталась история."""
        if not self._redis.is_available:
            return []

        try:
            keys = await self._redis.scan_keys(self.LOCATIONS_PREFIX)
        except RedisError as e:
            await log_error(f"Ошибка получения списка пользователей: {e}")
            return []

        users: list[LocationRecord] = []
        for key in keys:
            record = await self.latest(key[len(self.LOCATIONS_PREFIX):])
            if record is not None:
                users.append(record)
        return users

    async def purge_expired(self, now: datetime | None = None) -> int:
        """
        Удаляет записи старше LOCATION_TTL из всех историй.

        TTL ключа удаляет историю целиком, только если в неё давно не писали;
        здесь обрезается старый хвост у активно пополняемых историй.

        Returns:
            Количество удалённых записей
        """
        if not self._redis.is_available:
            return 0

        now = to_utc(now or datetime.now(timezone.utc))
        cutoff_ms = int(now.timestamp() * 1000) - self._location_ttl * 1000

        removed = 0
        try:
            for key in await self._redis.scan_keys(self.LOCATIONS_PREFIX):
                removed += await self._redis.zremrangebyscore(key, "-inf", cutoff_ms)
        except RedisError as e:
            await log_error(f"Ошибка очистки истории: {e}")

        if removed:
            logger.info(f"Удалено устаревших записей истории: {removed}")
        return removed
