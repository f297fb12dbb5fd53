# location_hub/services/presence/validator.py
"""
Проверка входящего обновления координат.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from location_hub.common.constants import ErrorCode
from location_hub.shared.models.location import LocationRecord, to_utc


_TIMESTAMP = TypeAdapter(datetime)


@dataclass(frozen=True)
class LocationRejection:
    """Причина отклонения обновления."""
    code: ErrorCode
    message: str
    details: str | None = None


def _is_number(value: Any) -> bool:
    # bool — подкласс int, но координатой не является
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-строка или число (мс/с Unix) → datetime в UTC; None если не разобрать."""
    try:
        return to_utc(_TIMESTAMP.validate_python(value))
    except ValidationError:
        return None


def validate_location_update(
    data: dict[str, Any],
    now: datetime,
    *,
    max_name_length: int = 50,
    stale_threshold: float = 30.0,
) -> LocationRejection | None:
    """
    Проверяет обновление координат.

    Правила проверяются по порядку, возвращается первая ошибка:
    1. name — непустая строка не длиннее max_name_length
    2. latitude — число в [-90, 90]
    3. longitude — число в [-180, 180]
    4. lastUpdate (если задан) не старше stale_threshold секунд

    Returns:
        None если обновление корректно, иначе причина отклонения
    """
    name = data.get("name", data.get("username"))
    if not isinstance(name, str) or not name:
        return LocationRejection(ErrorCode.INVALID_NAME, "Name is required and must be a string")

    if len(name) > max_name_length:
        return LocationRejection(
            ErrorCode.INVALID_NAME,
            f"Name must be between 1 and {max_name_length} characters",
            f"Name length: {len(name)}, max: {max_name_length}",
        )

    latitude = data.get("latitude")
    if not _is_number(latitude) or not -90 <= latitude <= 90:
        return LocationRejection(
            ErrorCode.INVALID_LOCATION,
            "Invalid latitude value",
            "Latitude must be between -90 and 90",
        )

    longitude = data.get("longitude")
    if not _is_number(longitude) or not -180 <= longitude <= 180:
        return LocationRejection(
            ErrorCode.INVALID_LOCATION,
            "Invalid longitude value",
            "Longitude must be between -180 and 180",
        )

    raw_timestamp = data.get("lastUpdate")
    if raw_timestamp:
        timestamp = parse_timestamp(raw_timestamp)
        if timestamp is None:
            return LocationRejection(
                ErrorCode.STALE_LOCATION,
                "Location update has an invalid timestamp",
                f"lastUpdate: {raw_timestamp!r}",
            )
        age = (to_utc(now) - timestamp).total_seconds()
        if age > stale_threshold:
            return LocationRejection(
                ErrorCode.STALE_LOCATION,
                "Location update is too old",
                f"Update is {int(age)} seconds old",
            )

    return None


def build_location_record(data: dict[str, Any], now: datetime) -> LocationRecord:
    """
    Собирает запись из уже проверенных данных.
    Без lastUpdate временем записи считается now.
    """
    timestamp = parse_timestamp(data["lastUpdate"]) if data.get("lastUpdate") else None
    return LocationRecord(
        name=data.get("name", data.get("username")),
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        last_update=timestamp or to_utc(now),
    )
