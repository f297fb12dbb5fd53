# location_hub/shared/models/location.py
"""
Модели координат пользователя.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def to_utc(value: datetime) -> datetime:
    """Наивное время считаем UTC, остальное приводим к UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 с миллисекундами и суффиксом Z (как Date.toISOString у клиентов)."""
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LocationRecord(BaseModel):
    """
    Запись о местоположении пользователя.

    Сохраняется в истории неизменной; на проводе поля называются
    name / latitude / longitude / lastUpdate.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    last_update: datetime = Field(..., alias="lastUpdate")

    @field_validator("last_update")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    @field_serializer("last_update")
    def serialize_timestamp(self, v: datetime) -> str:
        return format_timestamp(v)

    @property
    def timestamp_ms(self) -> int:
        """Время записи в миллисекундах Unix (score в sorted set)."""
        return int(self.last_update.timestamp() * 1000)

    def to_wire(self) -> dict[str, Any]:
        """Словарь для отправки клиенту."""
        return self.model_dump(by_alias=True)


class UserPresence(LocationRecord):
    """Запись пользователя с флагом подключения (ответ users_list)."""
    connected: bool = True
