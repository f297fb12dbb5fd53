# location_hub/shared/models/messages.py
"""
Сообщения протокола WebSocket.

Конверт: {"type": str, "data": object}. Входящие сообщения — закрытое
объединение моделей с дискриминатором по type; данные каждого варианта
проверяются своей схемой до вызова обработчика.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from location_hub.common.constants import ErrorCode, MessageType
from location_hub.shared.models.location import to_utc


# === ДАННЫЕ ЗАПРОСОВ ===

class HistoryRequest(BaseModel):
    """Запрос истории координат. Фильтр по времени применяется, только если заданы обе границы."""
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1)
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize(cls, v: datetime | None) -> datetime | None:
        return to_utc(v) if v is not None else None

    @property
    def has_range(self) -> bool:
        return self.start_time is not None and self.end_time is not None


class DisconnectRequest(BaseModel):
    """Запрос на отключение собственной сессии."""
    name: str = Field(..., min_length=1, validation_alias=AliasChoices("name", "username"))


# === ВХОДЯЩИЕ СООБЩЕНИЯ ===

class LocationUpdateMessage(BaseModel):
    """
    Обновление координат.

    Поля data проверяются валидатором координат, чтобы клиент получил
    конкретный код ошибки (INVALID_NAME / INVALID_LOCATION / STALE_LOCATION).
    """
    type: Literal["location_update"]
    data: dict[str, Any]


class GetUsersMessage(BaseModel):
    """Запрос списка пользователей."""
    type: Literal["get_users"]
    data: dict[str, Any] = Field(default_factory=dict)


class GetLocationHistoryMessage(BaseModel):
    """Запрос истории координат пользователя."""
    type: Literal["get_location_history"]
    data: HistoryRequest


class UserDisconnectMessage(BaseModel):
    """Явное отключение."""
    type: Literal["user_disconnect"]
    data: DisconnectRequest


ClientMessage = Annotated[
    Union[
        LocationUpdateMessage,
        GetUsersMessage,
        GetLocationHistoryMessage,
        UserDisconnectMessage,
    ],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)

# Типы, которые клиент имеет право присылать
CLIENT_MESSAGE_TYPES: frozenset[str] = frozenset({
    MessageType.LOCATION_UPDATE.value,
    MessageType.GET_USERS.value,
    MessageType.GET_LOCATION_HISTORY.value,
    MessageType.USER_DISCONNECT.value,
})


# === ИСХОДЯЩИЕ СООБЩЕНИЯ ===

class ErrorPayload(BaseModel):
    """Данные сообщения об ошибке."""
    code: ErrorCode
    message: str
    details: str | None = None


def server_message(message_type: MessageType, data: Any) -> dict[str, Any]:
    """Собирает конверт исходящего сообщения."""
    return {"type": message_type.value, "data": data}


def error_message(code: ErrorCode, message: str, details: str | None = None) -> dict[str, Any]:
    """Собирает сообщение об ошибке; details опускается, если не задан."""
    payload = ErrorPayload(code=code, message=message, details=details)
    return server_message(MessageType.ERROR, payload.model_dump(mode="json", exclude_none=True))
