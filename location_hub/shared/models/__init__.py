"""
Pydantic-модели: записи координат, сообщения протокола, статус сервиса.
"""

from location_hub.shared.models.common import HealthStatus, StatsResponse
from location_hub.shared.models.location import LocationRecord, UserPresence
from location_hub.shared.models.messages import (
    CLIENT_MESSAGE_ADAPTER,
    ClientMessage,
    DisconnectRequest,
    ErrorPayload,
    GetLocationHistoryMessage,
    GetUsersMessage,
    HistoryRequest,
    LocationUpdateMessage,
    UserDisconnectMessage,
    error_message,
    server_message,
)

__all__ = [
    "HealthStatus",
    "StatsResponse",
    "LocationRecord",
    "UserPresence",
    "CLIENT_MESSAGE_ADAPTER",
    "ClientMessage",
    "DisconnectRequest",
    "ErrorPayload",
    "GetLocationHistoryMessage",
    "GetUsersMessage",
    "HistoryRequest",
    "LocationUpdateMessage",
    "UserDisconnectMessage",
    "error_message",
    "server_message",
]
