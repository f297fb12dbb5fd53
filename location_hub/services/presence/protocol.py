# location_hub/services/presence/protocol.py
"""
Разбор входящих сообщений WebSocket.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from location_hub.common.constants import ErrorCode
from location_hub.shared.models.messages import (
    CLIENT_MESSAGE_ADAPTER,
    CLIENT_MESSAGE_TYPES,
    ClientMessage,
    error_message,
)


class ProtocolError(Exception):
    """Сообщение нельзя обработать; клиенту отправляется error, соединение остаётся открытым."""

    def __init__(self, code: ErrorCode, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_message(self) -> dict[str, Any]:
        return error_message(self.code, self.message, self.details)


def decode_message(raw: str | bytes) -> ClientMessage:
    """
    Разбирает конверт {"type", "data"} и проверяет данные по схеме варианта.

    Raises:
        ProtocolError: INVALID_JSON, INVALID_MESSAGE или UNKNOWN_MESSAGE_TYPE
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(ErrorCode.INVALID_JSON, "Invalid JSON format", str(e)) from None

    if (
        not isinstance(payload, dict)
        or not isinstance(payload.get("type"), str)
        or not payload["type"]
        or not isinstance(payload.get("data"), dict)
    ):
        raise ProtocolError(ErrorCode.INVALID_MESSAGE, "Message must have type and data fields")

    message_type = payload["type"]
    if message_type not in CLIENT_MESSAGE_TYPES:
        raise ProtocolError(ErrorCode.UNKNOWN_MESSAGE_TYPE, f"Unknown message type: {message_type}")

    try:
        return CLIENT_MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ProtocolError(
            ErrorCode.INVALID_MESSAGE,
            f"Invalid {message_type} payload",
            f"{location}: {first['msg']}",
        ) from None
