# location_hub/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class MessageType(str, Enum):
    """Типы сообщений протокола WebSocket."""
    # Входящие
    LOCATION_UPDATE = "location_update"
    GET_USERS = "get_users"
    GET_LOCATION_HISTORY = "get_location_history"
    USER_DISCONNECT = "user_disconnect"
    # Исходящие
    CONNECTED = "connected"
    USERS_LIST = "users_list"
    USER_LOCATION = "user_location"
    LOCATION_HISTORY = "location_history"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Коды ошибок, отправляемых клиенту."""
    INVALID_JSON = "INVALID_JSON"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    INVALID_NAME = "INVALID_NAME"
    INVALID_LOCATION = "INVALID_LOCATION"
    STALE_LOCATION = "STALE_LOCATION"
    RATE_LIMITED = "RATE_LIMITED"
    USER_LIMIT_EXCEEDED = "USER_LIMIT_EXCEEDED"
    UNAUTHORIZED_DISCONNECT = "UNAUTHORIZED_DISCONNECT"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    HISTORY_ERROR = "HISTORY_ERROR"
    SERVER_SHUTDOWN = "SERVER_SHUTDOWN"


class SessionState(str, Enum):
    """Состояния WebSocket-сессии."""
    UNASSOCIATED = "unassociated"  # имя ещё не привязано
    ASSOCIATED = "associated"
    CLOSED = "closed"
