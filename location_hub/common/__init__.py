"""
Общие утилиты, константы и логгер.
"""

from location_hub.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from location_hub.common.constants import TypeMsg, MessageType, ErrorCode, SessionState

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "MessageType",
    "ErrorCode",
    "SessionState",
]
