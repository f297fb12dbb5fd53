"""
Модуль конфигурации.
Экспортирует настройки приложения.
"""

from location_hub.config.loader import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
