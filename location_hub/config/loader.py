# location_hub/config/loader.py
"""
Загрузчик конфигурации проекта.
Основной источник — config/config.json, секреты и адреса
переопределяются из переменных окружения (.env подхватывается автоматически).
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """
    Возвращает путь к файлу конфигурации.
    Можно переопределить переменной окружения LOCATION_HUB_CONFIG.
    """
    override = os.getenv("LOCATION_HUB_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """
    Загружает config.json и возвращает словарь.
    Если файла нет — возвращает пустой словарь (используются значения по умолчанию).
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    # Ключи вида _comment_* — комментарии в JSON
    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "location_hub"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Адрес, на котором слушает сервер."""
    HOST: str = "0.0.0.0"
    PORT: int = 8083


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "colored"  # colored | json
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/location_hub.log"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только colored и json."""
        if v not in ("colored", "json"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "location_share"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_RETRY_ATTEMPTS: int = 10
    REDIS_BACKOFF_BASE: float = 0.1
    REDIS_BACKOFF_CAP: float = 3.0

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class PresenceSettings(BaseModel):
    """Ограничения присутствия и частоты обновлений."""
    MAX_USERS: int = 100
    LOCATION_UPDATE_INTERVAL_MS: int = 2000
    USER_TIMEOUT: int = 30  # секунды без обновлений до вытеснения
    MAX_NAME_LENGTH: int = 50
    CLEANUP_INTERVAL: int = 30
    SEND_QUEUE_SIZE: int = 256  # сообщений в очереди отправки одной сессии


class HistorySettings(BaseModel):
    """Хранение истории координат."""
    MAX_LOCATION_ENTRIES: int = 100
    LOCATION_TTL: int = 7 * 24 * 60 * 60
    USER_TTL: int = 30 * 24 * 60 * 60

    @model_validator(mode="after")
    def check_ttl_order(self) -> "HistorySettings":
        """Метаданные пользователя должны жить дольше истории."""
        if self.USER_TTL <= self.LOCATION_TTL:
            raise ValueError("USER_TTL должен быть больше LOCATION_TTL")
        return self


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Хост/порт и секреты переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "location_hub"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                LOG_LEVEL=data.get("LOG_LEVEL", "INFO"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                HOST=os.getenv("HOST", data.get("HOST", "0.0.0.0")),
                PORT=int(os.getenv("PORT", data.get("PORT", 8083))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "INFO")),
                LOG_FORMAT=os.getenv("LOG_FORMAT", data.get("LOG_FORMAT", "colored")),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/location_hub.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", data.get("REDIS_PORT", 6379))),
                REDIS_DB=int(os.getenv("REDIS_DB", data.get("REDIS_DB", 0))),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=data.get("REDIS_NAMESPACE", "location_share"),
                REDIS_MAX_CONNECTIONS=data.get("REDIS_MAX_CONNECTIONS", 50),
                REDIS_RETRY_ATTEMPTS=data.get("REDIS_RETRY_ATTEMPTS", 10),
                REDIS_BACKOFF_BASE=data.get("REDIS_BACKOFF_BASE", 0.1),
                REDIS_BACKOFF_CAP=data.get("REDIS_BACKOFF_CAP", 3.0),
            ),
            presence=PresenceSettings(
                MAX_USERS=data.get("MAX_USERS", 100),
                LOCATION_UPDATE_INTERVAL_MS=data.get("LOCATION_UPDATE_INTERVAL_MS", 2000),
                USER_TIMEOUT=data.get("USER_TIMEOUT", 30),
                MAX_NAME_LENGTH=data.get("MAX_NAME_LENGTH", 50),
                CLEANUP_INTERVAL=data.get("CLEANUP_INTERVAL", 30),
                SEND_QUEUE_SIZE=data.get("SEND_QUEUE_SIZE", 256),
            ),
            history=HistorySettings(
                MAX_LOCATION_ENTRIES=data.get("MAX_LOCATION_ENTRIES", 100),
                LOCATION_TTL=data.get("LOCATION_TTL", 7 * 24 * 60 * 60),
                USER_TTL=data.get("USER_TTL", 30 * 24 * 60 * 60),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфигурации подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
