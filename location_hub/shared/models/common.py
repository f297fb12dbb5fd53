# location_hub/shared/models/common.py
"""
Модели HTTP-ответов сервиса.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    model_config = ConfigDict(populate_by_name=True)

    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    server_id: str = Field(..., alias="serverId")
    connected_users: int = Field(..., alias="connectedUsers")
    persistence_connected: bool = Field(..., alias="persistenceConnected")
    timestamp: str


class StatsResponse(BaseModel):
    """Счётчики сервиса с момента запуска."""
    accepted_updates: int
    rejected_updates: int
    broadcasts_sent: int
    connections_opened: int
    active_sessions: int
    connected_users: int
