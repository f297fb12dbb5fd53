# location_hub/services/presence/app.py
"""
FastAPI приложение хаба присутствия.

WebSocket endpoints:
- /   — основной путь клиентов
- /ws — то же самое, для прокси с выделенным путём

REST endpoints:
- GET /health — проверка здоровья (degraded без Redis)
- GET /stats — счётчики сервиса
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from location_hub import __version__
from location_hub.common.constants import TypeMsg
from location_hub.common.logger import log_error, log_info, setup_logging
from location_hub.infra.redis_client import close_redis, get_redis, init_redis
from location_hub.services.presence.hub import LocationHub
from location_hub.shared.models.common import HealthStatus, StatsResponse


# === HUB ===

_hub: LocationHub | None = None


def get_hub() -> LocationHub:
    """Получить хаб."""
    if _hub is None:
        raise RuntimeError("Hub not initialized")
    return _hub


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    global _hub

    from location_hub.config import settings

    setup_logging()

    # Startup: без Redis сервис работает только с памятью
    await init_redis()
    _hub = LocationHub(settings, get_redis())
    await _hub.start()

    yield

    # Shutdown
    await _hub.shutdown()
    await close_redis()
    _hub = None
    await log_info("Сервис остановлен", type_msg=TypeMsg.INFO)


# === APP ===

app = FastAPI(
    title="Live Location Hub",
    description="WebSocket сервис обмена координатами в реальном времени.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, response_model_by_alias=True, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    return await get_hub().health()


# === STATS ===

@app.get("/stats", response_model=StatsResponse, tags=["Stats"])
async def get_stats() -> StatsResponse:
    """Счётчики с момента запуска."""
    return get_hub().stats()


# === WEBSOCKET ENDPOINTS ===

@app.websocket("/")
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    WebSocket клиента.

    Входящие сообщения:
    - {"type": "location_update", "data": {"name", "latitude", "longitude", "lastUpdate"?}}
    - {"type": "get_users", "data": {}}
    - {"type": "get_location_history", "data": {"username", "startTime"?, "endTime"?}}
    - {"type": "user_disconnect", "data": {"name"}}
    """
    hub = get_hub()
    await websocket.accept()
    session = await hub.on_open(websocket)

    try:
        while not session.is_closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            # Бинарные кадры разбираются так же, как текстовые
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await hub.on_message(session, raw)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        if not session.is_closed:
            await log_error(f"Ошибка WebSocket соединения: {e}", extra={"session": session.session_id})
    finally:
        await hub.on_close(session)
