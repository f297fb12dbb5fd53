#!/usr/bin/env python3
"""
Entrypoint для Live Location Hub.

Запуск:
    python entrypoints/entrypoint_location_hub.py

Порт по умолчанию: 8083 (PORT в окружении или config.json)
"""

import sys
from pathlib import Path

# Запуск из исходников без установки пакета
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from location_hub.config import settings


def main() -> None:
    """Запустить Live Location Hub."""
    uvicorn.run(
        "location_hub.services.presence.app:app",
        host=settings.deployment.HOST,
        port=settings.deployment.PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
