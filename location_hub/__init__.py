"""
Live Location Hub — сервис обмена геолокацией в реальном времени.

Клиенты присылают координаты по WebSocket, сервер проверяет их,
ограничивает частоту, рассылает остальным участникам и хранит
ограниченную историю в Redis.
"""

__version__ = "1.0.0"
