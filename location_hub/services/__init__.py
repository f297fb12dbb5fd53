# location_hub/services/__init__.py
"""Сервисы Live Location Hub."""
