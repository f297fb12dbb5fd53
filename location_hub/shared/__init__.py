"""
Общие модели протокола и ответов HTTP.
"""

__all__: list[str] = []
