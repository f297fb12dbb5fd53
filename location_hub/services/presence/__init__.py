# location_hub/services/presence/__init__.py
"""
Хаб присутствия — обмен координатами в реальном времени.

Обеспечивает:
- WebSocket соединения для клиентов
- Реестр подключённых пользователей и их последних координат
- Рассылку обновлений остальным участникам
- Историю координат в Redis (с работой без Redis)
"""
