"""WebSocket package"""
from .manager import manager, ConnectionManager
from .handlers import WebSocketHandler, WebSocketPresenter

__all__ = ["manager", "ConnectionManager", "WebSocketHandler", "WebSocketPresenter"]
