"""
WebSocket Event Handlers
Routes client messages to live projection subscriptions and pushes
navigation/error events from the command surface
"""
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from typing import Dict, Any, Optional
import asyncio
import logging

from ..errors import AppConfigError
from ..services.live_query import LiveQuery
from ..services.store import AppConfigStore
from .manager import manager, utc_timestamp

logger = logging.getLogger(__name__)


def resolve_topic(store: AppConfigStore, data: Dict[str, Any]) -> Optional[LiveQuery]:
    """Map a subscribe message onto the store projection it names"""
    topic = data.get("topic")
    if topic == "config_entries":
        return store.fetch_config_entries()
    if topic == "config":
        return store.fetch_config_by_id(int(data["config_id"]))
    if topic == "key_values":
        return store.key_value_entries_by_config_id(int(data["config_id"]))
    if topic == "key_value":
        return store.key_value_entry_by_key_value_id(int(data["key_value_id"]))
    if topic == "execution_results":
        return store.fetch_execution_result_entries_by_config_id(int(data["config_id"]))
    return None


def subscription_key(data: Dict[str, Any]) -> str:
    ids = [str(data[name]) for name in ("config_id", "key_value_id") if name in data]
    return ":".join([str(data.get("topic"))] + ids)


class WebSocketHandler:
    """Handles WebSocket events and messages"""

    @staticmethod
    async def handle_message(websocket: WebSocket, data: Dict[str, Any]):
        """Route incoming WebSocket messages to appropriate handlers"""
        message_type = data.get("type")

        if message_type == "pong":
            manager.update_last_ping(websocket)
        elif message_type == "subscribe":
            await WebSocketHandler.handle_subscribe(websocket, data)
        elif message_type == "unsubscribe":
            await WebSocketHandler.handle_unsubscribe(websocket, data)
        else:
            logger.warning(f"Unknown message type: {message_type}")

    @staticmethod
    async def handle_subscribe(websocket: WebSocket, data: Dict[str, Any]):
        """Subscribe the connection to a live projection"""
        store: AppConfigStore = websocket.app.state.store
        try:
            query = resolve_topic(store, data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed subscribe message {data}: {e}")
            query = None

        if query is None:
            await manager.send_personal_message({
                "type": "error",
                "message": f"Unknown or incomplete topic: {data.get('topic')}",
                "timestamp": utc_timestamp(),
            }, websocket)
            return

        key = subscription_key(data)
        await manager.send_personal_message({
            "type": "subscribed",
            "key": key,
            "timestamp": utc_timestamp(),
        }, websocket)

        loop = asyncio.get_running_loop()
        topic = data.get("topic")

        def deliver(value):
            manager.send_threadsafe({
                "type": "data",
                "topic": topic,
                "key": key,
                "data": jsonable_encoder(value),
            }, websocket, loop)

        manager.add_subscription(websocket, key, query.observe(deliver))

    @staticmethod
    async def handle_unsubscribe(websocket: WebSocket, data: Dict[str, Any]):
        """Stop a live projection subscription"""
        key = subscription_key(data)
        removed = manager.remove_subscription(websocket, key)
        await manager.send_personal_message({
            "type": "unsubscribed",
            "key": key,
            "removed": removed,
            "timestamp": utc_timestamp(),
        }, websocket)


class WebSocketPresenter:
    """Presenter that turns navigation and error signals into broadcast events"""

    def _emit(self, message: dict):
        message["timestamp"] = utc_timestamp()
        manager.track(asyncio.get_running_loop().create_task(manager.broadcast_to_all(message)))

    def show_details(self, config_id: int) -> None:
        self._emit({"type": "navigate", "view": "config_details", "config_id": config_id})

    def show_key_value_details(self, config_id: int, key_value_id: Optional[int]) -> None:
        self._emit({
            "type": "navigate",
            "view": "key_value_details",
            "config_id": config_id,
            "key_value_id": key_value_id,
        })

    def notify_error(self, error: AppConfigError) -> None:
        self._emit({"type": "error", "message": str(error)})
