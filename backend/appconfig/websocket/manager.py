"""
WebSocket Connection Manager
Handles WebSocket connections, live projection subscriptions and broadcasting
"""
from typing import Dict, Optional, Set
from fastapi import WebSocket
import asyncio
import logging
from datetime import datetime, timezone

from ..services.live_query import Subscription

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self):
        # Live projection subscriptions per connection, keyed by subscription key
        self.subscriptions: Dict[WebSocket, Dict[str, Subscription]] = {}
        # Connection metadata
        self.connection_metadata: Dict[WebSocket, dict] = {}
        # Pending sends scheduled off the request path
        self.pending: Set[asyncio.Future] = set()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection"""
        await websocket.accept()

        self.subscriptions[websocket] = {}
        self.connection_metadata[websocket] = {
            "connected_at": utc_timestamp(),
            "last_ping": utc_timestamp(),
        }

        logger.info(f"WebSocket connected ({self.get_active_connections()} active)")

        await self.send_personal_message({
            "type": "connection",
            "status": "connected",
            "timestamp": utc_timestamp(),
        }, websocket)

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection and cancel its subscriptions"""
        if websocket not in self.connection_metadata:
            return

        for subscription in self.subscriptions.pop(websocket, {}).values():
            subscription.cancel()
        del self.connection_metadata[websocket]

        logger.info(f"WebSocket disconnected ({self.get_active_connections()} active)")

    def add_subscription(self, websocket: WebSocket, key: str, subscription: Subscription):
        """Attach a live subscription to a connection, replacing one with the same key"""
        current = self.subscriptions.setdefault(websocket, {})
        previous = current.pop(key, None)
        if previous is not None:
            previous.cancel()
        current[key] = subscription

    def remove_subscription(self, websocket: WebSocket, key: str) -> bool:
        subscription = self.subscriptions.get(websocket, {}).pop(key, None)
        if subscription is None:
            return False
        subscription.cancel()
        return True

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send a message to a specific WebSocket connection"""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")
            self.disconnect(websocket)

    def send_threadsafe(self, message: dict, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        """Schedule a send from a non-loop thread (live query delivery)"""
        loop.call_soon_threadsafe(
            lambda: self.track(asyncio.ensure_future(self.send_personal_message(message, websocket)))
        )

    def track(self, task: asyncio.Future) -> asyncio.Future:
        """Hold a reference to a scheduled send until it finishes"""
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        return task

    async def broadcast_to_all(self, message: dict):
        """Broadcast a message to all connected clients"""
        disconnected = set()
        for websocket in list(self.connection_metadata.keys()):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error broadcasting to all: {e}")
                disconnected.add(websocket)

        # Clean up disconnected websockets
        for websocket in disconnected:
            self.disconnect(websocket)

    def get_active_connections(self) -> int:
        """Get total count of active WebSocket connections"""
        return len(self.connection_metadata)

    def get_subscription_count(self, websocket: Optional[WebSocket] = None) -> int:
        if websocket is not None:
            return len(self.subscriptions.get(websocket, {}))
        return sum(len(subs) for subs in self.subscriptions.values())

    async def ping_all(self):
        """Send ping to all connections to keep them alive"""
        await self.broadcast_to_all({"type": "ping", "timestamp": utc_timestamp()})

    def update_last_ping(self, websocket: WebSocket):
        """Update last ping time for a connection"""
        if websocket in self.connection_metadata:
            self.connection_metadata[websocket]["last_ping"] = utc_timestamp()


# Global connection manager instance
manager = ConnectionManager()


async def start_heartbeat(interval: int = 30):
    """Background task to send periodic pings"""
    while True:
        await asyncio.sleep(interval)
        await manager.ping_all()
