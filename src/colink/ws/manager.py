"""WebSocket connection manager.

Tracks all active WebSocket connections and their channel subscriptions.
Delivers per-user events and closes a user's sockets when they sign out.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field

from fastapi import WebSocket
import structlog

from colink.auth.session import SessionEvent, SessionEventType

logger = structlog.get_logger()

VALID_CHANNELS = {"messages", "gamification"}

# Close code sent to sockets of a user who signed out.
SIGNED_OUT_CLOSE_CODE = 4001


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: int
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via single-threaded event loop.
    """

    def __init__(self, max_connections_per_user: int = 5) -> None:
        self.max_connections_per_user = max_connections_per_user
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._channels: dict[str, set[str]] = defaultdict(set)  # channel -> {conn_ids}
        self._user_connections: dict[int, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def user_connection_count(self, user_id: int) -> int:
        return len(self._user_connections.get(user_id, ()))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int) -> bool:
        """Accept a new WebSocket connection. False if the user is at the connection limit."""
        if self.user_connection_count(user_id) >= self.max_connections_per_user:
            await websocket.close(code=4008, reason="Too many connections")
            logger.warning("ws_connection_limit", user_id=user_id)
            return False

        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)
        return True

    async def disconnect(self, conn_id: str) -> None:
        """Remove a WebSocket connection and its subscriptions."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for channel in client.subscriptions:
            self._channels[channel].discard(conn_id)

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    async def disconnect_user(self, user_id: int, code: int = SIGNED_OUT_CLOSE_CODE) -> int:
        """Close and forget every connection of a user. Returns how many were closed."""
        conn_ids = list(self._user_connections.get(user_id, set()))
        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is not None:
                try:
                    await client.websocket.close(code=code)
                except Exception:
                    logger.debug("ws_close_failed", conn_id=conn_id, exc_info=True)
            await self.disconnect(conn_id)
        return len(conn_ids)

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Subscribe a connection to a channel. Returns False if invalid."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        if channel not in VALID_CHANNELS:
            return False

        client.subscriptions.add(channel)
        self._channels[channel].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, channel=channel)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        """Unsubscribe a connection from a channel."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        client.subscriptions.discard(channel)
        self._channels[channel].discard(conn_id)
        return True

    async def send_to_user(self, user_id: int, channel: str, message: dict) -> int:
        """Send a message to all connections of a specific user subscribed to a channel."""
        conn_ids = list(self._user_connections.get(user_id, set()))
        sent = 0
        payload = json.dumps({"channel": channel, "data": message}, default=str)

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client and channel in client.subscriptions:
                try:
                    await client.websocket.send_text(payload)
                    client.messages_sent += 1
                    sent += 1
                except Exception:
                    await self.disconnect(conn_id)

        return sent

    async def on_session_event(self, event: SessionEvent) -> None:
        """SessionEvents listener: sign-out closes the user's sockets."""
        if event.type is SessionEventType.SIGNED_OUT:
            closed = await self.disconnect_user(event.user_id)
            if closed:
                logger.info("ws_closed_on_sign_out", user_id=event.user_id, connections=closed)

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "channels": {
                ch: len(conns) for ch, conns in self._channels.items() if conns
            },
        }


# Global singleton
manager = ConnectionManager()
