"""Bridges Redis pub/sub to WebSocket clients.

Services publish per-user events on ``ws:user:{id}`` (see
``colink.redis_client.publish_to_user``); the bridge routes each one to that
user's sockets subscribed to the event's channel.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from colink.ws.manager import VALID_CHANNELS, ConnectionManager, manager as default_manager

logger = structlog.get_logger()

USER_PATTERN = "ws:user:*"


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, manager: ConnectionManager = default_manager) -> None:
        self.redis = redis_client
        self.manager = manager
        self._running = False

    async def dispatch(self, redis_channel: str | bytes, data: str | bytes) -> int:
        """Route one pub/sub message. Returns the number of sockets reached."""
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        try:
            user_id = int(redis_channel.rsplit(":", 1)[-1])
        except ValueError:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0

        try:
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0
        if not isinstance(payload, dict):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        ws_channel = payload.get("channel")
        if ws_channel not in VALID_CHANNELS:
            logger.warning("pubsub_unknown_channel", channel=redis_channel, ws_channel=ws_channel)
            return 0

        sent = await self.manager.send_to_user(user_id, ws_channel, {
            "type": payload.get("event", "notification"),
            "payload": payload.get("data", {}),
        })
        if sent > 0:
            logger.debug(
                "user_event_sent",
                user_id=user_id,
                channel=ws_channel,
                event=payload.get("event"),
                recipients=sent,
            )
        return sent

    async def start(self) -> None:
        """Start listening to the per-user pub/sub pattern."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(USER_PATTERN)
        logger.info("pubsub_bridge_started", patterns=[USER_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None or message.get("type") != "pmessage":
                    continue
                await self.dispatch(message.get("channel", ""), message.get("data", b""))

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
