"""WebSocket endpoint with JWT authentication and channel multiplexing."""

import json
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
import jwt
import structlog

from colink.auth.jwt import verify_token
from colink.auth.service import get_user_by_id
from colink.database import get_session
from colink.ws.manager import VALID_CHANNELS, manager

logger = structlog.get_logger()

router = APIRouter()


async def _token_is_current(user_id: int, version: object) -> bool:
    """False for tokens revoked by sign-out or belonging to a deleted user."""
    current = False
    async for db in get_session():
        user = await get_user_by_id(db, user_id)
        current = user is not None and user.token_version == version
    return current


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Single WebSocket endpoint with JWT authentication and channel multiplexing.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "channel": "messages"}
            {"action": "unsubscribe", "channel": "messages"}
            {"action": "ping"}

        Server -> Client:
            {"channel": "messages", "data": {"type": "message", "payload": {...}}}
            {"type": "pong"}
            {"type": "error", "message": "..."}
            {"type": "subscribed", "channel": "messages"}
            {"type": "unsubscribed", "channel": "messages"}
    """
    try:
        payload = verify_token(token, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    if not await _token_is_current(user_id, payload.get("ver")):
        await websocket.close(code=4001, reason="Session has been signed out")
        return

    conn_id = str(uuid.uuid4())
    if not await manager.connect(websocket, conn_id, user_id):
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            action = msg.get("action")

            if action == "subscribe":
                channel = msg.get("channel", "")
                ok = await manager.subscribe(conn_id, channel)
                if ok:
                    await websocket.send_json({"type": "subscribed", "channel": channel})
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Invalid channel: {channel}. Valid: {sorted(VALID_CHANNELS)}",
                    })

            elif action == "unsubscribe":
                channel = msg.get("channel", "")
                await manager.unsubscribe(conn_id, channel)
                await websocket.send_json({"type": "unsubscribed", "channel": channel})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
