"""Direct messages between users.

Messages are:
1. Persisted in the database
2. Pushed to the receiver via WebSocket (Redis pub/sub → WS bridge)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import Message, User
from colink.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from colink.redis_client import publish_to_user

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 2000


def message_payload(message: Message) -> dict:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "body": message.body,
        "is_read": message.is_read,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


async def send_message(
    db: AsyncSession,
    redis: object | None,
    sender_id: int,
    receiver_id: int,
    body: str,
) -> Message:
    """Store a message and push it to the receiver."""
    body = (body or "").strip()
    if not body:
        msg = "Message body cannot be empty"
        raise InvalidArgumentError(msg)
    if len(body) > MAX_BODY_LENGTH:
        msg = f"Message body cannot exceed {MAX_BODY_LENGTH} characters"
        raise InvalidArgumentError(msg)
    if sender_id == receiver_id:
        msg = "Cannot send a message to yourself"
        raise InvalidArgumentError(msg)

    result = await db.execute(select(User.id).where(User.id == receiver_id))
    if result.scalar_one_or_none() is None:
        msg = f"User {receiver_id} not found"
        raise NotFoundError(msg)

    message = Message(
        sender_id=sender_id,
        receiver_id=receiver_id,
        body=body,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    await db.flush()

    logger.info("Message %s sent from %s to %s", message.id, sender_id, receiver_id)
    await publish_to_user(redis, receiver_id, "messages", "message", message_payload(message))
    return message


async def list_inbox(db: AsyncSession, user_id: int, *, unread_only: bool = False) -> list[Message]:
    """Messages received by ``user_id``, most recent first."""
    stmt = select(Message).where(Message.receiver_id == user_id)
    if unread_only:
        stmt = stmt.where(Message.is_read.is_(False))
    result = await db.execute(stmt.order_by(Message.created_at.desc(), Message.id.desc()))
    return list(result.scalars())


async def list_conversation(db: AsyncSession, user_id: int, other_id: int) -> list[Message]:
    """Both directions of a conversation, oldest first."""
    result = await db.execute(
        select(Message)
        .where(
            or_(
                and_(Message.sender_id == user_id, Message.receiver_id == other_id),
                and_(Message.sender_id == other_id, Message.receiver_id == user_id),
            )
        )
        .order_by(Message.created_at, Message.id)
    )
    return list(result.scalars())


async def mark_read(db: AsyncSession, user_id: int, message_id: int) -> Message:
    """Mark a received message as read. Only the receiver may do this.

    Read state never goes back to unread; marking twice keeps the first ``read_at``.
    """
    result = await db.execute(select(Message).where(Message.id == message_id))
    message = result.scalar_one_or_none()
    if message is None:
        msg = f"Message {message_id} not found"
        raise NotFoundError(msg)
    if message.receiver_id != user_id:
        msg = "Only the receiver can mark a message as read"
        raise PermissionDeniedError(msg)

    if not message.is_read:
        message.is_read = True
        message.read_at = datetime.now(timezone.utc)
        await db.flush()
    return message


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread message for the user as read. Returns count updated."""
    result = await db.execute(
        update(Message)
        .where(Message.receiver_id == user_id, Message.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount


async def unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Message)
        .where(Message.receiver_id == user_id, Message.is_read.is_(False))
    )
    return result.scalar_one()
