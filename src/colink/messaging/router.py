"""Messaging API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import get_current_session
from colink.auth.session import Session
from colink.db.models import Message
from colink.dependencies import get_db, get_redis_dep
from colink.messaging.schemas import (
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from colink.messaging.service import (
    list_conversation,
    list_inbox,
    mark_all_read,
    mark_read,
    send_message,
    unread_count,
)

router = APIRouter(prefix="/api/v1/messages", tags=["Messages"])


def _message_response(m: Message) -> MessageResponse:
    return MessageResponse(
        id=m.id,
        sender_id=m.sender_id,
        receiver_id=m.receiver_id,
        body=m.body,
        is_read=m.is_read,
        created_at=m.created_at,
        read_at=m.read_at,
    )


def _list_response(messages: list[Message]) -> MessageListResponse:
    return MessageListResponse(
        messages=[_message_response(m) for m in messages],
        total=len(messages),
    )


@router.get("", response_model=MessageListResponse)
async def inbox(
    unread_only: bool = Query(False),
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """Received messages, most recent first."""
    return _list_response(await list_inbox(db, session.user_id, unread_only=unread_only))


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=await unread_count(db, session.user_id))


@router.get("/with/{user_id}", response_model=MessageListResponse)
async def conversation(
    user_id: int,
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """Both sides of the conversation with another user, oldest first."""
    return _list_response(await list_conversation(db, session.user_id, user_id))


@router.post("", response_model=MessageResponse, status_code=201)
async def send(
    body: SendMessageRequest,
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis_dep),
) -> MessageResponse:
    message = await send_message(db, redis, session.user_id, body.receiver_id, body.body)
    await db.commit()
    return _message_response(message)


@router.post("/read-all", status_code=200)
async def read_all(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Mark all received messages as read."""
    count = await mark_all_read(db, session.user_id)
    await db.commit()
    return {"detail": f"Marked {count} messages as read"}


@router.post("/{message_id}/read", response_model=MessageResponse)
async def read(
    message_id: int,
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    message = await mark_read(db, session.user_id, message_id)
    await db.commit()
    return _message_response(message)
