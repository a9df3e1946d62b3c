"""Pydantic request/response models for messaging endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    receiver_id: int
    body: str = Field(..., min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    body: str
    is_read: bool
    created_at: datetime | None = None
    read_at: datetime | None = None


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    total: int


class UnreadCountResponse(BaseModel):
    unread_count: int
