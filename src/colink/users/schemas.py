"""Request/response schemas for user endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from colink.auth.schemas import UserResponse
from colink.auth.session import Role


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=64)
    avatar_url: str | None = Field(None, max_length=512)


class DirectoryEntry(BaseModel):
    id: int
    display_name: str
    role: Role
    level: int
    avatar_url: str | None = None


class DirectoryResponse(BaseModel):
    users: list[DirectoryEntry]
    total: int


__all__ = [
    "DirectoryEntry",
    "DirectoryResponse",
    "ProfileUpdateRequest",
    "UserResponse",
]
