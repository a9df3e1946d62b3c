"""Pydantic request/response models for quest endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from colink.quests.service import Difficulty


class QuestCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    xp_reward: int = Field(..., gt=0)
    difficulty: Difficulty = Difficulty.MEDIUM
    category: str | None = Field(None, max_length=64)
    is_published: bool = False
    deadline: datetime | None = None


class QuestUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    xp_reward: int | None = Field(None, gt=0)
    difficulty: Difficulty | None = None
    category: str | None = Field(None, max_length=64)
    is_published: bool | None = None
    deadline: datetime | None = None


class QuestResponse(BaseModel):
    id: int
    title: str
    description: str
    xp_reward: int
    difficulty: str
    category: str | None = None
    is_published: bool
    deadline: datetime | None = None
    created_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class QuestListResponse(BaseModel):
    quests: list[QuestResponse]
    total: int
