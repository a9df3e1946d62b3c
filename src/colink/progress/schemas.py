"""Pydantic request/response models for quest progress endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ScoreRequest(BaseModel):
    score: int | None = Field(None, ge=0, le=100)


class ProgressResponse(BaseModel):
    id: int
    quest_id: int
    student_id: int
    status: str
    score: int | None = None
    attempts: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None


class ProgressListResponse(BaseModel):
    progress: list[ProgressResponse]
    total: int


class CompletionResponse(BaseModel):
    outcome: str
    progress: ProgressResponse
    xp_awarded: int
    total_xp: int
    level: int
    leveled_up: bool = False
    badges_awarded: list[str] = []


class AttemptResponse(BaseModel):
    id: int
    quest_id: int
    student_id: int
    status: str
    score: int | None = None
    xp_awarded: int
    attempted_at: datetime | None = None


class AttemptListResponse(BaseModel):
    attempts: list[AttemptResponse]
    total: int
