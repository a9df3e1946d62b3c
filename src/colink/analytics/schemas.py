"""Pydantic response models for analytics endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    total_xp: int
    level: int
    avatar_url: str | None = None
    badge_count: int = 0
    quest_completions: int = 0


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
    total: int


class OverviewResponse(BaseModel):
    total_students: int
    active_students: int
    total_quests: int
    completed_quests: int
    average_xp: float
    completion_rate: float
    engagement_score: float
    top_performers: list[LeaderboardEntry]


class QuestStatsEntry(BaseModel):
    quest_id: int
    title: str
    xp_reward: int
    is_published: bool
    attempts: int
    completions: int
    completion_rate: float
    average_score: float | None = None


class QuestStatsResponse(BaseModel):
    quests: list[QuestStatsEntry]


class StudentStatsResponse(BaseModel):
    user_id: int
    display_name: str
    total_xp: int
    level: int
    badge_count: int
    quests_started: int
    quests_completed: int
    quests_failed: int
    completion_rate: float
    average_score: float | None = None
    share_of_class_xp: float
    last_active: datetime | None = None
