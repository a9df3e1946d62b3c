"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


# --- Badge ---


class BadgeDefinitionResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str | None = None
    tier: str
    xp_threshold: int


class BadgeCreateRequest(BaseModel):
    slug: str = Field(..., min_length=2, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    icon: str = Field("", max_length=32)
    tier: str = "bronze"
    xp_threshold: int = Field(0, ge=0)
    sort_order: int | None = None


class AllBadgesResponse(BaseModel):
    badges: list[BadgeDefinitionResponse]


class EarnedBadgeResponse(BaseModel):
    slug: str
    name: str
    tier: str
    icon: str | None = None
    earned_at: datetime


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    total_available: int
    total_earned: int


class BadgeGrantResponse(BaseModel):
    slug: str
    granted: bool


# --- XP ---


class XPResponse(BaseModel):
    total_xp: int
    level: int
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_level_xp: int


class BonusXPRequest(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field("", max_length=200)


class GrantResponse(BaseModel):
    user_id: int
    amount: int
    total_xp: int
    level: int
    leveled_up: bool
    badges_awarded: list[str] = []


# --- Daily reward ---


class DailyRewardClaimResponse(BaseModel):
    claim_date: date
    streak: int
    xp_awarded: int
    total_xp: int
    level: int
    leveled_up: bool
    badges_awarded: list[str] = []


class DailyRewardStatusResponse(BaseModel):
    current_streak: int
    can_claim: bool
    next_reward: int
    last_claim_date: date | None = None
