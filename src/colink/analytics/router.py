"""Analytics and leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from colink.analytics.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    OverviewResponse,
    QuestStatsEntry,
    QuestStatsResponse,
    StudentStatsResponse,
)
from colink.analytics.service import get_leaderboard, get_overview, get_quest_stats, get_student_stats
from colink.auth.dependencies import get_current_session, require_professor
from colink.auth.session import Session
from colink.dependencies import get_db

router = APIRouter(prefix="/api/v1", tags=["Analytics"])


@router.get("/analytics/overview", response_model=OverviewResponse)
async def overview(
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> OverviewResponse:
    """Class-wide totals, engagement and top performers."""
    return OverviewResponse(**await get_overview(db))


@router.get("/analytics/quests", response_model=QuestStatsResponse)
async def quest_stats(
    mine: bool = Query(False, description="Only quests the caller created"),
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> QuestStatsResponse:
    stats = await get_quest_stats(db, created_by=session.user_id if mine else None)
    return QuestStatsResponse(quests=[QuestStatsEntry(**s) for s in stats])


@router.get("/analytics/students/{student_id}", response_model=StudentStatsResponse)
async def student_stats(
    student_id: int,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> StudentStatsResponse:
    return StudentStatsResponse(**await get_student_stats(db, student_id))


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int | None = Query(None, ge=1, le=100),
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> LeaderboardResponse:
    """Students ranked by XP. Open to every signed-in user."""
    entries = await get_leaderboard(db, limit)
    return LeaderboardResponse(
        entries=[LeaderboardEntry(**e) for e in entries],
        total=len(entries),
    )
