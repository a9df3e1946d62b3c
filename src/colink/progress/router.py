"""Quest progress endpoints and the quiz attempt log."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import require_professor, require_student
from colink.auth.session import Session
from colink.db.models import QuestProgress, QuizAttempt
from colink.dependencies import get_db, get_redis_dep
from colink.gamification.xp_service import get_xp_summary
from colink.progress.schemas import (
    AttemptListResponse,
    AttemptResponse,
    CompletionResponse,
    ProgressListResponse,
    ProgressResponse,
    ScoreRequest,
)
from colink.progress.service import complete_quest, fail_quest, list_attempts, list_student_progress, start_quest
from colink.quests.service import get_quest

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Progress"])


def progress_response(progress: QuestProgress) -> ProgressResponse:
    return ProgressResponse(
        id=progress.id,
        quest_id=progress.quest_id,
        student_id=progress.student_id,
        status=progress.status,
        score=progress.score,
        attempts=progress.attempts,
        started_at=progress.started_at,
        completed_at=progress.completed_at,
        updated_at=progress.updated_at,
    )


def attempt_response(attempt: QuizAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=attempt.id,
        quest_id=attempt.quest_id,
        student_id=attempt.student_id,
        status=attempt.status,
        score=attempt.score,
        xp_awarded=attempt.xp_awarded,
        attempted_at=attempt.attempted_at,
    )


def _attempt_list(attempts: list[QuizAttempt]) -> AttemptListResponse:
    return AttemptListResponse(attempts=[attempt_response(a) for a in attempts], total=len(attempts))


@router.get("/progress", response_model=ProgressListResponse)
async def my_progress(
    session: Session = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> ProgressListResponse:
    rows = await list_student_progress(db, session.user_id)
    return ProgressListResponse(progress=[progress_response(p) for p in rows], total=len(rows))


@router.post("/quests/{quest_id}/start", response_model=ProgressResponse)
async def start(
    quest_id: int,
    session: Session = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> ProgressResponse:
    progress = await start_quest(db, session.user_id, quest_id)
    await db.commit()
    return progress_response(progress)


@router.post("/quests/{quest_id}/complete", response_model=CompletionResponse)
async def complete(
    quest_id: int,
    body: ScoreRequest | None = None,
    session: Session = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis_dep),
) -> CompletionResponse:
    """Complete a quest. XP is granted on the first completion only."""
    score = body.score if body is not None else None
    result = await complete_quest(db, redis, session.user_id, quest_id, score)
    await db.commit()

    summary = await get_xp_summary(db, session.user_id)
    if result.grant is not None and result.grant.badges_failed:
        logger.warning(
            "badge_grants_failed",
            user_id=session.user_id,
            badges=result.grant.badges_failed,
        )
    return CompletionResponse(
        outcome=result.outcome.value,
        progress=progress_response(result.progress),
        xp_awarded=result.xp_awarded,
        total_xp=summary["total_xp"],
        level=summary["level"],
        leveled_up=result.grant.xp.leveled_up if result.grant is not None else False,
        badges_awarded=result.badges_awarded,
    )


@router.post("/quests/{quest_id}/fail", response_model=ProgressResponse)
async def fail(
    quest_id: int,
    body: ScoreRequest | None = None,
    session: Session = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> ProgressResponse:
    score = body.score if body is not None else None
    progress = await fail_quest(db, session.user_id, quest_id, score)
    await db.commit()
    return progress_response(progress)


@router.get("/progress/attempts", response_model=AttemptListResponse)
async def my_attempts(
    quest_id: int | None = Query(None),
    session: Session = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> AttemptListResponse:
    """Every complete, retake and fail request, newest first."""
    return _attempt_list(await list_attempts(db, student_id=session.user_id, quest_id=quest_id))


@router.get("/quests/{quest_id}/attempts", response_model=AttemptListResponse)
async def quest_attempts(
    quest_id: int,
    student_id: int | None = Query(None),
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> AttemptListResponse:
    await get_quest(db, quest_id)
    return _attempt_list(await list_attempts(db, student_id=student_id, quest_id=quest_id))
