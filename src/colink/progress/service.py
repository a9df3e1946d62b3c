"""Per-student quest progress with terminal completion.

Re-completion policy: a completed quest may be retaken. A retake can raise
the stored score (best score is kept) but never awards XP again, so the
quest's reward is granted exactly once per student. Every complete, retake
and fail request is also appended to the quiz attempt log.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import QuestProgress, QuizAttempt
from colink.errors import AlreadyCompletedError, ConflictError, InvalidArgumentError
from colink.gamification.badge_service import award_event_badge
from colink.gamification.daily_reward import reward_day_bounds
from colink.gamification.pipeline import GrantResult, grant_xp
from colink.quests.service import get_quest

logger = logging.getLogger(__name__)

PERFECT_SCORE = 100
QUIZ_MASTER_BADGE = "quiz_master"
QUICK_LEARNER_BADGE = "quick_learner"
QUICK_LEARNER_COMPLETIONS = 5


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CompletionOutcome(str, enum.Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


@dataclass
class CompletionResult:
    """Result of a completion request."""

    progress: QuestProgress
    outcome: CompletionOutcome
    xp_awarded: int = 0
    grant: GrantResult | None = None
    badges_awarded: list[str] = field(default_factory=list)


def _validate_score(score: int | None) -> None:
    if score is None:
        return
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= PERFECT_SCORE:
        msg = f"Score must be an integer between 0 and {PERFECT_SCORE}, got {score!r}"
        raise InvalidArgumentError(msg)


def _utc(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


async def get_progress(db: AsyncSession, student_id: int, quest_id: int) -> QuestProgress | None:
    result = await db.execute(
        select(QuestProgress).where(
            QuestProgress.student_id == student_id,
            QuestProgress.quest_id == quest_id,
        )
    )
    return result.scalar_one_or_none()


async def list_student_progress(db: AsyncSession, student_id: int) -> list[QuestProgress]:
    """All progress rows for a student, most recently touched first."""
    result = await db.execute(
        select(QuestProgress)
        .where(QuestProgress.student_id == student_id)
        .order_by(QuestProgress.updated_at.desc(), QuestProgress.id.desc())
    )
    return list(result.scalars())


async def list_attempts(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    quest_id: int | None = None,
) -> list[QuizAttempt]:
    """Attempt log, newest first, optionally narrowed to a student and/or quest."""
    stmt = select(QuizAttempt)
    if student_id is not None:
        stmt = stmt.where(QuizAttempt.student_id == student_id)
    if quest_id is not None:
        stmt = stmt.where(QuizAttempt.quest_id == quest_id)
    result = await db.execute(stmt.order_by(QuizAttempt.attempted_at.desc(), QuizAttempt.id.desc()))
    return list(result.scalars())


async def _record_attempt(
    db: AsyncSession,
    student_id: int,
    quest_id: int,
    status: ProgressStatus,
    score: int | None,
    xp_awarded: int,
    now: datetime,
) -> None:
    db.add(QuizAttempt(
        quest_id=quest_id,
        student_id=student_id,
        status=status.value,
        score=score,
        xp_awarded=xp_awarded,
        attempted_at=now,
    ))
    await db.flush()


async def _get_or_create(db: AsyncSession, student_id: int, quest_id: int, now: datetime) -> QuestProgress:
    """Upsert keyed on (quest, student)."""
    progress = await get_progress(db, student_id, quest_id)
    if progress is not None:
        return progress

    progress = QuestProgress(
        quest_id=quest_id,
        student_id=student_id,
        status=ProgressStatus.NOT_STARTED.value,
        attempts=0,
        created_at=now,
        updated_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(progress)
    except IntegrityError as exc:
        # A concurrent request created the row first.
        existing = await get_progress(db, student_id, quest_id)
        if existing is None:
            msg = f"Progress for quest {quest_id} could not be created"
            raise ConflictError(msg) from exc
        return existing
    return progress


async def start_quest(
    db: AsyncSession,
    student_id: int,
    quest_id: int,
    *,
    now: datetime | None = None,
) -> QuestProgress:
    """Mark a quest in progress. Starting twice updates the same row.

    A completed quest is returned unchanged.
    """
    now = _utc(now)
    await get_quest(db, quest_id, published_only=True)

    progress = await _get_or_create(db, student_id, quest_id, now)
    if progress.status == ProgressStatus.COMPLETED.value:
        return progress

    if progress.status != ProgressStatus.IN_PROGRESS.value:
        progress.attempts += 1
        progress.started_at = now
    progress.status = ProgressStatus.IN_PROGRESS.value
    progress.updated_at = now
    await db.flush()
    return progress


async def _completions_between(db: AsyncSession, student_id: int, start: datetime, end: datetime) -> int:
    result = await db.execute(
        select(func.count(QuestProgress.id)).where(
            QuestProgress.student_id == student_id,
            QuestProgress.status == ProgressStatus.COMPLETED.value,
            QuestProgress.completed_at >= start,
            QuestProgress.completed_at < end,
        )
    )
    return result.scalar_one()


async def _mark_completed(db: AsyncSession, progress: QuestProgress, score: int | None, now: datetime) -> bool:
    """Compare-and-set to completed. False if another request completed it first."""
    result = await db.execute(
        update(QuestProgress)
        .where(
            QuestProgress.id == progress.id,
            QuestProgress.status != ProgressStatus.COMPLETED.value,
        )
        .values(
            status=ProgressStatus.COMPLETED.value,
            score=score,
            completed_at=now,
            started_at=func.coalesce(QuestProgress.started_at, now),
            attempts=case((QuestProgress.attempts < 1, 1), else_=QuestProgress.attempts),
            updated_at=now,
        )
        .returning(QuestProgress.id)
        .execution_options(synchronize_session=False)
    )
    changed = result.scalar_one_or_none() is not None
    await db.refresh(progress)
    return changed


async def _record_retake(db: AsyncSession, progress: QuestProgress, score: int | None, now: datetime) -> None:
    """Count the retake and keep the best score, in one statement."""
    values: dict = {"attempts": QuestProgress.attempts + 1, "updated_at": now}
    if score is not None:
        values["score"] = case(
            (QuestProgress.score.is_(None), score),
            (QuestProgress.score < score, score),
            else_=QuestProgress.score,
        )
    await db.execute(
        update(QuestProgress)
        .where(QuestProgress.id == progress.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(progress)


async def complete_quest(
    db: AsyncSession,
    redis: object | None,
    student_id: int,
    quest_id: int,
    score: int | None = None,
    *,
    now: datetime | None = None,
) -> CompletionResult:
    """Complete a quest and award its XP once.

    First completion: status becomes completed, the quest's ``xp_reward`` is
    granted through the badge pipeline, then event badges are checked
    (perfect score, five completions in one reward-zone calendar day). A
    retake, or losing the race to a concurrent completion, keeps the best
    score and reports ``ALREADY_COMPLETED`` with zero XP.
    """
    _validate_score(score)
    now = _utc(now)
    quest = await get_quest(db, quest_id, published_only=True)

    progress = await _get_or_create(db, student_id, quest_id, now)
    if progress.status == ProgressStatus.COMPLETED.value or not await _mark_completed(db, progress, score, now):
        await _record_retake(db, progress, score, now)
        await _record_attempt(db, student_id, quest_id, ProgressStatus.COMPLETED, score, 0, now)
        return CompletionResult(progress=progress, outcome=CompletionOutcome.ALREADY_COMPLETED)

    grant = await grant_xp(db, redis, student_id, quest.xp_reward, reason=f"quest {quest_id}")
    await _record_attempt(db, student_id, quest_id, ProgressStatus.COMPLETED, score, quest.xp_reward, now)
    result = CompletionResult(
        progress=progress,
        outcome=CompletionOutcome.COMPLETED,
        xp_awarded=quest.xp_reward,
        grant=grant,
        badges_awarded=list(grant.badges_awarded),
    )

    if score == PERFECT_SCORE:
        if await award_event_badge(db, redis, student_id, QUIZ_MASTER_BADGE):
            result.badges_awarded.append(QUIZ_MASTER_BADGE)

    day_start, day_end = reward_day_bounds(now)
    if await _completions_between(db, student_id, day_start, day_end) >= QUICK_LEARNER_COMPLETIONS:
        if await award_event_badge(db, redis, student_id, QUICK_LEARNER_BADGE):
            result.badges_awarded.append(QUICK_LEARNER_BADGE)

    logger.info("Student %s completed quest %s (score=%s)", student_id, quest_id, score)
    return result


async def fail_quest(
    db: AsyncSession,
    student_id: int,
    quest_id: int,
    score: int | None = None,
    *,
    now: datetime | None = None,
) -> QuestProgress:
    """Record a failed attempt. A completed quest cannot be failed."""
    _validate_score(score)
    now = _utc(now)
    await get_quest(db, quest_id, published_only=True)

    progress = await _get_or_create(db, student_id, quest_id, now)
    result = await db.execute(
        update(QuestProgress)
        .where(
            QuestProgress.id == progress.id,
            QuestProgress.status != ProgressStatus.COMPLETED.value,
        )
        .values(
            status=ProgressStatus.FAILED.value,
            score=score,
            attempts=case((QuestProgress.attempts < 1, 1), else_=QuestProgress.attempts),
            updated_at=now,
        )
        .returning(QuestProgress.id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        msg = "Quest already completed"
        raise AlreadyCompletedError(msg)
    await db.refresh(progress)

    await _record_attempt(db, student_id, quest_id, ProgressStatus.FAILED, score, 0, now)
    return progress
