"""Analytics read models: load rows, fold them with the aggregator, round for display."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from colink.analytics.aggregator import (
    COMPLETED,
    average_score,
    completion_rate,
    count_active,
    percentage,
    rank_leaderboard,
)
from colink.auth.session import Role
from colink.config import get_settings
from colink.db.models import Quest, QuestProgress, User, UserBadge
from colink.errors import NotFoundError

TOP_PERFORMERS = 5


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


def _latest(*values: datetime | None) -> datetime | None:
    present = [v if v.tzinfo else v.replace(tzinfo=timezone.utc) for v in values if v is not None]
    return max(present) if present else None


async def _badge_counts(db: AsyncSession, user_ids: list[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    result = await db.execute(
        select(UserBadge.user_id, func.count(UserBadge.id))
        .where(UserBadge.user_id.in_(user_ids))
        .group_by(UserBadge.user_id)
    )
    return {row[0]: row[1] for row in result}


async def _completion_counts(db: AsyncSession, user_ids: list[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    result = await db.execute(
        select(QuestProgress.student_id, func.count(QuestProgress.id))
        .where(
            QuestProgress.student_id.in_(user_ids),
            QuestProgress.status == COMPLETED,
        )
        .group_by(QuestProgress.student_id)
    )
    return {row[0]: row[1] for row in result}


async def get_leaderboard(db: AsyncSession, limit: int | None = None) -> list[dict]:
    """Students ranked by XP with badge counts and quest completions."""
    if limit is None:
        limit = get_settings().leaderboard_default_limit
    result = await db.execute(
        select(User.id, User.display_name, User.total_xp, User.level, User.avatar_url)
        .where(User.role == Role.STUDENT.value)
        .order_by(User.total_xp.desc(), User.id)
        .limit(limit)
    )
    rows = [
        {
            "user_id": r.id,
            "display_name": r.display_name,
            "total_xp": r.total_xp,
            "level": r.level,
            "avatar_url": r.avatar_url,
        }
        for r in result
    ]
    ids = [r["user_id"] for r in rows]
    badges = await _badge_counts(db, ids)
    completions = await _completion_counts(db, ids)
    for row in rows:
        row["badge_count"] = badges.get(row["user_id"], 0)
        row["quest_completions"] = completions.get(row["user_id"], 0)
    return rank_leaderboard(rows)


async def _student_last_active(db: AsyncSession) -> dict[int, datetime | None]:
    """Latest of profile/XP update and progress update per student."""
    users = await db.execute(
        select(User.id, User.updated_at).where(User.role == Role.STUDENT.value)
    )
    last_active = {row[0]: row[1] for row in users}

    progress = await db.execute(
        select(QuestProgress.student_id, func.max(QuestProgress.updated_at))
        .group_by(QuestProgress.student_id)
    )
    for student_id, updated_at in progress:
        if student_id in last_active:
            last_active[student_id] = _latest(last_active[student_id], updated_at)
    return last_active


async def get_overview(db: AsyncSession, *, now: datetime | None = None) -> dict:
    """Class-wide summary for the professor dashboard."""
    settings = get_settings()
    last_active = await _student_last_active(db)
    total_students = len(last_active)

    xp_result = await db.execute(
        select(func.coalesce(func.sum(User.total_xp), 0)).where(User.role == Role.STUDENT.value)
    )
    total_xp = xp_result.scalar_one()

    quest_result = await db.execute(
        select(func.count(Quest.id)).where(Quest.is_active.is_(True))
    )
    total_quests = quest_result.scalar_one()

    statuses = list((await db.execute(select(QuestProgress.status))).scalars())
    completed = sum(1 for s in statuses if s == COMPLETED)

    active_students, _ = count_active(
        last_active.values(), now, window_days=settings.engagement_window_days
    )

    return {
        "total_students": total_students,
        "active_students": active_students,
        "total_quests": total_quests,
        "completed_quests": completed,
        "average_xp": _round(total_xp / total_students if total_students else 0.0),
        "completion_rate": _round(completion_rate(statuses)),
        "engagement_score": _round(percentage(active_students, total_students)),
        "top_performers": await get_leaderboard(db, TOP_PERFORMERS),
    }


async def get_quest_stats(db: AsyncSession, *, created_by: int | None = None) -> list[dict]:
    """Per-quest attempts, completions, completion rate and average score."""
    stmt = select(Quest).where(Quest.is_active.is_(True))
    if created_by is not None:
        stmt = stmt.where(Quest.created_by == created_by)
    quests = list((await db.execute(stmt.order_by(Quest.id))).scalars())
    if not quests:
        return []

    result = await db.execute(
        select(QuestProgress.quest_id, QuestProgress.status, QuestProgress.score)
        .where(QuestProgress.quest_id.in_([q.id for q in quests]))
    )
    by_quest: dict[int, list[tuple[str, int | None]]] = {q.id: [] for q in quests}
    for quest_id, status, score in result:
        by_quest[quest_id].append((status, score))

    stats = []
    for quest in quests:
        rows = by_quest[quest.id]
        statuses = [s for s, _ in rows]
        completed_scores = [score for s, score in rows if s == COMPLETED]
        stats.append({
            "quest_id": quest.id,
            "title": quest.title,
            "xp_reward": quest.xp_reward,
            "is_published": quest.is_published,
            "attempts": len(rows),
            "completions": len(completed_scores),
            "completion_rate": _round(completion_rate(statuses)),
            "average_score": _round(average_score(completed_scores)),
        })
    return stats


async def get_student_stats(db: AsyncSession, student_id: int) -> dict:
    """Progress summary for one student."""
    result = await db.execute(
        select(User).where(User.id == student_id, User.role == Role.STUDENT.value)
    )
    student = result.scalar_one_or_none()
    if student is None:
        msg = f"Student {student_id} not found"
        raise NotFoundError(msg)

    progress = await db.execute(
        select(QuestProgress.status, QuestProgress.score, QuestProgress.updated_at)
        .where(QuestProgress.student_id == student_id)
    )
    rows = list(progress)
    statuses = [r.status for r in rows]
    completed_scores = [r.score for r in rows if r.status == COMPLETED]
    badges = await _badge_counts(db, [student_id])

    return {
        "user_id": student.id,
        "display_name": student.display_name,
        "total_xp": student.total_xp,
        "level": student.level,
        "badge_count": badges.get(student_id, 0),
        "quests_started": len(rows),
        "quests_completed": len(completed_scores),
        "quests_failed": sum(1 for s in statuses if s == "failed"),
        "completion_rate": _round(completion_rate(statuses)),
        "average_score": _round(average_score(completed_scores)),
        "share_of_class_xp": _round(await _share_of_class_xp(db, student.total_xp)),
        "last_active": _latest(student.updated_at, *(r.updated_at for r in rows)),
    }


async def _share_of_class_xp(db: AsyncSession, total_xp: int) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(User.total_xp), 0)).where(User.role == Role.STUDENT.value)
    )
    return percentage(total_xp, result.scalar_one())
