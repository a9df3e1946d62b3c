"""Quest catalog: professor-owned quest definitions with soft deletion."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import Quest
from colink.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from colink.gamification.xp_service import validate_xp_amount

logger = logging.getLogger(__name__)


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# Fields a professor may change after creation.
EDITABLE_FIELDS = frozenset({
    "title", "description", "xp_reward", "difficulty", "category", "is_published", "deadline",
})


def _validate_fields(fields: dict[str, Any]) -> None:
    if "title" in fields and not (fields["title"] or "").strip():
        msg = "Quest title cannot be empty"
        raise InvalidArgumentError(msg)
    if "xp_reward" in fields:
        validate_xp_amount(fields["xp_reward"])
    if "difficulty" in fields:
        try:
            Difficulty(fields["difficulty"])
        except ValueError as e:
            msg = f"Unknown difficulty {fields['difficulty']!r}"
            raise InvalidArgumentError(msg) from e


async def create_quest(
    db: AsyncSession,
    created_by: int,
    *,
    title: str,
    description: str = "",
    xp_reward: int,
    difficulty: str = Difficulty.MEDIUM.value,
    category: str | None = None,
    is_published: bool = False,
    deadline: datetime | None = None,
) -> Quest:
    """Create a quest owned by ``created_by``."""
    _validate_fields({"title": title, "xp_reward": xp_reward, "difficulty": difficulty})
    now = datetime.now(timezone.utc)
    quest = Quest(
        title=title.strip(),
        description=description,
        xp_reward=xp_reward,
        difficulty=Difficulty(difficulty).value,
        category=category,
        is_published=is_published,
        is_active=True,
        deadline=deadline,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    db.add(quest)
    await db.flush()
    logger.info("Quest %s created by %s (%d XP)", quest.id, created_by, xp_reward)
    return quest


async def get_quest(db: AsyncSession, quest_id: int, *, published_only: bool = False) -> Quest:
    """Fetch an active quest. Unpublished quests are hidden when ``published_only``."""
    stmt = select(Quest).where(Quest.id == quest_id, Quest.is_active.is_(True))
    if published_only:
        stmt = stmt.where(Quest.is_published.is_(True))
    result = await db.execute(stmt)
    quest = result.scalar_one_or_none()
    if quest is None:
        msg = f"Quest {quest_id} not found"
        raise NotFoundError(msg)
    return quest


async def list_quests(
    db: AsyncSession,
    *,
    published_only: bool = True,
    created_by: int | None = None,
) -> list[Quest]:
    """Active quests, newest first."""
    stmt = select(Quest).where(Quest.is_active.is_(True))
    if published_only:
        stmt = stmt.where(Quest.is_published.is_(True))
    if created_by is not None:
        stmt = stmt.where(Quest.created_by == created_by)
    result = await db.execute(stmt.order_by(Quest.created_at.desc(), Quest.id.desc()))
    return list(result.scalars())


async def _owned_quest(db: AsyncSession, quest_id: int, professor_id: int) -> Quest:
    quest = await get_quest(db, quest_id)
    if quest.created_by != professor_id:
        msg = "Only the quest's creator can modify it"
        raise PermissionDeniedError(msg)
    return quest


async def update_quest(
    db: AsyncSession,
    quest_id: int,
    professor_id: int,
    changes: dict[str, Any],
) -> Quest:
    """Apply a partial update. Unknown fields are rejected."""
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
        raise InvalidArgumentError(msg)
    _validate_fields(changes)

    quest = await _owned_quest(db, quest_id, professor_id)
    for field, value in changes.items():
        if field == "title":
            value = value.strip()
        elif field == "difficulty":
            value = Difficulty(value).value
        setattr(quest, field, value)
    quest.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return quest


async def deactivate_quest(db: AsyncSession, quest_id: int, professor_id: int) -> Quest:
    """Soft delete. Progress rows referencing the quest are kept."""
    quest = await _owned_quest(db, quest_id, professor_id)
    quest.is_active = False
    quest.is_published = False
    quest.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Quest %s deactivated by %s", quest_id, professor_id)
    return quest
