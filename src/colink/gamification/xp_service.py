"""XP award service with atomic increments and level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import User
from colink.errors import InvalidArgumentError, NotFoundError
from colink.gamification.levels import LEVEL_XP_QUANTUM, compute_level, level_progress
from colink.redis_client import publish_to_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XPAward:
    """Outcome of a single XP award."""

    user_id: int
    amount: int
    old_total: int
    new_total: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def validate_xp_amount(amount: object) -> int:
    """Return ``amount`` if it is a positive integer, else raise InvalidArgumentError."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        msg = f"XP amount must be an integer, got {type(amount).__name__}"
        raise InvalidArgumentError(msg)
    if amount <= 0:
        msg = f"XP amount must be positive, got {amount}"
        raise InvalidArgumentError(msg)
    return amount


async def award_xp(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    *,
    reason: str = "",
) -> XPAward:
    """Add ``amount`` XP to a user and recompute their level.

    The increment happens in a single UPDATE so concurrent awards to the same
    user cannot overwrite each other. This is an accumulator: calling it twice
    awards twice, so callers must guard against replaying the same event.

    Badge eligibility is not evaluated here; see
    ``colink.gamification.pipeline.grant_xp``.
    """
    validate_xp_amount(amount)
    now = datetime.now(timezone.utc)

    new_total = User.total_xp + amount
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            total_xp=new_total,
            level=new_total // LEVEL_XP_QUANTUM + 1,
            updated_at=now,
        )
        .returning(User.total_xp, User.level)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)

    total_xp, level = row
    # Refresh any copy of this user already loaded in the session.
    refreshed = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    refreshed.scalar_one()

    award = XPAward(
        user_id=user_id,
        amount=amount,
        old_total=total_xp - amount,
        new_total=total_xp,
        old_level=compute_level(total_xp - amount),
        new_level=level,
    )
    logger.info(
        "Awarded %d XP to user %s (%s): %d -> %d",
        amount, user_id, reason or "unspecified", award.old_total, award.new_total,
    )

    if award.leveled_up:
        await publish_to_user(redis, user_id, "gamification", "level_up", {
            "old_level": award.old_level,
            "new_level": award.new_level,
            "total_xp": award.new_total,
        })

    return award


async def get_xp_summary(db: AsyncSession, user_id: int) -> dict:
    """Current XP total with level progress for a user."""
    result = await db.execute(select(User.total_xp).where(User.id == user_id))
    total_xp = result.scalar_one_or_none()
    if total_xp is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return level_progress(total_xp)
