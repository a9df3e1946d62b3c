"""XP grant pipeline: persist the award first, then evaluate threshold badges."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from colink.gamification.badge_service import check_and_award_badges, thresholds_between
from colink.gamification.xp_service import XPAward, award_xp


@dataclass
class GrantResult:
    """XP award plus whatever badges it unlocked."""

    xp: XPAward
    badges_awarded: list[str] = field(default_factory=list)
    badges_failed: list[str] = field(default_factory=list)


async def grant_xp(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    *,
    reason: str = "",
) -> GrantResult:
    """Award XP, then scan for threshold badges if the award warrants it.

    The scan runs on a level-up or when the new total crossed at least one
    badge threshold. Because the scan is idempotent, a badge left ungranted
    by an earlier partial failure is picked up by the next qualifying award.
    """
    award = await award_xp(db, redis, user_id, amount, reason=reason)
    await db.flush()

    grant = GrantResult(xp=award)
    if award.leveled_up or await thresholds_between(db, award.old_total, award.new_total):
        scan = await check_and_award_badges(db, redis, user_id, award.new_total, award.new_level)
        grant.badges_awarded = scan.awarded
        grant.badges_failed = scan.failed
    return grant
