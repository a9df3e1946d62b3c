"""Daily reward: once-per-calendar-day XP claim with a capped streak ramp."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from colink.config import get_settings
from colink.db.models import DailyRewardClaim, User
from colink.errors import AlreadyClaimedError, InvalidArgumentError, NotFoundError
from colink.gamification.badge_service import award_event_badge
from colink.gamification.pipeline import GrantResult, grant_xp

logger = logging.getLogger(__name__)

BASE_REWARD = 50
STREAK_INCREMENT = 10
REWARD_CAP = 150
STREAK_CHAMPION_DAYS = 30
STREAK_CHAMPION_BADGE = "streak_champion"


@dataclass
class DailyRewardResult:
    """A successful claim and the XP grant it produced."""

    claim_date: date
    streak: int
    xp_reward: int
    grant: GrantResult
    badges_awarded: list[str] = field(default_factory=list)


def compute_daily_reward(streak: int) -> int:
    """XP for a claim at ``streak`` consecutive days: a linear ramp capped at REWARD_CAP."""
    if streak < 1:
        msg = f"Streak must be at least 1, got {streak}"
        raise InvalidArgumentError(msg)
    return min(BASE_REWARD + (streak - 1) * STREAK_INCREMENT, REWARD_CAP)


def next_streak(last_claim_date: date | None, last_streak: int, today: date) -> int:
    """Streak after claiming on ``today``. Continues only from exactly yesterday."""
    if last_claim_date is not None and last_claim_date == today - timedelta(days=1):
        return last_streak + 1
    return 1


def reward_today(now: datetime | None = None) -> date:
    """Calendar date of ``now`` in the configured reward time zone."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(get_settings().reward_timezone)).date()


def reward_day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """UTC start and end of the reward-zone calendar day containing ``now``."""
    tz = ZoneInfo(get_settings().reward_timezone)
    day = reward_today(now)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


async def get_last_claim(db: AsyncSession, user_id: int) -> DailyRewardClaim | None:
    """Most recent claim for a user, if any."""
    result = await db.execute(
        select(DailyRewardClaim)
        .where(DailyRewardClaim.user_id == user_id)
        .order_by(DailyRewardClaim.claim_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def claim_daily_reward(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    *,
    now: datetime | None = None,
) -> DailyRewardResult:
    """Claim today's reward.

    1. Reject with AlreadyClaimedError if a claim exists for today's date
    2. Continue the streak from yesterday's claim, else restart at 1
    3. Persist the claim, then grant the XP through the badge pipeline
    4. Grant the streak champion badge at 30 consecutive days
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = reward_today(now)

    user = await db.execute(select(User.id).where(User.id == user_id))
    if user.scalar_one_or_none() is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)

    last = await get_last_claim(db, user_id)
    if last is not None and last.claim_date == today:
        msg = "Daily reward already claimed today"
        raise AlreadyClaimedError(msg)

    streak = next_streak(
        last.claim_date if last else None,
        last.streak_count if last else 0,
        today,
    )
    xp_reward = compute_daily_reward(streak)

    try:
        async with db.begin_nested():
            db.add(DailyRewardClaim(
                user_id=user_id,
                claim_date=today,
                claimed_at=now,
                streak_count=streak,
                xp_awarded=xp_reward,
            ))
    except IntegrityError as exc:
        msg = "Daily reward already claimed today"
        raise AlreadyClaimedError(msg) from exc

    grant = await grant_xp(db, redis, user_id, xp_reward, reason=f"daily reward day {streak}")
    result = DailyRewardResult(
        claim_date=today,
        streak=streak,
        xp_reward=xp_reward,
        grant=grant,
        badges_awarded=list(grant.badges_awarded),
    )

    if streak >= STREAK_CHAMPION_DAYS:
        if await award_event_badge(db, redis, user_id, STREAK_CHAMPION_BADGE):
            result.badges_awarded.append(STREAK_CHAMPION_BADGE)

    logger.info("User %s claimed daily reward: streak=%d xp=%d", user_id, streak, xp_reward)
    return result


async def get_daily_status(
    db: AsyncSession,
    user_id: int,
    *,
    now: datetime | None = None,
) -> dict:
    """Current streak, whether a claim is available today, and what it would pay.

    A streak whose last claim is older than yesterday is reported as 0.
    """
    today = reward_today(now)
    last = await get_last_claim(db, user_id)

    if last is None:
        current_streak = 0
    elif last.claim_date in (today, today - timedelta(days=1)):
        current_streak = last.streak_count
    else:
        current_streak = 0

    can_claim = last is None or last.claim_date != today
    upcoming = next_streak(
        last.claim_date if last else None,
        last.streak_count if last else 0,
        today,
    )
    return {
        "current_streak": current_streak,
        "can_claim": can_claim,
        "next_reward": compute_daily_reward(upcoming) if can_claim else 0,
        "last_claim_date": last.claim_date if last else None,
    }
