"""Badge award service with duplicate prevention and per-badge failure isolation.

Two ways to earn a badge:

* threshold badges (``xp_threshold > 0``) are granted by
  :func:`check_and_award_badges`, a scan that is safe to repeat;
* event badges (``xp_threshold == 0``) are never touched by that scan and are
  granted only through :func:`award_event_badge` by the flow that observed
  the event (perfect quiz score, 30-day streak, ...).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import Badge, User, UserBadge
from colink.errors import ConflictError, InvalidArgumentError, NotFoundError
from colink.redis_client import publish_to_user

logger = logging.getLogger(__name__)


@dataclass
class BadgeScanResult:
    """Slugs granted and slugs whose grant failed during one scan."""

    awarded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


async def list_badges(db: AsyncSession) -> list[Badge]:
    """Full badge catalog in display order."""
    result = await db.execute(select(Badge).order_by(Badge.sort_order, Badge.id))
    return list(result.scalars())


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    """Fetch a badge definition by slug."""
    result = await db.execute(select(Badge).where(Badge.slug == slug))
    return result.scalar_one_or_none()


async def held_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    """Ids of all badges the user already holds."""
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
    return set(result.scalars())


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def list_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """Badges held by a user, most recent first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    )
    return list(result.scalars())


BADGE_TIERS = ("bronze", "silver", "gold", "platinum")
_SLUG_PATTERN = re.compile(r"^[a-z][a-z0-9_]{1,63}$")


async def create_badge(
    db: AsyncSession,
    *,
    slug: str,
    name: str,
    description: str = "",
    tier: str = "bronze",
    icon: str = "",
    xp_threshold: int = 0,
    sort_order: int | None = None,
) -> Badge:
    """Add a badge to the catalog.

    ``xp_threshold > 0`` makes it a threshold badge; students already past the
    threshold receive it on their next qualifying award. ``0`` makes it an
    event badge granted through :func:`award_event_badge`. New badges sort
    after the existing catalog unless ``sort_order`` is given.
    """
    if not _SLUG_PATTERN.match(slug):
        msg = f"Badge slug {slug!r} must be 2-64 lowercase letters, digits or underscores"
        raise InvalidArgumentError(msg)
    if not name.strip():
        msg = "Badge name cannot be empty"
        raise InvalidArgumentError(msg)
    if tier not in BADGE_TIERS:
        msg = f"Unknown badge tier {tier!r}"
        raise InvalidArgumentError(msg)
    if isinstance(xp_threshold, bool) or not isinstance(xp_threshold, int) or xp_threshold < 0:
        msg = f"XP threshold must be a non-negative integer, got {xp_threshold!r}"
        raise InvalidArgumentError(msg)
    if await get_badge_by_slug(db, slug) is not None:
        msg = f"Badge {slug!r} already exists"
        raise ConflictError(msg)

    if sort_order is None:
        result = await db.execute(select(func.coalesce(func.max(Badge.sort_order), 0)))
        sort_order = result.scalar_one() + 1

    badge = Badge(
        slug=slug,
        name=name.strip(),
        description=description,
        icon=icon,
        tier=tier,
        xp_threshold=xp_threshold,
        sort_order=sort_order,
    )
    try:
        async with db.begin_nested():
            db.add(badge)
    except IntegrityError as exc:
        msg = f"Badge {slug!r} already exists"
        raise ConflictError(msg) from exc

    logger.info("Badge %s created (threshold=%d)", slug, xp_threshold)
    return badge


async def _require_user(db: AsyncSession, user_id: int) -> None:
    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)


async def _grant(db: AsyncSession, redis: object | None, user_id: int, badge: Badge) -> bool:
    """Insert the award row inside a savepoint. False if it already exists."""
    now = datetime.now(timezone.utc)
    try:
        async with db.begin_nested():
            db.add(UserBadge(user_id=user_id, badge_id=badge.id, earned_at=now))
    except IntegrityError:
        # Concurrent grant won the unique constraint.
        return False

    logger.info("Badge %s awarded to user %s", badge.slug, user_id)
    await publish_to_user(redis, user_id, "gamification", "badge_earned", {
        "badge_slug": badge.slug,
        "badge_name": badge.name,
        "tier": badge.tier,
        "icon": badge.icon,
        "earned_at": now.isoformat(),
    })
    return True


async def check_and_award_badges(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    current_xp: int,
    current_level: int | None = None,
) -> BadgeScanResult:
    """Grant every threshold badge with ``0 < threshold <= current_xp`` not yet held.

    Must run after the XP write it reacts to has been flushed. Idempotent for
    a given persisted state. A failure on one badge is logged and recorded in
    ``failed``; the remaining badges are still attempted.
    """
    if current_xp < 0:
        msg = f"Current XP cannot be negative, got {current_xp}"
        raise InvalidArgumentError(msg)
    await _require_user(db, user_id)

    badges = await list_badges(db)
    held = await held_badge_ids(db, user_id)
    scan = BadgeScanResult()

    for badge in badges:
        if badge.xp_threshold <= 0 or badge.xp_threshold > current_xp or badge.id in held:
            continue
        try:
            if await _grant(db, redis, user_id, badge):
                scan.awarded.append(badge.slug)
        except Exception:
            logger.warning(
                "Failed to award badge %s to user %s (xp=%d, level=%s)",
                badge.slug, user_id, current_xp, current_level,
                exc_info=True,
            )
            scan.failed.append(badge.slug)

    return scan


async def award_event_badge(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    badge_slug: str,
) -> bool:
    """Grant an event-triggered badge. Returns False if the user already holds it."""
    badge = await get_badge_by_slug(db, badge_slug)
    if badge is None:
        msg = f"Badge {badge_slug!r} not found"
        raise NotFoundError(msg)
    if badge.xp_threshold > 0:
        msg = f"Badge {badge_slug!r} is XP-threshold based and cannot be granted directly"
        raise InvalidArgumentError(msg)
    await _require_user(db, user_id)

    if await has_badge(db, user_id, badge.id):
        return False
    return await _grant(db, redis, user_id, badge)


async def thresholds_between(db: AsyncSession, low_exclusive: int, high_inclusive: int) -> bool:
    """True if any threshold badge lies in ``(low_exclusive, high_inclusive]``."""
    result = await db.execute(
        select(Badge.id)
        .where(
            Badge.xp_threshold > 0,
            Badge.xp_threshold > low_exclusive,
            Badge.xp_threshold <= high_inclusive,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None
