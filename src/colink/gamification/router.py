"""Gamification API endpoints: badges, levels, XP and the daily reward."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import get_current_session, require_professor
from colink.auth.session import Session
from colink.db.models import Badge
from colink.dependencies import get_db, get_redis_dep
from colink.gamification.badge_service import (
    award_event_badge,
    create_badge,
    list_badges,
    list_user_badges,
)
from colink.gamification.daily_reward import claim_daily_reward, get_daily_status
from colink.gamification.levels import level_progress
from colink.gamification.pipeline import grant_xp
from colink.gamification.schemas import (
    AllBadgesResponse,
    BadgeCreateRequest,
    BadgeDefinitionResponse,
    BadgeGrantResponse,
    BonusXPRequest,
    DailyRewardClaimResponse,
    DailyRewardStatusResponse,
    EarnedBadgeResponse,
    GrantResponse,
    UserBadgesResponse,
    XPResponse,
)
from colink.gamification.xp_service import get_xp_summary

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def badge_definition(badge: Badge) -> BadgeDefinitionResponse:
    return BadgeDefinitionResponse(
        slug=badge.slug,
        name=badge.name,
        description=badge.description,
        icon=badge.icon,
        tier=badge.tier,
        xp_threshold=badge.xp_threshold,
    )


# ── Public endpoints ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges_endpoint(db: AsyncSession = Depends(get_db)) -> AllBadgesResponse:
    """Full badge catalog in display order."""
    badges = await list_badges(db)
    return AllBadgesResponse(badges=[badge_definition(b) for b in badges])


@router.get("/levels/{xp}", response_model=XPResponse)
async def level_for_xp(xp: int) -> XPResponse:
    """Level and progress for an arbitrary XP total."""
    return XPResponse(**level_progress(xp))


# ── Authenticated endpoints ──


@router.get("/badges/mine", response_model=UserBadgesResponse)
async def my_badges(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> UserBadgesResponse:
    earned = await list_user_badges(db, session.user_id)
    catalog = await list_badges(db)
    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                slug=ub.badge.slug,
                name=ub.badge.name,
                tier=ub.badge.tier,
                icon=ub.badge.icon,
                earned_at=ub.earned_at,
            )
            for ub in earned
        ],
        total_available=len(catalog),
        total_earned=len(earned),
    )


@router.get("/xp", response_model=XPResponse)
async def my_xp(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> XPResponse:
    return XPResponse(**await get_xp_summary(db, session.user_id))


@router.get("/daily-reward", response_model=DailyRewardStatusResponse)
async def daily_reward_status(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> DailyRewardStatusResponse:
    return DailyRewardStatusResponse(**await get_daily_status(db, session.user_id))


@router.post("/daily-reward/claim", response_model=DailyRewardClaimResponse)
async def claim_daily_reward_endpoint(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis_dep),
) -> DailyRewardClaimResponse:
    """Claim today's reward. A second claim on the same day returns 409."""
    result = await claim_daily_reward(db, redis, session.user_id)
    await db.commit()
    award = result.grant.xp
    return DailyRewardClaimResponse(
        claim_date=result.claim_date,
        streak=result.streak,
        xp_awarded=result.xp_reward,
        total_xp=award.new_total,
        level=award.new_level,
        leveled_up=award.leveled_up,
        badges_awarded=result.badges_awarded,
    )


# ── Professor endpoints ──


@router.post("/users/{user_id}/bonus-xp", response_model=GrantResponse)
async def grant_bonus_xp(
    user_id: int,
    body: BonusXPRequest,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis_dep),
) -> GrantResponse:
    """Award bonus XP to a user."""
    reason = body.reason or f"bonus from professor {session.user_id}"
    grant = await grant_xp(db, redis, user_id, body.amount, reason=reason)
    await db.commit()
    return GrantResponse(
        user_id=user_id,
        amount=body.amount,
        total_xp=grant.xp.new_total,
        level=grant.xp.new_level,
        leveled_up=grant.xp.leveled_up,
        badges_awarded=grant.badges_awarded,
    )


@router.post("/users/{user_id}/badges/{slug}", response_model=BadgeGrantResponse)
async def grant_event_badge(
    user_id: int,
    slug: str,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis_dep),
) -> BadgeGrantResponse:
    """Grant an event badge such as ``team_player``. Idempotent."""
    granted = await award_event_badge(db, redis, user_id, slug)
    await db.commit()
    return BadgeGrantResponse(slug=slug, granted=granted)


@router.post("/badges", response_model=BadgeDefinitionResponse, status_code=201)
async def create_badge_endpoint(
    body: BadgeCreateRequest,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> BadgeDefinitionResponse:
    """Add a badge to the catalog. A duplicate slug returns 409."""
    badge = await create_badge(
        db,
        slug=body.slug,
        name=body.name,
        description=body.description,
        icon=body.icon,
        tier=body.tier,
        xp_threshold=body.xp_threshold,
        sort_order=body.sort_order,
    )
    await db.commit()
    return badge_definition(badge)
