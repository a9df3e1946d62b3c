"""Badge seed data: the default university badge catalog."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import Badge

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # XP milestones
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Complete your first quest",
        "icon": "\U0001f3af",
        "tier": "bronze",
        "xp_threshold": 50,
        "sort_order": 1,
    },
    {
        "slug": "getting_started",
        "name": "Getting Started",
        "description": "Earn your first 100 XP",
        "icon": "\U0001f31f",
        "tier": "bronze",
        "xp_threshold": 100,
        "sort_order": 2,
    },
    {
        "slug": "rising_star",
        "name": "Rising Star",
        "description": "Reach 250 XP and show your potential",
        "icon": "⭐",
        "tier": "silver",
        "xp_threshold": 250,
        "sort_order": 3,
    },
    {
        "slug": "dedicated_learner",
        "name": "Dedicated Learner",
        "description": "Achieve 500 XP through consistent effort",
        "icon": "\U0001f4da",
        "tier": "silver",
        "xp_threshold": 500,
        "sort_order": 4,
    },
    {
        "slug": "academic_excellence",
        "name": "Academic Excellence",
        "description": "Reach 750 XP and demonstrate mastery",
        "icon": "\U0001f3c6",
        "tier": "gold",
        "xp_threshold": 750,
        "sort_order": 5,
    },
    {
        "slug": "knowledge_master",
        "name": "Knowledge Master",
        "description": "Achieve 1000 XP and become a true scholar",
        "icon": "\U0001f451",
        "tier": "gold",
        "xp_threshold": 1000,
        "sort_order": 6,
    },
    {
        "slug": "elite_scholar",
        "name": "Elite Scholar",
        "description": "Reach 1500 XP and join the academic elite",
        "icon": "\U0001f48e",
        "tier": "platinum",
        "xp_threshold": 1500,
        "sort_order": 7,
    },
    {
        "slug": "legend",
        "name": "Legend",
        "description": "Achieve 2000 XP and become a platform legend",
        "icon": "\U0001f680",
        "tier": "platinum",
        "xp_threshold": 2000,
        "sort_order": 8,
    },
    # Event badges (threshold 0, granted by explicit triggers)
    {
        "slug": "quiz_master",
        "name": "Quiz Master",
        "description": "Score 100% on any quiz",
        "icon": "\U0001f9e0",
        "tier": "gold",
        "xp_threshold": 0,
        "sort_order": 9,
    },
    {
        "slug": "streak_champion",
        "name": "Streak Champion",
        "description": "Maintain a 30-day login streak",
        "icon": "\U0001f525",
        "tier": "gold",
        "xp_threshold": 0,
        "sort_order": 10,
    },
    {
        "slug": "team_player",
        "name": "Team Player",
        "description": "Help other students in the Q&A section",
        "icon": "\U0001f91d",
        "tier": "silver",
        "xp_threshold": 0,
        "sort_order": 11,
    },
    {
        "slug": "quick_learner",
        "name": "Quick Learner",
        "description": "Complete 5 quests in one day",
        "icon": "⚡",
        "tier": "silver",
        "xp_threshold": 0,
        "sort_order": 12,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert or refresh all badge definitions keyed by slug. Returns number seeded."""
    result = await db.execute(select(Badge))
    existing = {b.slug: b for b in result.scalars()}

    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        badge = existing.get(badge_data["slug"])
        if badge is None:
            db.add(Badge(**badge_data))
        else:
            for field, value in badge_data.items():
                setattr(badge, field, value)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
