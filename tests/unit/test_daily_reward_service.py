"""Daily reward claims: streaks, same-day rejection and streak champion."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from colink.db.models import DailyRewardClaim
from colink.errors import AlreadyClaimedError, NotFoundError
from colink.gamification.daily_reward import (
    STREAK_CHAMPION_DAYS,
    claim_daily_reward,
    get_daily_status,
)
from colink.gamification.xp_service import get_xp_summary

DAY_ONE = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def day(n: int, hour: int = 9) -> datetime:
    return DAY_ONE.replace(hour=hour) + timedelta(days=n)


class TestClaim:
    @pytest.mark.asyncio
    async def test_first_claim(self, db_session: AsyncSession, make_user) -> None:
        """No prior claims → streak 1, 50 XP."""
        user = await make_user("d1@coventry.ac.uk")
        result = await claim_daily_reward(db_session, None, user.id, now=day(0))

        assert result.streak == 1
        assert result.xp_reward == 50
        assert result.claim_date == date(2026, 3, 10)
        assert result.grant.xp.new_total == 50
        assert result.badges_awarded == ["first_steps"]

    @pytest.mark.asyncio
    async def test_consecutive_days_increment(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("d2@coventry.ac.uk")
        rewards = []
        for n in range(4):
            result = await claim_daily_reward(db_session, None, user.id, now=day(n))
            rewards.append((result.streak, result.xp_reward))

        # Day 4 at streak 3 → streak 4, 80 XP
        assert rewards == [(1, 50), (2, 60), (3, 70), (4, 80)]
        summary = await get_xp_summary(db_session, user.id)
        assert summary["total_xp"] == 260

    @pytest.mark.asyncio
    async def test_skipped_day_resets(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("d3@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=day(0))
        await claim_daily_reward(db_session, None, user.id, now=day(1))
        result = await claim_daily_reward(db_session, None, user.id, now=day(3))
        assert result.streak == 1
        assert result.xp_reward == 50

    @pytest.mark.asyncio
    async def test_same_calendar_day_rejected(self, db_session: AsyncSession, make_user) -> None:
        """Second claim on the same day raises and grants nothing."""
        user = await make_user("d4@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=day(0, hour=0))

        with pytest.raises(AlreadyClaimedError) as exc_info:
            await claim_daily_reward(db_session, None, user.id, now=day(0, hour=23))
        assert exc_info.value.no_op is True

        summary = await get_xp_summary(db_session, user.id)
        assert summary["total_xp"] == 50
        claims = await db_session.execute(
            select(DailyRewardClaim).where(DailyRewardClaim.user_id == user.id)
        )
        assert len(claims.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_calendar_day_not_24_hours(self, db_session: AsyncSession, make_user) -> None:
        """23:59 then 00:01 the next day is a new day and continues the streak."""
        user = await make_user("d5@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=DAY_ONE.replace(hour=23, minute=59))
        result = await claim_daily_reward(
            db_session, None, user.id, now=(DAY_ONE + timedelta(days=1)).replace(hour=0, minute=1),
        )
        assert result.streak == 2

    @pytest.mark.asyncio
    async def test_reward_capped(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("d6@coventry.ac.uk")
        result = None
        for n in range(12):
            result = await claim_daily_reward(db_session, None, user.id, now=day(n))
        assert result is not None
        assert result.streak == 12
        assert result.xp_reward == 150

    @pytest.mark.asyncio
    async def test_streak_champion_at_thirty_days(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("d7@coventry.ac.uk")
        for n in range(STREAK_CHAMPION_DAYS - 1):
            result = await claim_daily_reward(db_session, None, user.id, now=day(n))
            assert "streak_champion" not in result.badges_awarded

        result = await claim_daily_reward(db_session, None, user.id, now=day(STREAK_CHAMPION_DAYS - 1))
        assert result.streak == STREAK_CHAMPION_DAYS
        assert "streak_champion" in result.badges_awarded

        again = await claim_daily_reward(db_session, None, user.id, now=day(STREAK_CHAMPION_DAYS))
        assert "streak_champion" not in again.badges_awarded

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await claim_daily_reward(db_session, None, 31337, now=day(0))


class TestStatus:
    @pytest.mark.asyncio
    async def test_never_claimed(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("s1@coventry.ac.uk")
        status = await get_daily_status(db_session, user.id, now=day(0))
        assert status == {
            "current_streak": 0,
            "can_claim": True,
            "next_reward": 50,
            "last_claim_date": None,
        }

    @pytest.mark.asyncio
    async def test_claimed_today(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("s2@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=day(0))
        status = await get_daily_status(db_session, user.id, now=day(0, hour=20))
        assert status["current_streak"] == 1
        assert status["can_claim"] is False
        assert status["next_reward"] == 0

    @pytest.mark.asyncio
    async def test_claimed_yesterday(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("s3@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=day(0))
        status = await get_daily_status(db_session, user.id, now=day(1))
        assert status["current_streak"] == 1
        assert status["can_claim"] is True
        assert status["next_reward"] == 60

    @pytest.mark.asyncio
    async def test_broken_chain_reports_zero(self, db_session: AsyncSession, make_user) -> None:
        user = await make_user("s4@coventry.ac.uk")
        await claim_daily_reward(db_session, None, user.id, now=day(0))
        status = await get_daily_status(db_session, user.id, now=day(5))
        assert status["current_streak"] == 0
        assert status["next_reward"] == 50
