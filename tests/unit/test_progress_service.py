"""Progress tracker tests: upsert on start, terminal completion, single XP award."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.session import Role
from colink.config import get_settings
from colink.db.models import QuestProgress
from colink.errors import AlreadyCompletedError, ConflictError, InvalidArgumentError, NotFoundError
from colink.gamification.badge_service import list_user_badges
from colink.gamification.pipeline import grant_xp
from colink.gamification.xp_service import get_xp_summary
from colink.progress import service as progress_service
from colink.progress.service import (
    CompletionOutcome,
    complete_quest,
    fail_quest,
    get_progress,
    list_attempts,
    list_student_progress,
    start_quest,
)
from colink.quests.service import create_quest


@pytest_asyncio.fixture
async def course(db_session: AsyncSession, make_user):
    """A professor, a student and one published 150 XP quest."""
    prof = await make_user("prof@coventry.ac.uk", role=Role.PROFESSOR)
    student = await make_user("student@coventry.ac.uk")
    quest = await create_quest(db_session, prof.id, title="Quiz", xp_reward=150, is_published=True)
    await db_session.commit()
    return prof, student, quest


async def _row_count(db: AsyncSession, student_id: int) -> int:
    result = await db.execute(
        select(func.count(QuestProgress.id)).where(QuestProgress.student_id == student_id)
    )
    return result.scalar_one()


class TestStart:
    @pytest.mark.asyncio
    async def test_start_creates_in_progress(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        progress = await start_quest(db_session, student.id, quest.id)
        assert progress.status == "in_progress"
        assert progress.attempts == 1
        assert progress.started_at is not None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_row(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        first = await start_quest(db_session, student.id, quest.id)
        second = await start_quest(db_session, student.id, quest.id)
        assert first.id == second.id
        assert second.attempts == 1
        assert await _row_count(db_session, student.id) == 1

    @pytest.mark.asyncio
    async def test_restart_after_failure_counts_attempt(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await start_quest(db_session, student.id, quest.id)
        await fail_quest(db_session, student.id, quest.id, score=30)
        progress = await start_quest(db_session, student.id, quest.id)
        assert progress.status == "in_progress"
        assert progress.attempts == 2

    @pytest.mark.asyncio
    async def test_start_completed_is_unchanged(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await complete_quest(db_session, None, student.id, quest.id, score=90)
        progress = await start_quest(db_session, student.id, quest.id)
        assert progress.status == "completed"
        assert progress.score == 90

    @pytest.mark.asyncio
    async def test_unpublished_quest_not_found(self, db_session: AsyncSession, course) -> None:
        prof, student, _ = course
        draft = await create_quest(db_session, prof.id, title="Draft", xp_reward=10)
        with pytest.raises(NotFoundError):
            await start_quest(db_session, student.id, draft.id)

    @pytest.mark.asyncio
    async def test_unresolvable_insert_conflict(self, db_session: AsyncSession, course) -> None:
        """A unique violation whose row cannot be re-read surfaces as a conflict."""
        _, student, quest = course
        await start_quest(db_session, student.id, quest.id)

        with patch.object(progress_service, "get_progress", new=AsyncMock(return_value=None)):
            with pytest.raises(ConflictError):
                await start_quest(db_session, student.id, quest.id)
        assert await _row_count(db_session, student.id) == 1


class TestComplete:
    @pytest.mark.asyncio
    async def test_first_completion_awards_xp(self, db_session: AsyncSession, course) -> None:
        """XP=0 + 150 XP quest → 150 XP, level 1."""
        _, student, quest = course
        await start_quest(db_session, student.id, quest.id)
        result = await complete_quest(db_session, None, student.id, quest.id, score=80)

        assert result.outcome is CompletionOutcome.COMPLETED
        assert result.xp_awarded == 150
        assert result.progress.status == "completed"
        assert result.progress.completed_at is not None
        summary = await get_xp_summary(db_session, student.id)
        assert summary["total_xp"] == 150
        assert summary["level"] == 1

    @pytest.mark.asyncio
    async def test_completion_without_start(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        result = await complete_quest(db_session, None, student.id, quest.id)
        assert result.outcome is CompletionOutcome.COMPLETED
        assert result.progress.attempts == 1
        assert result.progress.score is None

    @pytest.mark.asyncio
    async def test_level_up_grants_threshold_badge(self, db_session: AsyncSession, course) -> None:
        """XP=900 + 150 → 1050, level 4 → 5, knowledge_master (1000) granted."""
        _, student, quest = course
        await grant_xp(db_session, None, student.id, 900)

        result = await complete_quest(db_session, None, student.id, quest.id, score=70)
        assert result.grant is not None
        assert result.grant.xp.old_level == 4
        assert result.grant.xp.new_level == 5
        assert result.badges_awarded == ["knowledge_master"]

    @pytest.mark.asyncio
    async def test_retake_keeps_best_score_and_awards_nothing(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await complete_quest(db_session, None, student.id, quest.id, score=60)

        better = await complete_quest(db_session, None, student.id, quest.id, score=85)
        assert better.outcome is CompletionOutcome.ALREADY_COMPLETED
        assert better.xp_awarded == 0
        assert better.grant is None
        assert better.progress.score == 85

        worse = await complete_quest(db_session, None, student.id, quest.id, score=10)
        assert worse.progress.score == 85
        assert worse.progress.attempts == 3

        summary = await get_xp_summary(db_session, student.id)
        assert summary["total_xp"] == 150
        assert await _row_count(db_session, student.id) == 1

    @pytest.mark.asyncio
    async def test_perfect_score_grants_quiz_master(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        result = await complete_quest(db_session, None, student.id, quest.id, score=100)
        assert "quiz_master" in result.badges_awarded
        held = {ub.badge.slug for ub in await list_user_badges(db_session, student.id)}
        assert "quiz_master" in held

    @pytest.mark.asyncio
    async def test_fifth_completion_in_a_day_grants_quick_learner(
        self, db_session: AsyncSession, course,
    ) -> None:
        prof, student, _ = course
        quests = [
            await create_quest(db_session, prof.id, title=f"Q{i}", xp_reward=5, is_published=True)
            for i in range(5)
        ]
        morning = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)

        for i, quest in enumerate(quests[:4]):
            result = await complete_quest(
                db_session, None, student.id, quest.id, now=morning + timedelta(hours=i),
            )
            assert "quick_learner" not in result.badges_awarded

        result = await complete_quest(
            db_session, None, student.id, quests[4].id, now=morning + timedelta(hours=10),
        )
        assert "quick_learner" in result.badges_awarded

    @pytest.mark.asyncio
    async def test_completions_on_different_days_do_not_count(
        self, db_session: AsyncSession, course,
    ) -> None:
        prof, student, _ = course
        start = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
        for i in range(5):
            quest = await create_quest(db_session, prof.id, title=f"D{i}", xp_reward=5, is_published=True)
            result = await complete_quest(
                db_session, None, student.id, quest.id, now=start + timedelta(days=i),
            )
            assert "quick_learner" not in result.badges_awarded

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [-1, 101, True])
    async def test_invalid_score(self, db_session: AsyncSession, course, score) -> None:
        _, student, quest = course
        with pytest.raises(InvalidArgumentError):
            await complete_quest(db_session, None, student.id, quest.id, score=score)


class TestFail:
    @pytest.mark.asyncio
    async def test_fail_records_status(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await start_quest(db_session, student.id, quest.id)
        progress = await fail_quest(db_session, student.id, quest.id, score=20)
        assert progress.status == "failed"
        assert progress.score == 20

    @pytest.mark.asyncio
    async def test_fail_after_completion_rejected(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await complete_quest(db_session, None, student.id, quest.id, score=75)
        with pytest.raises(AlreadyCompletedError):
            await fail_quest(db_session, student.id, quest.id, score=0)
        progress = await get_progress(db_session, student.id, quest.id)
        assert progress.status == "completed"

    @pytest.mark.asyncio
    async def test_complete_after_failure(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        await fail_quest(db_session, student.id, quest.id, score=20)
        result = await complete_quest(db_session, None, student.id, quest.id, score=90)
        assert result.outcome is CompletionOutcome.COMPLETED
        assert result.xp_awarded == 150


class TestListing:
    @pytest.mark.asyncio
    async def test_lists_own_rows_only(self, db_session: AsyncSession, course, make_user) -> None:
        _, student, quest = course
        other = await make_user("other@coventry.ac.uk")
        await start_quest(db_session, student.id, quest.id)
        await start_quest(db_session, other.id, quest.id)

        rows = await list_student_progress(db_session, student.id)
        assert [r.student_id for r in rows] == [student.id]
        assert await get_progress(db_session, student.id, 999) is None


@pytest.fixture
def tokyo_rewards(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("COLINK_REWARD_TIMEZONE", "Asia/Tokyo")
    get_settings.cache_clear()
    yield
    monkeypatch.delenv("COLINK_REWARD_TIMEZONE")
    get_settings.cache_clear()


class TestQuickLearnerDay:
    """Five completions are counted per calendar day in the reward time zone (UTC+9 here)."""

    async def _complete_at(self, db: AsyncSession, prof, student, moments: list[datetime]) -> list[list[str]]:
        awarded = []
        for i, moment in enumerate(moments):
            quest = await create_quest(db, prof.id, title=f"T{i}", xp_reward=5, is_published=True)
            result = await complete_quest(db, None, student.id, quest.id, now=moment)
            awarded.append(result.badges_awarded)
        return awarded

    @pytest.mark.asyncio
    async def test_same_utc_day_split_across_local_days(
        self, db_session: AsyncSession, course, tokyo_rewards,
    ) -> None:
        prof, student, _ = course
        evening = datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)  # 19:00 on 1 April in Tokyo
        after_midnight = datetime(2026, 4, 1, 16, 0, tzinfo=timezone.utc)  # 01:00 on 2 April in Tokyo
        moments = [evening] + [after_midnight + timedelta(hours=i) for i in range(4)]

        awarded = await self._complete_at(db_session, prof, student, moments)
        assert all("quick_learner" not in slugs for slugs in awarded)

    @pytest.mark.asyncio
    async def test_one_local_day_spanning_two_utc_days(
        self, db_session: AsyncSession, course, tokyo_rewards,
    ) -> None:
        prof, student, _ = course
        after_midnight = datetime(2026, 4, 1, 16, 0, tzinfo=timezone.utc)
        afternoon = datetime(2026, 4, 2, 5, 0, tzinfo=timezone.utc)  # 14:00 on 2 April in Tokyo
        moments = [after_midnight + timedelta(hours=i) for i in range(4)] + [afternoon]

        awarded = await self._complete_at(db_session, prof, student, moments)
        assert all("quick_learner" not in slugs for slugs in awarded[:4])
        assert "quick_learner" in awarded[4]


class TestAttemptLog:
    @pytest.mark.asyncio
    async def test_every_request_is_logged_newest_first(self, db_session: AsyncSession, course) -> None:
        prof, student, quest = course
        other_quest = await create_quest(db_session, prof.id, title="Other", xp_reward=20, is_published=True)
        t0 = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)

        await complete_quest(db_session, None, student.id, quest.id, score=60, now=t0)
        await complete_quest(db_session, None, student.id, quest.id, score=85, now=t0 + timedelta(minutes=5))
        await fail_quest(db_session, student.id, other_quest.id, score=30, now=t0 + timedelta(minutes=10))

        attempts = await list_attempts(db_session, student_id=student.id)
        assert [(a.quest_id, a.status, a.score, a.xp_awarded) for a in attempts] == [
            (other_quest.id, "failed", 30, 0),
            (quest.id, "completed", 85, 0),
            (quest.id, "completed", 60, 150),
        ]

        by_quest = await list_attempts(db_session, student_id=student.id, quest_id=quest.id)
        assert [a.score for a in by_quest] == [85, 60]

    @pytest.mark.asyncio
    async def test_filters_by_student(self, db_session: AsyncSession, course, make_user) -> None:
        _, student, quest = course
        other = await make_user("other@coventry.ac.uk")
        await complete_quest(db_session, None, student.id, quest.id, score=70)
        await fail_quest(db_session, other.id, quest.id, score=10)

        assert [a.student_id for a in await list_attempts(db_session, student_id=other.id)] == [other.id]
        assert len(await list_attempts(db_session, quest_id=quest.id)) == 2

    @pytest.mark.asyncio
    async def test_rejected_requests_are_not_logged(self, db_session: AsyncSession, course) -> None:
        _, student, quest = course
        with pytest.raises(InvalidArgumentError):
            await complete_quest(db_session, None, student.id, quest.id, score=101)
        await complete_quest(db_session, None, student.id, quest.id, score=75)
        with pytest.raises(AlreadyCompletedError):
            await fail_quest(db_session, student.id, quest.id, score=0)

        attempts = await list_attempts(db_session, student_id=student.id)
        assert [(a.status, a.score) for a in attempts] == [("completed", 75)]
