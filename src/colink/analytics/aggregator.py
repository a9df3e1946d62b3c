"""Pure folds over progress and user rows.

Ratios are 0-100 percentages. Rounding for display happens in the service
layer, never here.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

COMPLETED = "completed"


def percentage(part: int | float, whole: int | float) -> float:
    """``part / whole`` as a percentage; 0.0 when ``whole`` is 0."""
    if whole <= 0:
        return 0.0
    return part / whole * 100


def completion_rate(statuses: Iterable[str]) -> float:
    """Completed share of all progress records (0.0 with no attempts)."""
    total = 0
    completed = 0
    for status in statuses:
        total += 1
        if status == COMPLETED:
            completed += 1
    return percentage(completed, total)


def average_score(scores: Iterable[int | None]) -> float | None:
    """Mean of non-null scores, None when there are none."""
    present = [s for s in scores if s is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def count_active(
    last_active: Iterable[datetime | None],
    now: datetime | None = None,
    window_days: int = 7,
) -> tuple[int, int]:
    """(active, total) over one entry per student; None means never active."""
    if now is None:
        now = datetime.now(timezone.utc)
    cutoff = _aware(now) - timedelta(days=window_days)
    total = 0
    active = 0
    for ts in last_active:
        total += 1
        if ts is not None and _aware(ts) > cutoff:
            active += 1
    return active, total


def engagement_score(
    last_active: Iterable[datetime | None],
    now: datetime | None = None,
    window_days: int = 7,
) -> float:
    """Share of students active within the last ``window_days`` days."""
    return percentage(*count_active(last_active, now, window_days))


def rank_leaderboard(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Rank rows by ``total_xp`` DESC, ties broken by ``user_id`` ASC.

    Returns new dicts augmented with a 1-indexed ``rank`` equal to position.
    """
    ordered = sorted(rows, key=lambda r: (-r["total_xp"], r["user_id"]))
    return [{**row, "rank": i + 1} for i, row in enumerate(ordered)]
