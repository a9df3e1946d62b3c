"""Level computation.

Levels are a fixed-quantum function of total XP: every ``LEVEL_XP_QUANTUM``
points is one level, starting at level 1 with zero XP. All arithmetic is
integer; there is no fractional XP.
"""

from __future__ import annotations

from colink.errors import InvalidArgumentError

LEVEL_XP_QUANTUM = 250


def compute_level(total_xp: int, quantum: int = LEVEL_XP_QUANTUM) -> int:
    """Return the level for a total XP value.

    ``floor(total_xp / quantum) + 1``. Non-decreasing in ``total_xp``.
    """
    if total_xp < 0:
        msg = f"Total XP cannot be negative, got {total_xp}"
        raise InvalidArgumentError(msg)
    return total_xp // quantum + 1


def level_floor_xp(level: int, quantum: int = LEVEL_XP_QUANTUM) -> int:
    """Minimum total XP at which ``level`` is reached."""
    if level < 1:
        msg = f"Level must be at least 1, got {level}"
        raise InvalidArgumentError(msg)
    return (level - 1) * quantum


def level_progress(total_xp: int, quantum: int = LEVEL_XP_QUANTUM) -> dict:
    """Level info for profile and dashboard display."""
    level = compute_level(total_xp, quantum)
    floor = level_floor_xp(level, quantum)
    return {
        "total_xp": total_xp,
        "level": level,
        "xp_into_level": total_xp - floor,
        "xp_for_level": quantum,
        "next_level": level + 1,
        "next_level_xp": floor + quantum,
    }
