"""User profile and directory logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from colink.auth.session import Role
from colink.db.models import User
from colink.errors import InvalidArgumentError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

MAX_DISPLAY_NAME_LENGTH = 64


async def get_profile(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return user


async def update_profile(
    db: AsyncSession,
    user_id: int,
    display_name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Update user profile fields.

    Raises:
        InvalidArgumentError: If the display name is blank or too long.
    """
    user = await get_profile(db, user_id)

    if display_name is not None:
        display_name = display_name.strip()
        if not display_name or len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            msg = f"Display name must be 1-{MAX_DISPLAY_NAME_LENGTH} characters"
            raise InvalidArgumentError(msg)
        user.display_name = display_name

    if avatar_url is not None:
        user.avatar_url = avatar_url or None

    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("profile_updated", user_id=user_id)
    return user


async def list_users(db: AsyncSession, role: Role | None = None) -> list[User]:
    """Directory of users ordered by display name, optionally filtered by role."""
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    result = await db.execute(stmt.order_by(User.display_name, User.id))
    return list(result.scalars())
