"""
Authentication business logic.

Handles account creation, credential checks, sign-out and session resolution.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from colink.auth.password import hash_password, validate_password_strength, verify_password
from colink.auth.session import Role, Session, SessionEvent, SessionEvents, SessionEventType, session_events
from colink.db.models import User
from colink.errors import ConflictError, InvalidArgumentError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class InvalidCredentialsError(InvalidArgumentError):
    """Email/password pair does not match an account."""

    code = "invalid_credentials"
    status_code = 401


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


def session_for(user: User) -> Session:
    """Build the request session for a loaded user."""
    return Session(
        user_id=user.id,
        email=user.email,
        role=Role(user.role),
        display_name=user.display_name,
    )


# ---------------------------------------------------------------------------
# Registration / sign-in / sign-out
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str,
    role: Role = Role.STUDENT,
) -> User:
    """
    Create a new account with zero XP at level 1.

    Raises:
        PasswordStrengthError: If the password is weak.
        ConflictError: If the email is already registered.
    """
    validate_password_strength(password)

    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ConflictError(msg)

    now = datetime.now(timezone.utc)
    user = User(
        email=email.lower().strip(),
        password_hash=hash_password(password),
        role=role.value,
        display_name=display_name.strip(),
        total_xp=0,
        level=1,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, role=role.value)
    return user


async def authenticate_user(
    db: AsyncSession,
    email: str,
    password: str,
    events: SessionEvents = session_events,
) -> User:
    """
    Check credentials and announce the sign-in.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password.
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login_failed", email=email.lower().strip())
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)

    await events.emit(SessionEvent(SessionEventType.SIGNED_IN, user.id))
    return user


async def sign_out(
    db: AsyncSession,
    user_id: int,
    events: SessionEvents = session_events,
) -> None:
    """Invalidate all of a user's tokens and announce the sign-out."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(token_version=User.token_version + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("user_signed_out", user_id=user_id)
    await events.emit(SessionEvent(SessionEventType.SIGNED_OUT, user_id))
