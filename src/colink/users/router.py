"""User router — /api/v1/users profile and directory endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import get_current_session
from colink.auth.router import user_response
from colink.auth.session import Role, Session
from colink.dependencies import get_db
from colink.users.schemas import DirectoryEntry, DirectoryResponse, ProfileUpdateRequest, UserResponse
from colink.users.service import get_profile, list_users, update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_my_profile(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get own full profile."""
    return user_response(await get_profile(db, session.user_id))


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Update display name and/or avatar."""
    user = await update_profile(
        db,
        session.user_id,
        display_name=body.display_name,
        avatar_url=body.avatar_url,
    )
    await db.commit()
    return user_response(user)


@router.get("", response_model=DirectoryResponse)
async def directory(
    role: Role | None = Query(None),
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> DirectoryResponse:
    """People the caller can message."""
    users = await list_users(db, role)
    return DirectoryResponse(
        users=[
            DirectoryEntry(
                id=u.id,
                display_name=u.display_name,
                role=Role(u.role),
                level=u.level,
                avatar_url=u.avatar_url,
            )
            for u in users
        ],
        total=len(users),
    )
