"""Authentication router — all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import get_current_session
from colink.auth.jwt import create_access_token
from colink.auth.schemas import LoginRequest, RegisterRequest, SessionResponse, TokenResponse, UserResponse
from colink.auth.service import authenticate_user, register_user, sign_out
from colink.auth.session import Session
from colink.config import get_settings
from colink.db.models import User
from colink.dependencies import get_db

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        display_name=user.display_name,
        total_xp=user.total_xp,
        level=user.level,
        avatar_url=user.avatar_url,
        created_at=user.created_at,
    )


def _issue_token(user: User) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.id, user.role, user.token_version),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=user_response(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Create an account and sign it in."""
    user = await register_user(db, body.email, body.password, body.display_name, body.role)
    await db.commit()
    return _issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Exchange email + password for an access token."""
    user = await authenticate_user(db, body.email, body.password)
    return _issue_token(user)


@router.post("/logout", status_code=204)
async def logout(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Sign out everywhere: every token issued so far stops working."""
    await sign_out(db, session.user_id)


@router.get("/me", response_model=SessionResponse)
async def me(session: Session = Depends(get_current_session)) -> SessionResponse:
    """Current session identity."""
    return SessionResponse(
        user_id=session.user_id,
        email=session.email,
        role=session.role,
        display_name=session.display_name,
    )
