"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.jwt import verify_token
from colink.auth.service import get_user_by_id, session_for
from colink.auth.session import Role, Session
from colink.dependencies import get_db

_bearer = HTTPBearer()


async def get_current_session(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_db),
) -> Session:
    """
    Extract and verify the JWT, return the caller's Session.

    Raises 401 when the token is invalid, revoked by sign-out, or the user is gone.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if payload.get("ver") != user.token_version:
        raise HTTPException(status_code=401, detail="Session has been signed out")
    return session_for(user)


def require_role(role: Role):  # noqa: ANN201
    """Dependency factory restricting an endpoint to one role."""

    async def _check(session: Session = Depends(get_current_session)) -> Session:
        if session.role is not role:
            raise HTTPException(status_code=403, detail=f"Only {role.value}s can do this")
        return session

    return _check


require_student = require_role(Role.STUDENT)
require_professor = require_role(Role.PROFESSOR)
