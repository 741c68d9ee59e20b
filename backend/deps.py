"""
Shared FastAPI dependencies.

Routers import DB session, auth guards and pagination from here.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.enums import Role
from domain.errors import PermissionDeniedError, UnauthorizedError
from middleware.auth import require_token_payload


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def get_current_user(
    payload: dict = Depends(require_token_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the signed-in user from the access token.

    The role is read from the database, not the token, so a demoted admin
    loses access without waiting for token expiry.
    """
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid access token.")

    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("Account no longer exists.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require that the signed-in user is an admin."""
    if user.role != Role.ADMIN.value:
        raise PermissionDeniedError("Admin role required for this endpoint.")
    return user
