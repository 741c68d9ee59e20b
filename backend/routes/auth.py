"""
Auth endpoints — e-mail + password accounts.

Flow:
  1) POST /auth/signup or /auth/login -> {user, accessToken, expiresInSeconds}
  2) Client sends `Authorization: Bearer <accessToken>` on later calls
  3) POST /auth/forgot-password -> /auth/reset-password recovers an account
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_current_user
from domain.enums import Role
from domain.responses import success_response
from middleware.auth import issue_access_token
from middleware.rate_limit import rate_limit
from models import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SessionResponse,
    SignUpRequest,
    UpdatePasswordRequest,
    UserResponse,
)
from services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _session(user: User) -> SessionResponse:
    return SessionResponse(
        user=UserResponse.model_validate(user),
        accessToken=issue_access_token(user_id=user.id, role=user.role),
        expiresInSeconds=settings.jwt_access_ttl_minutes * 60,
    )


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def sign_up(
    request: SignUpRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    user = await auth_service.sign_up(
        db, email=request.email, password=request.password, full_name=request.full_name
    )
    session = _session(user)
    await db.commit()
    return session


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=20, window_seconds=60)),
):
    user = await auth_service.sign_in(db, email=request.email, password=request.password)
    return _session(user)


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=5, window_seconds=60)),
):
    """
    Start a password reset.

    The answer is the same whether or not the account exists. There is no
    mailer: in demo mode the token is returned so the flow can be completed.
    """
    token = await auth_service.request_password_reset(db, email=request.email)
    await db.commit()

    data = {"message": "If the account exists, password reset instructions have been issued."}
    if settings.demo_mode and token:
        data["reset_token"] = token
    return success_response(data)


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    await auth_service.reset_password(db, token=request.token, new_password=request.password)
    await db.commit()
    return success_response({"message": "Password updated."})


@router.put("/password")
async def update_password(
    request: UpdatePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.update_password(db, user=user, new_password=request.password)
    await db.commit()
    return success_response({"message": "Password updated."})


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return success_response(
        {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role,
            "is_admin": user.role == Role.ADMIN.value,
        }
    )
