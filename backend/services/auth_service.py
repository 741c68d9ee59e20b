"""
Account service — sign-up, sign-in and password management.

Passwords are hashed with bcrypt. Password-reset tokens are random
URL-safe strings; only their SHA-256 digest is persisted so a leaked
database row cannot be replayed.
"""
import hashlib
import logging
import secrets
from datetime import datetime, timedelta

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import User, PasswordResetToken
from domain.enums import Role
from domain.errors import ConflictError, UnauthorizedError, ValidationError
from utils.validators import normalize_email, validate_password

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "Invalid e-mail or password."


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or a password bcrypt refuses (over 72 bytes)
        return False


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)


async def sign_up(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
) -> User:
    email = normalize_email(email)
    validate_password(password)

    if await get_user_by_email(db, email):
        raise ConflictError("An account with this e-mail already exists.")

    role = Role.ADMIN.value if email in settings.admin_emails_list else Role.CUSTOMER.value
    user = User(
        email=email,
        full_name=(full_name or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    await db.flush()

    logger.info(f"User signed up: id={user.id} role={role}")
    return user


async def sign_in(db: AsyncSession, *, email: str, password: str) -> User:
    try:
        email = normalize_email(email)
    except ValidationError:
        raise UnauthorizedError(_INVALID_CREDENTIALS)

    user = await get_user_by_email(db, email)
    if not user or not verify_password(password or "", user.password_hash):
        raise UnauthorizedError(_INVALID_CREDENTIALS)
    return user


async def request_password_reset(db: AsyncSession, *, email: str) -> str | None:
    """
    Create a reset token for the account, if it exists.

    Returns the raw token (the caller decides whether to expose it),
    or None when no account matches. Callers must answer identically in
    both cases so account existence is not revealed.
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        return None

    user = await get_user_by_email(db, email)
    if not user:
        logger.info("Password reset requested for unknown e-mail")
        return None

    token = secrets.token_urlsafe(32)
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=_hash_token(token),
            expires_at=datetime.utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes),
        )
    )
    await db.flush()

    logger.info(f"Password reset token issued for user id={user.id}")
    return token


async def reset_password(db: AsyncSession, *, token: str, new_password: str) -> User:
    validate_password(new_password)

    res = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == _hash_token(token or ""))
    )
    reset = res.scalar_one_or_none()
    now = datetime.utcnow()
    if not reset or reset.used_at is not None:
        raise ValidationError("Invalid or already-used reset token.")
    if reset.expires_at <= now:
        raise ValidationError("Reset token expired. Request a new one.")

    user = await get_user(db, reset.user_id)
    if not user:
        raise ValidationError("Invalid or already-used reset token.")

    reset.used_at = now
    user.password_hash = hash_password(new_password)
    await db.flush()

    logger.info(f"Password reset completed for user id={user.id}")
    return user


async def update_password(db: AsyncSession, *, user: User, new_password: str) -> User:
    validate_password(new_password)
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info(f"Password updated for user id={user.id}")
    return user
