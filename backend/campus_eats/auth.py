"""Password hashing, JWT creation/validation, and FastAPI auth dependencies."""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.config import Settings, get_settings
from campus_eats.database import get_db
from campus_eats.errors import Forbidden, Unauthorized
from campus_eats.models.common import ROLE_ADMIN
from campus_eats.models.user import User
from campus_eats.services.context import ANONYMOUS, Caller

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=True)
bearer_scheme_optional = HTTPBearer(auto_error=False)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, role: str) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {
        "sub": user_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID | None:
    """Return the user id carried by a valid token, or None."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError, TypeError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Require a valid JWT and return the authenticated user."""
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise Unauthorized("Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise Unauthorized("User not found")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme_optional),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like get_current_user but returns None when no token is provided."""
    if credentials is None:
        return None
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_caller(user: User = Depends(get_current_user)) -> Caller:
    return Caller(user_id=user.id, role=user.role)


async def get_optional_caller(user: User | None = Depends(get_optional_user)) -> Caller:
    if user is None:
        return ANONYMOUS
    return Caller(user_id=user.id, role=user.role)


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise Forbidden("Administrator role required")
    return caller


async def ensure_admin(db: AsyncSession, settings: Settings) -> User | None:
    """Create the bootstrap administrator account if configured and missing."""
    if not settings.admin_email or not settings.admin_password:
        return None

    result = await db.execute(select(User).where(User.email == settings.admin_email))
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    admin = User(
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        display_name=settings.admin_display_name,
        role=ROLE_ADMIN,
    )
    db.add(admin)
    await db.commit()
    logger.info("Created bootstrap administrator %s", settings.admin_email)
    return admin
