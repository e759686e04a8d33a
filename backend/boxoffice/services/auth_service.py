"""
Authentication service: registration, login and guest buyers.
"""

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.logging import get_logger
from boxoffice.core.security import create_access_token, hash_password, verify_password
from boxoffice.models import User
from boxoffice.schemas.user import UserCreate, UserLogin

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new account with a hashed password.
    A guest row with the same email is upgraded in place so earlier tickets
    stay attached. Raises 409 if a registered account already has the email.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    existing = result.scalar_one_or_none()

    if existing and not existing.is_guest:
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    if existing:
        existing.full_name = user_data.full_name
        existing.hashed_password = hash_password(user_data.password)
        existing.role = user_data.role
        existing.is_guest = False
        user = existing
    else:
        user = User(
            email=email,
            full_name=user_data.full_name,
            hashed_password=hash_password(user_data.password),
            role=user_data.role,
            is_guest=False,
        )
        db.add(user)
    await db.flush()

    logger.info("user_registered", user_id=user.id, email=user.email, upgraded_guest=existing is not None)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate user and return JWT access token.
    Raises 401 if credentials are invalid. Guests have no password.
    """
    email = login_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not user.hashed_password or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id)
    return token


async def get_or_create_guest(db: AsyncSession, email: str, full_name: str) -> User:
    """
    Reuse the guest row for this email or create one.
    Registered emails must log in instead (409).
    """
    email = email.lower()
    result = await db.execute(select(User).where(User.email == email))
    existing = result.scalar_one_or_none()

    if existing and existing.is_guest:
        return existing
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account exists for this email, please log in",
        )

    guest = User(
        email=email,
        full_name=full_name,
        hashed_password=None,
        role="attendee",
        is_guest=True,
    )
    db.add(guest)
    await db.flush()

    logger.info("guest_created", user_id=guest.id, email=email)
    return guest
