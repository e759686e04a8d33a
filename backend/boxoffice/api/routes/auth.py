"""
Authentication endpoints: register, login and current user.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.security import get_current_user_id
from boxoffice.db.session import get_db
from boxoffice.schemas.user import Token, UserCreate, UserLogin, UserResponse
from boxoffice.services.auth_service import authenticate_user, get_user, register_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user account."""
    return await register_user(db, user_data)


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    token = await authenticate_user(db, login_data)
    return Token(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await get_user(db, user_id)
