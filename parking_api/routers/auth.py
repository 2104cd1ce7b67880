from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.db import get_db
from parking_api.core.errors import ApiError, ErrorCode
from parking_api.core.security import create_access_token, create_refresh_token, verify_password
from parking_api.models.user import User
from parking_api.schemas.auth import TokenPair

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenPair)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    res = await db.execute(select(User).where(User.username == form_data.username))
    user = res.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.password_hash):
        raise ApiError(ErrorCode.unauthorized, "Invalid username or password")

    if not user.is_active:
        raise ApiError(ErrorCode.unauthorized, "User is inactive")

    return TokenPair(
        access_token=create_access_token(user_id=user.id, role=user.role),
        refresh_token=create_refresh_token(user_id=user.id),
    )
