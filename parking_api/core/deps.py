from __future__ import annotations

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.db import get_db
from parking_api.core.errors import ApiError, ErrorCode
from parking_api.core.security import ACCESS, TokenError, decode_token
from parking_api.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

_BEARER = {"WWW-Authenticate": "Bearer"}


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise ApiError(ErrorCode.unauthorized, "Missing bearer token", headers=_BEARER)

    try:
        payload = decode_token(token)
    except TokenError:
        raise ApiError(ErrorCode.unauthorized, "Invalid or expired token", headers=_BEARER)

    if payload.get("type") != ACCESS:
        raise ApiError(ErrorCode.unauthorized, "Not an access token", headers=_BEARER)

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise ApiError(ErrorCode.unauthorized, "Invalid user id in token", headers=_BEARER)

    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()

    if not user:
        raise ApiError(ErrorCode.unauthorized, "User not found", headers=_BEARER)
    if not user.is_active:
        raise ApiError(ErrorCode.unauthorized, "User inactive", headers=_BEARER)

    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise ApiError(ErrorCode.forbidden, "Admin only")
    return current_user
