from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from parking_api.core.config import settings

ACCESS = "access"
REFRESH = "refresh"

BCRYPT_ROUNDS = 12


class TokenError(Exception):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # seeded accounts carry a placeholder instead of a bcrypt hash
        return False


def _issue(user_id: int, token_type: str, ttl: timedelta, **claims: Any) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
        **claims,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_access_token(*, user_id: int, role: str) -> str:
    # informational only: require_admin reads the role from the users row
    return _issue(user_id, ACCESS, timedelta(minutes=settings.JWT_ACCESS_MINUTES), role=role)


def create_refresh_token(*, user_id: int) -> str:
    return _issue(user_id, REFRESH, timedelta(days=settings.JWT_REFRESH_DAYS))


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Invalid token") from e
