from __future__ import annotations

from fastapi import APIRouter, Depends

from parking_api.core.deps import get_current_user
from parking_api.models.user import User
from parking_api.schemas.auth import MeOut

router = APIRouter(tags=["Me"])


@router.get("/me", response_model=MeOut)
async def me(current_user: User = Depends(get_current_user)) -> MeOut:
    return MeOut(
        id=int(current_user.id),
        username=current_user.username,
        role=current_user.role,
        name=current_user.name,
        email=current_user.email,
        organization_id=current_user.organization_id,
        is_active=bool(current_user.is_active),
    )
