from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.db import get_db
from parking_api.core.deps import get_current_user
from parking_api.models.user import User
from parking_api.schemas.discounts import DiscountValidationOut
from parking_api.services.discounts import estimate_discount

router = APIRouter(prefix="/discounts", tags=["Discounts"])


@router.get("/validate/{code}", response_model=DiscountValidationOut)
async def validate_code(
    code: str,
    amount: Optional[Decimal] = Query(default=None, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await estimate_discount(db, code=code, amount=amount)
