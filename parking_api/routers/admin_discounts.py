# parking_api/routers/admin_discounts.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from parking_api.core.db import get_db
from parking_api.core.deps import require_admin
from parking_api.models.user import User
from parking_api.schemas.discounts import (
    DiscountCreate,
    DiscountDeactivatedOut,
    DiscountDetailOut,
    DiscountOut,
    DiscountStatsOut,
    DiscountUpdate,
)
from parking_api.services.discounts import (
    admin_create_discount,
    admin_deactivate_discount,
    admin_discount_stats,
    admin_get_discount_by_code,
    admin_list_discounts,
    admin_update_discount,
)
from parking_api.services.reports_pdf import generate_discount_stats_pdf

router = APIRouter(prefix="/admin/discounts", tags=["Admin - Discounts"])


@router.post("", response_model=DiscountDetailOut, status_code=status.HTTP_201_CREATED)
async def create_discount(
    body: DiscountCreate,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await admin_create_discount(db, data=body, created_by=admin_user.username)


@router.get("", response_model=list[DiscountOut])
async def list_discounts(
    active: Optional[bool] = Query(default=None),
    include_expired: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await admin_list_discounts(db, active=active, include_expired=include_expired)


@router.get("/{code}", response_model=DiscountDetailOut)
async def get_discount(
    code: str,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await admin_get_discount_by_code(db, code=code)


@router.put("/{discount_id}", response_model=DiscountDetailOut)
async def update_discount(
    discount_id: int,
    body: DiscountUpdate,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await admin_update_discount(db, discount_id=discount_id, data=body)


@router.delete("/{discount_id}", response_model=DiscountDeactivatedOut)
async def deactivate_discount(
    discount_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    # soft delete: codes are never removed, the ledger keeps pointing at them
    await admin_deactivate_discount(db, discount_id=discount_id)
    return DiscountDeactivatedOut()


@router.get("/{discount_id}/stats", response_model=DiscountStatsOut)
async def discount_stats(
    discount_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await admin_discount_stats(db, discount_id=discount_id)


@router.get("/{discount_id}/stats.pdf")
async def discount_stats_pdf(
    discount_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    pdf_bytes, code = await generate_discount_stats_pdf(db, discount_id=discount_id)
    filename = f"discount_{code}_{discount_id}_stats.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
