from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.db import get_db
from parking_api.core.deps import get_current_user
from parking_api.models.user import User
from parking_api.schemas.reservations import ReservationCancelledOut, ReservationIn, ReservationOut
from parking_api.services.reservations import (
    cancel_reservation,
    create_reservation,
    get_my_reservation,
    list_my_reservations,
    update_reservation,
)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create(
    payload: ReservationIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await create_reservation(db, user=current_user, data=payload)


@router.get("", response_model=list[ReservationOut])
async def list_mine(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_my_reservations(db, user=current_user)


@router.get("/{reservation_id}", response_model=ReservationOut)
async def get_one(
    reservation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await get_my_reservation(db, user=current_user, reservation_id=reservation_id)


@router.put("/{reservation_id}", response_model=ReservationOut)
async def update(
    reservation_id: str,
    payload: ReservationIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await update_reservation(db, user=current_user, reservation_id=reservation_id, data=payload)


@router.post("/{reservation_id}/cancel", response_model=ReservationCancelledOut)
async def cancel(
    reservation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await cancel_reservation(db, user=current_user, reservation_id=reservation_id)
    return ReservationCancelledOut()
