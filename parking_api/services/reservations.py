# parking_api/services/reservations.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.errors import ApiError, ErrorCode
from parking_api.core.timeutils import to_naive_utc, utc_now
from parking_api.models.discount import Discount
from parking_api.models.parking_lot import ParkingLot
from parking_api.models.reservation import Reservation, ReservationStatus
from parking_api.models.user import User
from parking_api.models.vehicle import Vehicle
from parking_api.schemas.reservations import ReservationIn
from parking_api.services.discount_rules import validate_discount_code
from parking_api.services.discount_usage import DiscountNotRedeemable, record_discount_usage
from parking_api.services.pricing import PriceBreakdown, calculate_price_with_discount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationWindow:
    license_plate: str
    start: datetime  # naive UTC
    end: datetime  # naive UTC
    parking_lot_id: int


# -------------------------
# Helpers
# -------------------------

def _parse_request(data: ReservationIn) -> ReservationWindow:
    if (
        not (data.license_plate or "").strip()
        or data.start_date is None
        or data.end_date is None
        or not data.parking_lot
        or data.parking_lot <= 0
    ):
        raise ApiError(
            ErrorCode.missing_fields,
            "LicensePlate, StartDate, EndDate and ParkingLot are required.",
        )

    start = to_naive_utc(data.start_date)
    end = to_naive_utc(data.end_date)
    if end <= start:
        raise ApiError(ErrorCode.invalid_dates, "EndDate must be after StartDate.")

    return ReservationWindow(
        license_plate=data.license_plate.strip(),
        start=start,
        end=end,
        parking_lot_id=int(data.parking_lot),
    )


async def _resolve_vehicle_id(db: AsyncSession, *, user_id: int, license_plate: str) -> Optional[int]:
    res = await db.execute(
        select(Vehicle.id)
        .where(
            Vehicle.user_id == user_id,
            func.upper(Vehicle.license_plate) == license_plate.strip().upper(),
        )
        .order_by(Vehicle.id.asc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def _ensure_no_conflict(
    db: AsyncSession,
    *,
    vehicle_id: int,
    window: ReservationWindow,
    exclude_reservation_id: Optional[str] = None,
) -> None:
    # half-open [start, end): a window ending exactly at another's start does not clash
    stmt = select(Reservation.id).where(
        Reservation.vehicle_id == vehicle_id,
        Reservation.status != ReservationStatus.cancelled.value,
        Reservation.start_time < window.end,
        Reservation.end_time > window.start,
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(Reservation.id != exclude_reservation_id)

    res = await db.execute(stmt.limit(1))
    clash = res.scalar_one_or_none()
    if clash is not None:
        logger.info("reservation conflict for vehicle %s with %s", vehicle_id, clash)
        raise ApiError(
            ErrorCode.reservation_conflict,
            "A reservation for this vehicle already exists during the specified time.",
        )


async def _get_lot_or_404(db: AsyncSession, parking_lot_id: int) -> ParkingLot:
    lot = await db.get(ParkingLot, parking_lot_id)
    if not lot:
        raise ApiError(ErrorCode.not_found, "Parking lot not found.")
    return lot


async def _get_discount_for(
    db: AsyncSession,
    *,
    code: Optional[str],
    user_id: int,
    lot: ParkingLot,
    window: ReservationWindow,
) -> Optional[Discount]:
    if not (code or "").strip():
        return None

    check = await validate_discount_code(
        db,
        code=code,
        user_id=user_id,
        parking_lot_id=lot.id,
        start=window.start,
        end=window.end,
        lock=True,
    )
    if not check.is_valid:
        raise ApiError(ErrorCode.invalid_discount, check.message)
    return check.discount


def _apply_price(reservation: Reservation, price: PriceBreakdown, discount: Optional[Discount]) -> None:
    reservation.original_cost = price.original
    reservation.discount_code = discount.code if discount is not None else None
    reservation.discount_amount = price.discount_amount
    reservation.cost = price.final


async def _save(
    db: AsyncSession,
    reservation: Reservation,
    *,
    user_id: int,
    discount: Optional[Discount],
    price: PriceBreakdown,
) -> None:
    """Reservation row and (when discounted) usage ledger + counter in one commit."""
    if discount is None:
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return

    try:
        await record_discount_usage(
            db,
            discount,
            reservation_id=reservation.id,
            user_id=user_id,
            original_amount=price.original,
            discount_amount=price.discount_amount,
            final_amount=price.final,
        )
    except DiscountNotRedeemable as e:
        raise ApiError(ErrorCode.invalid_discount, str(e))


async def _get_own_reservation(db: AsyncSession, *, reservation_id: str, user: User) -> Reservation:
    reservation = await db.get(Reservation, reservation_id)
    if not reservation:
        raise ApiError(ErrorCode.not_found, "Reservation not found.")
    if reservation.user_id != user.id:
        raise ApiError(ErrorCode.forbidden, "This reservation belongs to another user.")
    return reservation


# -------------------------
# Lifecycle
# -------------------------

async def create_reservation(db: AsyncSession, *, user: User, data: ReservationIn) -> Reservation:
    window = _parse_request(data)

    vehicle_id = await _resolve_vehicle_id(db, user_id=user.id, license_plate=window.license_plate)
    if vehicle_id is not None:
        await _ensure_no_conflict(db, vehicle_id=vehicle_id, window=window)

    lot = await _get_lot_or_404(db, window.parking_lot_id)

    if vehicle_id is None:
        raise ApiError(
            ErrorCode.vehicle_not_found,
            "Vehicle with provided license plate not found for this user.",
        )

    discount = await _get_discount_for(db, code=data.discount_code, user_id=user.id, lot=lot, window=window)
    price = calculate_price_with_discount(lot, window.start, window.end, discount)

    reservation = Reservation(
        id=str(uuid4()),
        user_id=user.id,
        parking_lot_id=lot.id,
        vehicle_id=vehicle_id,
        start_time=window.start,
        end_time=window.end,
        status=ReservationStatus.confirmed.value,
        created_at=utc_now(),
    )
    _apply_price(reservation, price, discount)
    db.add(reservation)

    await _save(db, reservation, user_id=user.id, discount=discount, price=price)

    logger.info(
        "reservation %s created for user %s at lot %s: original=%s discount=%s final=%s",
        reservation.id,
        user.id,
        lot.id,
        price.original,
        price.discount_amount,
        price.final,
    )
    return reservation


async def update_reservation(
    db: AsyncSession,
    *,
    user: User,
    reservation_id: str,
    data: ReservationIn,
) -> Reservation:
    reservation = await _get_own_reservation(db, reservation_id=reservation_id, user=user)
    if reservation.status == ReservationStatus.cancelled.value:
        raise ApiError(ErrorCode.already_cancelled, "Cancelled reservations cannot be changed.")
    window = _parse_request(data)

    lot = await _get_lot_or_404(db, window.parking_lot_id)

    vehicle_id = await _resolve_vehicle_id(db, user_id=user.id, license_plate=window.license_plate)
    if vehicle_id is None:
        raise ApiError(
            ErrorCode.vehicle_not_found,
            "Vehicle with provided license plate not found for this user.",
        )
    await _ensure_no_conflict(db, vehicle_id=vehicle_id, window=window, exclude_reservation_id=reservation.id)

    discount = await _get_discount_for(db, code=data.discount_code, user_id=user.id, lot=lot, window=window)
    price = calculate_price_with_discount(lot, window.start, window.end, discount)

    reservation.parking_lot_id = lot.id
    reservation.vehicle_id = vehicle_id
    reservation.start_time = window.start
    reservation.end_time = window.end
    _apply_price(reservation, price, discount)

    await _save(db, reservation, user_id=user.id, discount=discount, price=price)

    logger.info("reservation %s updated: final=%s", reservation.id, price.final)
    return reservation


async def cancel_reservation(db: AsyncSession, *, user: User, reservation_id: str) -> Reservation:
    # discount usage stays consumed
    reservation = await _get_own_reservation(db, reservation_id=reservation_id, user=user)

    if reservation.status == ReservationStatus.cancelled.value:
        raise ApiError(ErrorCode.already_cancelled, "Reservation is already cancelled.")

    reservation.status = ReservationStatus.cancelled.value
    await db.commit()

    logger.info("reservation %s cancelled by user %s", reservation.id, user.id)
    return reservation


async def list_my_reservations(db: AsyncSession, *, user: User) -> list[Reservation]:
    res = await db.execute(
        select(Reservation)
        .where(Reservation.user_id == user.id)
        .order_by(Reservation.start_time.desc())
    )
    return list(res.scalars().all())


async def get_my_reservation(db: AsyncSession, *, user: User, reservation_id: str) -> Reservation:
    return await _get_own_reservation(db, reservation_id=reservation_id, user=user)
