# parking_api/services/discounts.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.errors import ApiError, ErrorCode
from parking_api.core.timeutils import ensure_aware, utc_now
from parking_api.models.discount import Discount, DiscountType
from parking_api.models.discount_usage import DiscountUsage
from parking_api.models.user import User
from parking_api.schemas.discounts import (
    DiscountCreate,
    DiscountStatsOut,
    DiscountUpdate,
    DiscountUsageRecordOut,
    DiscountValidationOut,
)
from parking_api.services.discount_rules import (
    BASIC_RULES,
    MSG_NOT_FOUND,
    check_eligibility,
    get_active_discount,
    normalize_code,
)
from parking_api.services.pricing import CENT, ZERO, calculate_discount_amount

logger = logging.getLogger(__name__)

RECENT_USAGES_LIMIT = 10

MSG_DUPLICATE_CODE = "Discount code already exists."


def _bad_request(message: str) -> ApiError:
    return ApiError(ErrorCode.validation_error, message)


def _ensure_future(valid_until) -> None:
    if ensure_aware(valid_until) <= utc_now():
        raise _bad_request("ValidUntil must be in the future.")


async def _code_taken(db: AsyncSession, code: str) -> bool:
    res = await db.execute(select(Discount.id).where(func.upper(Discount.code) == code))
    return res.scalar_one_or_none() is not None


async def _get_discount_or_404(db: AsyncSession, discount_id: int) -> Discount:
    discount = await db.get(Discount, discount_id)
    if not discount:
        raise ApiError(ErrorCode.not_found, "Discount not found.")
    return discount


# -------------------------
# Admin
# -------------------------

async def admin_create_discount(db: AsyncSession, *, data: DiscountCreate, created_by: str) -> Discount:
    code = normalize_code(data.code or "")
    if not code:
        raise _bad_request("Discount code is required.")

    percentage = Decimal("0")
    fixed_amount: Optional[Decimal] = None

    if data.type == DiscountType.percentage:
        if data.percentage is None or data.percentage <= 0 or data.percentage > 100:
            raise _bad_request("Percentage must be between 0 and 100.")
        percentage = data.percentage
    else:
        if data.fixed_amount is None or data.fixed_amount <= 0:
            raise _bad_request("Fixed amount must be greater than 0.")
        fixed_amount = data.fixed_amount

    _ensure_future(data.valid_until)

    if (
        data.min_reservation_duration is not None
        and data.max_reservation_duration is not None
        and data.min_reservation_duration > data.max_reservation_duration
    ):
        raise _bad_request("Minimum reservation duration cannot exceed maximum reservation duration.")

    if await _code_taken(db, code):
        raise ApiError(ErrorCode.duplicate_code, MSG_DUPLICATE_CODE)

    discount = Discount(
        code=code,
        type=data.type.value,
        percentage=percentage,
        fixed_amount=fixed_amount,
        valid_until=ensure_aware(data.valid_until),
        max_usage_count=data.max_usage_count,
        current_usage_count=0,
        is_active=True,
        user_id=data.user_id,
        organization_id=data.organization_id,
        parking_lot_id=data.parking_lot_id,
        min_reservation_duration=data.min_reservation_duration,
        max_reservation_duration=data.max_reservation_duration,
        created_at=utc_now(),
        created_by=created_by,
    )
    db.add(discount)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # lost a race with a concurrent create of the same code
        if await _code_taken(db, code):
            raise ApiError(ErrorCode.duplicate_code, MSG_DUPLICATE_CODE)
        raise _bad_request("DB constraint failed (invalid user/organization/parking lot id?)")

    await db.refresh(discount)
    logger.info("discount %s created by %s (id=%s)", discount.code, created_by, discount.id)
    return discount


async def admin_list_discounts(
    db: AsyncSession,
    *,
    active: Optional[bool],
    include_expired: bool,
) -> list[Discount]:
    stmt = select(Discount)
    if active is not None:
        stmt = stmt.where(Discount.is_active == active)
    stmt = stmt.order_by(Discount.id.desc())

    res = await db.execute(stmt)
    rows = list(res.scalars().all())

    if include_expired:
        return rows

    now = utc_now()
    return [d for d in rows if ensure_aware(d.valid_until) > now]


async def admin_get_discount_by_code(db: AsyncSession, *, code: str) -> Discount:
    res = await db.execute(select(Discount).where(func.upper(Discount.code) == normalize_code(code)))
    discount = res.scalar_one_or_none()
    if not discount:
        raise ApiError(ErrorCode.not_found, "Discount code not found.")
    return discount


async def admin_update_discount(db: AsyncSession, *, discount_id: int, data: DiscountUpdate) -> Discount:
    discount = await _get_discount_or_404(db, discount_id)

    if data.valid_until is not None:
        _ensure_future(data.valid_until)

    if data.is_active is not None:
        discount.is_active = data.is_active
    if data.valid_until is not None:
        discount.valid_until = ensure_aware(data.valid_until)
    if data.max_usage_count is not None:
        discount.max_usage_count = data.max_usage_count

    await db.commit()
    await db.refresh(discount)
    logger.info(
        "discount %s updated (active=%s valid_until=%s max_usage=%s)",
        discount.code,
        discount.is_active,
        discount.valid_until,
        discount.max_usage_count,
    )
    return discount


async def admin_deactivate_discount(db: AsyncSession, *, discount_id: int) -> Discount:
    discount = await _get_discount_or_404(db, discount_id)
    discount.is_active = False
    await db.commit()
    await db.refresh(discount)
    logger.info("discount %s deactivated", discount.code)
    return discount


async def admin_discount_stats(db: AsyncSession, *, discount_id: int) -> DiscountStatsOut:
    discount = await _get_discount_or_404(db, discount_id)

    res = await db.execute(
        select(DiscountUsage, User.username)
        .outerjoin(User, User.id == DiscountUsage.user_id)
        .where(DiscountUsage.discount_id == discount_id)
        .order_by(DiscountUsage.used_at.desc(), DiscountUsage.id.desc())
    )
    rows = res.all()
    usages = [u for u, _ in rows]

    total = sum((Decimal(u.discount_amount) for u in usages), ZERO)
    average = (total / len(usages)).quantize(CENT) if usages else ZERO
    used_at = [ensure_aware(u.used_at) for u in usages]

    return DiscountStatsOut(
        id=discount.id,
        code=discount.code,
        times_used=len(usages),
        total_amount_saved=total,
        average_discount_amount=average,
        unique_users=len({u.user_id for u in usages}),
        first_used=min(used_at) if used_at else None,
        last_used=max(used_at) if used_at else None,
        recent_usages=[
            DiscountUsageRecordOut(
                reservation_id=u.reservation_id,
                user_id=u.user_id,
                username=username or "Unknown",
                discount_amount=u.discount_amount,
                used_at=ensure_aware(u.used_at),
            )
            for u, username in rows[:RECENT_USAGES_LIMIT]
        ],
    )


# -------------------------
# User
# -------------------------

async def estimate_discount(
    db: AsyncSession,
    *,
    code: str,
    amount: Optional[Decimal],
) -> DiscountValidationOut:
    """
    Estimate-only check: active / expiry / usage limit. No reservation window,
    so user, organization, lot and duration restrictions are not evaluated.
    Nothing is consumed.
    """
    discount = await get_active_discount(db, code)
    if discount is None:
        raise ApiError(ErrorCode.not_found, MSG_NOT_FOUND)

    result = check_eligibility(discount, None, rules=BASIC_RULES)
    if not result.is_valid:
        raise ApiError(ErrorCode.invalid_discount, result.message)

    estimated = ZERO
    if amount is not None and amount > 0:
        estimated = calculate_discount_amount(discount, amount)

    return DiscountValidationOut(
        is_valid=True,
        code=discount.code,
        discount_amount=estimated,
        message=result.message,
        type=DiscountType(discount.type),
        value=discount.value,
    )
