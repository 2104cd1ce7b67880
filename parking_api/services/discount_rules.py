"""
Discount eligibility.

A discount is checked against an ordered, fixed set of named restrictions.
The first failing restriction decides the message; the evaluation itself is
pure (`check_eligibility`), `validate_discount_code` only loads the rows it needs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.timeutils import ensure_aware, utc_now
from parking_api.models.discount import Discount
from parking_api.models.user import User

logger = logging.getLogger(__name__)

MSG_VALID = "Discount code is valid."
MSG_NOT_FOUND = "Discount code not found or inactive."
MSG_EXPIRED = "Discount code has expired."
MSG_USAGE_LIMIT = "Discount code has reached maximum usage limit."
MSG_WRONG_USER = "This discount code is not available for your account."
MSG_USER_NOT_FOUND = "User not found."
MSG_WRONG_ORGANIZATION = "This discount code is only available for specific organizations."
MSG_WRONG_PARKING_LOT = "This discount code is not valid for this parking lot."


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


@dataclass(frozen=True)
class Requester:
    user_id: int
    organization_id: Optional[int]


@dataclass(frozen=True)
class EligibilityContext:
    user_id: int
    requester: Optional[Requester]  # None: the user row does not exist
    parking_lot_id: int
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class DiscountCheck:
    is_valid: bool
    message: str
    discount: Optional[Discount] = None


# a rule returns None when satisfied, otherwise the rejection message
RuleFn = Callable[[Discount, Optional[EligibilityContext], datetime], Optional[str]]


@dataclass(frozen=True)
class Restriction:
    name: str
    check: RuleFn


def _hours(td: timedelta) -> str:
    return f"{td.total_seconds() / 3600:.1f}"


def _not_expired(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if ensure_aware(d.valid_until) < now:
        return MSG_EXPIRED
    return None


def _usage_available(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if d.max_usage_count is not None and d.current_usage_count >= d.max_usage_count:
        return MSG_USAGE_LIMIT
    return None


def _user_matches(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if d.user_id is not None and d.user_id != ctx.user_id:
        return MSG_WRONG_USER
    return None


def _requester_known(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if ctx.requester is None:
        return MSG_USER_NOT_FOUND
    return None


def _organization_matches(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if d.organization_id is not None and ctx.requester.organization_id != d.organization_id:
        return MSG_WRONG_ORGANIZATION
    return None


def _parking_lot_matches(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    if d.parking_lot_id is not None and d.parking_lot_id != ctx.parking_lot_id:
        return MSG_WRONG_PARKING_LOT
    return None


def _min_duration(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    bound = d.min_reservation_duration
    if bound is not None and ctx.duration < bound:
        return f"Minimum reservation duration for this code is {_hours(bound)} hours."
    return None


def _max_duration(d: Discount, ctx: Optional[EligibilityContext], now: datetime) -> Optional[str]:
    bound = d.max_reservation_duration
    if bound is not None and ctx.duration > bound:
        return f"Maximum reservation duration for this code is {_hours(bound)} hours."
    return None


# Checks that need nothing but the discount row (estimate-only validation).
BASIC_RULES: tuple[Restriction, ...] = (
    Restriction("expiry", _not_expired),
    Restriction("usage_limit", _usage_available),
)

# Full check for pricing a reservation. Order is part of the contract.
RESERVATION_RULES: tuple[Restriction, ...] = BASIC_RULES + (
    Restriction("user", _user_matches),
    Restriction("requester", _requester_known),
    Restriction("organization", _organization_matches),
    Restriction("parking_lot", _parking_lot_matches),
    Restriction("min_duration", _min_duration),
    Restriction("max_duration", _max_duration),
)


def check_eligibility(
    discount: Optional[Discount],
    ctx: Optional[EligibilityContext],
    *,
    now: Optional[datetime] = None,
    rules: tuple[Restriction, ...] = RESERVATION_RULES,
) -> DiscountCheck:
    if discount is None or not discount.is_active:
        return DiscountCheck(False, MSG_NOT_FOUND, None)

    now = now or utc_now()
    for rule in rules:
        reason = rule.check(discount, ctx, now)
        if reason is not None:
            return DiscountCheck(False, reason, None)

    return DiscountCheck(True, MSG_VALID, discount)


async def get_active_discount(
    db: AsyncSession,
    code: str,
    *,
    lock: bool = False,
) -> Optional[Discount]:
    stmt = select(Discount).where(
        func.upper(Discount.code) == normalize_code(code),
        Discount.is_active.is_(True),
    )
    if lock:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def _get_requester(db: AsyncSession, user_id: int) -> Optional[Requester]:
    res = await db.execute(select(User.id, User.organization_id).where(User.id == user_id))
    row = res.one_or_none()
    if row is None:
        return None
    return Requester(user_id=int(row.id), organization_id=row.organization_id)


async def validate_discount_code(
    db: AsyncSession,
    *,
    code: str,
    user_id: int,
    parking_lot_id: int,
    start: datetime,
    end: datetime,
    lock: bool = False,
) -> DiscountCheck:
    """
    Decide whether `code` may be applied to a reservation of `user_id` at
    `parking_lot_id` for [start, end). Always reads current rows.

    Pass lock=True inside a write transaction to hold the discount row
    (SELECT ... FOR UPDATE) until commit.
    """
    discount = await get_active_discount(db, code, lock=lock)
    if discount is None:
        logger.info("discount %r rejected for user %s: %s", normalize_code(code), user_id, MSG_NOT_FOUND)
        return DiscountCheck(False, MSG_NOT_FOUND, None)

    ctx = EligibilityContext(
        user_id=user_id,
        requester=await _get_requester(db, user_id),
        parking_lot_id=parking_lot_id,
        start=start,
        end=end,
    )
    result = check_eligibility(discount, ctx)
    if not result.is_valid:
        logger.info("discount %s rejected for user %s: %s", discount.code, user_id, result.message)
    return result
