from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from parking_api.core.timeutils import utc_now
from parking_api.models.discount import Discount
from parking_api.models.discount_usage import DiscountUsage
from parking_api.services.discount_rules import MSG_NOT_FOUND, MSG_USAGE_LIMIT

logger = logging.getLogger(__name__)


class DiscountNotRedeemable(Exception):
    """The code was valid when checked but can no longer be claimed."""


class DiscountUsageLimitReached(DiscountNotRedeemable):
    pass


class DiscountInactive(DiscountNotRedeemable):
    pass


async def _claim_usage(db: AsyncSession, discount_id: int) -> int | None:
    """
    Atomically bump current_usage_count if the code is still usable.
    Returns the new count, or None when the cap was hit or the code was deactivated.
    """
    stmt = (
        update(Discount)
        .where(
            Discount.id == discount_id,
            Discount.is_active.is_(True),
            or_(
                Discount.max_usage_count.is_(None),
                Discount.current_usage_count < Discount.max_usage_count,
            ),
        )
        .values(current_usage_count=Discount.current_usage_count + 1)
        .returning(Discount.current_usage_count)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def _refusal(db: AsyncSession, discount_id: int) -> DiscountNotRedeemable:
    res = await db.execute(select(Discount.is_active).where(Discount.id == discount_id))
    if not res.scalar_one_or_none():
        return DiscountInactive(MSG_NOT_FOUND)
    return DiscountUsageLimitReached(MSG_USAGE_LIMIT)


async def record_discount_usage(
    db: AsyncSession,
    discount: Discount,
    *,
    reservation_id: str,
    user_id: int,
    original_amount: Decimal,
    discount_amount: Decimal,
    final_amount: Decimal,
) -> DiscountUsage:
    """
    Ledger row + usage counter increment, committed in the caller's transaction.

    Anything the caller already added to the session (the reservation) is
    committed together with the usage. When the code can no longer be claimed
    the whole transaction is rolled back and a DiscountNotRedeemable subclass
    is raised: DiscountUsageLimitReached for a lost race on the last use,
    DiscountInactive for a code deactivated in the meantime.
    """
    code = discount.code
    discount_id = discount.id

    try:
        new_count = await _claim_usage(db, discount_id)
        if new_count is None:
            raise await _refusal(db, discount_id)

        usage = DiscountUsage(
            discount_id=discount_id,
            code=code,
            reservation_id=reservation_id,
            user_id=user_id,
            original_amount=original_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            used_at=utc_now(),
        )
        db.add(usage)

        # mirror the database value without scheduling another UPDATE
        set_committed_value(discount, "current_usage_count", new_count)

        await db.commit()

    except DiscountNotRedeemable as e:
        await db.rollback()
        logger.warning("discount %s not redeemed on %s: %s", code, reservation_id, e)
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "discount %s used on reservation %s by user %s (count=%s)",
        code,
        reservation_id,
        user_id,
        new_count,
    )
    return usage
