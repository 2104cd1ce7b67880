from decimal import Decimal

import pytest
from sqlalchemy import func, select

from parking_api.models import DiscountUsage
from parking_api.services.discount_usage import (
    DiscountInactive,
    DiscountUsageLimitReached,
    record_discount_usage,
)


async def _usages(db, discount_id):
    res = await db.execute(
        select(DiscountUsage).where(DiscountUsage.discount_id == discount_id).order_by(DiscountUsage.id)
    )
    return list(res.scalars().all())


async def test_sequential_usages_increment_counter_and_ledger(db, user, make_discount):
    discount = await make_discount("TWICE")
    assert discount.current_usage_count == 0

    await record_discount_usage(
        db,
        discount,
        reservation_id="RES-1",
        user_id=user.id,
        original_amount=Decimal("10.00"),
        discount_amount=Decimal("2.00"),
        final_amount=Decimal("8.00"),
    )
    assert discount.current_usage_count == 1

    await record_discount_usage(
        db,
        discount,
        reservation_id="RES-2",
        user_id=user.id,
        original_amount=Decimal("20.00"),
        discount_amount=Decimal("4.00"),
        final_amount=Decimal("16.00"),
    )
    assert discount.current_usage_count == 2

    await db.refresh(discount)
    assert discount.current_usage_count == 2

    rows = await _usages(db, discount.id)
    assert [r.reservation_id for r in rows] == ["RES-1", "RES-2"]
    assert [r.discount_amount for r in rows] == [Decimal("2.00"), Decimal("4.00")]
    assert [r.final_amount for r in rows] == [Decimal("8.00"), Decimal("16.00")]
    assert all(r.code == "TWICE" for r in rows)
    assert all(r.user_id == user.id for r in rows)


async def test_usage_cap_enforced_by_the_increment(db, user, make_discount):
    discount = await make_discount("LIMITED", max_usage_count=1)

    await record_discount_usage(
        db,
        discount,
        reservation_id="RES-1",
        user_id=user.id,
        original_amount=Decimal("10.00"),
        discount_amount=Decimal("2.00"),
        final_amount=Decimal("8.00"),
    )

    # a second caller still holding a stale, already-validated object
    with pytest.raises(DiscountUsageLimitReached, match="maximum usage limit"):
        await record_discount_usage(
            db,
            discount,
            reservation_id="RES-2",
            user_id=user.id,
            original_amount=Decimal("10.00"),
            discount_amount=Decimal("2.00"),
            final_amount=Decimal("8.00"),
        )

    await db.refresh(discount)
    assert discount.current_usage_count == 1

    count = await db.scalar(select(func.count(DiscountUsage.id)).where(DiscountUsage.discount_id == discount.id))
    assert count == 1


async def test_deactivated_code_cannot_be_claimed(db, user, make_discount):
    discount = await make_discount("KILLED")
    discount_id = discount.id
    discount.is_active = False
    await db.commit()

    with pytest.raises(DiscountInactive, match="not found or inactive"):
        await record_discount_usage(
            db,
            discount,
            reservation_id="RES-1",
            user_id=user.id,
            original_amount=Decimal("10.00"),
            discount_amount=Decimal("1.00"),
            final_amount=Decimal("9.00"),
        )

    assert await _usages(db, discount_id) == []
