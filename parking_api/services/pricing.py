from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional

from parking_api.models.discount import Discount, DiscountType
from parking_api.services.tariff import TariffSchedule, calculate_price

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class PriceBreakdown:
    original: Decimal
    discount_amount: Decimal
    final: Decimal


def calculate_discount_amount(discount: Discount, original_amount: Decimal) -> Decimal:
    amount = Decimal(original_amount)
    if amount <= ZERO:
        return ZERO

    if discount.type == DiscountType.percentage.value:
        pct = Decimal(discount.percentage or 0)
        # banker's rounding: 0.125 -> 0.12
        return (amount * pct / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_EVEN)

    # fixed amount never exceeds the bill
    return min(Decimal(discount.fixed_amount or 0), amount)


def calculate_price_with_discount(
    lot: TariffSchedule,
    start: datetime,
    end: datetime,
    discount: Optional[Discount],
) -> PriceBreakdown:
    original = calculate_price(lot, start, end).price

    if discount is None:
        return PriceBreakdown(original=original, discount_amount=ZERO, final=original)

    discount_amount = calculate_discount_amount(discount, original)
    final = max(ZERO, original - discount_amount)
    return PriceBreakdown(original=original, discount_amount=discount_amount, final=final)
