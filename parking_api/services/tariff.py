from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

# used when a lot has no day tariff configured
DEFAULT_DAY_TARIFF = Decimal("999")

# stays shorter than this are free
GRACE_PERIOD_SECONDS = 180


class TariffSchedule(Protocol):
    tariff: Decimal
    day_tariff: Optional[Decimal]


@dataclass(frozen=True)
class TariffQuote:
    price: Decimal
    billed_hours: int
    extra_days: int


def _day_tariff(lot: TariffSchedule) -> Decimal:
    if lot.day_tariff is None:
        return DEFAULT_DAY_TARIFF
    return Decimal(lot.day_tariff)


def calculate_price(lot: TariffSchedule, start: datetime, end: datetime) -> TariffQuote:
    """
    Base price for parking at `lot` from `start` to `end`.

    - every started hour is billed (ceiling)
    - under GRACE_PERIOD_SECONDS: free
    - crossing midnight: day tariff for every calendar day touched
    - same day: hourly tariff, capped at the day tariff
    """
    seconds = (end - start).total_seconds()
    billed_hours = math.ceil(seconds / 3600)

    if seconds < GRACE_PERIOD_SECONDS:
        return TariffQuote(price=Decimal("0"), billed_hours=billed_hours, extra_days=0)

    day_tariff = _day_tariff(lot)

    if end.date() > start.date():
        days = (end.date() - start.date()).days + 1
        return TariffQuote(price=day_tariff * days, billed_hours=billed_hours, extra_days=days)

    hourly = Decimal(lot.tariff) * billed_hours
    if hourly > day_tariff:
        hourly = day_tariff
    return TariffQuote(price=hourly, billed_hours=billed_hours, extra_days=0)
