from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Interval,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from parking_api.core.db import Base


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint("type IN ('percentage','fixed_amount')", name="discounts_type_check"),
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="discounts_percentage_check"),
        CheckConstraint("current_usage_count >= 0", name="discounts_usage_count_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # stored trimmed + uppercased, so a plain equality lookup is case-insensitive
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False, default=DiscountType.percentage.value)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    fixed_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # NULL = unlimited
    max_usage_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Restrictions (NULL = unrestricted)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    parking_lot_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("parking_lots.id", ondelete="SET NULL"), nullable=True
    )
    min_reservation_duration: Mapped[Optional[timedelta]] = mapped_column(Interval, nullable=True)
    max_reservation_duration: Mapped[Optional[timedelta]] = mapped_column(Interval, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def value(self) -> Optional[Decimal]:
        if self.type == DiscountType.percentage.value:
            return self.percentage
        return self.fixed_amount
