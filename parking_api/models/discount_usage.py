from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from parking_api.core.db import Base


class DiscountUsage(Base):
    """Append-only: one row per applied discount, never updated or deleted."""

    __tablename__ = "discount_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    discount_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discounts.id", ondelete="RESTRICT"), nullable=False
    )
    # snapshot of the code at redemption time
    code: Mapped[str] = mapped_column(String(64), nullable=False)

    reservation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_discount_usages_discount_used", DiscountUsage.discount_id, DiscountUsage.used_at.desc())
Index("ix_discount_usages_reservation", DiscountUsage.reservation_id)
