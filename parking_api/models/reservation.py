from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from parking_api.core.db import Base


class ReservationStatus(str, Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("status IN ('confirmed','cancelled')", name="reservations_status_check"),
        CheckConstraint("end_time > start_time", name="reservations_window_check"),
    )

    # uuid4 string, generated by the service
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    parking_lot_id: Mapped[int] = mapped_column(Integer, ForeignKey("parking_lots.id"), nullable=False)
    vehicle_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=False)

    # naive UTC instants
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ReservationStatus.confirmed.value)

    original_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # final price: original_cost - discount_amount, floored at 0
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


Index("ix_reservations_vehicle_window", Reservation.vehicle_id, Reservation.start_time, Reservation.end_time)
Index("ix_reservations_user", Reservation.user_id)
