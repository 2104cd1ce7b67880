from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReservationIn(BaseModel):
    """Create/update body. Required fields are enforced by the service (missing_fields)."""

    license_plate: Optional[str] = Field(default=None, max_length=32)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    parking_lot: Optional[int] = None
    discount_code: Optional[str] = Field(default=None, max_length=64)


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    parking_lot_id: int
    vehicle_id: int
    start_time: datetime
    end_time: datetime
    status: str

    original_cost: Decimal
    discount_code: Optional[str]
    discount_amount: Decimal
    cost: Decimal

    created_at: datetime


class ReservationCancelledOut(BaseModel):
    status: str = "Success"
    message: str = "Reservation cancelled successfully."
