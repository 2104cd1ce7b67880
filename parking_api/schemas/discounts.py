# parking_api/schemas/discounts.py
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from parking_api.models.discount import DiscountType


class DiscountCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # presence/range rules are checked by the service so they surface as validation_error
    code: Optional[str] = Field(default=None, max_length=64)
    type: DiscountType = DiscountType.percentage
    percentage: Optional[Decimal] = None
    fixed_amount: Optional[Decimal] = None
    valid_until: datetime

    max_usage_count: Optional[int] = Field(default=None, ge=0)

    user_id: Optional[int] = None
    organization_id: Optional[int] = None
    parking_lot_id: Optional[int] = None
    min_reservation_duration: Optional[timedelta] = None
    max_reservation_duration: Optional[timedelta] = None


class DiscountUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_active: Optional[bool] = None
    valid_until: Optional[datetime] = None
    max_usage_count: Optional[int] = Field(default=None, ge=0)


class DiscountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    type: DiscountType
    percentage: Optional[Decimal]
    fixed_amount: Optional[Decimal]
    valid_until: datetime
    is_active: bool
    current_usage_count: int
    max_usage_count: Optional[int]


class DiscountDetailOut(DiscountOut):
    user_id: Optional[int]
    organization_id: Optional[int]
    parking_lot_id: Optional[int]
    min_reservation_duration: Optional[timedelta]
    max_reservation_duration: Optional[timedelta]
    created_at: datetime
    created_by: Optional[str]


class DiscountUsageRecordOut(BaseModel):
    reservation_id: str
    user_id: int
    username: str
    discount_amount: Decimal
    used_at: datetime


class DiscountStatsOut(BaseModel):
    id: int
    code: str
    times_used: int
    total_amount_saved: Decimal
    average_discount_amount: Decimal
    unique_users: int
    first_used: Optional[datetime]
    last_used: Optional[datetime]
    recent_usages: list[DiscountUsageRecordOut] = Field(default_factory=list)


class DiscountDeactivatedOut(BaseModel):
    status: str = "Success"
    message: str = "Discount code deactivated successfully."


class DiscountValidationOut(BaseModel):
    is_valid: bool
    code: str
    discount_amount: Decimal
    message: str
    type: Optional[DiscountType] = None
    value: Optional[Decimal] = None
