"""
Earnings ledger and shift schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional
from jeepney_backend.app.models.earnings_enums import ShiftStatus, ShiftAction


class EarningsBucket(BaseModel):
    trip_count: int
    total_amount: float


class AllTimeBucket(EarningsBucket):
    average_fare: float


class EarningsSummary(BaseModel):
    driver_id: int
    as_of: datetime
    business_date: date
    today: EarningsBucket
    week: EarningsBucket
    month: EarningsBucket
    year: EarningsBucket
    all_time: AllTimeBucket


class EarningsCreate(BaseModel):
    """Schema for appending a ledger line."""
    driver_id: int
    final_fare: float = Field(..., ge=0)
    original_fare: Optional[float] = Field(None, ge=0)
    discount_amount: float = Field(0.0, ge=0)
    trip_id: Optional[str] = None
    passenger_id: Optional[str] = None
    counts_as_trip: bool = False
    payment_method: str = "cash"
    pickup_location: Optional[str] = None
    destination: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=120)


class EarningsRecordResponse(BaseModel):
    id: int
    driver_id: int
    trip_id: Optional[str]
    passenger_id: Optional[str]
    amount: float
    original_fare: float
    discount_amount: float
    final_fare: float
    counts_as_trip: bool
    payment_method: str
    pickup_location: Optional[str]
    destination: Optional[str]
    transaction_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionPage(BaseModel):
    driver_id: int
    page: int
    per_page: int
    total: int
    items: List[EarningsRecordResponse]


class ShiftResponse(BaseModel):
    id: int
    driver_id: int
    shift_date: date
    start_time: datetime
    end_time: Optional[datetime]
    total_earnings: float
    total_trips: int
    status: ShiftStatus

    class Config:
        from_attributes = True


class ShiftResult(BaseModel):
    driver_id: int
    action: ShiftAction
    shift: Optional[ShiftResponse] = None
    final_today_summary: Optional[EarningsBucket] = None


class ShiftStatusResponse(BaseModel):
    driver_id: int
    on_shift: bool
    shift: Optional[ShiftResponse] = None
