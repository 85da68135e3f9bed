"""
Booked trip and checkpoint scan schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import List, Optional
from jeepney_backend.app.models.trip_enums import TripStatus, CompletionMethod, TransitionStatus
from jeepney_backend.app.schemas.dispatch import ConflictReport


class TripBookRequest(BaseModel):
    """Schema for booking a trip."""
    passenger_id: str = Field(..., min_length=1, max_length=100)
    driver_id: int
    route_id: int
    pickup_location: str = Field(..., min_length=1, max_length=150)
    destination: str = Field(..., min_length=1, max_length=150)
    fare: Optional[float] = Field(None, ge=0)  # Quoted from the fare matrix when omitted


class TripResponse(BaseModel):
    trip_id: str
    passenger_id: str
    driver_id: int
    route_id: int
    pickup_location: str
    destination: str
    destination_checkpoint_id: Optional[int]
    fare: float
    status: TripStatus
    completion_method: Optional[CompletionMethod]
    booked_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class BookingResult(BaseModel):
    status: str  # booked
    trip_id: str
    fare: float
    destination_resolved: bool
    superseded_trip_ids: List[str] = []
    trip: TripResponse


class TransitionResult(BaseModel):
    """Result of an explicit trip state change. Invalid transitions are reported, not raised."""
    trip_id: str
    status: TransitionStatus
    changed: bool
    trip_status: TripStatus
    method: Optional[CompletionMethod] = None


class TripCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class TripCompleteRequest(BaseModel):
    completed_at: Optional[datetime] = None


class BulkCancelResult(BaseModel):
    passenger_id: str
    cancelled: int
    trip_ids: List[str]


class CheckpointScanRequest(BaseModel):
    """A driver's QR scan. Either checkpoint_id or checkpoint_name is required."""
    driver_id: int
    checkpoint_name: Optional[str] = Field(None, max_length=150)
    checkpoint_id: Optional[int] = None
    route_id: Optional[int] = None
    scanned_at: Optional[datetime] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def require_checkpoint(self):
        if self.checkpoint_id is None and not (self.checkpoint_name or "").strip():
            raise ValueError("checkpoint_id or checkpoint_name is required")
        return self


class CompletedTrip(BaseModel):
    trip_id: str
    method: CompletionMethod
    completed_at: datetime


class ScanResult(BaseModel):
    driver_id: int
    route_id: int
    checkpoint_id: int
    checkpoint_name: str
    sequence_order: int
    scanned_at: datetime
    duplicate_scan: bool
    completed_trips: List[CompletedTrip]
    started_trips: List[str]
    open_trips: List[str]
    unresolved_destinations: List[str]
    conflict: Optional[ConflictReport] = None
