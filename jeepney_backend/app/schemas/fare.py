"""
Fare matrix schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Dict, List, Optional, Union
from jeepney_backend.app.models.route_enums import FareMethod, MirrorStatus, RecordStatus


class FareQuote(BaseModel):
    """Resolved fare for a checkpoint pair."""
    status: str = "ok"
    route_id: int
    from_checkpoint_id: int
    to_checkpoint_id: int
    from_checkpoint: str
    to_checkpoint: str
    segments: int
    amount: float
    is_base_fare: bool
    method: FareMethod
    entry_id: Optional[int] = None


class FareEntryUpsert(BaseModel):
    """Schema for creating or updating a fare matrix entry."""
    route_id: int
    from_checkpoint_id: int
    to_checkpoint_id: int
    fare_amount: float = Field(..., gt=0)


class FareEntryResponse(BaseModel):
    id: int
    route_id: int
    from_checkpoint_id: int
    to_checkpoint_id: int
    fare_amount: float
    is_base_fare: bool
    effective_date: date
    expiry_date: Optional[date]
    status: RecordStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FareUpsertResult(BaseModel):
    """Outcome of a fare write including the opposite-direction copy."""
    status: str  # created, updated, unchanged
    entry: FareEntryResponse
    previous_amount: Optional[float] = None
    mirror_status: MirrorStatus
    mirror_entry: Optional[FareEntryResponse] = None


class MatrixGenerateRequest(BaseModel):
    base_fare: Optional[float] = Field(None, gt=0)


class MatrixGenerateResult(BaseModel):
    route_id: int
    checkpoint_count: int
    entries_created: int
    entries_deleted: int
    base_fare: float


class FareMatrixRow(BaseModel):
    entry_id: int
    from_checkpoint_id: int
    from_checkpoint: str
    from_sequence: int
    to_checkpoint_id: int
    to_checkpoint: str
    to_sequence: int
    fare_amount: float
    is_base_fare: bool


class RouteFareStats(BaseModel):
    route_id: int
    entries: int
    min_fare: float
    max_fare: float
    avg_fare: float


class FareMatrixStats(BaseModel):
    total_entries: int
    base_fare_entries: int
    routes: List[RouteFareStats]


class FareHistoryItem(BaseModel):
    id: int
    action: str
    actor_username: Optional[str]
    meta_data: Optional[Dict]
    timestamp: datetime

    class Config:
        from_attributes = True


CheckpointRef = Union[int, str]
