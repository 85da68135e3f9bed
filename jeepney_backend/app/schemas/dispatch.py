"""
Checkpoint conflict and driver location schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class QueuedDriver(BaseModel):
    driver_id: int
    scanned_at: datetime
    position: int  # 1 = next to depart
    estimated_departure_offset_minutes: int


class ConflictReport(BaseModel):
    checkpoint_id: int
    checkpoint_name: str
    has_conflict: bool
    window_minutes: int
    ordered_drivers: List[QueuedDriver]


class DriverLocation(BaseModel):
    driver_id: int
    username: str
    plate_number: Optional[str]
    checkpoint_id: int
    checkpoint_name: str
    sequence_order: int
    last_scan_at: datetime
    minutes_since_scan: float
    status: str  # active, stale, inactive
    on_shift: bool


class RouteDriverLocations(BaseModel):
    route_id: int
    as_of: datetime
    drivers: List[DriverLocation]
