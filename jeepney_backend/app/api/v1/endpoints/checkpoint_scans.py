"""
Checkpoint Scan and Dispatch API Endpoints.

Drivers post QR scans here; each scan may complete trips and returns the
queue at the scanned checkpoint.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Path, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from jeepney_backend.app.db.session import get_db
from jeepney_backend.app.schemas.trip import CheckpointScanRequest, ScanResult
from jeepney_backend.app.schemas.dispatch import ConflictReport, RouteDriverLocations
from jeepney_backend.app.domain.trips.trip_lifecycle import TripLifecycleService
from jeepney_backend.app.domain.dispatch.conflict_resolver import ConflictResolver

router = APIRouter(tags=["Checkpoints - Dispatch"])


@router.post("/checkpoint-scans", response_model=ScanResult)
async def submit_checkpoint_scan(
    scan: CheckpointScanRequest = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Process a driver's checkpoint scan.

    Actions:
    - Record the scan
    - Complete open trips whose destination was reached or passed
    - Mark trips in progress once their pickup is reached
    - Report other drivers at the same checkpoint
    """
    return await TripLifecycleService.process_checkpoint_scan(
        db,
        driver_id=scan.driver_id,
        checkpoint_name=scan.checkpoint_name,
        checkpoint_id=scan.checkpoint_id,
        scanned_at=scan.scanned_at,
        route_id=scan.route_id,
        latitude=scan.latitude,
        longitude=scan.longitude
    )


@router.get("/checkpoints/{checkpoint_id}/conflicts", response_model=ConflictReport)
async def checkpoint_conflicts(
    checkpoint_id: int = Path(..., description="Checkpoint ID"),
    window_minutes: Optional[int] = Query(None, ge=1, le=240),
    as_of: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await ConflictResolver.detect_conflicts(db, checkpoint_id, window_minutes=window_minutes, now=as_of)


@router.get("/routes/{route_id}/driver-locations", response_model=RouteDriverLocations)
async def route_driver_locations(
    route_id: int = Path(..., description="Route ID"),
    as_of: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Last scanned checkpoint of each driver on the route with active/stale/inactive status."""
    return await ConflictResolver.get_driver_locations(db, route_id, now=as_of)
