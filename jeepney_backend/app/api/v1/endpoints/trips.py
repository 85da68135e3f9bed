"""
Booked Trip API Endpoints.

Booking and explicit state changes. Scan-driven completion lives in
checkpoint_scans.
"""

from fastapi import APIRouter, Depends, Path, Query, Body, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from jeepney_backend.app.db.session import get_db
from jeepney_backend.app.core.redis_client import get_redis
from jeepney_backend.app.schemas.trip import (
    TripBookRequest, BookingResult, TripResponse, TransitionResult,
    TripCancelRequest, TripCompleteRequest, BulkCancelResult
)
from jeepney_backend.app.domain.trips.trip_lifecycle import TripLifecycleService

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_trip(
    payload: TripBookRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Book a trip.

    When ``fare`` is omitted it is quoted from the fare matrix. Returns 409
    if the passenger already has an open trip with this driver and the
    duplicate policy is 'reject'.
    """
    return await TripLifecycleService.book_trip(
        db,
        passenger_id=payload.passenger_id,
        driver_id=payload.driver_id,
        route_id=payload.route_id,
        pickup_location=payload.pickup_location,
        destination=payload.destination,
        fare=payload.fare,
        redis=redis
    )


@router.get("/active", response_model=List[TripResponse])
async def list_active_trips(
    passenger_id: Optional[str] = Query(None),
    driver_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await TripLifecycleService.get_active_trips(db, passenger_id=passenger_id, driver_id=driver_id)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: str = Path(..., description="Public trip ID"),
    db: AsyncSession = Depends(get_db)
):
    return await TripLifecycleService.get_trip(db, trip_id)


@router.post("/{trip_id}/start", response_model=TransitionResult)
async def start_trip(
    trip_id: str = Path(..., description="Public trip ID"),
    db: AsyncSession = Depends(get_db)
):
    return await TripLifecycleService.start_trip(db, trip_id)


@router.post("/{trip_id}/complete", response_model=TransitionResult)
async def complete_trip(
    trip_id: str = Path(..., description="Public trip ID"),
    payload: Optional[TripCompleteRequest] = Body(None),
    db: AsyncSession = Depends(get_db)
):
    """Operator completion. Completing a closed trip returns a no-op status, not an error."""
    return await TripLifecycleService.complete_trip(db, trip_id, completed_at=payload.completed_at if payload else None)


@router.post("/{trip_id}/cancel", response_model=TransitionResult)
async def cancel_trip(
    trip_id: str = Path(..., description="Public trip ID"),
    payload: Optional[TripCancelRequest] = Body(None),
    db: AsyncSession = Depends(get_db)
):
    return await TripLifecycleService.cancel_trip(db, trip_id, reason=payload.reason if payload else None)


@router.post("/passengers/{passenger_id}/cancel-open", response_model=BulkCancelResult)
async def cancel_passenger_open_trips(
    passenger_id: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Clear every open trip of a passenger."""
    return await TripLifecycleService.cancel_open_trips(db, passenger_id)
