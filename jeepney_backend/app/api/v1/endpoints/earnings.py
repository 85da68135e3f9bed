"""
Earnings and Shift API Endpoints.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Path, Query, Body, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from jeepney_backend.app.db.session import get_db
from jeepney_backend.app.schemas.earnings import (
    EarningsSummary, EarningsCreate, EarningsRecordResponse, TransactionPage,
    ShiftResult, ShiftStatusResponse
)
from jeepney_backend.app.services.driver_directory import get_driver
from jeepney_backend.app.domain.earnings.earnings_aggregator import EarningsAggregator
from jeepney_backend.app.domain.earnings.shift_service import ShiftService

router = APIRouter(prefix="/earnings", tags=["Earnings"])
shift_router = APIRouter(prefix="/shifts", tags=["Shifts"])


@router.get("/drivers/{driver_id}/summary", response_model=EarningsSummary)
async def earnings_summary(
    driver_id: int = Path(..., description="Driver ID"),
    as_of: Optional[datetime] = Query(None, description="Defaults to now"),
    db: AsyncSession = Depends(get_db)
):
    """Today/week/month/year/all-time totals using the 05:00 business day."""
    await get_driver(db, driver_id)
    return await EarningsAggregator.get_summary(db, driver_id, as_of=as_of)


@router.post("", response_model=EarningsRecordResponse, status_code=status.HTTP_201_CREATED)
async def add_earnings(
    payload: EarningsCreate = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Append a ledger line.

    Returns 503 with ``details.retryable`` when storage fails; resend with
    the same ``idempotency_key``.
    """
    await get_driver(db, payload.driver_id)
    return await EarningsAggregator.record_earnings(db, **payload.model_dump())


@router.get("/drivers/{driver_id}/transactions", response_model=TransactionPage)
async def earnings_transactions(
    driver_id: int = Path(..., description="Driver ID"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    await get_driver(db, driver_id)
    return await EarningsAggregator.get_transactions(db, driver_id, page=page, per_page=per_page)


@shift_router.post("/drivers/{driver_id}/start", response_model=ShiftResult)
async def start_shift(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    return await ShiftService.start_shift(db, driver_id)


@shift_router.post("/drivers/{driver_id}/end", response_model=ShiftResult)
async def end_shift(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    """Close the open shift; ``final_today_summary`` holds the business-day totals."""
    return await ShiftService.end_shift(db, driver_id)


@shift_router.get("/drivers/{driver_id}", response_model=ShiftStatusResponse)
async def shift_status(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    return await ShiftService.get_shift_status(db, driver_id)
