"""
Fare Matrix API Endpoints.

Fare quoting for booking clients and matrix maintenance for operators.
"""

from fastapi import APIRouter, Depends, Path, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional, Union

from jeepney_backend.app.db.session import get_db
from jeepney_backend.app.core.redis_client import get_redis
from jeepney_backend.app.models.route_enums import RecordStatus
from jeepney_backend.app.schemas.fare import (
    FareQuote, FareEntryUpsert, FareEntryResponse, FareUpsertResult,
    MatrixGenerateRequest, MatrixGenerateResult, FareMatrixRow, FareMatrixStats, FareHistoryItem
)
from jeepney_backend.app.domain.fares.fare_engine import FareMatrixEngine

router = APIRouter(prefix="/fares", tags=["Fares"])


def _checkpoint_ref(value: str) -> Union[int, str]:
    """Query values are IDs when numeric, names otherwise."""
    value = value.strip()
    return int(value) if value.isdigit() else value


@router.get("/resolve", response_model=FareQuote)
async def resolve_fare(
    from_checkpoint: str = Query(..., min_length=1, description="Checkpoint ID or name"),
    to_checkpoint: str = Query(..., min_length=1, description="Checkpoint ID or name"),
    route_id: Optional[int] = Query(None, description="Inferred from the checkpoints when omitted"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Quote the fare between two checkpoints.

    The ``method`` field reports which rule produced the amount
    (exact_entry, reverse_entry, tiered_distance).
    """
    return await FareMatrixEngine.resolve_fare(
        db, route_id, _checkpoint_ref(from_checkpoint), _checkpoint_ref(to_checkpoint), redis=redis
    )


@router.put("/entries", response_model=FareUpsertResult)
async def upsert_fare_entry(
    payload: FareEntryUpsert = Body(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Create or update an entry; the opposite route is mirrored in the same transaction."""
    return await FareMatrixEngine.upsert_fare_entry(
        db,
        route_id=payload.route_id,
        from_checkpoint_id=payload.from_checkpoint_id,
        to_checkpoint_id=payload.to_checkpoint_id,
        fare_amount=payload.fare_amount,
        redis=redis
    )


@router.get("/entries", response_model=List[FareEntryResponse])
async def list_fare_entries(
    route_id: Optional[int] = Query(None),
    status: Optional[RecordStatus] = Query(None),
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db)
):
    return await FareMatrixEngine.list_entries(db, route_id=route_id, status=status, limit=limit)


@router.delete("/entries/{entry_id}", response_model=FareEntryResponse)
async def delete_fare_entry(
    entry_id: int = Path(..., description="Fare entry ID"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Deactivate an entry (kept for history)."""
    return await FareMatrixEngine.delete_entry(db, entry_id, redis=redis)


@router.get("/entries/{entry_id}/history", response_model=List[FareHistoryItem])
async def fare_entry_history(
    entry_id: int = Path(..., description="Fare entry ID"),
    db: AsyncSession = Depends(get_db)
):
    return await FareMatrixEngine.get_entry_history(db, entry_id)


@router.post("/routes/{route_id}/generate", response_model=MatrixGenerateResult)
async def generate_route_matrix(
    route_id: int = Path(..., description="Route ID"),
    payload: Optional[MatrixGenerateRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Rebuild the full matrix of a route from the tiered formula."""
    base_fare = payload.base_fare if payload else None
    return await FareMatrixEngine.generate_matrix_for_route(db, route_id, base_fare=base_fare, redis=redis)


@router.get("/routes/{route_id}", response_model=List[FareMatrixRow])
async def get_route_matrix(
    route_id: int = Path(..., description="Route ID"),
    db: AsyncSession = Depends(get_db)
):
    return await FareMatrixEngine.get_route_matrix(db, route_id)


@router.post("/cleanup-duplicates")
async def cleanup_duplicate_entries(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    deactivated = await FareMatrixEngine.cleanup_duplicates(db, redis=redis)
    return {"status": "success", "deactivated": deactivated}


@router.get("/stats", response_model=FareMatrixStats)
async def fare_matrix_stats(db: AsyncSession = Depends(get_db)):
    return await FareMatrixEngine.get_stats(db)
