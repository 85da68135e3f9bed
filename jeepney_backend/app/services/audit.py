"""
Audit logging service for fare edits and trip lifecycle events.

Entries are flushed into the caller's transaction so an audit row is never
written for a change that was rolled back.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from jeepney_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    FARE_ENTRY_CREATED = "FARE_ENTRY_CREATED"
    FARE_ENTRY_UPDATED = "FARE_ENTRY_UPDATED"
    FARE_ENTRY_DELETED = "FARE_ENTRY_DELETED"
    FARE_MATRIX_GENERATED = "FARE_MATRIX_GENERATED"
    FARE_DUPLICATES_CLEANED = "FARE_DUPLICATES_CLEANED"

    TRIP_BOOKED = "TRIP_BOOKED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"


class AuditEntity:
    FARE_ENTRY = "fare_matrix_entry"
    ROUTE = "route"
    TRIP = "booked_trip"


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Any = None,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Add an audit entry to the current transaction.

    Args:
        db: Database session (caller commits)
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of record acted upon (use AuditEntity constants)
        entity_id: Identifier of that record
        actor_id: ID of the operator, None for system actions
        actor_username: Username of the operator
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_entity_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: Any,
    limit: int = 100
) -> List[AuditLog]:
    """Audit trail for one record, most recent first."""
    query = select(AuditLog).where(
        AuditLog.entity_type == entity_type,
        AuditLog.entity_id == str(entity_id)
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
