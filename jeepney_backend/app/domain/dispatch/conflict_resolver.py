"""
Checkpoint Conflict Resolver.

Orders drivers who are at the same checkpoint at the same time so
passenger displays can tell "next" from "following" jeepney. A driver's
position is their latest scan; nothing is stored per driver.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_

from jeepney_backend.app.core.clock import to_local
from jeepney_backend.app.core.config import settings
from jeepney_backend.app.models.checkpoint import Checkpoint
from jeepney_backend.app.models.checkpoint_scan import CheckpointScan
from jeepney_backend.app.models.driver import Driver
from jeepney_backend.app.models.shift_window import ShiftWindow
from jeepney_backend.app.models.earnings_enums import ShiftStatus
from jeepney_backend.app.schemas.dispatch import ConflictReport, QueuedDriver, DriverLocation, RouteDriverLocations
from jeepney_backend.app.services.checkpoint_directory import get_checkpoint, get_route


class FreshnessStatus:
    ACTIVE = "active"
    STALE = "stale"
    INACTIVE = "inactive"


def classify_freshness(minutes_since_scan: float, on_shift: bool = True) -> str:
    if not on_shift:
        return FreshnessStatus.INACTIVE
    if minutes_since_scan <= settings.active_threshold_minutes:
        return FreshnessStatus.ACTIVE
    if minutes_since_scan <= settings.stale_threshold_minutes:
        return FreshnessStatus.STALE
    return FreshnessStatus.INACTIVE


class ConflictResolver:

    @staticmethod
    async def detect_conflicts(
        db: AsyncSession,
        checkpoint_id: int,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> ConflictReport:
        """
        Drivers whose latest scan within the window is at ``checkpoint_id``.

        Ordered first-arrived-first-served, each assigned a departure offset
        of ``(position - 1) * departure_spacing_minutes`` (0 for the first).
        """
        checkpoint = await get_checkpoint(db, checkpoint_id)
        window = settings.conflict_window_minutes if window_minutes is None else window_minutes
        now = to_local(now)
        since = now - timedelta(minutes=window)
        in_window = and_(CheckpointScan.scanned_at >= since, CheckpointScan.scanned_at <= now)

        present = select(CheckpointScan.driver_id).where(
            CheckpointScan.checkpoint_id == checkpoint_id, in_window
        ).distinct()

        latest = select(
            CheckpointScan.driver_id.label("driver_id"),
            func.max(CheckpointScan.scanned_at).label("last_scan")
        ).where(CheckpointScan.driver_id.in_(present), in_window).group_by(CheckpointScan.driver_id).subquery()

        result = await db.execute(
            select(CheckpointScan)
            .join(latest, and_(
                CheckpointScan.driver_id == latest.c.driver_id,
                CheckpointScan.scanned_at == latest.c.last_scan
            ))
            .where(CheckpointScan.checkpoint_id == checkpoint_id)
            .order_by(CheckpointScan.scanned_at, CheckpointScan.driver_id)
        )

        ordered = []
        seen = set()
        for scan in result.scalars().all():
            if scan.driver_id in seen:
                continue
            seen.add(scan.driver_id)
            ordered.append(QueuedDriver(
                driver_id=scan.driver_id,
                scanned_at=scan.scanned_at,
                position=len(ordered) + 1,
                estimated_departure_offset_minutes=len(ordered) * settings.departure_spacing_minutes,
            ))

        return ConflictReport(
            checkpoint_id=checkpoint.id,
            checkpoint_name=checkpoint.name,
            has_conflict=len(ordered) > 1,
            window_minutes=window,
            ordered_drivers=ordered,
        )

    @staticmethod
    async def get_driver_locations(
        db: AsyncSession,
        route_id: int,
        now: Optional[datetime] = None
    ) -> RouteDriverLocations:
        """Last known checkpoint of every driver seen on a route, with freshness."""
        await get_route(db, route_id)
        now = to_local(now)

        latest = select(
            CheckpointScan.driver_id.label("driver_id"),
            func.max(CheckpointScan.scanned_at).label("last_scan")
        ).where(
            CheckpointScan.route_id == route_id,
            CheckpointScan.scanned_at <= now
        ).group_by(CheckpointScan.driver_id).subquery()

        result = await db.execute(
            select(CheckpointScan, Driver, Checkpoint)
            .join(latest, and_(
                CheckpointScan.driver_id == latest.c.driver_id,
                CheckpointScan.scanned_at == latest.c.last_scan
            ))
            .join(Driver, Driver.id == CheckpointScan.driver_id)
            .join(Checkpoint, Checkpoint.id == CheckpointScan.checkpoint_id)
            .where(CheckpointScan.route_id == route_id)
            .order_by(Checkpoint.sequence_order.desc(), CheckpointScan.scanned_at)
        )
        rows = result.all()

        on_shift_ids = set((await db.execute(
            select(ShiftWindow.driver_id).where(ShiftWindow.status == ShiftStatus.ACTIVE)
        )).scalars().all())

        drivers = []
        seen = set()
        for scan, driver, checkpoint in rows:
            if driver.id in seen:
                continue
            seen.add(driver.id)
            minutes = round((now - scan.scanned_at).total_seconds() / 60.0, 1)
            on_shift = driver.id in on_shift_ids
            drivers.append(DriverLocation(
                driver_id=driver.id,
                username=driver.username,
                plate_number=driver.plate_number,
                checkpoint_id=checkpoint.id,
                checkpoint_name=checkpoint.name,
                sequence_order=checkpoint.sequence_order,
                last_scan_at=scan.scanned_at,
                minutes_since_scan=minutes,
                status=classify_freshness(minutes, on_shift),
                on_shift=on_shift,
            ))

        return RouteDriverLocations(route_id=route_id, as_of=now, drivers=drivers)
