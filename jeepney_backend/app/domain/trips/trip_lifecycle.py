"""
Trip Lifecycle Service (Domain Logic).

States: booked -> in_progress -> completed, cancelled from either open
state. Nothing leaves completed or cancelled.

Checkpoint scans drive the machine: each scan re-evaluates every open trip
of the scanning driver on the same route and closes those whose
destination was reached or passed. Completion is a conditional UPDATE on
the open states, so replayed or concurrent scans complete a trip at most
once.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from jeepney_backend.app.core.clock import local_now, to_local
from jeepney_backend.app.core.config import settings
from jeepney_backend.app.core.exceptions import ResourceNotFoundError, DuplicateTripError
from jeepney_backend.app.models.booked_trip import BookedTrip
from jeepney_backend.app.models.checkpoint import Checkpoint
from jeepney_backend.app.models.checkpoint_scan import CheckpointScan
from jeepney_backend.app.models.driver import Driver
from jeepney_backend.app.models.earnings_enums import PaymentMethod
from jeepney_backend.app.models.trip_enums import TripStatus, CompletionMethod, TransitionStatus
from jeepney_backend.app.schemas.trip import (
    BookingResult, TripResponse, TransitionResult, BulkCancelResult, CompletedTrip, ScanResult
)
from jeepney_backend.app.services import checkpoint_directory as directory
from jeepney_backend.app.services.audit import log_event, AuditAction, AuditEntity
from jeepney_backend.app.services.checkpoint_names import NameResolver
from jeepney_backend.app.services.driver_directory import get_driver
from jeepney_backend.app.services.notification_service import NotificationService
from jeepney_backend.app.domain.fares.fare_engine import FareMatrixEngine
from jeepney_backend.app.domain.earnings.earnings_aggregator import EarningsAggregator
from jeepney_backend.app.domain.dispatch.conflict_resolver import ConflictResolver
from jeepney_backend.app.domain.trips.completion_rules import evaluate_completion, has_reached_pickup

logger = logging.getLogger(__name__)

OPEN_STATES = TripStatus.open_states()


def new_trip_id() -> str:
    return f"trip_{uuid.uuid4().hex}"


class TripLifecycleService:

    @staticmethod
    async def get_trip(db: AsyncSession, trip_id: str) -> BookedTrip:
        result = await db.execute(select(BookedTrip).where(BookedTrip.trip_id == trip_id))
        trip = result.scalar_one_or_none()
        if not trip:
            raise ResourceNotFoundError("Trip", trip_id)
        return trip

    @staticmethod
    async def _open_trips_for_pair(db: AsyncSession, passenger_id: str, driver_id: int) -> List[BookedTrip]:
        result = await db.execute(
            select(BookedTrip).where(
                BookedTrip.passenger_id == passenger_id,
                BookedTrip.driver_id == driver_id,
                BookedTrip.status.in_(OPEN_STATES)
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def book_trip(
        db: AsyncSession,
        passenger_id: str,
        driver_id: int,
        route_id: int,
        pickup_location: str,
        destination: str,
        fare: Optional[float] = None,
        booked_at: Optional[datetime] = None,
        redis=None
    ) -> BookingResult:
        """
        Book a trip.

        Validates:
        - Driver exists and is active
        - Route exists
        - No open trip for the same passenger+driver (reject or supersede
          per ``duplicate_trip_policy``)

        An unresolvable destination does not block booking; the trip can
        then only complete by exact name match.
        """
        driver = await get_driver(db, driver_id)
        route = await directory.get_route(db, route_id)

        if fare is None:
            quote = await FareMatrixEngine.resolve_fare(db, route.id, pickup_location, destination, redis=redis)
            fare = quote.amount

        resolver = await directory.load_name_resolver(db)
        checkpoints = await directory.list_checkpoints(db, route.id)
        destination_cp = resolver.match(checkpoints, destination)
        if destination_cp is None:
            logger.warning(
                "Booking for passenger %s: destination '%s' does not resolve on route %s",
                passenger_id, destination, route.id
            )

        superseded = []
        existing = await TripLifecycleService._open_trips_for_pair(db, passenger_id, driver.id)
        if existing:
            if settings.duplicate_trip_policy != "supersede":
                raise DuplicateTripError(passenger_id, driver.id, [t.trip_id for t in existing])
            for old in existing:
                if await TripLifecycleService._cancel(db, old, reason="superseded"):
                    superseded.append(old.trip_id)

        trip = BookedTrip(
            trip_id=new_trip_id(),
            passenger_id=passenger_id,
            driver_id=driver.id,
            route_id=route.id,
            pickup_location=pickup_location,
            destination=destination,
            destination_checkpoint_id=destination_cp.id if destination_cp else None,
            fare=fare,
            status=TripStatus.BOOKED,
            booked_at=to_local(booked_at),
        )
        db.add(trip)
        await db.flush()

        await log_event(
            db,
            action=AuditAction.TRIP_BOOKED,
            entity_type=AuditEntity.TRIP,
            entity_id=trip.trip_id,
            metadata={
                "passenger_id": passenger_id,
                "driver_id": driver.id,
                "fare": fare,
                "destination_resolved": destination_cp is not None,
                "superseded": superseded,
            }
        )
        await db.commit()
        await db.refresh(trip)

        return BookingResult(
            status="booked",
            trip_id=trip.trip_id,
            fare=trip.fare,
            destination_resolved=destination_cp is not None,
            superseded_trip_ids=superseded,
            trip=TripResponse.model_validate(trip),
        )

    @staticmethod
    async def _complete(
        db: AsyncSession, trip: BookedTrip, method: CompletionMethod, completed_at: datetime
    ) -> bool:
        """
        Close a trip if it is still open and fire the completion side effects.

        Returns False when another writer already closed it.
        """
        result = await db.execute(
            update(BookedTrip).where(
                BookedTrip.id == trip.id,
                BookedTrip.status.in_(OPEN_STATES)
            ).values(
                status=TripStatus.COMPLETED,
                completed_at=completed_at,
                completion_method=method,
                version=BookedTrip.version + 1
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        await db.refresh(trip)

        await NotificationService.notify_trip_completed(db, trip, method.value)
        await EarningsAggregator.record_earnings(
            db,
            driver_id=trip.driver_id,
            final_fare=0.0,
            trip_id=trip.trip_id,
            passenger_id=trip.passenger_id,
            original_fare=0.0,
            counts_as_trip=True,
            payment_method=PaymentMethod.SYSTEM.value,
            pickup_location=trip.pickup_location,
            destination=trip.destination,
            idempotency_key=f"completion:{trip.trip_id}",
            created_at=completed_at,
            commit=False,
        )
        await log_event(
            db,
            action=AuditAction.TRIP_COMPLETED,
            entity_type=AuditEntity.TRIP,
            entity_id=trip.trip_id,
            metadata={"method": method.value, "completed_at": completed_at.isoformat()}
        )
        logger.info("Trip %s completed via %s", trip.trip_id, method.value)
        return True

    @staticmethod
    async def _start(db: AsyncSession, trip: BookedTrip, started_at: datetime) -> bool:
        result = await db.execute(
            update(BookedTrip).where(
                BookedTrip.id == trip.id,
                BookedTrip.status == TripStatus.BOOKED
            ).values(
                status=TripStatus.IN_PROGRESS,
                started_at=started_at,
                version=BookedTrip.version + 1
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        await db.refresh(trip)
        await NotificationService.notify_trip_started(db, trip)
        return True

    @staticmethod
    async def _cancel(db: AsyncSession, trip: BookedTrip, reason: Optional[str] = None) -> bool:
        result = await db.execute(
            update(BookedTrip).where(
                BookedTrip.id == trip.id,
                BookedTrip.status.in_(OPEN_STATES)
            ).values(
                status=TripStatus.CANCELLED,
                cancelled_at=local_now(),
                version=BookedTrip.version + 1
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        await db.refresh(trip)
        await NotificationService.notify_trip_cancelled(db, trip, reason)
        await log_event(
            db,
            action=AuditAction.TRIP_CANCELLED,
            entity_type=AuditEntity.TRIP,
            entity_id=trip.trip_id,
            metadata={"reason": reason}
        )
        return True

    @staticmethod
    def _noop_status(trip: BookedTrip) -> TransitionStatus:
        if trip.status == TripStatus.COMPLETED:
            return TransitionStatus.ALREADY_COMPLETED
        if trip.status == TripStatus.CANCELLED:
            return TransitionStatus.ALREADY_CANCELLED
        return TransitionStatus.INVALID_TRANSITION

    @staticmethod
    async def start_trip(db: AsyncSession, trip_id: str, started_at: Optional[datetime] = None) -> TransitionResult:
        trip = await TripLifecycleService.get_trip(db, trip_id)
        if trip.status == TripStatus.IN_PROGRESS:
            return TransitionResult(trip_id=trip_id, status=TransitionStatus.ALREADY_STARTED, changed=False, trip_status=trip.status)
        if trip.status != TripStatus.BOOKED or not await TripLifecycleService._start(db, trip, to_local(started_at)):
            await db.refresh(trip)
            return TransitionResult(
                trip_id=trip_id, status=TripLifecycleService._noop_status(trip), changed=False, trip_status=trip.status
            )
        await db.commit()
        return TransitionResult(trip_id=trip_id, status=TransitionStatus.STARTED, changed=True, trip_status=trip.status)

    @staticmethod
    async def complete_trip(db: AsyncSession, trip_id: str, completed_at: Optional[datetime] = None) -> TransitionResult:
        """Operator completion. Completing a closed trip is a reported no-op."""
        trip = await TripLifecycleService.get_trip(db, trip_id)
        if trip.status.is_terminal or not await TripLifecycleService._complete(
            db, trip, CompletionMethod.MANUAL, to_local(completed_at)
        ):
            await db.refresh(trip)
            return TransitionResult(
                trip_id=trip_id, status=TripLifecycleService._noop_status(trip), changed=False,
                trip_status=trip.status, method=trip.completion_method
            )
        await db.commit()
        return TransitionResult(
            trip_id=trip_id, status=TransitionStatus.COMPLETED, changed=True,
            trip_status=trip.status, method=CompletionMethod.MANUAL
        )

    @staticmethod
    async def cancel_trip(db: AsyncSession, trip_id: str, reason: Optional[str] = None) -> TransitionResult:
        trip = await TripLifecycleService.get_trip(db, trip_id)
        if trip.status.is_terminal or not await TripLifecycleService._cancel(db, trip, reason):
            await db.refresh(trip)
            return TransitionResult(
                trip_id=trip_id, status=TripLifecycleService._noop_status(trip), changed=False, trip_status=trip.status
            )
        await db.commit()
        return TransitionResult(trip_id=trip_id, status=TransitionStatus.CANCELLED, changed=True, trip_status=trip.status)

    @staticmethod
    async def cancel_open_trips(db: AsyncSession, passenger_id: str, reason: Optional[str] = None) -> BulkCancelResult:
        """Clear every open trip of a passenger."""
        trips = await TripLifecycleService.get_active_trips(db, passenger_id=passenger_id)
        cancelled = []
        for trip in trips:
            if await TripLifecycleService._cancel(db, trip, reason or "cleared"):
                cancelled.append(trip.trip_id)
        await db.commit()
        return BulkCancelResult(passenger_id=passenger_id, cancelled=len(cancelled), trip_ids=cancelled)

    @staticmethod
    async def get_active_trips(
        db: AsyncSession, passenger_id: Optional[str] = None, driver_id: Optional[int] = None
    ) -> List[BookedTrip]:
        query = select(BookedTrip).where(BookedTrip.status.in_(OPEN_STATES))
        if passenger_id is not None:
            query = query.where(BookedTrip.passenger_id == passenger_id)
        if driver_id is not None:
            query = query.where(BookedTrip.driver_id == driver_id)
        result = await db.execute(query.order_by(BookedTrip.booked_at.desc()))
        return list(result.scalars().all())

    # --- Scan processing ---

    @staticmethod
    async def _resolve_scanned_checkpoint(
        db: AsyncSession,
        driver: Driver,
        resolver: NameResolver,
        checkpoint_name: Optional[str],
        checkpoint_id: Optional[int],
        route_id: Optional[int]
    ) -> Checkpoint:
        if checkpoint_id is not None:
            checkpoint = await directory.get_checkpoint(db, checkpoint_id)
            if route_id is not None and checkpoint.route_id != route_id:
                raise ResourceNotFoundError("Checkpoint", f"{checkpoint_id} on route {route_id}")
            return checkpoint

        if route_id is not None:
            await directory.get_route(db, route_id)
            candidate_routes = [route_id]
        else:
            candidate_routes = []
            if driver.assigned_route_id is not None:
                candidate_routes.append(driver.assigned_route_id)
            last_route = (await db.execute(
                select(CheckpointScan.route_id).where(CheckpointScan.driver_id == driver.id)
                .order_by(CheckpointScan.scanned_at.desc(), CheckpointScan.id.desc()).limit(1)
            )).scalar_one_or_none()
            if last_route is not None and last_route not in candidate_routes:
                candidate_routes.append(last_route)

        for candidate in candidate_routes:
            checkpoint = resolver.match(await directory.list_checkpoints(db, candidate), checkpoint_name)
            if checkpoint is not None:
                return checkpoint

        if route_id is None:
            matches = await directory.find_checkpoints_by_name(db, checkpoint_name, resolver)
            if matches:
                return matches[0]

        raise ResourceNotFoundError("Checkpoint", checkpoint_name)

    @staticmethod
    async def _find_scan(db: AsyncSession, driver_id: int, checkpoint_id: int, scanned_at: datetime):
        return (await db.execute(
            select(CheckpointScan).where(
                CheckpointScan.driver_id == driver_id,
                CheckpointScan.checkpoint_id == checkpoint_id,
                CheckpointScan.scanned_at == scanned_at
            )
        )).scalar_one_or_none()

    @staticmethod
    async def _record_scan(
        db: AsyncSession,
        driver_id: int,
        checkpoint: Checkpoint,
        scanned_at: datetime,
        latitude: Optional[float],
        longitude: Optional[float]
    ):
        """Append the scan fact. A replay of the same event returns the stored row."""
        existing = await TripLifecycleService._find_scan(db, driver_id, checkpoint.id, scanned_at)
        if existing is not None:
            return existing, True

        scan = CheckpointScan(
            driver_id=driver_id,
            route_id=checkpoint.route_id,
            checkpoint_id=checkpoint.id,
            checkpoint_name=checkpoint.name,
            sequence_order=checkpoint.sequence_order,
            latitude=latitude,
            longitude=longitude,
            scanned_at=scanned_at,
        )
        try:
            async with db.begin_nested():
                db.add(scan)
        except IntegrityError:
            # A concurrent copy of the same event was stored first
            logger.info(
                "Scan by driver %s at checkpoint %s (%s) already stored",
                driver_id, checkpoint.id, scanned_at
            )
            existing = await TripLifecycleService._find_scan(db, driver_id, checkpoint.id, scanned_at)
            return existing, True
        return scan, False

    @staticmethod
    async def _candidate_trips(db: AsyncSession, driver_id: int, route_id: int, scanned_at: datetime) -> List[BookedTrip]:
        lookback = scanned_at - timedelta(hours=settings.trip_lookback_hours)
        result = await db.execute(
            select(BookedTrip).where(
                BookedTrip.driver_id == driver_id,
                BookedTrip.route_id == route_id,
                BookedTrip.status.in_(OPEN_STATES),
                BookedTrip.booked_at >= lookback,
                BookedTrip.booked_at <= scanned_at
            ).order_by(BookedTrip.booked_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def process_checkpoint_scan(
        db: AsyncSession,
        driver_id: int,
        checkpoint_name: Optional[str] = None,
        checkpoint_id: Optional[int] = None,
        scanned_at: Optional[datetime] = None,
        route_id: Optional[int] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> ScanResult:
        """
        Handle one checkpoint scan.

        Flow:
        1. Resolve the scanned checkpoint (explicit route, assigned route,
           last scanned route, then any route)
        2. Record the scan fact (replays are detected)
        3. Evaluate every open trip of this driver on this route booked
           within the look-back window
        4. Complete (exact match or pass-through) or mark picked up
        5. Report conflicts at the scanned checkpoint
        """
        driver = await get_driver(db, driver_id)
        scanned_at = to_local(scanned_at)
        resolver = await directory.load_name_resolver(db)

        checkpoint = await TripLifecycleService._resolve_scanned_checkpoint(
            db, driver, resolver, checkpoint_name, checkpoint_id, route_id
        )
        scanned_name = checkpoint_name if checkpoint_name and checkpoint_name.strip() else checkpoint.name

        _, duplicate = await TripLifecycleService._record_scan(
            db, driver.id, checkpoint, scanned_at, latitude, longitude
        )

        route_checkpoints = await directory.list_checkpoints(db, checkpoint.route_id)
        candidates = await TripLifecycleService._candidate_trips(db, driver.id, checkpoint.route_id, scanned_at)

        completed, started, still_open, unresolved = [], [], [], []
        for trip in candidates:
            destination_cp = resolver.match(route_checkpoints, trip.destination)
            if destination_cp is None:
                unresolved.append(trip.trip_id)
                logger.warning(
                    "Trip %s destination '%s' unresolved on route %s; only exact match can complete it",
                    trip.trip_id, trip.destination, checkpoint.route_id
                )

            method = evaluate_completion(
                scanned_name,
                checkpoint.sequence_order,
                trip.destination,
                destination_cp.sequence_order if destination_cp else None
            )
            if method is not None:
                if await TripLifecycleService._complete(db, trip, method, scanned_at):
                    completed.append(CompletedTrip(trip_id=trip.trip_id, method=method, completed_at=scanned_at))
                continue

            pickup_cp = resolver.match(route_checkpoints, trip.pickup_location)
            if trip.status == TripStatus.BOOKED and has_reached_pickup(
                checkpoint.sequence_order, pickup_cp.sequence_order if pickup_cp else None
            ):
                if await TripLifecycleService._start(db, trip, scanned_at):
                    started.append(trip.trip_id)
            still_open.append(trip.trip_id)

        await db.commit()

        conflict = await ConflictResolver.detect_conflicts(db, checkpoint.id, now=scanned_at)

        return ScanResult(
            driver_id=driver.id,
            route_id=checkpoint.route_id,
            checkpoint_id=checkpoint.id,
            checkpoint_name=checkpoint.name,
            sequence_order=checkpoint.sequence_order,
            scanned_at=scanned_at,
            duplicate_scan=duplicate,
            completed_trips=completed,
            started_trips=started,
            open_trips=still_open,
            unresolved_destinations=unresolved,
            conflict=conflict,
        )
