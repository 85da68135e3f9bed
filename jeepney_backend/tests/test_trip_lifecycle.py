"""
Booking, scan-driven completion and explicit trip state changes.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from jeepney_backend.app.core.config import settings
from jeepney_backend.app.core.exceptions import ResourceNotFoundError, DuplicateTripError
from jeepney_backend.app.domain.trips.trip_lifecycle import TripLifecycleService
from jeepney_backend.app.domain.trips.completion_rules import evaluate_completion, has_reached_pickup
from jeepney_backend.app.models.booked_trip import BookedTrip
from jeepney_backend.app.models.checkpoint_scan import CheckpointScan
from jeepney_backend.app.models.earnings_record import EarningsRecord
from jeepney_backend.app.models.notification import Notification, NotificationType, RecipientType
from jeepney_backend.app.models.trip_enums import TripStatus, CompletionMethod, TransitionStatus

T = datetime(2026, 3, 3, 8, 0)


async def _book(db, line, passenger="p-100", driver=0, pickup="SM Epza", destination="SM Dasmariñas",
                booked_at=T, fare=None):
    return await TripLifecycleService.book_trip(
        db,
        passenger_id=passenger,
        driver_id=line.drivers[driver].id,
        route_id=line.outbound.id,
        pickup_location=pickup,
        destination=destination,
        fare=fare,
        booked_at=booked_at,
    )


async def _scan(db, line, name, at, driver=0, **kwargs):
    return await TripLifecycleService.process_checkpoint_scan(
        db, driver_id=line.drivers[driver].id, checkpoint_name=name, scanned_at=at, **kwargs
    )


async def _ledger(db, driver_id):
    result = await db.execute(select(EarningsRecord).where(EarningsRecord.driver_id == driver_id))
    return result.scalars().all()


# --- Completion rules ---

def test_exact_name_wins_over_position():
    assert evaluate_completion("Pabahay", 12, "Pabahay", 12) == CompletionMethod.EXACT_MATCH
    assert evaluate_completion(" Pabahay ", 3, "Pabahay", None) == CompletionMethod.EXACT_MATCH


def test_pass_through_at_or_beyond_destination():
    assert evaluate_completion("SM Dasma", 17, "SM Dasmariñas", 17) == CompletionMethod.PASS_THROUGH
    assert evaluate_completion("Bella Vista", 9, "Santiago", 8) == CompletionMethod.PASS_THROUGH
    assert evaluate_completion("Malabon", 3, "Santiago", 8) is None


def test_unresolved_destination_needs_exact_name():
    assert evaluate_completion("SM Dasmariñas", 17, "Nowhere Plaza", None) is None


def test_pickup_reached():
    assert has_reached_pickup(3, 1)
    assert not has_reached_pickup(3, 8)
    assert not has_reached_pickup(3, None)


# --- Booking ---

@pytest.mark.asyncio
async def test_book_trip_quotes_fare_and_resolves_destination(db_session, line):
    result = await _book(db_session, line, destination="Malabon")

    assert result.status == "booked"
    assert result.trip_id.startswith("trip_")
    assert result.fare == 15.0
    assert result.destination_resolved is True
    assert result.trip.status == TripStatus.BOOKED
    assert result.trip.destination_checkpoint_id == line.out["Malabon"].id
    assert result.trip.booked_at == T


@pytest.mark.asyncio
async def test_book_with_unknown_driver(db_session, line):
    with pytest.raises(ResourceNotFoundError):
        await TripLifecycleService.book_trip(
            db_session, "p-100", 9999, line.outbound.id, "SM Epza", "Malabon"
        )


@pytest.mark.asyncio
async def test_book_with_inactive_driver(db_session, line):
    line.drivers[0].is_active = False
    await db_session.commit()
    with pytest.raises(ResourceNotFoundError):
        await _book(db_session, line, destination="Malabon")


@pytest.mark.asyncio
async def test_duplicate_open_trip_is_rejected(db_session, line):
    first = await _book(db_session, line, destination="Malabon")

    with pytest.raises(DuplicateTripError) as exc_info:
        await _book(db_session, line, destination="Pabahay")
    assert exc_info.value.details["open_trip_ids"] == [first.trip_id]

    # Same passenger with another driver is fine
    other = await _book(db_session, line, driver=1, destination="Pabahay")
    assert other.status == "booked"


@pytest.mark.asyncio
async def test_duplicate_open_trip_superseded(db_session, line, monkeypatch):
    monkeypatch.setattr(settings, "duplicate_trip_policy", "supersede")
    first = await _book(db_session, line, destination="Malabon")
    second = await _book(db_session, line, destination="Pabahay")

    assert second.superseded_trip_ids == [first.trip_id]
    old = await TripLifecycleService.get_trip(db_session, first.trip_id)
    assert old.status == TripStatus.CANCELLED


@pytest.mark.asyncio
async def test_unresolved_destination_does_not_block_booking(db_session, line):
    result = await _book(db_session, line, destination="Nowhere Plaza", fare=20.0)

    assert result.destination_resolved is False
    assert result.trip.destination_checkpoint_id is None


# --- Scan-driven completion ---

@pytest.mark.asyncio
async def test_alias_scan_completes_by_pass_through(db_session, line):
    booking = await _book(db_session, line, destination="SM Dasmariñas", fare=50.0)
    scan_time = T + timedelta(minutes=40)

    result = await _scan(db_session, line, "SM Dasma", scan_time)

    assert result.checkpoint_name == "SM Dasmariñas"
    assert result.sequence_order == 17
    assert [c.trip_id for c in result.completed_trips] == [booking.trip_id]
    assert result.completed_trips[0].method == CompletionMethod.PASS_THROUGH

    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status == TripStatus.COMPLETED
    assert trip.completion_method == CompletionMethod.PASS_THROUGH
    assert trip.completed_at == scan_time

    ledger = await _ledger(db_session, line.drivers[0].id)
    assert len(ledger) == 1
    assert ledger[0].counts_as_trip is True
    assert ledger[0].final_fare == 0.0
    assert ledger[0].idempotency_key == f"completion:{booking.trip_id}"


@pytest.mark.asyncio
async def test_exact_name_scan_completes(db_session, line):
    booking = await _book(db_session, line, destination="Pabahay")
    result = await _scan(db_session, line, "Pabahay", T + timedelta(minutes=25))

    assert result.completed_trips[0].trip_id == booking.trip_id
    assert result.completed_trips[0].method == CompletionMethod.EXACT_MATCH


@pytest.mark.asyncio
async def test_skipped_destination_completes_at_next_scan(db_session, line):
    booking = await _book(db_session, line, destination="Santiago")
    result = await _scan(db_session, line, "Bella Vista", T + timedelta(minutes=20))

    assert result.completed_trips[0].trip_id == booking.trip_id
    assert result.completed_trips[0].method == CompletionMethod.PASS_THROUGH


@pytest.mark.asyncio
async def test_scan_before_destination_starts_trip(db_session, line):
    booking = await _book(db_session, line, destination="Pabahay")
    result = await _scan(db_session, line, "Malabon", T + timedelta(minutes=10))

    assert result.completed_trips == []
    assert result.started_trips == [booking.trip_id]
    assert result.open_trips == [booking.trip_id]

    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status == TripStatus.IN_PROGRESS
    assert trip.started_at == T + timedelta(minutes=10)

    done = await _scan(db_session, line, "Pabahay", T + timedelta(minutes=30))
    assert done.completed_trips[0].trip_id == booking.trip_id


@pytest.mark.asyncio
async def test_scan_before_pickup_leaves_trip_booked(db_session, line):
    booking = await _book(db_session, line, pickup="Santiago", destination="Pabahay")
    result = await _scan(db_session, line, "Malabon", T + timedelta(minutes=5))

    assert result.started_trips == []
    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status == TripStatus.BOOKED


@pytest.mark.asyncio
async def test_one_scan_completes_every_reached_trip(db_session, line):
    to_santiago = await _book(db_session, line, passenger="p-1", destination="Santiago")
    to_pabahay = await _book(db_session, line, passenger="p-2", destination="Pabahay")
    to_terminal = await _book(db_session, line, passenger="p-3", destination="SM Dasmariñas")

    result = await _scan(db_session, line, "Pabahay", T + timedelta(minutes=30))

    methods = {c.trip_id: c.method for c in result.completed_trips}
    assert methods == {
        to_santiago.trip_id: CompletionMethod.PASS_THROUGH,
        to_pabahay.trip_id: CompletionMethod.EXACT_MATCH,
    }
    assert result.open_trips == [to_terminal.trip_id]


@pytest.mark.asyncio
async def test_replayed_scans_do_not_complete_twice(db_session, line):
    booking = await _book(db_session, line, destination="Santiago")
    completion_time = T + timedelta(minutes=30)
    await _scan(db_session, line, "Bella Vista", completion_time)

    replay = await _scan(db_session, line, "Bella Vista", completion_time)
    assert replay.duplicate_scan is True
    assert replay.completed_trips == []

    late_delivery = await _scan(db_session, line, "Santiago", T + timedelta(minutes=25))
    assert late_delivery.completed_trips == []

    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.completed_at == completion_time
    assert len(await _ledger(db_session, line.drivers[0].id)) == 1


@pytest.mark.asyncio
async def test_concurrent_copy_of_scan_is_a_duplicate(db_session, line, mocker):
    booking = await _book(db_session, line, destination="Santiago")
    completion_time = T + timedelta(minutes=30)
    await _scan(db_session, line, "Bella Vista", completion_time)

    # The other copy passes the lookup before the first one is stored
    find_scan = TripLifecycleService._find_scan
    lookups = []

    async def stored_after_lookup(*args):
        lookups.append(args)
        if len(lookups) == 1:
            return None
        return await find_scan(*args)

    mocker.patch.object(
        TripLifecycleService, "_find_scan", new=mocker.AsyncMock(side_effect=stored_after_lookup)
    )

    replay = await _scan(db_session, line, "Bella Vista", completion_time)
    assert replay.duplicate_scan is True
    assert replay.completed_trips == []
    assert len(lookups) == 2

    scans = (await db_session.execute(
        select(CheckpointScan).where(CheckpointScan.driver_id == line.drivers[0].id)
    )).scalars().all()
    assert len(scans) == 1

    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status == TripStatus.COMPLETED
    assert trip.completed_at == completion_time
    assert len(await _ledger(db_session, line.drivers[0].id)) == 1


@pytest.mark.asyncio
async def test_trips_outside_lookback_are_ignored(db_session, line):
    stale = await _book(db_session, line, passenger="p-old", destination="Pabahay",
                        booked_at=T - timedelta(hours=5))
    future = await _book(db_session, line, passenger="p-new", destination="Pabahay",
                         booked_at=T + timedelta(minutes=5))

    result = await _scan(db_session, line, "SM Dasmariñas", T)

    assert result.completed_trips == []
    for booking in (stale, future):
        trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
        assert trip.status == TripStatus.BOOKED


@pytest.mark.asyncio
async def test_other_drivers_trips_are_untouched(db_session, line):
    booking = await _book(db_session, line, driver=1, destination="Malabon")
    await _scan(db_session, line, "SM Dasmariñas", T + timedelta(minutes=45), driver=0)

    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status == TripStatus.BOOKED


@pytest.mark.asyncio
async def test_unresolved_destination_stays_open(db_session, line):
    booking = await _book(db_session, line, destination="Nowhere Plaza", fare=20.0)
    result = await _scan(db_session, line, "SM Dasmariñas", T + timedelta(minutes=50))

    assert result.completed_trips == []
    assert result.unresolved_destinations == [booking.trip_id]
    trip = await TripLifecycleService.get_trip(db_session, booking.trip_id)
    assert trip.status in TripStatus.open_states()


@pytest.mark.asyncio
async def test_unknown_checkpoint_name(db_session, line):
    with pytest.raises(ResourceNotFoundError):
        await _scan(db_session, line, "Nowhere Plaza", T)


@pytest.mark.asyncio
async def test_scan_on_explicit_route(db_session, line):
    result = await _scan(db_session, line, "Pabahay", T, route_id=line.inbound.id)
    assert result.route_id == line.inbound.id
    assert result.checkpoint_id == line.inb["Pabahay"].id
    assert result.sequence_order == 6


@pytest.mark.asyncio
async def test_completion_notifies_passenger_and_driver(db_session, line):
    booking = await _book(db_session, line, passenger="p-77", destination="Malabon")
    await _scan(db_session, line, "Malabon", T + timedelta(minutes=8))

    result = await db_session.execute(
        select(Notification).where(Notification.type == NotificationType.TRIP_COMPLETED)
    )
    recipients = {(n.recipient_type, n.recipient_id) for n in result.scalars().all()}
    assert recipients == {
        (RecipientType.PASSENGER, "p-77"),
        (RecipientType.DRIVER, str(line.drivers[0].id)),
    }


# --- Explicit transitions ---

@pytest.mark.asyncio
async def test_manual_lifecycle_and_noops(db_session, line):
    booking = await _book(db_session, line, destination="Pabahay")
    trip_id = booking.trip_id

    started = await TripLifecycleService.start_trip(db_session, trip_id, started_at=T)
    assert started.status == TransitionStatus.STARTED and started.changed

    again = await TripLifecycleService.start_trip(db_session, trip_id)
    assert again.status == TransitionStatus.ALREADY_STARTED and not again.changed

    completed = await TripLifecycleService.complete_trip(db_session, trip_id, completed_at=T + timedelta(minutes=20))
    assert completed.status == TransitionStatus.COMPLETED
    assert completed.method == CompletionMethod.MANUAL

    repeat = await TripLifecycleService.complete_trip(db_session, trip_id)
    assert repeat.status == TransitionStatus.ALREADY_COMPLETED
    assert repeat.changed is False

    cancel = await TripLifecycleService.cancel_trip(db_session, trip_id)
    assert cancel.status == TransitionStatus.ALREADY_COMPLETED
    assert cancel.trip_status == TripStatus.COMPLETED

    assert len(await _ledger(db_session, line.drivers[0].id)) == 1


@pytest.mark.asyncio
async def test_cancelled_trip_is_terminal(db_session, line):
    booking = await _book(db_session, line, destination="Pabahay")
    trip_id = booking.trip_id

    cancelled = await TripLifecycleService.cancel_trip(db_session, trip_id, reason="passenger no-show")
    assert cancelled.status == TransitionStatus.CANCELLED

    for transition in (
        TripLifecycleService.cancel_trip,
        TripLifecycleService.start_trip,
        TripLifecycleService.complete_trip,
    ):
        result = await transition(db_session, trip_id)
        assert result.status == TransitionStatus.ALREADY_CANCELLED
        assert result.trip_status == TripStatus.CANCELLED

    # A scan past the destination does not revive it
    await _scan(db_session, line, "SM Dasmariñas", T + timedelta(minutes=40))
    trip = await TripLifecycleService.get_trip(db_session, trip_id)
    assert trip.status == TripStatus.CANCELLED
    assert trip.completed_at is None


@pytest.mark.asyncio
async def test_cancel_open_trips_for_passenger(db_session, line):
    await _book(db_session, line, passenger="p-5", driver=0, destination="Malabon")
    await _book(db_session, line, passenger="p-5", driver=1, destination="Pabahay")

    result = await TripLifecycleService.cancel_open_trips(db_session, "p-5")
    assert result.cancelled == 2
    assert await TripLifecycleService.get_active_trips(db_session, passenger_id="p-5") == []


@pytest.mark.asyncio
async def test_get_unknown_trip(db_session, line):
    with pytest.raises(ResourceNotFoundError):
        await TripLifecycleService.get_trip(db_session, "trip_missing")


@pytest.mark.asyncio
async def test_completed_trip_row_is_versioned(db_session, line):
    booking = await _book(db_session, line, destination="Malabon")
    await _scan(db_session, line, "Malabon", T + timedelta(minutes=8))

    row = (await db_session.execute(
        select(BookedTrip).where(BookedTrip.trip_id == booking.trip_id)
    )).scalar_one()
    # booked -> in_progress is skipped when the first scan completes the trip
    assert row.version == 2
