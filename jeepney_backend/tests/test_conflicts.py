"""
Checkpoint conflict ordering and driver freshness.
"""

from datetime import datetime, timedelta

import pytest

from jeepney_backend.app.core.exceptions import ResourceNotFoundError
from jeepney_backend.app.domain.dispatch.conflict_resolver import (
    ConflictResolver, FreshnessStatus, classify_freshness
)
from jeepney_backend.app.domain.earnings.shift_service import ShiftService
from jeepney_backend.app.domain.trips.trip_lifecycle import TripLifecycleService

T = datetime(2026, 3, 3, 9, 0)


async def _scan_at(db, line, driver, name, at):
    return await TripLifecycleService.process_checkpoint_scan(
        db, driver_id=line.drivers[driver].id, checkpoint_id=line.out[name].id, scanned_at=at
    )


@pytest.fixture
async def queue_at_pabahay(db_session, line):
    """Three drivers reach Pabahay two minutes apart."""
    results = []
    for driver, minutes in ((0, 0), (1, 2), (2, 4)):
        results.append(await _scan_at(db_session, line, driver, "Pabahay", T + timedelta(minutes=minutes)))
    return results


@pytest.mark.parametrize("minutes,on_shift,expected", [
    (0, True, FreshnessStatus.ACTIVE),
    (5, True, FreshnessStatus.ACTIVE),
    (5.1, True, FreshnessStatus.STALE),
    (15, True, FreshnessStatus.STALE),
    (15.5, True, FreshnessStatus.INACTIVE),
    (1, False, FreshnessStatus.INACTIVE),
])
def test_classify_freshness(minutes, on_shift, expected):
    assert classify_freshness(minutes, on_shift) == expected


@pytest.mark.asyncio
async def test_first_arrived_departs_first(db_session, line, queue_at_pabahay):
    report = await ConflictResolver.detect_conflicts(
        db_session, line.out["Pabahay"].id, now=T + timedelta(minutes=5)
    )

    assert report.has_conflict is True
    assert report.checkpoint_name == "Pabahay"
    assert [d.driver_id for d in report.ordered_drivers] == [d.id for d in line.drivers]
    assert [d.position for d in report.ordered_drivers] == [1, 2, 3]
    assert [d.estimated_departure_offset_minutes for d in report.ordered_drivers] == [0, 5, 10]


@pytest.mark.asyncio
async def test_scan_result_carries_conflict(line, queue_at_pabahay):
    last = queue_at_pabahay[-1]
    assert last.conflict.has_conflict is True
    assert len(last.conflict.ordered_drivers) == 3

    first = queue_at_pabahay[0]
    assert first.conflict.has_conflict is False


@pytest.mark.asyncio
async def test_driver_who_moved_on_leaves_the_queue(db_session, line, queue_at_pabahay):
    await _scan_at(db_session, line, 1, "Monterey", T + timedelta(minutes=6))

    report = await ConflictResolver.detect_conflicts(
        db_session, line.out["Pabahay"].id, now=T + timedelta(minutes=7)
    )
    assert [d.driver_id for d in report.ordered_drivers] == [line.drivers[0].id, line.drivers[2].id]
    assert [d.estimated_departure_offset_minutes for d in report.ordered_drivers] == [0, 5]


@pytest.mark.asyncio
async def test_scans_outside_window_are_ignored(db_session, line, queue_at_pabahay):
    late = await ConflictResolver.detect_conflicts(
        db_session, line.out["Pabahay"].id, now=T + timedelta(minutes=15)
    )
    assert late.has_conflict is False
    assert late.ordered_drivers == []

    narrow = await ConflictResolver.detect_conflicts(
        db_session, line.out["Pabahay"].id, window_minutes=2, now=T + timedelta(minutes=5)
    )
    assert [d.driver_id for d in narrow.ordered_drivers] == [line.drivers[2].id]
    assert narrow.has_conflict is False


@pytest.mark.asyncio
async def test_zero_window_is_not_the_default(db_session, line, queue_at_pabahay):
    report = await ConflictResolver.detect_conflicts(
        db_session, line.out["Pabahay"].id, window_minutes=0, now=T + timedelta(minutes=4)
    )
    assert report.window_minutes == 0
    assert [d.driver_id for d in report.ordered_drivers] == [line.drivers[2].id]
    assert report.has_conflict is False


@pytest.mark.asyncio
async def test_conflicts_for_unknown_checkpoint(db_session, line):
    with pytest.raises(ResourceNotFoundError):
        await ConflictResolver.detect_conflicts(db_session, 9999, now=T)


@pytest.mark.asyncio
async def test_driver_locations_with_freshness(db_session, line, queue_at_pabahay):
    await _scan_at(db_session, line, 1, "Monterey", T + timedelta(minutes=6))
    await ShiftService.start_shift(db_session, line.drivers[0].id, now=T - timedelta(hours=2))
    await ShiftService.start_shift(db_session, line.drivers[1].id, now=T - timedelta(hours=2))

    locations = await ConflictResolver.get_driver_locations(db_session, line.outbound.id, now=T + timedelta(minutes=9))

    seen = [(d.driver_id, d.checkpoint_name, d.status, d.on_shift) for d in locations.drivers]
    assert seen == [
        (line.drivers[1].id, "Monterey", FreshnessStatus.ACTIVE, True),
        (line.drivers[0].id, "Pabahay", FreshnessStatus.STALE, True),
        (line.drivers[2].id, "Pabahay", FreshnessStatus.INACTIVE, False),
    ]
    assert locations.drivers[0].minutes_since_scan == 3.0
