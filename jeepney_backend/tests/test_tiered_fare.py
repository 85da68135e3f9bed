"""
Tiered distance fare formula.
"""

from decimal import Decimal

import pytest

from jeepney_backend.app.domain.fares.tiered_fare import (
    FareSchedule, calculate_tiered_fare, tiered_fare_decimal, to_money
)


@pytest.fixture
def schedule():
    return FareSchedule(
        base=Decimal("13.00"),
        short_hop=Decimal("15.00"),
        medium_ceiling=Decimal("30.00"),
        long_ceiling=Decimal("50.00"),
    )


@pytest.mark.parametrize("segments,expected", [
    (0, 13.00),
    (1, 13.00),
    (2, 15.00),
    (12, 30.00),
    (16, 50.00),
])
def test_reference_points(schedule, segments, expected):
    assert calculate_tiered_fare(segments, schedule) == expected


@pytest.mark.parametrize("segments,expected", [
    (3, 16.50),
    (7, 22.50),
    (13, 35.00),
    (15, 45.00),
])
def test_interpolated_fares(schedule, segments, expected):
    assert calculate_tiered_fare(segments, schedule) == expected


def test_fare_is_clamped_beyond_the_long_ceiling(schedule):
    assert calculate_tiered_fare(17, schedule) == 50.00
    assert calculate_tiered_fare(40, schedule) == 50.00


def test_direction_does_not_matter(schedule):
    assert calculate_tiered_fare(-12, schedule) == calculate_tiered_fare(12, schedule)


def test_fares_never_decrease_with_distance(schedule):
    fares = [tiered_fare_decimal(d, schedule) for d in range(0, 25)]
    assert fares == sorted(fares)


def test_results_are_rounded_to_centavos():
    odd = FareSchedule(
        base=Decimal("13.00"),
        short_hop=Decimal("15.00"),
        medium_ceiling=Decimal("16.00"),
        long_ceiling=Decimal("50.00"),
        medium_segments=5,
    )
    assert tiered_fare_decimal(3, odd) == Decimal("15.33")
    assert tiered_fare_decimal(4, odd) == Decimal("15.67")


def test_to_money_rounds_half_up():
    assert to_money(12.345) == Decimal("12.35")
    assert to_money("0.005") == Decimal("0.01")


def test_schedule_rejects_decreasing_reference_points():
    with pytest.raises(ValueError):
        FareSchedule(
            base=Decimal("20.00"),
            short_hop=Decimal("15.00"),
            medium_ceiling=Decimal("30.00"),
            long_ceiling=Decimal("50.00"),
        )


def test_schedule_rejects_unordered_segment_points():
    with pytest.raises(ValueError):
        FareSchedule(
            base=Decimal("13.00"),
            short_hop=Decimal("15.00"),
            medium_ceiling=Decimal("30.00"),
            long_ceiling=Decimal("50.00"),
            medium_segments=20,
        )


def test_with_base_keeps_curve_monotonic(schedule):
    raised = schedule.with_base(20)
    assert raised.base == Decimal("20.00")
    assert calculate_tiered_fare(1, raised) == 20.00
    assert calculate_tiered_fare(2, raised) == 20.00
    assert calculate_tiered_fare(3, raised) == 21.00
    assert calculate_tiered_fare(16, raised) == 50.00

    fares = [tiered_fare_decimal(d, raised) for d in range(0, 20)]
    assert fares == sorted(fares)


def test_with_base_none_is_identity(schedule):
    assert schedule.with_base(None) is schedule


def test_default_schedule_matches_settings():
    schedule = FareSchedule.from_settings()
    assert schedule.base == Decimal("13.00")
    assert calculate_tiered_fare(16) == 50.00
