"""
Tiered distance fare formula.

Fares are piecewise-linear in the number of checkpoint segments travelled:

    0-1 segments      base fare
    2 segments        short-hop fare
    3-12 segments     short-hop -> medium ceiling (linear)
    13-16 segments    medium ceiling -> long ceiling (linear)
    beyond 16         long ceiling

Results are rounded half-up to centavos.
"""

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from jeepney_backend.app.core.config import settings

CENTAVO = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTAVO, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FareSchedule:
    """Reference fares and the segment counts where they apply."""
    base: Decimal
    short_hop: Decimal
    medium_ceiling: Decimal
    long_ceiling: Decimal
    short_hop_segments: int = 2
    medium_segments: int = 12
    long_segments: int = 16

    def __post_init__(self):
        if not (0 < self.base <= self.short_hop <= self.medium_ceiling <= self.long_ceiling):
            raise ValueError("Fare reference points must be positive and non-decreasing")
        if not (1 < self.short_hop_segments < self.medium_segments < self.long_segments):
            raise ValueError("Fare segment points must be strictly increasing and above 1")

    @classmethod
    def from_settings(cls) -> "FareSchedule":
        return cls(
            base=to_money(settings.fare_base_amount),
            short_hop=to_money(settings.fare_short_hop_amount),
            medium_ceiling=to_money(settings.fare_medium_ceiling),
            long_ceiling=to_money(settings.fare_long_ceiling),
            short_hop_segments=settings.fare_short_hop_segments,
            medium_segments=settings.fare_medium_segments,
            long_segments=settings.fare_long_segments,
        )

    def with_base(self, base_fare: Optional[float]) -> "FareSchedule":
        """Copy with a different base fare; higher reference points are raised to keep the curve monotonic."""
        if base_fare is None:
            return self
        base = to_money(base_fare)
        short_hop = max(self.short_hop, base)
        medium = max(self.medium_ceiling, short_hop)
        return replace(
            self,
            base=base,
            short_hop=short_hop,
            medium_ceiling=medium,
            long_ceiling=max(self.long_ceiling, medium),
        )


def _interpolate(start: Decimal, end: Decimal, position: int, lower: int, upper: int) -> Decimal:
    return start + (Decimal(position - lower) / Decimal(upper - lower)) * (end - start)


def tiered_fare_decimal(segments: int, schedule: Optional[FareSchedule] = None) -> Decimal:
    schedule = schedule or FareSchedule.from_settings()
    distance = abs(int(segments))

    if distance <= 1:
        fare = schedule.base
    elif distance <= schedule.short_hop_segments:
        fare = schedule.short_hop
    elif distance <= schedule.medium_segments:
        fare = _interpolate(
            schedule.short_hop, schedule.medium_ceiling,
            distance, schedule.short_hop_segments, schedule.medium_segments
        )
    elif distance <= schedule.long_segments:
        fare = _interpolate(
            schedule.medium_ceiling, schedule.long_ceiling,
            distance, schedule.medium_segments, schedule.long_segments
        )
    else:
        fare = schedule.long_ceiling

    return fare.quantize(CENTAVO, rounding=ROUND_HALF_UP)


def calculate_tiered_fare(segments: int, schedule: Optional[FareSchedule] = None) -> float:
    """Fare in pesos for a trip spanning ``segments`` checkpoint gaps."""
    return float(tiered_fare_decimal(segments, schedule))
