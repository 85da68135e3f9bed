"""
Scan-driven completion rules.

Pure functions, evaluated per open trip for every checkpoint scan.
"""

from typing import Optional

from jeepney_backend.app.models.trip_enums import CompletionMethod


def evaluate_completion(
    scanned_name: Optional[str],
    scan_sequence: int,
    destination_name: Optional[str],
    destination_sequence: Optional[int]
) -> Optional[CompletionMethod]:
    """
    Decide whether a scan completes a trip.

    Exact match wins: the scanned name is literally the destination name.
    Otherwise the trip completes once the driver has reached or passed the
    destination's sequence position (drivers skip checkpoints). A destination
    that did not resolve to a position can only complete by exact match.
    """
    if scanned_name and destination_name and scanned_name.strip() == destination_name.strip():
        return CompletionMethod.EXACT_MATCH
    if destination_sequence is not None and scan_sequence >= destination_sequence:
        return CompletionMethod.PASS_THROUGH
    return None


def has_reached_pickup(scan_sequence: int, pickup_sequence: Optional[int]) -> bool:
    return pickup_sequence is not None and scan_sequence >= pickup_sequence
