"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Booked trip status enumeration."""
    BOOKED = "booked"  # Reserved, passenger not yet picked up
    IN_PROGRESS = "in_progress"  # Driver has reached the pickup
    COMPLETED = "completed"  # Destination reached or passed
    CANCELLED = "cancelled"  # Operator or passenger cancelled

    @classmethod
    def open_states(cls):
        return (cls.BOOKED, cls.IN_PROGRESS)

    @property
    def is_terminal(self) -> bool:
        return self in (TripStatus.COMPLETED, TripStatus.CANCELLED)


class CompletionMethod(str, enum.Enum):
    """Rule that closed a trip."""
    EXACT_MATCH = "exact_match"  # Scanned name equals destination name
    PASS_THROUGH = "pass_through"  # Scan sequence reached or passed destination
    MANUAL = "manual"  # Explicit operator completion


class TransitionStatus(str, enum.Enum):
    """Result of an explicit state change request."""
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ALREADY_STARTED = "already_started"
    ALREADY_COMPLETED = "already_completed"
    ALREADY_CANCELLED = "already_cancelled"
    INVALID_TRANSITION = "invalid_transition"
