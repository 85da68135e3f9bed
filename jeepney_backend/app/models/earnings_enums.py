"""
Earnings and shift enumerations.
"""

import enum


class ShiftStatus(str, enum.Enum):
    """Shift window status enumeration."""
    ACTIVE = "active"  # Open, end_time is null
    ENDED = "ended"


class ShiftAction(str, enum.Enum):
    """Outcome of a start/end shift call."""
    STARTED = "started"
    RESTARTED = "restarted"  # Same business day record reused
    ALREADY_ACTIVE = "already_active"
    ENDED = "ended"
    NO_ACTIVE_SHIFT = "no_active_shift"
    CONCURRENT_UPDATE = "concurrent_update"  # Version check lost


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    XENDIT = "xendit"
    GCASH = "gcash"
    SYSTEM = "system"  # Ledger lines written by the engine itself
