"""
Route and fare-matrix enumerations.
"""

import enum


class RecordStatus(str, enum.Enum):
    """Lifecycle flag shared by routes, checkpoints and fare entries."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class FareMethod(str, enum.Enum):
    """Which resolution rule produced a fare quote."""
    EXACT_ENTRY = "exact_entry"  # Active entry for (route, from, to)
    REVERSE_ENTRY = "reverse_entry"  # Active entry for (route, to, from)
    TIERED_DISTANCE = "tiered_distance"  # Synthesized from segment count


class MirrorStatus(str, enum.Enum):
    """Outcome of writing the opposite-direction copy of a fare entry."""
    MIRRORED = "mirrored"
    MIRROR_UNCHANGED = "mirror_unchanged"
    MIRROR_SKIPPED = "mirror_skipped"  # Opposite checkpoints not found (degraded success)
    NO_OPPOSITE_ROUTE = "no_opposite_route"
