"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    SCHEDULED = "SCHEDULED"  # Published, open for matching
    IN_PROGRESS = "IN_PROGRESS"  # Courier has departed
    COMPLETED = "COMPLETED"  # Arrived
    CANCELLED = "CANCELLED"  # Trip cancelled


class TripCapacity(str, enum.Enum):
    """Space the courier has left, ordered smallest to largest."""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
