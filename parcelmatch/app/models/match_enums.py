"""
Match-related enumerations.
"""

import enum


class MatchStatus(str, enum.Enum):
    """
    Match status enumeration.

    Lifecycle:
        PENDING → ACCEPTED (courier accepts)
        PENDING → REJECTED (courier rejects, or another match was accepted)
        PENDING → deleted (parcel edited)
        ACCEPTED → EXPIRED (parcel edited and re-score falls below threshold)
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, enum.Enum):
    """Payment state mirrored from the payment provider."""
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"
