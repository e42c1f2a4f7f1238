"""
Parcel Status Enumeration.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        PENDING → MATCHED → PICKED_UP → IN_TRANSIT → DELIVERED
        MATCHED → PENDING when the accepted match expires
        PENDING/MATCHED can transition to CANCELLED
    """
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Sender may still edit the parcel in these states
EDITABLE_PARCEL_STATUSES = (ParcelStatus.PENDING, ParcelStatus.MATCHED)
