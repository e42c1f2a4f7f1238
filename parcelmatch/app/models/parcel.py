"""
Parcel database model.

Senders create parcels that need transport; the matching engine links them
to courier trips.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Text
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.parcel_enums import ParcelStatus


class Parcel(Base):
    """
    Parcel model.

    Coordinates are optional: they come from the geocoding provider and may
    be missing, in which case matching falls back to the address text.
    matched_trip_id is set only while exactly one ACCEPTED match exists for
    (parcel, trip).
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership (user ids come from the external auth service)
    sender_id = Column(Integer, nullable=False, index=True)

    # Route
    pickup_address = Column(Text, nullable=False)
    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)
    delivery_address = Column(Text, nullable=False)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)

    # Contents
    description = Column(String(500), nullable=True)
    weight_kg = Column(Float, nullable=True)
    dimensions = Column(String(200), nullable=False)
    estimated_value = Column(Float, nullable=True)
    estimated_value_currency = Column(String(3), nullable=True)

    # Scheduling
    preferred_pickup_time = Column(DateTime(timezone=True), nullable=True)

    # Status
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    matched_trip_id = Column(Integer, ForeignKey('trips.id'), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, sender_id={self.sender_id}, status='{self.status.value}')>"
