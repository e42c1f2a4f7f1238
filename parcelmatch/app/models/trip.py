"""
Trip database model.

Couriers publish trips along a route they already plan to travel.
"""

from sqlalchemy import Column, Integer, Float, DateTime, Enum, Text
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.trip_enums import TripStatus, TripCapacity


class Trip(Base):
    """
    Trip model.

    A trip carries at most one parcel: accepting a match locks the trip to
    that parcel until the match expires.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership (user ids come from the external auth service)
    courier_id = Column(Integer, nullable=False, index=True)

    # Route
    origin_address = Column(Text, nullable=False)
    origin_latitude = Column(Float, nullable=True)
    origin_longitude = Column(Float, nullable=True)
    destination_address = Column(Text, nullable=False)
    destination_latitude = Column(Float, nullable=True)
    destination_longitude = Column(Float, nullable=True)

    # Schedule
    departure_time = Column(DateTime(timezone=True), nullable=False, index=True)
    estimated_arrival = Column(DateTime(timezone=True), nullable=False)

    # Capacity (None = courier did not say)
    available_capacity = Column(Enum(TripCapacity), nullable=True)

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.SCHEDULED, nullable=False, index=True)
    locked_parcel_id = Column(Integer, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, courier_id={self.courier_id}, status='{self.status.value}')>"
