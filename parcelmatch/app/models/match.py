"""
Parcel-trip match database model.

Uniqueness of (parcel, trip) and "one accepted match per parcel" are both
enforced by the database, not by application locks.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Enum, UniqueConstraint, Index, text
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus


class Match(Base):
    """
    A scored candidate pairing of one parcel with one trip.
    """
    __tablename__ = "parcel_trip_matches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)

    # Score 0-100, two decimals
    match_score = Column(Float, nullable=False)

    status = Column(Enum(MatchStatus), default=MatchStatus.PENDING, nullable=False, index=True)

    matched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    # Payment-linked fields, populated on acceptance
    delivery_fee = Column(Float, nullable=True)
    platform_fee = Column(Float, nullable=True)
    total_amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    payment_status = Column(Enum(PaymentStatus), nullable=True)
    delivery_confirmed_by_sender_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('parcel_id', 'trip_id', name='uq_matches_parcel_trip'),
        # At most one ACCEPTED match per parcel
        Index(
            'ix_matches_one_accepted_per_parcel', 'parcel_id', unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
            sqlite_where=text("status = 'ACCEPTED'"),
        ),
    )

    def __repr__(self):
        return f"<Match(id={self.id}, parcel_id={self.parcel_id}, trip_id={self.trip_id}, score={self.match_score}, status='{self.status.value}')>"
