"""
Parcel status history database model.

One row per status change the matching engine makes to a parcel, so senders
and support can see why a parcel was matched and later reopened.
"""

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.parcel_enums import ParcelStatus


class ParcelStatusHistory(Base):
    """
    Parcel status timeline entry.
    """
    __tablename__ = "parcel_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id', ondelete='CASCADE'), nullable=False, index=True)

    # Status the parcel moved to
    status = Column(Enum(ParcelStatus), nullable=False)
    notes = Column(Text, nullable=True)

    # Match whose transition caused the change
    match_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ParcelStatusHistory(id={self.id}, parcel_id={self.parcel_id}, status='{self.status.value}')>"
