"""
Notification database model.

In-app messages emitted by the matching engine for couriers and senders.
The messaging collaborator (WhatsApp, email) picks them up from here.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
import enum


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    MATCH_FOUND = "MATCH_FOUND"  # Courier: a parcel fits your trip
    MATCH_ACCEPTED = "MATCH_ACCEPTED"  # Sender: a courier accepted your parcel
    MATCH_EXPIRED = "MATCH_EXPIRED"  # Sender: your edit voided the accepted match


class Notification(Base):
    """
    In-app notification.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, nullable=False, index=True)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type='{self.type.value}')>"
