"""
Notification service.

Creates the in-app notifications the matching engine emits and manages their
read state. Delivery over WhatsApp or email is the messaging collaborator's
job; it reads from the same table.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from typing import Optional, Dict, Any

from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.notification import Notification, NotificationType
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def notify_courier_of_match(db: AsyncSession, match: Match, parcel: Parcel, trip: Trip) -> Notification:
        """Tell the courier a parcel fits their trip."""
        return await NotificationService.create_notification(
            db,
            user_id=trip.courier_id,
            type=NotificationType.MATCH_FOUND,
            title="New parcel match available",
            message=(
                f"A parcel from {parcel.pickup_address} to {parcel.delivery_address} "
                f"matches your trip {trip.origin_address} → {trip.destination_address} "
                f"(score {match.match_score:.2f}/100)."
            ),
            metadata={"match_id": match.id, "parcel_id": parcel.id, "trip_id": trip.id, "match_score": match.match_score}
        )

    @staticmethod
    async def notify_sender_of_acceptance(db: AsyncSession, match: Match, parcel: Parcel, trip: Trip) -> Notification:
        """Tell the sender a courier accepted their parcel."""
        return await NotificationService.create_notification(
            db,
            user_id=parcel.sender_id,
            type=NotificationType.MATCH_ACCEPTED,
            title="A courier accepted your parcel",
            message=(
                f"Your parcel to {parcel.delivery_address} will travel on the trip "
                f"{trip.origin_address} → {trip.destination_address}."
            ),
            metadata={
                "match_id": match.id,
                "parcel_id": parcel.id,
                "trip_id": trip.id,
                "delivery_fee": match.delivery_fee,
                "platform_fee": match.platform_fee,
                "total_amount": match.total_amount,
                "currency": match.currency,
            }
        )

    @staticmethod
    async def notify_sender_of_expiry(db: AsyncSession, match: Match, parcel: Parcel) -> Notification:
        """Tell the sender an edit voided their accepted match and the parcel needs re-matching."""
        return await NotificationService.create_notification(
            db,
            user_id=parcel.sender_id,
            type=NotificationType.MATCH_EXPIRED,
            title="Your parcel needs a new match",
            message=(
                "After a recent change your parcel no longer fits the courier's route. "
                "We are looking for another trip."
            ),
            metadata={"match_id": match.id, "parcel_id": parcel.id, "trip_id": match.trip_id, "match_score": match.match_score}
        )

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
