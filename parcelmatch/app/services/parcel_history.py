"""
Parcel status history service.

Writers are synchronous adds into the caller's transaction, so a history
row is committed together with the status change it describes.
"""

from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory


def record_status_change(
    db: AsyncSession,
    parcel_id: int,
    status: ParcelStatus,
    notes: Optional[str] = None,
    match_id: Optional[int] = None
) -> ParcelStatusHistory:
    """
    Add a history entry for a parcel status change.

    Args:
        db: Database session
        parcel_id: Parcel whose status changed
        status: New status
        notes: Human-readable reason
        match_id: Match whose transition caused the change

    Returns:
        Pending ParcelStatusHistory instance
    """
    entry = ParcelStatusHistory(parcel_id=parcel_id, status=status, notes=notes, match_id=match_id)
    db.add(entry)
    return entry


async def get_status_history(db: AsyncSession, parcel_id: int) -> List[ParcelStatusHistory]:
    """Timeline of a parcel, oldest first."""
    result = await db.execute(
        select(ParcelStatusHistory)
        .where(ParcelStatusHistory.parcel_id == parcel_id)
        .order_by(ParcelStatusHistory.created_at, ParcelStatusHistory.id)
    )
    return list(result.scalars().all())


async def delete_status_history(db: AsyncSession, parcel_id: int) -> int:
    result = await db.execute(
        delete(ParcelStatusHistory).where(ParcelStatusHistory.parcel_id == parcel_id)
    )
    return result.rowcount
