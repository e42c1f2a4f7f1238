"""
Candidate discovery queries.

Plain reads against the parcel/trip store: which trips could carry a parcel
and which parcels could ride a trip. No scoring happens here.
"""

from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.timeutils import as_utc
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.services.match_repository import OPEN_MATCH_STATUSES


def is_parcel_matchable(parcel: Parcel) -> bool:
    return parcel.status == ParcelStatus.PENDING and parcel.matched_trip_id is None


def is_trip_schedulable(trip: Trip, now: datetime) -> bool:
    return (
        trip.status == TripStatus.SCHEDULED
        and trip.locked_parcel_id is None
        and as_utc(trip.departure_time) > as_utc(now)
    )


async def find_candidate_trips_for_parcel(db: AsyncSession, parcel: Parcel, now: datetime) -> List[Trip]:
    """
    Trips that could carry the parcel.

    Scheduled, departing in the future, not locked to another parcel, and
    without a PENDING/ACCEPTED match for this parcel already.
    """
    already_matched = select(Match.trip_id).where(
        Match.parcel_id == parcel.id,
        Match.status.in_(OPEN_MATCH_STATUSES)
    )
    result = await db.execute(
        select(Trip)
        .where(
            Trip.status == TripStatus.SCHEDULED,
            Trip.locked_parcel_id.is_(None),
            Trip.id.not_in(already_matched),
        )
        .order_by(Trip.created_at.desc(), Trip.id.desc())
    )
    # Departure filtered in Python: SQLite compares naive timestamp strings
    return [trip for trip in result.scalars().all() if as_utc(trip.departure_time) > as_utc(now)]


async def find_candidate_parcels_for_trip(db: AsyncSession, trip: Trip) -> List[Parcel]:
    """
    Parcels the trip could carry.

    Pending, not matched to any trip, and without a PENDING/ACCEPTED match
    for this trip already.
    """
    already_matched = select(Match.parcel_id).where(
        Match.trip_id == trip.id,
        Match.status.in_(OPEN_MATCH_STATUSES)
    )
    result = await db.execute(
        select(Parcel)
        .where(
            Parcel.status == ParcelStatus.PENDING,
            Parcel.matched_trip_id.is_(None),
            Parcel.id.not_in(already_matched),
        )
        .order_by(Parcel.created_at.desc(), Parcel.id.desc())
    )
    return list(result.scalars().all())
