"""
Trip API Endpoints.

Couriers publish and manage their trips. Matching for a new or edited trip
runs in the background after the response has been sent.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Path, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from parcelmatch.app.db.session import get_db
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.schemas.trip import (
    TripCreate, TripUpdate, TripResponse, TripListResponse, ensure_arrival_after_departure, validate_trip_times
)
from parcelmatch.app.core.guards import require_role, OwnershipGuard
from parcelmatch.app.core.dependencies import get_current_user, get_task_dispatcher
from parcelmatch.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.services.corridor_alignment import addresses_match
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.matching_tasks import MatchingTaskDispatcher

router = APIRouter(prefix="/trips", tags=["Trips"])
ownership_guard = OwnershipGuard()

_GEOCODED_FIELDS = {
    "origin_address": ("origin_latitude", "origin_longitude"),
    "destination_address": ("destination_latitude", "destination_longitude"),
}


async def _get_trip_or_404(db: AsyncSession, trip_id: int) -> Trip:
    result = await db.execute(select(Trip).where(Trip.id == trip_id))
    trip = result.scalar_one_or_none()
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


def _ensure_scheduled(trip: Trip, action: str) -> None:
    if trip.status != TripStatus.SCHEDULED:
        raise InvalidStateError(
            f"Only scheduled trips can be {action} (current status: {trip.status.value})",
            details={"trip_id": trip.id, "status": trip.status.value}
        )


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: dict = Depends(require_role([UserRole.COURIER])),
    db: AsyncSession = Depends(get_db),
    dispatcher: MatchingTaskDispatcher = Depends(get_task_dispatcher)
):
    """
    Publish a trip (Courier only). Pending parcels are matched in the background.
    """
    new_trip = Trip(
        courier_id=current_user["user_id"],
        **trip_data.model_dump(),
        status=TripStatus.SCHEDULED
    )

    db.add(new_trip)
    await db.commit()
    await db.refresh(new_trip)

    dispatcher.match_trip(new_trip.id)

    return TripResponse.model_validate(new_trip)


@router.get("", response_model=TripListResponse)
async def list_trips(
    status_filter: Optional[TripStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(require_role([UserRole.COURIER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    List trips. Couriers see their own; admins see all.
    """
    query = select(Trip)
    if current_user["role"] != UserRole.ADMIN.value:
        query = query.where(Trip.courier_id == current_user["user_id"])
    if status_filter is not None:
        query = query.where(Trip.status == status_filter)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    trip_result = await db.execute(
        query.order_by(Trip.departure_time, Trip.id).offset(offset).limit(page_size)
    )
    trips = trip_result.scalars().all()

    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a trip. Ownership is enforced."""
    trip = await _get_trip_or_404(db, trip_id)
    ownership_guard.enforce(trip.courier_id, current_user, "trip")
    return TripResponse.model_validate(trip)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    trip_id: int = Path(..., description="Trip ID"),
    trip_data: TripUpdate = ...,
    current_user: dict = Depends(require_role([UserRole.COURIER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    dispatcher: MatchingTaskDispatcher = Depends(get_task_dispatcher)
):
    """
    Edit a scheduled trip.

    The edit is saved and returned right away. Its pending matches are then
    dropped, accepted ones re-scored, and parcels and the trip re-matched in
    the background.
    """
    trip = await _get_trip_or_404(db, trip_id)
    ownership_guard.enforce(trip.courier_id, current_user, "trip")
    _ensure_scheduled(trip, "edited")

    changes = trip_data.model_dump(exclude_unset=True)

    origin = changes.get("origin_address", trip.origin_address)
    destination = changes.get("destination_address", trip.destination_address)
    if addresses_match(origin, destination):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Origin and destination addresses cannot be the same"
        )

    try:
        validate_trip_times(changes.get("departure_time"), changes.get("estimated_arrival"))
        ensure_arrival_after_departure(
            changes.get("departure_time", trip.departure_time),
            changes.get("estimated_arrival", trip.estimated_arrival)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    for address_field, coordinate_fields in _GEOCODED_FIELDS.items():
        if address_field in changes and changes[address_field] != getattr(trip, address_field):
            for coordinate_field in coordinate_fields:
                changes.setdefault(coordinate_field, None)

    for field, value in changes.items():
        setattr(trip, field, value)

    await db.commit()
    await db.refresh(trip)

    dispatcher.match_trip(trip.id, edited=True)

    return TripResponse.model_validate(trip)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role([UserRole.COURIER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a scheduled trip that no parcel is locked to, along with its matches.
    """
    trip = await _get_trip_or_404(db, trip_id)
    ownership_guard.enforce(trip.courier_id, current_user, "trip")
    _ensure_scheduled(trip, "deleted")

    if trip.locked_parcel_id is not None:
        raise InvalidStateError(
            "Trip has an accepted parcel and cannot be deleted",
            details={"trip_id": trip.id, "locked_parcel_id": trip.locked_parcel_id}
        )

    await MatchRepository(db).delete_for_trip(trip.id)
    await db.delete(trip)
    await db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)
