"""
Parcel API Endpoints.

Senders create and manage their parcel requests. Creating a parcel runs
matching inline so the response can report how many trips were found.
An edit is committed first; cleaning up its stale matches and looking for
new trips then runs in the background, so a failed re-match never loses
the edit.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Path, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from parcelmatch.app.db.session import get_db
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus, EDITABLE_PARCEL_STATUSES
from parcelmatch.app.schemas.parcel import (
    ParcelCreate, ParcelUpdate, ParcelResponse, ParcelListResponse, ParcelCreateResponse,
    ParcelStatusHistoryResponse, ParcelStatusHistoryListResponse
)
from parcelmatch.app.core.guards import require_role, OwnershipGuard
from parcelmatch.app.core.dependencies import get_current_user, get_orchestrator, get_task_dispatcher
from parcelmatch.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.services.corridor_alignment import addresses_match
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.matching_orchestrator import MatchingOrchestrator
from parcelmatch.app.services.parcel_history import delete_status_history, get_status_history
from parcelmatch.app.services.matching_tasks import MatchingTaskDispatcher

router = APIRouter(prefix="/parcels", tags=["Parcels"])
ownership_guard = OwnershipGuard()

# Address field -> coordinate fields geocoded from it
_GEOCODED_FIELDS = {
    "pickup_address": ("pickup_latitude", "pickup_longitude"),
    "delivery_address": ("delivery_latitude", "delivery_longitude"),
}


async def _get_parcel_or_404(db: AsyncSession, parcel_id: int) -> Parcel:
    result = await db.execute(select(Parcel).where(Parcel.id == parcel_id))
    parcel = result.scalar_one_or_none()
    if not parcel:
        raise ResourceNotFoundError("Parcel", parcel_id)
    return parcel


@router.post("", response_model=ParcelCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator)
):
    """
    Create a parcel request (Sender only) and match it against scheduled trips.
    """
    new_parcel = Parcel(
        sender_id=current_user["user_id"],
        **parcel_data.model_dump(),
        status=ParcelStatus.PENDING
    )

    db.add(new_parcel)
    await db.commit()
    await db.refresh(new_parcel)

    result = await orchestrator.on_parcel_created_or_updated(new_parcel.id)
    await db.refresh(new_parcel)

    return ParcelCreateResponse(
        parcel=ParcelResponse.model_validate(new_parcel),
        matches_created=result["created"]
    )


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    status_filter: Optional[ParcelStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(require_role([UserRole.SENDER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    List parcels. Senders see their own; admins see all.
    """
    query = select(Parcel)
    if current_user["role"] != UserRole.ADMIN.value:
        query = query.where(Parcel.sender_id == current_user["user_id"])
    if status_filter is not None:
        query = query.where(Parcel.status == status_filter)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    parcel_result = await db.execute(
        query.order_by(Parcel.created_at.desc(), Parcel.id.desc()).offset(offset).limit(page_size)
    )
    parcels = parcel_result.scalars().all()

    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get a parcel. Ownership is enforced.
    """
    parcel = await _get_parcel_or_404(db, parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")
    return ParcelResponse.model_validate(parcel)


@router.get("/{parcel_id}/history", response_model=ParcelStatusHistoryListResponse)
async def get_parcel_history(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Status timeline of a parcel, oldest first. Ownership is enforced.
    """
    parcel = await _get_parcel_or_404(db, parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")

    entries = await get_status_history(db, parcel.id)
    return ParcelStatusHistoryListResponse(
        parcel_id=parcel.id,
        history=[ParcelStatusHistoryResponse.model_validate(e) for e in entries]
    )


@router.patch("/{parcel_id}", response_model=ParcelResponse)
async def update_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    parcel_data: ParcelUpdate = ...,
    current_user: dict = Depends(require_role([UserRole.SENDER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    dispatcher: MatchingTaskDispatcher = Depends(get_task_dispatcher)
):
    """
    Edit a parcel before pickup.

    The edit is saved and returned right away. Pending matches are then
    invalidated, accepted ones re-scored, and new trips looked for in the
    background.
    """
    parcel = await _get_parcel_or_404(db, parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")

    if parcel.status not in EDITABLE_PARCEL_STATUSES:
        raise InvalidStateError(
            f"Parcel can only be edited before pickup (current status: {parcel.status.value})",
            details={"parcel_id": parcel.id, "status": parcel.status.value}
        )

    changes = parcel_data.model_dump(exclude_unset=True)
    pickup_address = changes.get("pickup_address", parcel.pickup_address)
    delivery_address = changes.get("delivery_address", parcel.delivery_address)
    if addresses_match(pickup_address, delivery_address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pickup and delivery addresses cannot be the same"
        )

    # A moved address without fresh coordinates must not keep the old geocode
    for address_field, coordinate_fields in _GEOCODED_FIELDS.items():
        if address_field in changes and changes[address_field] != getattr(parcel, address_field):
            for coordinate_field in coordinate_fields:
                changes.setdefault(coordinate_field, None)

    for field, value in changes.items():
        setattr(parcel, field, value)

    await db.commit()
    await db.refresh(parcel)

    dispatcher.match_parcel(parcel.id, edited=True)

    return ParcelResponse.model_validate(parcel)


@router.delete("/{parcel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.SENDER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a parcel that is still pending and unmatched, along with its matches.
    """
    parcel = await _get_parcel_or_404(db, parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")

    if parcel.status != ParcelStatus.PENDING or parcel.matched_trip_id is not None:
        raise InvalidStateError(
            "Only pending, unmatched parcels can be deleted",
            details={"parcel_id": parcel.id, "status": parcel.status.value}
        )

    await MatchRepository(db).delete_for_parcel(parcel.id)
    await delete_status_history(db, parcel.id)
    await db.delete(parcel)
    await db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)
