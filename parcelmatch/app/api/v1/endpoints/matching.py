"""
Matching API Endpoints.

Senders see the trips matched to their parcels, couriers see the parcels
matched to their trips and accept or reject them. Admins can preview the
score breakdown of any parcel-trip pair.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from parcelmatch.app.db.session import get_db
from parcelmatch.app.models.match_enums import MatchStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.schemas.match import (
    MatchResponse, MatchListResponse, PriceEstimateResponse, ScorePreviewRequest, ScorePreviewResponse
)
from parcelmatch.app.core.guards import require_role, OwnershipGuard
from parcelmatch.app.core.dependencies import get_current_user, get_orchestrator
from parcelmatch.app.core.exceptions import ResourceNotFoundError
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.matching_orchestrator import MatchingOrchestrator

router = APIRouter(prefix="/matching", tags=["Matching"])
ownership_guard = OwnershipGuard()


async def _courier_match_or_404(db: AsyncSession, match_id: int, current_user: dict):
    """Load a match and check that the caller drives its trip."""
    match = await MatchRepository(db).get(match_id)
    if not match:
        raise ResourceNotFoundError("Match", match_id)
    trip = await db.get(Trip, match.trip_id)
    ownership_guard.enforce(trip.courier_id, current_user, "match")
    return match


@router.get("/parcels/{parcel_id}/matches", response_model=MatchListResponse)
async def list_parcel_matches(
    parcel_id: int = Path(..., description="Parcel ID"),
    status_filter: Optional[MatchStatus] = Query(None, alias="status", description="Filter by status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Matches of a parcel, best score first (parcel owner or admin)."""
    parcel = await db.get(Parcel, parcel_id)
    if not parcel:
        raise ResourceNotFoundError("Parcel", parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")

    matches = await MatchRepository(db).list_for_parcel(parcel_id, status_filter)
    return MatchListResponse(
        matches=[MatchResponse.model_validate(m) for m in matches],
        total=len(matches)
    )


@router.get("/trips/{trip_id}/matches", response_model=MatchListResponse)
async def list_trip_matches(
    trip_id: int = Path(..., description="Trip ID"),
    status_filter: Optional[MatchStatus] = Query(None, alias="status", description="Filter by status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Matches of a trip, best score first (trip courier or admin)."""
    trip = await db.get(Trip, trip_id)
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    ownership_guard.enforce(trip.courier_id, current_user, "trip")

    matches = await MatchRepository(db).list_for_trip(trip_id, status_filter)
    return MatchListResponse(
        matches=[MatchResponse.model_validate(m) for m in matches],
        total=len(matches)
    )


@router.get("/parcels/{parcel_id}/price-estimate", response_model=PriceEstimateResponse)
async def estimate_parcel_price(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator)
):
    """Delivery fee the sender will be charged on acceptance (parcel owner or admin)."""
    parcel = await db.get(Parcel, parcel_id)
    if not parcel:
        raise ResourceNotFoundError("Parcel", parcel_id)
    ownership_guard.enforce(parcel.sender_id, current_user, "parcel")

    quote = orchestrator.quote_parcel(parcel)
    if quote is None:
        raise ResourceNotFoundError("Delivery pricing for this route")
    return PriceEstimateResponse(parcel_id=parcel.id, **quote._asdict())


@router.post("/matches/{match_id}/accept", response_model=MatchResponse)
async def accept_match(
    match_id: int = Path(..., description="Match ID"),
    current_user: dict = Depends(require_role([UserRole.COURIER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator)
):
    """
    Accept a pending match (trip courier only).

    The parcel is locked to the trip and every other pending match of the
    parcel or the trip is rejected. The delivery fee is priced from the
    parcel's route; clients cannot set it.
    """
    await _courier_match_or_404(db, match_id, current_user)

    match = await orchestrator.accept_match(match_id)
    return MatchResponse.model_validate(match)


@router.post("/matches/{match_id}/reject", response_model=MatchResponse)
async def reject_match(
    match_id: int = Path(..., description="Match ID"),
    current_user: dict = Depends(require_role([UserRole.COURIER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator)
):
    """Reject a pending match (trip courier only)."""
    await _courier_match_or_404(db, match_id, current_user)

    match = await orchestrator.reject_match(match_id)
    return MatchResponse.model_validate(match)


@router.post("/score-preview", response_model=ScorePreviewResponse)
async def preview_score(
    preview_request: ScorePreviewRequest,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator)
):
    """Score breakdown for a parcel-trip pair, nothing is persisted (Admin only)."""
    breakdown = await orchestrator.preview_score(preview_request.parcel_id, preview_request.trip_id)
    return ScorePreviewResponse(
        parcel_id=preview_request.parcel_id,
        trip_id=preview_request.trip_id,
        threshold=orchestrator.config.min_score_threshold,
        is_valid=orchestrator.scorer.is_valid(breakdown.total),
        **breakdown._asdict()
    )
