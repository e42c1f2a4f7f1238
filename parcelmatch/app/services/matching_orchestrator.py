"""
Matching orchestrator.

Ties candidate discovery, scoring and the match repository together for the
events that change what can match: a parcel or trip created or edited, a
courier accepting or rejecting a match.

Every public method is one unit of work and commits its own transaction.
Store reads go through a bounded retry; if they keep failing the error is
propagated to the caller.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from parcelmatch.app.core.matching_config import MatchingConfig, DEFAULT_MATCHING_CONFIG
from parcelmatch.app.core.pricing_config import PricingConfig, DEFAULT_PRICING_CONFIG
from parcelmatch.app.core.reliability import with_bounded_retry
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.services.candidate_finder import (
    find_candidate_parcels_for_trip,
    find_candidate_trips_for_parcel,
    is_parcel_matchable,
    is_trip_schedulable,
)
from parcelmatch.app.services.candidate_scorer import CandidateScorer, ScoreBreakdown
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.notification_service import NotificationService
from parcelmatch.app.services.pricing import PricingQuote, quote_parcel

logger = logging.getLogger("parcelmatch.matching.orchestrator")


def _summary(created: List[Match]) -> Dict:
    return {"created": len(created), "match_ids": [match.id for match in created]}


class MatchingOrchestrator:

    def __init__(
        self,
        db: AsyncSession,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
        scorer: Optional[CandidateScorer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        read_attempts: int = 3,
        read_retry_delay: float = 0.2,
        pricing: PricingConfig = DEFAULT_PRICING_CONFIG,
    ):
        self.db = db
        self.config = config
        self.pricing = pricing
        self.clock = clock or utcnow
        self.scorer = scorer or CandidateScorer(config, self.clock)
        self.matches = MatchRepository(db)
        self.read_attempts = read_attempts
        self.read_retry_delay = read_retry_delay

    async def _read(self, operation, description: str):
        return await with_bounded_retry(
            operation,
            attempts=self.read_attempts,
            delay_seconds=self.read_retry_delay,
            description=description,
        )

    async def _load_parcel(self, parcel_id: int) -> Optional[Parcel]:
        return await self._read(lambda: self.db.get(Parcel, parcel_id), f"load parcel {parcel_id}")

    async def _load_trip(self, trip_id: int) -> Optional[Trip]:
        return await self._read(lambda: self.db.get(Trip, trip_id), f"load trip {trip_id}")

    async def _persist_if_valid(self, parcel: Parcel, trip: Trip) -> Optional[Match]:
        match_score = self.scorer.score(parcel, trip)
        if not self.scorer.is_valid(match_score):
            return None

        match = await self.matches.create_if_absent(parcel.id, trip.id, match_score)
        if match is not None:
            await NotificationService.notify_courier_of_match(self.db, match, parcel, trip)
        return match

    async def find_and_create_matches_for_parcel(self, parcel_id: int) -> Dict:
        """
        Score a parcel against every candidate trip and persist the matches
        at or above the threshold.

        Returns:
            {"created": n, "match_ids": [...]}
        """
        parcel = await self._load_parcel(parcel_id)
        if parcel is None:
            logger.warning("Parcel %s not found, skipping matching", parcel_id)
            return _summary([])
        if not is_parcel_matchable(parcel):
            logger.info("Parcel %s is %s, not open for matching", parcel_id, parcel.status.value)
            return _summary([])

        now = self.clock()
        trips = await self._read(
            lambda: find_candidate_trips_for_parcel(self.db, parcel, now),
            f"candidate trips for parcel {parcel_id}"
        )

        created = []
        # Sequential: one session serializes its writes anyway
        for trip in trips:
            match = await self._persist_if_valid(parcel, trip)
            if match is not None:
                created.append(match)

        await self.db.commit()
        logger.info(
            "Parcel %s: %d candidate trips, %d matches created",
            parcel_id, len(trips), len(created)
        )
        return _summary(created)

    async def find_and_create_matches_for_trip(self, trip_id: int) -> Dict:
        """Same as the parcel direction, starting from a trip."""
        trip = await self._load_trip(trip_id)
        if trip is None:
            logger.warning("Trip %s not found, skipping matching", trip_id)
            return _summary([])
        if not is_trip_schedulable(trip, self.clock()):
            logger.info("Trip %s is not open for matching", trip_id)
            return _summary([])

        parcels = await self._read(
            lambda: find_candidate_parcels_for_trip(self.db, trip),
            f"candidate parcels for trip {trip_id}"
        )

        created = []
        for parcel in parcels:
            match = await self._persist_if_valid(parcel, trip)
            if match is not None:
                created.append(match)

        await self.db.commit()
        logger.info(
            "Trip %s: %d candidate parcels, %d matches created",
            trip_id, len(parcels), len(created)
        )
        return _summary(created)

    async def handle_parcel_edit(self, parcel: Parcel) -> Dict:
        """
        Bring existing matches in line with an edited parcel.

        Pending matches are dropped; accepted ones are re-scored and expired
        when they fall below the threshold, in which case the sender is told.
        Commits together with whatever changes the caller made to the parcel.
        """
        invalidated = await self.matches.invalidate_pending(parcel.id)
        outcome = await self.matches.rescore_accepted(
            parcel, self.scorer.score, self.config.min_score_threshold
        )

        for match in outcome["expired"]:
            await NotificationService.notify_sender_of_expiry(self.db, match, parcel)

        await self.db.commit()
        logger.info(
            "Parcel %s edited: %d pending invalidated, %d accepted expired, %d accepted kept",
            parcel.id, invalidated, len(outcome["expired"]), len(outcome["rescored"])
        )
        return {
            "invalidated": invalidated,
            "expired_match_ids": [match.id for match in outcome["expired"]],
            "rescored_match_ids": [match.id for match in outcome["rescored"]],
        }

    async def handle_trip_edit(self, trip: Trip) -> Dict:
        """Same clean-up as handle_parcel_edit, for a trip whose route or schedule changed."""
        invalidated = await self.matches.invalidate_pending_for_trip(trip.id)
        outcome = await self.matches.rescore_accepted_for_trip(
            trip, self.scorer.score, self.config.min_score_threshold
        )

        for match in outcome["expired"]:
            parcel = await self.db.get(Parcel, match.parcel_id)
            await NotificationService.notify_sender_of_expiry(self.db, match, parcel)

        await self.db.commit()
        logger.info(
            "Trip %s edited: %d pending invalidated, %d accepted expired, %d accepted kept",
            trip.id, invalidated, len(outcome["expired"]), len(outcome["rescored"])
        )
        return {
            "invalidated": invalidated,
            "expired_match_ids": [match.id for match in outcome["expired"]],
            "expired_parcel_ids": [match.parcel_id for match in outcome["expired"]],
            "rescored_match_ids": [match.id for match in outcome["rescored"]],
        }

    async def on_parcel_created_or_updated(self, parcel_id: int, edited: bool = False) -> Dict:
        """Entry point for parcel events; edits clean up stale matches before discovery."""
        if edited:
            parcel = await self._load_parcel(parcel_id)
            if parcel is None:
                logger.warning("Parcel %s not found, skipping matching", parcel_id)
                return _summary([])
            await self.handle_parcel_edit(parcel)

        return await self.find_and_create_matches_for_parcel(parcel_id)

    async def on_trip_created(self, trip_id: int) -> Dict:
        return await self.find_and_create_matches_for_trip(trip_id)

    async def on_trip_updated(self, trip_id: int) -> Dict:
        """
        Clean up an edited trip's matches, then re-match.

        Parcels that lost their accepted match look for another trip before
        the trip itself looks for parcels.
        """
        trip = await self._load_trip(trip_id)
        if trip is None:
            logger.warning("Trip %s not found, skipping matching", trip_id)
            return _summary([])

        outcome = await self.handle_trip_edit(trip)
        for parcel_id in outcome["expired_parcel_ids"]:
            await self.find_and_create_matches_for_parcel(parcel_id)

        return await self.find_and_create_matches_for_trip(trip_id)

    def quote_parcel(self, parcel: Parcel) -> Optional[PricingQuote]:
        return quote_parcel(parcel, self.pricing)

    async def accept_match(self, match_id: int) -> Match:
        """Courier accepts a pending match at the server-computed price; the sender is notified."""
        try:
            match = await self.matches.accept(match_id, pricing=self.quote_parcel)
            parcel = await self.db.get(Parcel, match.parcel_id)
            trip = await self.db.get(Trip, match.trip_id)
            await NotificationService.notify_sender_of_acceptance(self.db, match, parcel, trip)
            await self.db.commit()
        except IntegrityError:
            # Another courier's accept for the same parcel won the race
            await self.db.rollback()
            raise InvalidStateError(
                "Parcel was accepted by another courier",
                details={"match_id": match_id}
            )

        await self.db.refresh(match)
        return match

    async def reject_match(self, match_id: int) -> Match:
        match = await self.matches.reject(match_id)
        await self.db.commit()
        await self.db.refresh(match)
        return match

    async def preview_score(self, parcel_id: int, trip_id: int) -> ScoreBreakdown:
        """Score breakdown for a pair, without persisting anything."""
        parcel = await self._load_parcel(parcel_id)
        if parcel is None:
            raise ResourceNotFoundError("Parcel", parcel_id)
        trip = await self._load_trip(trip_id)
        if trip is None:
            raise ResourceNotFoundError("Trip", trip_id)
        return self.scorer.breakdown(parcel, trip)
