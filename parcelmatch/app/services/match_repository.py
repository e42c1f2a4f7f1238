"""
Match repository.

Owns creation, deletion and status transitions of parcel-trip matches.
Duplicate creation is resolved by the (parcel_id, trip_id) unique constraint:
the losing writer's insert is a no-op, not an error.

Methods flush but never commit; the caller owns the transaction.
"""

import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import InvalidMatchTransitionError, InvalidStateError, ResourceNotFoundError
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.services.parcel_history import record_status_change
from parcelmatch.app.services.pricing import PricingQuote

logger = logging.getLogger("parcelmatch.matching.repository")

# Statuses that block re-matching the same pair
OPEN_MATCH_STATUSES = (MatchStatus.PENDING, MatchStatus.ACCEPTED)


def _dialect_insert(db: AsyncSession):
    """INSERT construct with ON CONFLICT support for the bound dialect, if any."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class MatchRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, match_id: int) -> Optional[Match]:
        result = await self.db.execute(select(Match).where(Match.id == match_id))
        return result.scalar_one_or_none()

    async def get_for_pair(self, parcel_id: int, trip_id: int) -> Optional[Match]:
        result = await self.db.execute(
            select(Match).where(Match.parcel_id == parcel_id, Match.trip_id == trip_id)
        )
        return result.scalar_one_or_none()

    async def list_for_parcel(self, parcel_id: int, status: Optional[MatchStatus] = None) -> List[Match]:
        query = select(Match).where(Match.parcel_id == parcel_id)
        if status is not None:
            query = query.where(Match.status == status)
        result = await self.db.execute(query.order_by(Match.match_score.desc(), Match.id))
        return list(result.scalars().all())

    async def list_for_trip(self, trip_id: int, status: Optional[MatchStatus] = None) -> List[Match]:
        query = select(Match).where(Match.trip_id == trip_id)
        if status is not None:
            query = query.where(Match.status == status)
        result = await self.db.execute(query.order_by(Match.match_score.desc(), Match.id))
        return list(result.scalars().all())

    async def create_if_absent(self, parcel_id: int, trip_id: int, match_score: float) -> Optional[Match]:
        """
        Insert a PENDING match unless one already exists for the pair.

        The row is written by a single statement carrying id, score, status
        and timestamp, so a match is either fully created or not at all.

        Returns:
            The new match, or None if the pair already had a row.
        """
        values = {
            "parcel_id": parcel_id,
            "trip_id": trip_id,
            "match_score": round(match_score, 2),
            "status": MatchStatus.PENDING,
            "matched_at": utcnow(),
        }

        insert = _dialect_insert(self.db)
        if insert is not None:
            stmt = (
                insert(Match)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["parcel_id", "trip_id"])
                .returning(Match.id)
            )
            result = await self.db.execute(stmt)
            match_id = result.scalar_one_or_none()
        else:
            match_id = await self._insert_with_savepoint(values)

        if match_id is None:
            logger.info("Match already exists for parcel %s and trip %s", parcel_id, trip_id)
            return None

        logger.info("Created match %s for parcel %s and trip %s (score %.2f)", match_id, parcel_id, trip_id, match_score)
        return await self.get(match_id)

    async def _insert_with_savepoint(self, values: Dict) -> Optional[int]:
        match = Match(**values)
        try:
            async with self.db.begin_nested():
                self.db.add(match)
                await self.db.flush()
        except IntegrityError:
            return None
        return match.id

    async def invalidate_pending(self, parcel_id: int) -> int:
        """
        Delete every PENDING match of a parcel.

        Used when the parcel is edited: old candidate scores may describe a
        route that no longer applies, so they are recomputed rather than
        updated.

        Returns:
            Number of matches deleted
        """
        result = await self.db.execute(
            delete(Match).where(Match.parcel_id == parcel_id, Match.status == MatchStatus.PENDING)
        )
        if result.rowcount:
            logger.info("Invalidated %d pending matches for parcel %s", result.rowcount, parcel_id)
        return result.rowcount

    async def invalidate_pending_for_trip(self, trip_id: int) -> int:
        """Delete every PENDING match of a trip (trip edited)."""
        result = await self.db.execute(
            delete(Match).where(Match.trip_id == trip_id, Match.status == MatchStatus.PENDING)
        )
        if result.rowcount:
            logger.info("Invalidated %d pending matches for trip %s", result.rowcount, trip_id)
        return result.rowcount

    def _apply_rescore(
        self,
        match: Match,
        parcel: Parcel,
        trip: Trip,
        new_score: float,
        threshold: float,
        outcome: Dict[str, List[Match]],
    ) -> None:
        if new_score < threshold:
            match.status = MatchStatus.EXPIRED
            match.match_score = new_score
            if parcel.matched_trip_id == match.trip_id:
                parcel.matched_trip_id = None
                parcel.status = ParcelStatus.PENDING
                record_status_change(
                    self.db, parcel.id, ParcelStatus.PENDING,
                    notes=f"Match with trip {trip.id} expired: score {new_score:.2f} below {threshold:.2f}",
                    match_id=match.id
                )
            if trip.locked_parcel_id == parcel.id:
                trip.locked_parcel_id = None
            logger.info(
                "Accepted match %s expired: score %.2f below threshold %.2f",
                match.id, new_score, threshold
            )
            outcome["expired"].append(match)
        else:
            match.match_score = new_score
            outcome["rescored"].append(match)

    async def rescore_accepted(
        self,
        parcel: Parcel,
        score_fn: Callable[[Parcel, Trip], float],
        threshold: float,
    ) -> Dict[str, List[Match]]:
        """
        Re-score every ACCEPTED match of a parcel against its current data.

        Below threshold the match becomes EXPIRED, the parcel goes back to
        PENDING with matched_trip_id cleared, and the trip lock is released.
        Otherwise the score is updated in place. Calling this twice with
        unchanged data is a no-op the second time.

        Returns:
            {"expired": [...], "rescored": [...]}
        """
        outcome = {"expired": [], "rescored": []}
        for match in await self.list_for_parcel(parcel.id, MatchStatus.ACCEPTED):
            trip = await self.db.get(Trip, match.trip_id)
            new_score = round(score_fn(parcel, trip), 2)
            self._apply_rescore(match, parcel, trip, new_score, threshold, outcome)

        await self.db.flush()
        return outcome

    async def rescore_accepted_for_trip(
        self,
        trip: Trip,
        score_fn: Callable[[Parcel, Trip], float],
        threshold: float,
    ) -> Dict[str, List[Match]]:
        """Same as rescore_accepted, for an edited trip."""
        outcome = {"expired": [], "rescored": []}
        for match in await self.list_for_trip(trip.id, MatchStatus.ACCEPTED):
            parcel = await self.db.get(Parcel, match.parcel_id)
            new_score = round(score_fn(parcel, trip), 2)
            self._apply_rescore(match, parcel, trip, new_score, threshold, outcome)

        await self.db.flush()
        return outcome

    async def accept(
        self,
        match_id: int,
        pricing: Optional[Callable[[Parcel], Optional[PricingQuote]]] = None,
    ) -> Match:
        """
        Courier accepts a PENDING match.

        First come, first served: the other PENDING matches of the parcel and
        of the trip are rejected, the parcel is marked MATCHED and the trip is
        locked to it. The fee comes from pricing the parcel; without a quote
        the payment fields stay empty.
        """
        match = await self.get(match_id)
        if not match:
            raise ResourceNotFoundError("Match", match_id)
        if match.status != MatchStatus.PENDING:
            raise InvalidMatchTransitionError(match_id, match.status.value, MatchStatus.ACCEPTED.value)

        parcel = await self.db.get(Parcel, match.parcel_id)
        trip = await self.db.get(Trip, match.trip_id)

        if parcel.status != ParcelStatus.PENDING or parcel.matched_trip_id is not None:
            raise InvalidStateError(
                "Parcel is no longer available (already matched or cancelled)",
                details={"parcel_id": parcel.id, "status": parcel.status.value}
            )
        if trip.locked_parcel_id is not None and trip.locked_parcel_id != parcel.id:
            raise InvalidStateError(
                "This trip is already locked to another parcel",
                details={"trip_id": trip.id, "locked_parcel_id": trip.locked_parcel_id}
            )

        await self.db.execute(
            update(Match)
            .where(
                Match.status == MatchStatus.PENDING,
                Match.id != match.id,
                (Match.parcel_id == parcel.id) | (Match.trip_id == trip.id),
            )
            .values(status=MatchStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )

        match.status = MatchStatus.ACCEPTED
        match.accepted_at = utcnow()
        quote = pricing(parcel) if pricing is not None else None
        if quote is not None:
            match.delivery_fee = quote.delivery_fee
            match.platform_fee = quote.platform_fee
            match.total_amount = quote.total_amount
            match.currency = quote.currency
            match.payment_status = PaymentStatus.PENDING

        parcel.status = ParcelStatus.MATCHED
        parcel.matched_trip_id = trip.id
        trip.locked_parcel_id = parcel.id
        record_status_change(
            self.db, parcel.id, ParcelStatus.MATCHED,
            notes=f"Matched with trip {trip.id}. Courier accepted the match.",
            match_id=match.id
        )

        await self.db.flush()
        logger.info("Match %s accepted: parcel %s locked to trip %s", match.id, parcel.id, trip.id)
        return match

    async def reject(self, match_id: int) -> Match:
        """Courier rejects a PENDING match; the parcel stays open for other trips."""
        match = await self.get(match_id)
        if not match:
            raise ResourceNotFoundError("Match", match_id)
        if match.status != MatchStatus.PENDING:
            raise InvalidMatchTransitionError(match_id, match.status.value, MatchStatus.REJECTED.value)

        match.status = MatchStatus.REJECTED
        await self.db.flush()
        logger.info("Match %s rejected", match.id)
        return match

    async def delete_for_parcel(self, parcel_id: int) -> int:
        """Remove every match row of a parcel (parcel deletion)."""
        result = await self.db.execute(delete(Match).where(Match.parcel_id == parcel_id))
        return result.rowcount

    async def delete_for_trip(self, trip_id: int) -> int:
        """Remove every match row of a trip (trip deletion)."""
        result = await self.db.execute(delete(Match).where(Match.trip_id == trip_id))
        return result.rowcount
