"""
Integration tests for the match repository against SQLite.

Covers idempotent creation, invalidation and re-scoring after edits, and the
accept/reject lifecycle.
"""

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from parcelmatch.app.core.exceptions import InvalidMatchTransitionError, InvalidStateError, ResourceNotFoundError
from parcelmatch.app.core.matching_config import DEFAULT_MATCHING_CONFIG
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.services.candidate_scorer import CandidateScorer
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.geo_metrics import distance_km
from parcelmatch.app.services.parcel_history import get_status_history
from parcelmatch.app.services.pricing import quote_parcel

THRESHOLD = DEFAULT_MATCHING_CONFIG.min_score_threshold


async def count_matches(db, **filters) -> int:
    query = select(func.count(Match.id))
    for column, value in filters.items():
        query = query.where(getattr(Match, column) == value)
    result = await db.execute(query)
    return result.scalar()


async def accepted_pair(db, make_parcel, make_trip):
    """A parcel accepted onto a trip on the close New York -> Los Angeles corridor."""
    parcel = await make_parcel()
    trip = await make_trip()
    repo = MatchRepository(db)
    match = await repo.create_if_absent(parcel.id, trip.id, 94.32)
    await repo.accept(match.id)
    await db.commit()
    return parcel, trip, match


class TestCreateIfAbsent:

    @pytest.mark.asyncio
    async def test_creates_pending_match(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()

        match = await MatchRepository(db_session).create_if_absent(parcel.id, trip.id, 94.3249)
        await db_session.commit()

        assert match.id is not None
        assert match.status == MatchStatus.PENDING
        assert match.match_score == 94.32
        assert match.matched_at is not None

    @pytest.mark.asyncio
    async def test_second_create_is_a_noop(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()
        repo = MatchRepository(db_session)

        first = await repo.create_if_absent(parcel.id, trip.id, 80.0)
        second = await repo.create_if_absent(parcel.id, trip.id, 85.0)
        await db_session.commit()

        assert first is not None
        assert second is None
        assert await count_matches(db_session, parcel_id=parcel.id, trip_id=trip.id) == 1

    @pytest.mark.asyncio
    async def test_losing_writer_in_another_session_is_a_noop(self, session_factory, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()

        async with session_factory() as first_session:
            created = await MatchRepository(first_session).create_if_absent(parcel.id, trip.id, 80.0)
            await first_session.commit()

        async with session_factory() as second_session:
            duplicate = await MatchRepository(second_session).create_if_absent(parcel.id, trip.id, 80.0)
            await second_session.commit()
            total = await count_matches(second_session)

        assert created is not None
        assert duplicate is None
        assert total == 1

    @pytest.mark.asyncio
    async def test_rejected_pair_is_not_recreated(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()
        repo = MatchRepository(db_session)

        match = await repo.create_if_absent(parcel.id, trip.id, 80.0)
        await repo.reject(match.id)
        await db_session.commit()

        assert await repo.create_if_absent(parcel.id, trip.id, 80.0) is None


class TestInvalidatePending:

    @pytest.mark.asyncio
    async def test_deletes_only_pending_matches_of_the_parcel(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        other_parcel = await make_parcel(sender_id=2)
        trip_a = await make_trip()
        trip_b = await make_trip()
        repo = MatchRepository(db_session)

        await repo.create_if_absent(parcel.id, trip_a.id, 80.0)
        rejected = await repo.create_if_absent(parcel.id, trip_b.id, 70.0)
        await repo.reject(rejected.id)
        await repo.create_if_absent(other_parcel.id, trip_a.id, 75.0)
        await db_session.commit()

        deleted = await repo.invalidate_pending(parcel.id)
        await db_session.commit()

        assert deleted == 1
        assert await count_matches(db_session, parcel_id=parcel.id) == 1
        assert await count_matches(db_session, parcel_id=other_parcel.id) == 1

    @pytest.mark.asyncio
    async def test_trip_variant(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()
        repo = MatchRepository(db_session)
        await repo.create_if_absent(parcel.id, trip.id, 80.0)
        await db_session.commit()

        assert await repo.invalidate_pending_for_trip(trip.id) == 1


class TestRescoreAccepted:

    @pytest.mark.asyncio
    async def test_pickup_moved_far_expires_match(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)
        scorer = CandidateScorer()

        # ~200 km north of the trip origin
        parcel.pickup_latitude = 41.8
        outcome = await MatchRepository(db_session).rescore_accepted(parcel, scorer.score, THRESHOLD)
        await db_session.commit()

        assert [m.id for m in outcome["expired"]] == [match.id]
        assert outcome["rescored"] == []

        await db_session.refresh(match)
        await db_session.refresh(parcel)
        await db_session.refresh(trip)
        assert match.status == MatchStatus.EXPIRED
        assert match.match_score < THRESHOLD
        assert parcel.matched_trip_id is None
        assert parcel.status == ParcelStatus.PENDING
        assert trip.locked_parcel_id is None

        history = await get_status_history(db_session, parcel.id)
        assert [h.status for h in history] == [ParcelStatus.MATCHED, ParcelStatus.PENDING]
        assert history[-1].match_id == match.id
        assert history[-1].notes.startswith(f"Match with trip {trip.id} expired")

    @pytest.mark.asyncio
    async def test_rescoring_twice_is_idempotent(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)
        scorer = CandidateScorer()
        repo = MatchRepository(db_session)

        parcel.pickup_latitude = 41.8
        first = await repo.rescore_accepted(parcel, scorer.score, THRESHOLD)
        await db_session.commit()
        second = await repo.rescore_accepted(parcel, scorer.score, THRESHOLD)
        await db_session.commit()

        assert len(first["expired"]) == 1
        assert second == {"expired": [], "rescored": []}

    @pytest.mark.asyncio
    async def test_still_valid_match_keeps_status_and_updates_score(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)
        scorer = CandidateScorer()
        repo = MatchRepository(db_session)

        first = await repo.rescore_accepted(parcel, scorer.score, THRESHOLD)
        first_score = first["rescored"][0].match_score
        second = await repo.rescore_accepted(parcel, scorer.score, THRESHOLD)
        await db_session.commit()

        assert second["rescored"][0].match_score == first_score
        assert match.status == MatchStatus.ACCEPTED
        assert 93.0 < match.match_score < 96.0

    @pytest.mark.asyncio
    async def test_trip_edit_expires_match(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)
        scorer = CandidateScorer()

        trip.origin_latitude = 41.8
        outcome = await MatchRepository(db_session).rescore_accepted_for_trip(trip, scorer.score, THRESHOLD)
        await db_session.commit()

        assert [m.id for m in outcome["expired"]] == [match.id]
        assert parcel.matched_trip_id is None
        assert trip.locked_parcel_id is None


class TestAcceptReject:

    @pytest.mark.asyncio
    async def test_accept_locks_parcel_and_trip(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()
        repo = MatchRepository(db_session)
        match = await repo.create_if_absent(parcel.id, trip.id, 90.0)

        await repo.accept(match.id, pricing=quote_parcel)
        await db_session.commit()

        # Domestic US route on the generic card: 5.00 + 0.40/km, medium parcel
        expected_fee = round(5.0 + distance_km(40.0, -73.0, 34.0, -118.0) * 0.40, 2)
        assert match.status == MatchStatus.ACCEPTED
        assert match.accepted_at is not None
        assert match.delivery_fee == pytest.approx(expected_fee)
        assert match.platform_fee == pytest.approx(round(expected_fee * 0.15, 2))
        assert match.total_amount == pytest.approx(match.delivery_fee + match.platform_fee)
        assert match.currency == "USD"
        assert match.payment_status == PaymentStatus.PENDING
        assert parcel.status == ParcelStatus.MATCHED
        assert parcel.matched_trip_id == trip.id
        assert trip.locked_parcel_id == parcel.id

    @pytest.mark.asyncio
    async def test_accept_without_quote_leaves_payment_unset(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel(delivery_address="London, UK", delivery_latitude=51.5, delivery_longitude=-0.12)
        trip = await make_trip()
        repo = MatchRepository(db_session)
        match = await repo.create_if_absent(parcel.id, trip.id, 90.0)

        # No rate card for US -> GB
        await repo.accept(match.id, pricing=quote_parcel)

        assert match.status == MatchStatus.ACCEPTED
        assert match.delivery_fee is None
        assert match.total_amount is None
        assert match.payment_status is None
        assert match.currency is None

    @pytest.mark.asyncio
    async def test_accept_records_status_history(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)

        history = await get_status_history(db_session, parcel.id)

        assert [(h.status, h.match_id) for h in history] == [(ParcelStatus.MATCHED, match.id)]
        assert history[0].notes == f"Matched with trip {trip.id}. Courier accepted the match."

    @pytest.mark.asyncio
    async def test_accept_rejects_competing_pending_matches(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        other_parcel = await make_parcel(sender_id=2)
        trip = await make_trip()
        other_trip = await make_trip(courier_id=11)
        repo = MatchRepository(db_session)

        chosen = await repo.create_if_absent(parcel.id, trip.id, 90.0)
        same_parcel = await repo.create_if_absent(parcel.id, other_trip.id, 85.0)
        same_trip = await repo.create_if_absent(other_parcel.id, trip.id, 80.0)
        unrelated = await repo.create_if_absent(other_parcel.id, other_trip.id, 75.0)
        await db_session.commit()

        await repo.accept(chosen.id)
        await db_session.commit()

        for match in (same_parcel, same_trip, unrelated):
            await db_session.refresh(match)
        assert same_parcel.status == MatchStatus.REJECTED
        assert same_trip.status == MatchStatus.REJECTED
        assert unrelated.status == MatchStatus.PENDING

    @pytest.mark.asyncio
    async def test_accept_twice_is_invalid_transition(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)

        with pytest.raises(InvalidMatchTransitionError):
            await MatchRepository(db_session).accept(match.id)

    @pytest.mark.asyncio
    async def test_accept_on_locked_trip_is_invalid_state(self, db_session, make_parcel, make_trip):
        parcel, trip, match = await accepted_pair(db_session, make_parcel, make_trip)
        late_parcel = await make_parcel(sender_id=2)
        repo = MatchRepository(db_session)
        late_match = await repo.create_if_absent(late_parcel.id, trip.id, 88.0)

        with pytest.raises(InvalidStateError):
            await repo.accept(late_match.id)

    @pytest.mark.asyncio
    async def test_reject_pending_match(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip = await make_trip()
        repo = MatchRepository(db_session)
        match = await repo.create_if_absent(parcel.id, trip.id, 90.0)

        await repo.reject(match.id)
        assert match.status == MatchStatus.REJECTED
        assert parcel.status == ParcelStatus.PENDING

        with pytest.raises(InvalidMatchTransitionError):
            await repo.reject(match.id)

    @pytest.mark.asyncio
    async def test_unknown_match(self, db_session):
        repo = MatchRepository(db_session)
        with pytest.raises(ResourceNotFoundError):
            await repo.accept(12345)
        with pytest.raises(ResourceNotFoundError):
            await repo.reject(12345)

    @pytest.mark.asyncio
    async def test_database_allows_one_accepted_match_per_parcel(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip_a = await make_trip()
        trip_b = await make_trip()

        db_session.add(Match(parcel_id=parcel.id, trip_id=trip_a.id, match_score=90, status=MatchStatus.ACCEPTED))
        await db_session.flush()
        db_session.add(Match(parcel_id=parcel.id, trip_id=trip_b.id, match_score=85, status=MatchStatus.ACCEPTED))

        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_for_parcel_removes_every_row(self, db_session, make_parcel, make_trip):
        parcel = await make_parcel()
        trip_a = await make_trip()
        trip_b = await make_trip()
        repo = MatchRepository(db_session)
        await repo.create_if_absent(parcel.id, trip_a.id, 90.0)
        rejected = await repo.create_if_absent(parcel.id, trip_b.id, 80.0)
        await repo.reject(rejected.id)
        await db_session.commit()

        assert await repo.delete_for_parcel(parcel.id) == 2
