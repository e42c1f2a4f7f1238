"""
Concurrency Tests.

Two writers racing on the same parcel: duplicate match creation and double
acceptance must both leave the store consistent. Truly concurrent writers
need separate connections, so the insert race runs on a file-backed database.
"""

import asyncio
import pytest
from datetime import timedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from parcelmatch.app.core.exceptions import InvalidStateError
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.services.match_repository import MatchRepository
from parcelmatch.app.services.matching_orchestrator import MatchingOrchestrator

from conftest import COURIER_ID, OTHER_COURIER_ID, SENDER_ID


@pytest.mark.asyncio
async def test_parcel_and_trip_events_do_not_duplicate_matches(session_factory, make_parcel, make_trip):
    """A parcel event and a trip event scoring the same pair yield one row."""
    trip = await make_trip()
    parcel = await make_parcel()

    async with session_factory() as parcel_side:
        from_parcel = await MatchingOrchestrator(parcel_side).on_parcel_created_or_updated(parcel.id)
    async with session_factory() as trip_side:
        from_trip = await MatchingOrchestrator(trip_side).on_trip_created(trip.id)

    assert from_parcel["created"] + from_trip["created"] == 1
    async with session_factory() as db:
        rows = (await db.execute(select(Match))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_stale_second_accept_is_refused(session_factory, make_parcel, make_trip):
    """
    Two couriers open the same parcel's matches; the slower one acts on a
    stale view after the first accept committed.
    """
    parcel = await make_parcel()
    trip_a = await make_trip()
    trip_b = await make_trip(courier_id=OTHER_COURIER_ID)

    async with session_factory() as db:
        repo = MatchRepository(db)
        match_a = await repo.create_if_absent(parcel.id, trip_a.id, 90.0)
        match_b = await repo.create_if_absent(parcel.id, trip_b.id, 88.0)
        await db.commit()

    async with session_factory() as slow_session:
        # Load the state the slow courier sees before the fast one commits
        await MatchRepository(slow_session).get(match_b.id)
        await slow_session.get(Parcel, parcel.id)
        await slow_session.get(Trip, trip_b.id)
        await slow_session.commit()

        async with session_factory() as fast_session:
            await MatchingOrchestrator(fast_session).accept_match(match_a.id)

        with pytest.raises(InvalidStateError):
            await MatchingOrchestrator(slow_session).accept_match(match_b.id)

    async with session_factory() as db:
        accepted = (
            await db.execute(select(Match).where(Match.status == MatchStatus.ACCEPTED))
        ).scalars().all()
        stored_parcel = await db.get(Parcel, parcel.id)
    assert [m.id for m in accepted] == [match_a.id]
    assert stored_parcel.matched_trip_id == trip_a.id


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file."""
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matches.db'}",
        connect_args={"timeout": 15},
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)

    await file_engine.dispose()


async def _seed_pair(factory):
    departure = utcnow() + timedelta(hours=48)
    async with factory() as db:
        parcel = Parcel(
            sender_id=SENDER_ID,
            pickup_address="New York, USA",
            delivery_address="Los Angeles, USA",
            weight_kg=3.0,
            dimensions="30x20x10 cm",
        )
        trip = Trip(
            courier_id=COURIER_ID,
            origin_address="New York, USA",
            destination_address="Los Angeles, USA",
            departure_time=departure,
            estimated_arrival=departure + timedelta(hours=40),
        )
        db.add_all([parcel, trip])
        await db.commit()
        return parcel.id, trip.id


@pytest.mark.asyncio
async def test_concurrent_create_if_absent_writes_one_row(file_session_factory):
    """Two sessions insert the same pair at once; exactly one insert wins."""
    parcel_id, trip_id = await _seed_pair(file_session_factory)

    async def create(score):
        async with file_session_factory() as db:
            match = await MatchRepository(db).create_if_absent(parcel_id, trip_id, score)
            await db.commit()
            return match

    first, second = await asyncio.gather(create(91.0), create(89.5))

    created = [m for m in (first, second) if m is not None]
    assert len(created) == 1
    async with file_session_factory() as db:
        rows = (await db.execute(select(Match))).scalars().all()
    assert len(rows) == 1
    assert rows[0].id == created[0].id
    assert rows[0].match_score == created[0].match_score
