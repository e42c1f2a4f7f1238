"""
Centralized Test Configuration.

Each test gets a fresh in-memory SQLite database shared by the request
sessions and the background matching sessions.
"""

import pytest
from datetime import timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from parcelmatch.app.main import app
from parcelmatch.app.db.session import get_db, get_session_factory, Base
from parcelmatch.app.core.jwt import create_access_token
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripCapacity, TripStatus

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SENDER_ID = 1
OTHER_SENDER_ID = 2
COURIER_ID = 10
OTHER_COURIER_ID = 11
ADMIN_ID = 99


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
async def engine():
    """Create tables before each test function and drop after."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
def apply_overrides(session_factory):
    """Point request sessions and background sessions at the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


def _token(user_id: int, role: UserRole) -> dict:
    token = create_access_token(data={"sub": f"user{user_id}", "user_id": user_id, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sender_headers():
    return _token(SENDER_ID, UserRole.SENDER)


@pytest.fixture
def other_sender_headers():
    return _token(OTHER_SENDER_ID, UserRole.SENDER)


@pytest.fixture
def courier_headers():
    return _token(COURIER_ID, UserRole.COURIER)


@pytest.fixture
def other_courier_headers():
    return _token(OTHER_COURIER_ID, UserRole.COURIER)


@pytest.fixture
def admin_headers():
    return _token(ADMIN_ID, UserRole.ADMIN)


# New York -> Los Angeles corridor used across the suite
NEW_YORK = ("New York, USA", 40.0, -73.0)
LOS_ANGELES = ("Los Angeles, USA", 34.0, -118.0)


def _parcel_payload(**overrides) -> dict:
    """JSON body for POST /parcels on the New York -> Los Angeles corridor."""
    payload = {
        "pickup_address": NEW_YORK[0],
        "pickup_latitude": NEW_YORK[1],
        "pickup_longitude": NEW_YORK[2],
        "delivery_address": LOS_ANGELES[0],
        "delivery_latitude": LOS_ANGELES[1],
        "delivery_longitude": LOS_ANGELES[2],
        "description": "Books",
        "weight_kg": 3.0,
        "dimensions": "30x20x10 cm",
        "estimated_value": 120.0,
        "estimated_value_currency": "USD",
    }
    payload.update(overrides)
    return payload


def _trip_payload(**overrides) -> dict:
    """JSON body for POST /trips close to the parcel corridor, leaving in 48h."""
    departure = utcnow() + timedelta(hours=48)
    payload = {
        "origin_address": "New York, USA",
        "origin_latitude": 40.01,
        "origin_longitude": -73.01,
        "destination_address": "Los Angeles, USA",
        "destination_latitude": 34.02,
        "destination_longitude": -118.01,
        "departure_time": departure.isoformat(),
        "estimated_arrival": (departure + timedelta(hours=40)).isoformat(),
        "available_capacity": "MEDIUM",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def parcel_payload():
    return _parcel_payload


@pytest.fixture
def trip_payload():
    return _trip_payload


@pytest.fixture
def make_parcel(db_session):
    """Insert a parcel directly, bypassing the API and matching."""
    async def _make(**overrides) -> Parcel:
        values = {
            "sender_id": SENDER_ID,
            "pickup_address": NEW_YORK[0],
            "pickup_latitude": NEW_YORK[1],
            "pickup_longitude": NEW_YORK[2],
            "delivery_address": LOS_ANGELES[0],
            "delivery_latitude": LOS_ANGELES[1],
            "delivery_longitude": LOS_ANGELES[2],
            "weight_kg": 3.0,
            "dimensions": "30x20x10 cm",
            "status": ParcelStatus.PENDING,
        }
        values.update(overrides)
        parcel = Parcel(**values)
        db_session.add(parcel)
        await db_session.commit()
        await db_session.refresh(parcel)
        return parcel
    return _make


@pytest.fixture
def make_trip(db_session):
    """Insert a trip directly, bypassing the API and matching."""
    async def _make(**overrides) -> Trip:
        departure = utcnow() + timedelta(hours=48)
        values = {
            "courier_id": COURIER_ID,
            "origin_address": "New York, USA",
            "origin_latitude": 40.01,
            "origin_longitude": -73.01,
            "destination_address": "Los Angeles, USA",
            "destination_latitude": 34.02,
            "destination_longitude": -118.01,
            "departure_time": departure,
            "estimated_arrival": departure + timedelta(hours=40),
            "available_capacity": TripCapacity.MEDIUM,
            "status": TripStatus.SCHEDULED,
        }
        values.update(overrides)
        trip = Trip(**values)
        db_session.add(trip)
        await db_session.commit()
        await db_session.refresh(trip)
        return trip
    return _make
