"""Test configuration and fixtures."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("ENABLE_WORKERS", "false")

from datetime import datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from petcare.core.clock import fixed_clock, local_now
from petcare.core.config import settings
from petcare.core.database import Base, get_db
from petcare.models import *  # noqa: F403 - Import all models
from petcare.schemas.reservation import HospitalReservationRequest, HotelReservationRequest
from petcare.schemas.venue import AddDoctorRequest, CreateVenueRequest
from petcare.services.live_channels import LiveChannelRegistry
from petcare.services.member_service import MemberDirectory
from petcare.services.venue_service import VenueService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Wall clock used by service-level tests
NOW = datetime(2024, 5, 1, 9, 0)

MEMBERS = ("member-1", "member-2", "admin")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    Session factory over a file database, for tests that need one session per task.

    Connections are not shared, so concurrent tasks contend on SQLite's own
    locking the way separate requests would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def registry():
    """A private live channel registry with a small queue."""
    registry = LiveChannelRegistry(queue_size=8)
    yield registry
    registry.close_all()


async def seed_members(session: AsyncSession) -> None:
    directory = MemberDirectory(session)
    for member_id in MEMBERS:
        await directory.register(member_id)


async def seed_venue(session: AsyncSession, hotel_capacity: int = 15):
    venues = VenueService(session)
    venue = await venues.create_venue(
        CreateVenueRequest(name="Happy Paws", address="Seoul", hotel_capacity=hotel_capacity)
    )
    doctor = await venues.add_doctor(AddDoctorRequest(venue_id=str(venue.id), name="Dr. Han"))
    return venue, doctor


@pytest_asyncio.fixture
async def members(test_session):
    await seed_members(test_session)
    return MEMBERS


@pytest_asyncio.fixture
async def venue_and_doctor(test_session, members):
    return await seed_venue(test_session)


@pytest.fixture
def venue(venue_and_doctor):
    return venue_and_doctor[0]


@pytest.fixture
def doctor(venue_and_doctor):
    return venue_and_doctor[1]


def hospital_request(venue, doctor, appointment_at: datetime, pet_name: str = "Coco") -> HospitalReservationRequest:
    return HospitalReservationRequest(
        venue_id=str(venue.id),
        doctor_id=str(doctor.id),
        appointment_at=appointment_at,
        reserver_name="Jiwoo",
        primary_phone="010-1234-5678",
        pet_name=pet_name,
        pet_species="dog",
    )


def hotel_request(venue, check_in, check_out, pet_name: str = "Coco") -> HotelReservationRequest:
    return HotelReservationRequest(
        venue_id=str(venue.id),
        check_in=check_in,
        check_out=check_out,
        reserver_name="Jiwoo",
        primary_phone="010-1234-5678",
        pet_name=pet_name,
    )


def make_token(member_id: str, roles: tuple[str, ...] = ()) -> str:
    payload = {
        "sub": member_id,
        "roles": list(roles),
        "exp": datetime.utcnow() + timedelta(hours=1),
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Bearer headers for member-1."""
    return {"Authorization": f"Bearer {make_token('member-1')}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {make_token('member-2')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('admin', (settings.admin_role,))}"}


def next_week_at(hour: int) -> datetime:
    """A bookable local time a week from the real clock, for API tests."""
    day = local_now().date() + timedelta(days=7)
    return datetime(day.year, day.month, day.day, hour, 0)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError
    from fastapi.middleware.cors import CORSMiddleware

    from petcare.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from petcare.core.middleware import setup_middleware
    from petcare.routers import content, health, keyword, metrics, notification, reservation, venue

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Pet Care Booking API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )
    setup_middleware(app, enable_logging=True)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health.router)
    app.include_router(venue.router)
    app.include_router(reservation.router)
    app.include_router(notification.router)
    app.include_router(keyword.router)
    app.include_router(content.router)
    app.include_router(metrics.router)

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
