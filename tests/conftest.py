"""
Pytest fixtures for test database, client, and seed data.

Each test gets a fresh schema. In-memory SQLite (aiosqlite) by default;
set TEST_DATABASE_URL to run against PostgreSQL.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from venue_ledger.main import app
from venue_ledger.db.base import Base
from venue_ledger.db.session import get_db
from venue_ledger.models.enums import VendorType
from venue_ledger.models.venue import Venue
from venue_ledger.schemas.booking import (
    BookingCreate,
    FoodItem,
    FoodPackage,
    FoodPackageSection,
    ServiceAssignment,
    VendorContact,
)
from venue_ledger.schemas.purchase_order import POLineItem, PurchaseOrderCreate
from venue_ledger.services.booking_service import create_booking

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

EVENT_DAY = datetime(2030, 6, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    """A UTC instant on the shared test event day."""
    return EVENT_DAY + timedelta(hours=hour, minutes=minute)


def booking_data(venue_id: int, start: datetime, end: datetime, **overrides) -> BookingCreate:
    payload = {
        "venue_id": venue_id,
        "client_name": "Asha Rao",
        "contact_no": "555-0101",
        "email": "asha@example.com",
        "occasion_type": "wedding",
        "number_of_guests": 100,
        "event_start": start,
        "event_end": end,
        "total_amount": Decimal("1000.00"),
    }
    payload.update(overrides)
    return BookingCreate(**payload)


def catered_booking_data(venue_id: int, start: datetime, end: datetime, **overrides) -> BookingCreate:
    """100 guests at 500/person catering, a DJ with a vendor, decor without one."""
    payload = {
        "total_amount": None,
        "food_package": FoodPackage(
            name="Royal Thali",
            sections=[
                FoodPackageSection(
                    section_name="Starters",
                    items=[FoodItem(name="Paneer Tikka"), FoodItem(name="Veg Kebab")],
                    section_total_per_person=Decimal("150"),
                ),
                FoodPackageSection(
                    section_name="Live Counters",
                    items=[],
                    section_total_per_person=Decimal("0"),
                ),
                FoodPackageSection(
                    section_name="Desserts",
                    items=[FoodItem(name="Gulab Jamun")],
                    section_total_per_person=Decimal("80"),
                ),
            ],
            total_price_per_person=Decimal("500"),
            inclusions=["Mineral water", "Service staff"],
        ),
        "catering_vendor": VendorContact(
            name="Spice Route Caterers",
            email="orders@spiceroute.example.com",
            phone="555-0199",
        ),
        "services": [
            ServiceAssignment(
                service="DJ",
                price=Decimal("8000"),
                vendor=VendorContact(name="Beat Box Entertainment", phone="555-0142"),
            ),
            ServiceAssignment(service="Decor", price=Decimal("12000")),
        ],
    }
    payload.update(overrides)
    return booking_data(venue_id, start, end, **payload)


def purchase_order_data(booking_id: int, total: Decimal, **overrides) -> PurchaseOrderCreate:
    """A manual service PO with a single line for `total`."""
    payload = {
        "booking_id": booking_id,
        "vendor_type": VendorType.SERVICE,
        "vendor_details": VendorContact(name="Bright Lights Co", phone="555-0177"),
        "vendor_reference": "lighting",
        "line_items": [POLineItem(description="Stage lighting", service_type="Lighting", total_price=total)],
    }
    payload.update(overrides)
    return PurchaseOrderCreate(**payload)


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Create tables, yield the engine, then drop tables for isolation."""
    options = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection, otherwise every connection gets its own empty database
        options = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}

    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, **options)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Retries in tests are deterministic; don't sleep between them."""
    from venue_ledger.core.config import get_settings

    monkeypatch.setattr(get_settings(), "RETRY_BACKOFF_SECONDS", 0.0)


@pytest_asyncio.fixture
async def venue(db_session: AsyncSession) -> Venue:
    venue = Venue(name="Grand Hall")
    db_session.add(venue)
    await db_session.commit()
    await db_session.refresh(venue)
    return venue


@pytest_asyncio.fixture
async def other_venue(db_session: AsyncSession) -> Venue:
    venue = Venue(name="Garden Lawn")
    db_session.add(venue)
    await db_session.commit()
    await db_session.refresh(venue)
    return venue


@pytest_asyncio.fixture
async def booking(db_session: AsyncSession, venue: Venue):
    """Pending booking 10:00-14:00 with a total of 1000.00."""
    return await create_booking(db_session, booking_data(venue.id, at(10), at(14)))


@pytest_asyncio.fixture
async def catered_booking(db_session: AsyncSession, venue: Venue):
    """Pending booking 18:00-23:00 with catering and service vendors; total 70000."""
    return await create_booking(db_session, catered_booking_data(venue.id, at(18), at(23)))
