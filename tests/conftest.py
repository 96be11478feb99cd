from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from medbook.core.country_databases import CountryEnginePool
from medbook.database import get_db
from medbook.dependencies import get_notification_publisher
from medbook.main import app
from medbook.messaging.publishers import EventPublisher, NotificationPublisher
from medbook.models.appointments import appointments
from medbook.models.appointments import metadata as appointments_metadata
from medbook.models.schedules import metadata as schedules_metadata
from medbook.schemas.appointments import CountryISO
from tests.helpers import FakeChannel

# Tests run against throwaway SQLite files; NullPool keeps every connection
# short-lived so disposing an engine between batches loses no data.


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest_asyncio.fixture
async def appointment_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a fresh appointment store."""
    engine = create_async_engine(sqlite_url(tmp_path / "appointments.db"), poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(appointments_metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(appointment_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        appointment_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def schedule_store_urls(tmp_path: Path) -> dict[CountryISO, str]:
    """One initialized schedule store file per country."""
    urls = {}
    for country in CountryISO:
        url = sqlite_url(tmp_path / f"schedules_{country.value.lower()}.db")
        engine = create_async_engine(url, poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(schedules_metadata.create_all)
        await engine.dispose()
        urls[country] = url
    return urls


@pytest.fixture
def engine_pool(schedule_store_urls: dict[CountryISO, str]) -> CountryEnginePool:
    """Engine pool opening the test schedule stores."""
    return CountryEnginePool(
        engine_factory=lambda country: create_async_engine(
            schedule_store_urls[country], poolclass=NullPool
        )
    )


@pytest_asyncio.fixture
async def pe_engine(schedule_store_urls: dict[CountryISO, str]) -> AsyncGenerator[AsyncEngine, None]:
    """Direct engine on the PE schedule store, for seeding and assertions."""
    engine = create_async_engine(schedule_store_urls[CountryISO.PE], poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def cl_engine(schedule_store_urls: dict[CountryISO, str]) -> AsyncGenerator[AsyncEngine, None]:
    """Direct engine on the CL schedule store, for seeding and assertions."""
    engine = create_async_engine(schedule_store_urls[CountryISO.CL], poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
def country_channels() -> dict[CountryISO, FakeChannel]:
    """One fake queue per country."""
    return {
        country: FakeChannel(f"medbook:appointments:{country.value.lower()}")
        for country in CountryISO
    }


@pytest.fixture
def notification_publisher(country_channels: dict[CountryISO, FakeChannel]) -> NotificationPublisher:
    return NotificationPublisher(country_channels)


@pytest.fixture
def event_channel() -> FakeChannel:
    return FakeChannel("medbook:appointment-events")


@pytest.fixture
def event_publisher(event_channel: FakeChannel) -> EventPublisher:
    return EventPublisher(event_channel, source="medbook.test")


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    notification_publisher: NotificationPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_publisher] = lambda: notification_publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_appointment_data() -> dict:
    """Sample appointment request for testing."""
    return {
        "insuredId": "01234",
        "scheduleId": 100,
        "countryISO": "PE",
        "schedule": {
            "centerId": 4,
            "specialityId": 3,
            "medicId": 4,
            "date": (datetime.now(UTC) + timedelta(days=2)).isoformat(),
        },
    }


@pytest.fixture
def insert_appointment(db_session: AsyncSession) -> Callable:
    """Insert an appointment row directly, returning its values."""

    async def _insert(
        appointment_id: str = "APT-1700000000000-abc123def456",
        insured_id: str = "01234",
        status: str = "pending",
        country_iso: str = "PE",
        schedule_id: int = 100,
        created_at: datetime | None = None,
    ) -> dict:
        created_at = created_at or datetime.now(UTC)
        values = {
            "appointment_id": appointment_id,
            "insured_id": insured_id,
            "schedule_id": schedule_id,
            "country_iso": country_iso,
            "status": status,
            "created_at": created_at,
            "updated_at": created_at,
            "expires_at": created_at + timedelta(days=365),
        }
        await db_session.execute(insert(appointments).values(**values))
        await db_session.commit()
        return values

    return _insert
