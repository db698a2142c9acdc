import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Sequence

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from housematch.api.deps import (
    create_access_token,
    get_db,
    get_event_publisher,
    get_profile_store,
    get_property_store,
)
from housematch.api.main import app
from housematch.core.database import Base
from housematch.core.exceptions import DownstreamUnavailableError
from housematch.models import MatchPreferences
from housematch.services.collaborators import PropertySearch
from housematch.services.events import MatchEvent
from housematch.services.matching.profiles import LocationData, ProfileData, PropertyData


TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)


class FakeProfileStore:
    """In-memory profile service."""

    def __init__(self):
        self.profiles: dict[uuid.UUID, ProfileData] = {}
        self.unavailable = False

    def add(self, profile: ProfileData) -> ProfileData:
        self.profiles[profile.user_id] = profile
        return profile

    async def get_profile(self, user_id: uuid.UUID) -> Optional[ProfileData]:
        if self.unavailable:
            raise DownstreamUnavailableError("profile service", "connection refused")
        return self.profiles.get(user_id)

    async def get_profiles(self, user_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, ProfileData]:
        if self.unavailable:
            raise DownstreamUnavailableError("profile service", "connection refused")
        return {user_id: self.profiles[user_id] for user_id in user_ids if user_id in self.profiles}


class FakePropertyStore:
    """In-memory property service; search applies only the owner and rent pre-filter."""

    def __init__(self):
        self.properties: dict[uuid.UUID, PropertyData] = {}
        self.unavailable = False

    def add(self, property_data: PropertyData) -> PropertyData:
        self.properties[property_data.id] = property_data
        return property_data

    async def get_property(self, property_id: uuid.UUID) -> Optional[PropertyData]:
        if self.unavailable:
            raise DownstreamUnavailableError("property service", "connection refused")
        return self.properties.get(property_id)

    async def search_properties(self, search: PropertySearch, limit: int) -> list[PropertyData]:
        if self.unavailable:
            raise DownstreamUnavailableError("property service", "connection refused")

        results = []
        for property_data in self.properties.values():
            if search.exclude_owner_id is not None and property_data.owner_id == search.exclude_owner_id:
                continue
            if search.max_rent is not None and property_data.rent_per_month > search.max_rent:
                continue
            results.append(property_data)
        return results[:limit]


class RecordingPublisher:

    def __init__(self):
        self.events: list[MatchEvent] = []

    async def publish(self, event: MatchEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[MatchEvent]:
        return [e for e in self.events if e.event_type == event_type]


class FakeClock:
    """Settable clock for lifecycle timing."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_profile(
    user_id: Optional[uuid.UUID] = None,
    *,
    age: Optional[int] = 28,
    gender: Optional[str] = "female",
    occupation: Optional[str] = "Engineer",
    interests: Optional[list[str]] = None,
    lifestyle: Optional[dict[str, str]] = None,
    city: str = "Lagos",
    state: str = "Lagos",
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ProfileData:
    return ProfileData(
        user_id=user_id or uuid.uuid4(),
        age=age,
        gender=gender,
        occupation=occupation,
        interests=interests if interests is not None else ["reading", "hiking"],
        lifestyle=lifestyle or {},
        location=LocationData(
            state=state,
            city=city,
            area="Yaba",
            latitude=latitude,
            longitude=longitude,
        ),
    )


def make_property(
    owner_id: Optional[uuid.UUID] = None,
    *,
    rent: str = "100000",
    property_type: str = "apartment",
    amenities: Optional[dict[str, bool]] = None,
    rules: Optional[dict[str, bool]] = None,
    city: str = "Lagos",
    state: str = "Lagos",
    is_available: bool = True,
) -> PropertyData:
    return PropertyData(
        id=uuid.uuid4(),
        owner_id=owner_id or uuid.uuid4(),
        property_type=property_type,
        rent_per_month=Decimal(rent),
        title="Two bedroom flat",
        bedrooms=2,
        bathrooms=1,
        amenities=amenities if amenities is not None else {"wifi": True},
        rules=rules or {},
        location=LocationData(state=state, city=city, area="Yaba"),
        is_available=is_available,
    )


async def save_preferences(session: AsyncSession, user_id: uuid.UUID, **values) -> MatchPreferences:
    """Insert a preferences row, committing it."""
    preferences = MatchPreferences(user_id=user_id, **values)
    session.add(preferences)
    await session.commit()
    await session.refresh(preferences)
    return preferences


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def setup_database(test_engine: AsyncEngine) -> AsyncGenerator[None, None]:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(test_engine: AsyncEngine, setup_database: None) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def profile_store() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def property_store() -> FakePropertyStore:
    return FakePropertyStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    profile_store: FakeProfileStore,
    property_store: FakePropertyStore,
    publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_profile_store] = lambda: profile_store
    app.dependency_overrides[get_property_store] = lambda: property_store
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.state.limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
