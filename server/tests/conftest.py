"""Test configuration and fixtures."""

from datetime import datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from toursync.core.config import settings
from toursync.core.database import Base, get_db
from toursync.models import *  # noqa: F403 - Import all models
from toursync.models.location import Country, Transport
from toursync.models.wholesaler import Wholesaler, WholesalerApiConfig

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine, configured like the application's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from toursync.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from toursync.routers import country, health, integration, metrics, period, queue, tour

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="TourSync API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(tour.router)
    app.include_router(period.router)
    app.include_router(country.router)
    app.include_router(integration.router)
    app.include_router(queue.router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_token(roles: list[str], sub: str = "admin-1", expires_in: int = 3600) -> str:
    payload = {
        "sub": sub,
        "username": sub,
        "roles": roles,
        "exp": datetime.utcnow() + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


@pytest.fixture
def admin_headers():
    """Authorization header carrying an admin token."""
    return {"Authorization": f"Bearer {make_token(['admin'])}"}


@pytest.fixture
def viewer_headers():
    """Authorization header for an authenticated user without the admin role."""
    return {"Authorization": f"Bearer {make_token(['viewer'], sub='viewer-1')}"}


@pytest_asyncio.fixture
async def wholesaler(test_session):
    """A wholesaler with a REST API config."""
    record = Wholesaler(code="ZEGO", name="Zego Travel", is_active=True)
    test_session.add(record)
    await test_session.flush()

    test_session.add(WholesalerApiConfig(
        wholesaler_id=record.id,
        api_base_url="https://api.zego.test/v1/tours",
        api_format="rest",
        auth_type="api_key",
        auth_credentials={"api_key": "secret-key"},
        sync_enabled=True,
        sync_method="cursor",
        sync_mode="single",
        sync_interval_minutes=60,
        rate_limit_per_minute=60,
        retry_attempts=2,
        aggregation_config={},
        past_period_handling="skip",
        past_period_threshold_days=0,
    ))
    await test_session.commit()
    return record


@pytest_asyncio.fixture
async def api_config(test_session, wholesaler):
    """The wholesaler's API config row."""
    from sqlalchemy import select

    result = await test_session.execute(
        select(WholesalerApiConfig).where(WholesalerApiConfig.wholesaler_id == wholesaler.id)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def reference_data(test_session):
    """Countries and carriers used by lookups."""
    japan = Country(iso2="JP", iso3="JPN", name_en="Japan", name_th="\u0e0d\u0e35\u0e48\u0e1b\u0e38\u0e48\u0e19", slug="japan", region="Asia")
    korea = Country(iso2="KR", iso3="KOR", name_en="South Korea", slug="south-korea", region="Asia")
    thai_airways = Transport(code="TG", code1="THA", name="Thai Airways", type="airline")
    test_session.add_all([japan, korea, thai_airways])
    await test_session.commit()
    return {"japan": japan, "korea": korea, "thai_airways": thai_airways}


@pytest.fixture
def sample_transformed_tour():
    """One tour already mapped into sections, as sync-now accepts it."""
    return {
        "tour": {
            "wholesaler_tour_code": "ZG-JP-001",
            "title": "Tokyo Fuji 5 Days",
            "duration_days": 5,
        },
        "content": {"description": "Tokyo, Mount Fuji and Hakone"},
        "media": {"cover_image_url": "https://cdn.zego.test/jp001.jpg"},
        "seo": {},
        "departure": [
            {
                "external_id": "D1",
                "start_date": "2099-03-01",
                "end_date": "2099-03-05",
                "capacity": 30,
                "booked": 10,
                "price_adult": 29900,
                "discount_adult": 3000,
            },
            {
                "external_id": "D2",
                "start_date": "2099-04-01",
                "end_date": "2099-04-05",
                "capacity": 30,
                "booked": 30,
                "price_adult": 32900,
            },
        ],
        "itinerary": [
            {"day_number": 1, "title": "Bangkok - Tokyo", "hotel_star": 4, "has_breakfast": "B"},
            {"day_number": 2, "title": "Mount Fuji", "hotel_star": 4, "has_lunch": "1"},
        ],
    }


@pytest_asyncio.fixture
async def sync_log(test_session, wholesaler):
    """A running sync for the wholesaler."""
    from toursync.models.sync import SyncLog

    now = datetime.utcnow()
    record = SyncLog(
        sync_id=SyncLog.new_sync_id(now),
        wholesaler_id=wholesaler.id,
        sync_type="manual",
        status="running",
        started_at=now,
        last_heartbeat_at=now,
    )
    test_session.add(record)
    await test_session.commit()
    return record
