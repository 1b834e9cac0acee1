"""Test configuration and fixtures."""

import itertools
import os

# Settings are read at import time; point them at throwaway resources first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("WORKERS_ENABLED", "false")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any  # noqa: E402
from uuid import uuid4  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from club_outings.core.config import settings  # noqa: E402
from club_outings.core.database import Base  # noqa: E402
from club_outings.core.dependencies import get_clock, get_db, get_notifier  # noqa: E402
from club_outings.models import Member, MemberRole, Outing, OutingType  # noqa: E402
from club_outings.services.notification_service import NotificationTemplate, OutingNotifier  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Reference "now" for every service under test
NOW = datetime(2030, 6, 1, 8, 0, 0)


@dataclass
class SentEmail:
    to: str
    template: NotificationTemplate
    context: dict[str, Any]


@dataclass
class RecordingDispatcher:
    """Dispatcher double that records emails; addresses in ``failing`` report failure."""

    sent: list[SentEmail] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)

    async def send(self, to: str, template: NotificationTemplate, context: dict[str, Any]) -> bool:
        self.sent.append(SentEmail(to, template, context))
        return to not in self.failing

    def recipients(self, template: NotificationTemplate) -> list[str]:
        return [email.to for email in self.sent if email.template == template]


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_token(member: Member, roles: list[str] | None = None, secret: str | None = None, **claims) -> str:
    """Sign a member bearer token the way the identity provider does."""
    payload = {
        "sub": str(member.id),
        "email": member.email,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "roles": roles if roles is not None else [MemberRole(member.role).value],
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    payload.update(claims)
    # A claim passed as None is left out of the token
    payload = {key: value for key, value in payload.items() if value is not None}
    return jwt.encode(payload, secret or settings.bearer_token_secret, algorithm="HS256")


def auth_headers(member: Member, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(member, **kwargs)}"}


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


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def notifier(dispatcher) -> OutingNotifier:
    return OutingNotifier(dispatcher)


@pytest.fixture
def member_factory(test_session):
    """Insert members directly; returns an async factory."""
    counter = itertools.count(1)

    async def create(role: MemberRole = MemberRole.MEMBER, first_name: str | None = None) -> Member:
        n = next(counter)
        member = Member(
            id=uuid4(),
            email=f"diver{n}@club.example",
            first_name=first_name or f"Diver{n}",
            last_name="Test",
            role=role,
        )
        test_session.add(member)
        await test_session.commit()
        return member

    return create


@pytest.fixture
def outing_factory(test_session):
    """Insert outings directly, with no seat taken; returns an async factory."""

    async def create(organizer: Member | None = None, max_participants: int = 10, **overrides) -> Outing:
        values = {
            "title": "Sunday reef dive",
            "description": "Two dives on the outer reef",
            "date_time": NOW + timedelta(days=7),
            "location": "Calanque de Sormiou",
            "outing_type": OutingType.SEA,
            "max_participants": max_participants,
            "confirmed_count": 0,
            "organizer_id": organizer.id if organizer else None,
        }
        values.update(overrides)
        outing = Outing(**values)
        test_session.add(outing)
        await test_session.commit()
        return outing

    return create


@pytest_asyncio.fixture
async def organizer(member_factory) -> Member:
    return await member_factory(MemberRole.ORGANIZER, first_name="Olivia")


@pytest_asyncio.fixture
async def admin(member_factory) -> Member:
    return await member_factory(MemberRole.ADMIN, first_name="Ada")


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, notifier, clock):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from club_outings.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from club_outings.routers import carpool, health, metrics, outing, reservation

    # Simplified test app without lifespan or middleware
    app = FastAPI(title="Club Outings API (Test)", version="1.0.0-test")

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health.router)
    app.include_router(outing.router)
    app.include_router(reservation.router)
    app.include_router(carpool.router)
    app.include_router(metrics.router)

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_outing_data():
    """Sample outing creation payload."""
    return {
        "title": "Night dive at the quarry",
        "description": "Bring a torch",
        "date_time": "2030-06-10T19:00:00Z",
        "end_date": "2030-06-10T22:00:00Z",
        "location": "Carrière de Beez",
        "outing_type": "quarry",
        "max_participants": 4,
    }


@pytest.fixture
def headers_for():
    """Build Authorization headers for a member."""
    return auth_headers


@pytest.fixture
def token_for():
    return make_token
