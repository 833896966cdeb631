"""Shared test infrastructure.

Provides:
- engine / session: SQLite in-memory database with all tables created
- clock / timer: controllable clocks for the services and the query cache
- make_user: factory for User + Profile rows
- manager / chat: services wired to the fixtures above
- client_for: factory for a TestClient logged in as a freshly registered user
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# Settings are read at import time; point them at SQLite before the app loads.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["CACHE_ENABLED"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401  (registers every table)
from cache import InMemoryQueryCache
from db import get_session
from food_analysis import FoodAnalyzer
from lifecycle import LifecycleManager
from main import app
from messaging import ChatService
from models import Profile, User, UserType
from routers.auth import hash_password
from schemas import ListingCreate


class FakeClock:
    """Wall clock for services; only moves when told to."""

    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTimer:
    """Monotonic clock for the query cache."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# ---------------------------------------------------------------------------
# Clocks and cache
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def cache(timer):
    return InMemoryQueryCache(clock=timer)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(session):
    """Factory that creates a User and its Profile.

    Usage:
        shelter = make_user("s1@example.org", UserType.SHELTER, shelter_name="Hope House")
    """
    def _factory(email: str, user_type: UserType, **profile_fields) -> User:
        user = User(email=email, password_hash=hash_password("secret123"), user_type=user_type)
        session.add(user)
        session.flush()
        session.add(Profile(user_id=user.id, user_type=user_type, **profile_fields))
        session.commit()
        session.refresh(user)
        return user

    return _factory


@pytest.fixture
def business(make_user):
    return make_user("bakery@example.com", UserType.BUSINESS, business_name="Corner Bakery")


@pytest.fixture
def other_business(make_user):
    return make_user("grocer@example.com", UserType.BUSINESS, business_name="Green Grocer")


@pytest.fixture
def shelter(make_user):
    return make_user("hope@example.org", UserType.SHELTER, shelter_name="Hope House")


@pytest.fixture
def shelter2(make_user):
    return make_user("harbor@example.org", UserType.SHELTER, shelter_name="Harbor Shelter")


@pytest.fixture
def shelter3(make_user):
    return make_user("haven@example.org", UserType.SHELTER, shelter_name="Safe Haven")


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def manager(session, cache, clock):
    return LifecycleManager(session, cache, clock=clock)


@pytest.fixture
def chat(session, cache, clock):
    return ChatService(session, cache, clock=clock)


def listing_fields(**overrides) -> ListingCreate:
    data = {
        "title": "Day-old sourdough",
        "description": "Twelve loaves, baked yesterday",
        "category": "bakery",
        "quantity": 12,
        "unit": "items",
        "expires_at": "2026-03-03T12:00:00+00:00",
        "pickup_by": "2026-03-02T18:00:00+00:00",
        "location": "14 Market St",
    }
    data.update(overrides)
    return ListingCreate(**data)


@pytest.fixture
def new_listing():
    return listing_fields


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def openai_client():
    return MagicMock()


@pytest.fixture
def api(engine, timer, openai_client):
    """Install test doubles on the app and restore the originals afterwards."""

    def _get_session():
        with Session(engine) as session:
            yield session

    saved_cache = app.state.query_cache
    saved_analyzer = app.state.food_analyzer
    app.dependency_overrides[get_session] = _get_session
    app.state.query_cache = InMemoryQueryCache(clock=timer)
    app.state.food_analyzer = FoodAnalyzer(openai_client, model="gpt-4o")

    yield app

    app.dependency_overrides.clear()
    app.state.query_cache = saved_cache
    app.state.food_analyzer = saved_analyzer


@pytest.fixture
def client(api):
    return TestClient(api)


@pytest.fixture
def client_for(api):
    """Factory returning a TestClient logged in as a newly registered user.

    Usage:
        bakery = client_for("bakery@example.com", "business", business_name="Corner Bakery")
    """
    def _factory(email: str, user_type: str, **profile_fields) -> TestClient:
        client = TestClient(api)
        res = client.post(
            "/register",
            json={"email": email, "password": "secret123", "user_type": user_type, **profile_fields},
        )
        assert res.status_code == 201, res.text
        return client

    return _factory
