# tests/conftest.py

import os

# Point the application at throwaway storage before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RESPONSE_STORE"] = "sqlalchemy"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rsvp_app.main import app
from rsvp_app.database import Base, get_db
from rsvp_app.dependencies.permissions import get_optional_user
from rsvp_app.services.notification_service import (
    NotificationScheduler,
    get_notification_scheduler,
)
from rsvp_app.services.response_service import ResponseService
from rsvp_app.services.response_store import SQLAlchemyResponseStore
from rsvp_app.utils.locks import KeyedLock

from tests.utils.factories import create_random_event, create_random_user
from tests.utils.notifications import ManualClock, ManualTimer, RecordingSender


# --- Test Database Setup ---
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    session = TestingSessionLocal()
    yield session
    session.close()

    # The store commits, so clean up table by table
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def other_session(db_session):
    """A second session on the same database, standing in for another worker process"""
    session = TestingSessionLocal()
    yield session
    session.close()


# --- Notification Setup ---
@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def timer_factory(timers):
    def factory(interval, function, args=None, kwargs=None):
        timer = ManualTimer(interval, function, args=args, kwargs=kwargs)
        timers.append(timer)
        return timer

    return factory


@pytest.fixture
def notifier(sender, clock, timer_factory):
    return NotificationScheduler(sender, clock=clock, timer_factory=timer_factory)


# --- Domain Fixtures ---
@pytest.fixture
def host(db_session):
    return create_random_user(
        db_session, display_name="Hannah Host", phone_number="+15550001111"
    )


@pytest.fixture
def event(db_session, host):
    return create_random_event(db_session, host, title="Rooftop Dinner")


@pytest.fixture
def service(db_session, notifier):
    return ResponseService(
        db_session,
        store=SQLAlchemyResponseStore(db_session),
        notifier=notifier,
        locks=KeyedLock(),
    )


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def test_client(db_session, notifier):
    """
    TestClient on the in-memory database with a manual notification scheduler.
    Requests are anonymous (guest) unless a test calls login_as.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_scheduler] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def login_as(test_client):
    def _login(user):
        app.dependency_overrides[get_optional_user] = lambda: user

    return _login
