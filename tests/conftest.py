"""
Pytest configuration file.
"""
import os

# Must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["WAITLIST_SWEEP_ENABLED"] = "false"
os.environ["EMAIL_MODE"] = "mock"

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.api.deps import get_notification_service
from app.models.user import User
from app.models.cca import Cca, CcaMembership
from app.models.event import Event, EventSignup
from app.models.waitlist import WaitlistEntry, WaitlistStatus
from main import app
from datetime import datetime, timedelta
import uuid

SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed "now" used by service-level tests
NOW = datetime(2026, 3, 2, 12, 0, 0)


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def db():
    """Create test database."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    yield db
    db.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    """Stand-in for the fire-and-forget notification sink."""
    return Mock()


@pytest.fixture(scope="function")
def client(db, notifier):
    """Create test client."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(name: str) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=f"{name.lower().replace(' ', '.')}@school.edu.sg",
            is_active=True
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": user.id})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def sample_student(make_user):
    return make_user("Test Student")


@pytest.fixture
def sample_organiser(make_user):
    return make_user("Test Organiser")


@pytest.fixture
def sample_cca(db):
    cca = Cca(id=str(uuid.uuid4()), name="Robotics Club")
    db.add(cca)
    db.commit()
    db.refresh(cca)
    return cca


def _add_membership(db, user: User, cca: Cca, role: str) -> CcaMembership:
    membership = CcaMembership(
        id=str(uuid.uuid4()),
        user_id=user.id,
        cca_id=cca.id,
        role=role
    )
    db.add(membership)
    db.commit()
    return membership


@pytest.fixture
def sample_exco(db, make_user, sample_cca):
    user = make_user("Test Exco")
    _add_membership(db, user, sample_cca, "EXCO - Secretary")
    return user


@pytest.fixture
def sample_teacher(db, make_user, sample_cca):
    user = make_user("Test Teacher")
    _add_membership(db, user, sample_cca, "Teacher-in-charge")
    return user


@pytest.fixture
def sample_member(db, make_user, sample_cca):
    user = make_user("Test Member")
    _add_membership(db, user, sample_cca, "member")
    return user


@pytest.fixture
def make_event(db, sample_cca, sample_organiser):
    def _make_event(capacity=2, registered=0, sign_up_deadline=None) -> Event:
        event = Event(
            id=str(uuid.uuid4()),
            title="Robotics Workshop",
            cca_id=sample_cca.id,
            created_by=sample_organiser.id,
            capacity=capacity,
            sign_up_deadline=sign_up_deadline
        )
        db.add(event)
        db.commit()
        for i in range(registered):
            filler = User(
                id=str(uuid.uuid4()),
                name=f"Attendee {i}",
                email=f"attendee.{event.id[:8]}.{i}@school.edu.sg"
            )
            db.add(filler)
            db.add(EventSignup(id=str(uuid.uuid4()), event_id=event.id, user_id=filler.id))
        db.commit()
        db.refresh(event)
        return event
    return _make_event


@pytest.fixture
def sample_full_event(make_event):
    """Capacity 2 with both slots taken."""
    return make_event(capacity=2, registered=2)


@pytest.fixture
def sample_open_event(make_event):
    return make_event(capacity=10, registered=3)


@pytest.fixture
def make_entry(db):
    def _make_entry(
        event: Event,
        user: User,
        joined_at: datetime = NOW - timedelta(hours=1),
        status: WaitlistStatus = WaitlistStatus.WAITING,
        expires_at: datetime = None
    ) -> WaitlistEntry:
        entry = WaitlistEntry(
            id=str(uuid.uuid4()),
            event_id=event.id,
            user_id=user.id,
            joined_at=joined_at,
            status=status,
            promotion_expires_at=expires_at
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry
    return _make_entry


def free_one_slot(db, event: Event) -> None:
    """Delete one confirmed sign-up so the event has a free slot."""
    signup = db.query(EventSignup).filter(EventSignup.event_id == event.id).first()
    db.delete(signup)
    db.commit()


class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(NOW)
