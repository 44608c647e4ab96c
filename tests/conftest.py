"""
Pytest configuration and fixtures.
"""
import os
import tempfile
import uuid
from datetime import datetime, timedelta

# Settings are read at import time, so these must be set before any agrolink import.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "agrolink-tests.log"))

import pytest
from sqlmodel import Session, SQLModel, create_engine

from agrolink.db.schema import User, UserRole, UserStatus
from agrolink.repositories.sql import SqlUnitOfWork
from agrolink.services.access_control import AccessControlService
from agrolink.services.data_visibility import DataVisibilityService
from agrolink.services.notifications import Notifier
from agrolink.services.relationship import BusinessRelationshipService


class RecordingNotifier(Notifier):
    """Keeps every notification in memory instead of delivering it."""

    def __init__(self):
        self.sent = []

    def notify(self, user_id, kind, payload):
        self.sent.append((user_id, kind, payload))

    def notify_address(self, email, kind, payload):
        self.sent.append((email, kind, payload))

    def kinds(self):
        return [kind for _, kind, _ in self.sent]

    def sent_to(self, recipient):
        return [(kind, payload) for to, kind, payload in self.sent if to == recipient]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file per test so partial unique indexes behave as in production."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'agrolink-test.db'}",
        connect_args={"check_same_thread": False}
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def uow(session):
    return SqlUnitOfWork(session)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 8, 0, 0))


@pytest.fixture
def relationship_service(uow, notifier, clock):
    return BusinessRelationshipService(uow, notifier, clock=clock)


@pytest.fixture
def access_service(uow):
    return AccessControlService(uow)


@pytest.fixture
def visibility_service(uow, notifier, clock):
    return DataVisibilityService(uow, notifier, clock=clock, revalidate=True)


@pytest.fixture
def make_user(uow):
    """Factory: make_user(UserRole.FARMER, email=..., status=...)."""
    def _make(role: UserRole, email: str = None, status: UserStatus = UserStatus.ACTIVE,
              full_name: str = None) -> User:
        with uow.atomic():
            user = uow.users.add(User(
                email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
                full_name=full_name or role.value.replace("_", " ").title(),
                role=role,
                status=status,
                email_verified=True
            ))
        return user
    return _make


@pytest.fixture
def farm_admin(make_user):
    return make_user(UserRole.FARM_ADMIN, email="fa1@example.com", full_name="Green Valley Farms")


@pytest.fixture
def other_farm_admin(make_user):
    return make_user(UserRole.FARM_ADMIN, email="fa2@example.com", full_name="Hilltop Estates")


@pytest.fixture
def app_admin(make_user):
    return make_user(UserRole.APP_ADMIN, email="admin@example.com")


@pytest.fixture
def farmer(make_user):
    return make_user(UserRole.FARMER, email="sp1@example.com", full_name="Joseph Mwangi")


@pytest.fixture
def field_manager(make_user):
    return make_user(UserRole.FIELD_MANAGER, email="fm@example.com")


@pytest.fixture
def lorry_agency(make_user):
    return make_user(UserRole.LORRY_AGENCY, email="lorry@example.com")


@pytest.fixture
def dealer(make_user):
    return make_user(UserRole.DEALER, email="dealer@example.com")
