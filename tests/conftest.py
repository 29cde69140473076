# tests/conftest.py
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DEVICE_API_KEY", "test-device-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from doorlock.core.security import hash_password
from doorlock.db.base import Base
from doorlock.db.models import ApprovalStatus, User, UserRole
from doorlock.db.session import get_db
from doorlock.main import fastapi_app
from doorlock.services import auth_service
from doorlock.services.scan_service import scan_registry

DEVICE_HEADERS = {"X-Device-Key": "test-device-key"}

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class EmitRecorder:
    """Stands in for the socket server and remembers what was pushed."""

    def __init__(self):
        self.emitted = []

    async def emit(self, event, data=None, room=None, namespace=None, **kwargs):
        self.emitted.append((event, data, room))

    def events(self):
        return [event for event, _, _ in self.emitted]

    def payloads(self, event):
        return [data for name, data, _ in self.emitted if name == event]

    def rooms(self, event):
        return [room for name, _, room in self.emitted if name == event]


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client whose requests share the test session."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(fastapi_app)
    yield test_client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def emitted(monkeypatch):
    recorder = EmitRecorder()
    monkeypatch.setattr("doorlock.socket.notifier.sio", recorder)
    return recorder


@pytest.fixture(autouse=True)
def reset_reader():
    scan_registry.reset()
    yield
    scan_registry.reset()


def make_user(db, username, password="secret123", role=UserRole.guest, status=ApprovalStatus.approved, **extra):
    user = User(
        username=username,
        full_name=extra.pop("full_name", username.title()),
        password_hash=hash_password(password),
        role=role,
        approval_status=status,
        is_active=extra.pop("is_active", True),
        **extra,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(db, user):
    return {"Authorization": f"Bearer {auth_service._issue_token(db, user)}"}


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, "admin", password="admin123", role=UserRole.admin, full_name="Administrator")


@pytest.fixture
def guest_user(db_session):
    return make_user(db_session, "alice", full_name="Alice Guest")


@pytest.fixture
def pending_guest(db_session):
    return make_user(db_session, "bob", full_name="Bob Pending", status=ApprovalStatus.pending)


@pytest.fixture
def admin_headers(db_session, admin_user):
    return bearer(db_session, admin_user)


@pytest.fixture
def guest_headers(db_session, guest_user):
    return bearer(db_session, guest_user)


@pytest.fixture
def device_headers():
    return dict(DEVICE_HEADERS)
