"""Test configuration and fixtures."""

import os
from typing import Callable, Dict, List

import pytest

# Set up test environment variables BEFORE importing keytrack modules
os.environ.setdefault("API_DEBUG", "false")
os.environ.setdefault("DB_CREATE_TABLES", "false")
os.environ.setdefault("SOCKET_MAX_RECONNECT_ATTEMPTS", "5")
os.environ.setdefault("SOCKET_RECONNECT_DELAY", "1.0")

from fastapi.testclient import TestClient

from keytrack.database import DatabaseManager
from keytrack.main import create_app
from keytrack.models import Actor, Role
from keytrack.models.schemas import Key, KeyCreateRequest
from keytrack.services import (
    AuditService,
    AuthService,
    FanoutHub,
    KeyAdminService,
    KeyStore,
    KeyTransitionService,
)

PASSWORD = "correct-horse-battery"


@pytest.fixture
def db(tmp_path) -> DatabaseManager:
    """A fresh file-backed SQLite database per test."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'keytrack.db'}")
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def fanout() -> FanoutHub:
    return FanoutHub()


@pytest.fixture
def store(db) -> KeyStore:
    return KeyStore(db)


@pytest.fixture
def audit(db) -> AuditService:
    return AuditService(db)


@pytest.fixture
def auth_service(db) -> AuthService:
    return AuthService(db)


@pytest.fixture
def transitions(store, auth_service, fanout, audit) -> KeyTransitionService:
    return KeyTransitionService(store, auth_service, fanout, audit)


@pytest.fixture
def key_admin(store, fanout, audit) -> KeyAdminService:
    return KeyAdminService(store, fanout, audit)


# ---------- users ----------

@pytest.fixture
def faculty(auth_service) -> Actor:
    return auth_service.register("Dr. Perera", "perera@example.edu", PASSWORD, Role.FACULTY)


@pytest.fixture
def other_faculty(auth_service) -> Actor:
    return auth_service.register("Dr. Silva", "silva@example.edu", PASSWORD, Role.FACULTY)


@pytest.fixture
def security(auth_service) -> Actor:
    return auth_service.register("Gate Security", "security@example.edu", PASSWORD, Role.SECURITY)


@pytest.fixture
def admin(auth_service) -> Actor:
    return auth_service.register("Key Admin", "admin@example.edu", PASSWORD, Role.ADMIN)


# ---------- keys ----------

@pytest.fixture
def make_key(store) -> Callable[..., Key]:
    counter = {"n": 0}

    def _make(key_number: str = None, **fields) -> Key:
        counter["n"] += 1
        request = KeyCreateRequest(
            key_number=key_number or f"K-{counter['n']:03d}",
            key_name=fields.pop("key_name", f"Room {counter['n']}"),
            location=fields.pop("location", "Main Building"),
            **fields,
        )
        return store.create_key(request)

    return _make


@pytest.fixture
def key(make_key) -> Key:
    return make_key("CSE-101", key_name="Lecture Hall", category="classroom", department="CSE")


# ---------- fan-out ----------

@pytest.fixture
def received(fanout) -> Callable[[str], List[Dict]]:
    """Subscribe a recording handler to a room and return its message list."""

    def _record(room: str) -> List[Dict]:
        messages: List[Dict] = []
        fanout.subscribe(room, messages.append)
        return messages

    return _record


# ---------- HTTP ----------

@pytest.fixture
def app(db):
    return create_app(database=db, create_tables=False)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers(app) -> Callable[[Actor], Dict[str, str]]:
    def _headers(actor: Actor) -> Dict[str, str]:
        token = app.state.auth_service.issue_token(actor)
        return {"Authorization": f"Bearer {token}"}

    return _headers
