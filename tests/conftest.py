"""
Shared fixtures.

DATABASE_URL and SECRET_KEY are set before any project import so that
``config.settings`` never points at the default Postgres service.
Unit tests use one in-memory SQLite connection (StaticPool) so every
session sees the same schema; concurrency tests build their own
file-backed engine.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from collections.abc import Generator
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import lifecycle
from db import get_session
from identity import Identity
from main import app
from models import User
from routers.auth import create_session_token, hash_password

PASSWORD = "correct-horse"

_emails = count(1)


def ride_fields(**overrides) -> dict:
    fields = {
        "title": "Need ride",
        "description": "To clinic Monday 9am",
        "category": "transport",
        "urgency": "high",
        "location": "Springfield",
    }
    fields.update(overrides)
    return fields


def add_user(session: Session, role: str, name: str, password: str = PASSWORD) -> User:
    user = User(
        email=f"user{next(_emails)}@whatyaneed.org",
        name=name,
        password_hash=hash_password(password),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_identity(session):
    """Factory: create a user with the given role and return its Identity."""

    def _make(role: str, name: str = "") -> Identity:
        user = add_user(session, role, name or f"{role.title()} {next(_emails)}")
        return Identity.from_user(user)

    return _make


@pytest.fixture
def requester(make_identity) -> Identity:
    return make_identity("requester", "Rita Requester")


@pytest.fixture
def volunteer(make_identity) -> Identity:
    return make_identity("volunteer", "Victor Volunteer")


@pytest.fixture
def admin(make_identity) -> Identity:
    return make_identity("admin", "Ada Admin")


@pytest.fixture
def open_request(session, requester):
    return lifecycle.create_request(session, requester, ride_fields())


@pytest.fixture
def api(engine) -> Generator:
    """Factory for TestClients, optionally logged in as an Identity.

    Every HTTP request gets a fresh Session on the test engine.
    """

    def _get_session() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session

    def _client(identity: Identity = None) -> TestClient:
        client = TestClient(app)
        if identity is not None:
            client.cookies.set("session", create_session_token(identity.id, identity.role))
        return client

    yield _client
    app.dependency_overrides.clear()
