from __future__ import annotations

import datetime as dt
import os

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from wallstreet.core.config import settings  # noqa: E402
from wallstreet.db import session as db_session_module  # noqa: E402
from wallstreet.db.base_class import Base  # noqa: E402
from wallstreet.db.session import SessionLocal  # noqa: E402
from wallstreet.models import models, referral_models  # noqa: E402,F401

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
db_session_module.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)

NOW = dt.datetime(2025, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema (ids restart at 1)."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def now() -> dt.datetime:
    return NOW


@pytest.fixture
def make_user(db_session):
    """Factory for persisted users."""

    def _make_user(**fields) -> models.User:
        user = models.User(**fields)
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


# FastAPI TestClient fixture for route tests
from fastapi.testclient import TestClient  # noqa: E402

from wallstreet.api.main import app  # noqa: E402
from wallstreet.api.rate_limit import limiter  # noqa: E402


@pytest.fixture
def client():  # noqa: D401 - simple factory fixture
    """Provide a FastAPI TestClient bound to the application."""
    limiter.reset()
    return TestClient(app)
