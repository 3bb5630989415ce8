"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("TIME_ZONE", "Europe/Berlin")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ALGORITHM", "HS256")

from datetime import datetime
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from uninews.core.config import settings
from uninews.db.base import Base
from uninews.reminders import models  # noqa: F401

BERLIN = ZoneInfo("Europe/Berlin")
# Saturday before the 2026 fall-back transition (25 Oct)
NOW = datetime(2026, 10, 17, 12, 0, tzinfo=BERLIN)
MODERATOR_ID = 7


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def mock_publish():
    """Stub out the hand-off of announcements to the delivery queue."""
    with patch("uninews.reminders.tasks.publish_announcement") as mock:
        yield mock


@pytest.fixture
def auth_headers():
    token = jwt.encode({"sub": str(MODERATOR_ID)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from uninews.api.deps import get_db, get_now
    from uninews.reminders.service import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
