"""
Pytest configuration and shared fixtures.

Test environment variables are set before any guestbook import so the
cached settings and the engine pick them up.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_guestbook.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from guestbook.config import get_settings
get_settings.cache_clear()

from guestbook.storage import SessionLocal, Base, engine
from guestbook import models  # noqa: F401  registers Visit with Base.metadata


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
