"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gymlink.db.models import Base, SourceGym
from gymlink.types import Org


@pytest.fixture
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests. StaticPool keeps the single
    in-memory connection alive and shareable with the API test client,
    which runs requests on another thread.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def tables(test_engine):
    """Create all tables for one test."""
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def session_factory(test_engine, tables):
    return sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """
    Create a database session for a test.

    Each test gets a fresh database, so code under test is free to
    commit and roll back for real.
    """
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_gym(db_session):
    """Factory for committed SourceGym rows."""
    def _make_gym(
        org: Org,
        external_id: str,
        name: str,
        city=None,
        country=None,
        country_code=None,
        address=None,
        affiliation=None,
        master_gym_id=None,
    ) -> SourceGym:
        gym = SourceGym(
            org=Org(org).value,
            external_id=external_id,
            name=name,
            city=city,
            country=country,
            country_code=country_code,
            address=address,
            affiliation=affiliation,
            master_gym_id=master_gym_id,
        )
        db_session.add(gym)
        db_session.commit()
        return gym

    return _make_gym
