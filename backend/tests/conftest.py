"""
Test configuration and shared fixtures for the Makerspace test suite.

Each test gets a fresh in-memory SQLite database built from the SQLAlchemy
models, so tests are isolated and need no external database server.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, enable_sqlite_foreign_keys
from models import Resource, ResourceGroup, User


# Test database URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a database engine with the full schema for a single test.

    Uses StaticPool so every session of the test shares the one in-memory
    connection (the TestClient runs requests on a different thread).
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()

    yield session

    session.close()


@pytest.fixture
def session_factory(db_session):
    """
    Session factory for the notification queues that hands out the test session.

    The queues open a session per usage event; in tests they reuse the
    session the test is working with.
    """
    @contextmanager
    def factory() -> Generator[Session, None, None]:
        yield db_session

    return factory


def create_user(
    db_session: Session,
    name: str,
    email: Optional[str] = None,
    can_manage_resources: bool = False
) -> User:
    """Create and persist a user."""
    user = User(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        can_manage_resources=can_manage_resources
    )
    db_session.add(user)
    db_session.commit()
    return user


def create_resource(
    db_session: Session,
    name: str,
    group: Optional[ResourceGroup] = None,
    description: Optional[str] = None,
    **kwargs
) -> Resource:
    """Create and persist a resource."""
    resource = Resource(
        name=name,
        description=description,
        group_id=group.id if group else None,
        **kwargs
    )
    db_session.add(resource)
    db_session.commit()
    return resource


def create_group(db_session: Session, name: str, description: Optional[str] = None) -> ResourceGroup:
    """Create and persist a resource group."""
    group = ResourceGroup(name=name, description=description)
    db_session.add(group)
    db_session.commit()
    return group


@pytest.fixture
def manager(db_session) -> User:
    """User holding the global manage permission."""
    return create_user(db_session, "Manager", can_manage_resources=True)


@pytest.fixture
def member(db_session) -> User:
    """Regular member without any grants."""
    return create_user(db_session, "Member")


@pytest.fixture
def resource(db_session) -> Resource:
    """Ungrouped resource."""
    return create_resource(db_session, "Laser", description="CO2 laser cutter")
