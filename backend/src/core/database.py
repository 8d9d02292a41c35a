# pyright: reportMissingTypeStubs=false
"""
SQLAlchemy engine, declarative base and session helpers.

Request handlers receive sessions through get_db; background work (the
notification queues, the MQTT client registry) opens its own unit of work
with get_db_context.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"pool_pre_ping": True, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_recycle"] = DB_POOL_RECYCLE_SECONDS
    return kwargs


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


def enable_sqlite_foreign_keys(target_engine) -> None:  # type: ignore
    """
    Turn on foreign key enforcement for every new SQLite connection.

    SQLite ignores ON DELETE clauses unless the pragma is set per connection.
    """
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")  # type: ignore
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)


def _stamp(mapper, target, column_names, overwrite: bool) -> None:  # type: ignore
    from utils.datetime_utils import utc_now  # circular: utils imports models

    now = utc_now()
    for name in column_names:
        if name not in mapper.columns:  # type: ignore
            continue
        if overwrite or getattr(target, name, None) is None:
            setattr(target, name, now)


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def _stamp_on_insert(mapper, connection, target):  # type: ignore
    _stamp(mapper, target, ("created_at", "updated_at"), overwrite=False)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def _stamp_on_update(mapper, connection, target):  # type: ignore
    _stamp(mapper, target, ("updated_at",), overwrite=True)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; rolled back on error, always closed."""
    db = SessionLocal()
    try:
        yield db
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        logger.exception("Request failed with an open database session")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Unit of work outside a request.

    Commits when the block exits normally and rolls back otherwise.

    Example:
        with get_db_context() as db:
            resource = db.get(Resource, resource_id)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Background database transaction failed")
        raise
    finally:
        db.close()
