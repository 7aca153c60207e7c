"""
Database engine and session management. SQLAlchemy 2.x style.

The engine is built from Settings by create_app() and kept on app.state; request
handlers get a Session through the get_db dependency.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path

from fastapi import Request
from sqlalchemy import DateTime, Engine, create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from share_server.config import Settings


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    Stored as naive UTC (SQLite has no timezone support); always returned aware.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to UTCDateTime column")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


def sanitize_dsn(url: str) -> str:
    """Strip username and password from a database URL so it can be logged."""
    try:
        parsed = make_url(url)
    except ArgumentError:
        return "<unparseable database url>"
    return parsed.set(username=None, password=None).render_as_string(hide_password=True)


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine for the configured backend.

    SQLite: creates the parent directory of the database file; in-memory URLs share
    one connection so every session sees the same data.
    """
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        database = url.database or ""
        in_memory = database in ("", ":memory:")
        if not in_memory:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        kwargs: dict = {
            "echo": settings.debug,
            "connect_args": {"check_same_thread": False},
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_pragmas)
        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=settings.debug,
        connect_args={
            "connect_timeout": settings.db_connect_timeout,
            "options": "-c timezone=UTC",
        },
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create any missing tables (single-file SQLite deployments)."""
    import share_server.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(engine)


def check_db_connection(engine: Engine) -> None:
    """
    Verify database connectivity. Raises if unreachable.
    Call during application startup and from the health endpoint.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency for FastAPI to get database session."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def utcnow() -> datetime:
    return datetime.now(UTC)
