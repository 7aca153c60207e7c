"""Database package: engine factory, declarative base, session dependency."""

from share_server.db.session import (
    Base,
    UTCDateTime,
    check_db_connection,
    create_db_engine,
    create_session_factory,
    get_db,
    init_db,
    sanitize_dsn,
    utcnow,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "check_db_connection",
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "init_db",
    "sanitize_dsn",
    "utcnow",
]
