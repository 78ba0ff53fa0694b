"""Database engine utilities.

This module centralizes database connectivity primitives to enforce the db-layer
boundary for all SQLAlchemy usage.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool


def db_create_engine(database_url: str) -> Engine:
    """Create the SQLAlchemy engine for application database access.

    In-memory SQLite URLs share one connection so every caller sees the same
    database; other URLs use the default pool with pre-ping.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Engine: Configured SQLAlchemy engine.

    Raises:
        ValueError: Raised when the database URL is blank.
    """

    if not database_url.strip():
        raise ValueError("database_url must not be blank")

    parsed_url = make_url(database_url)
    if parsed_url.get_backend_name() == "sqlite":
        engine_options: dict[str, object] = {"connect_args": {"check_same_thread": False}}
        if parsed_url.database in (None, "", ":memory:"):
            engine_options["poolclass"] = StaticPool
        return create_engine(database_url, **engine_options)

    return create_engine(database_url, pool_pre_ping=True)
