"""
core/database.py -- SQLAlchemy engine factory shared by the user and item stores.

SQLAlchemy Core (not ORM) keeps the domain dataclasses authoritative; swapping
SQLite for PostgreSQL is a connection string change, not a rewrite.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine, applying SQLite-only connection settings when needed.

    check_same_thread=False: route handlers run in Starlette's thread pool,
    so a pooled connection may be used from a thread other than its creator.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine
