"""Database engine for the SQLite-backed key-value store.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: concurrent readers while a writer is
      active. Webhook-triggered syncs and the renewal job write while browser
      requests read credentials.

    - **Foreign Keys**: enabled on every connection for consistency with any
      future relational tables.

    - **check_same_thread=False**: routes run in FastAPI's threadpool, so a
      pooled connection may be used by a different thread than created it.
"""

from sqlalchemy import event as sa_event
from sqlmodel import SQLModel, create_engine

from calendar_bridge.core.config import settings

connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables(bind=None):
    """Create all database tables."""
    SQLModel.metadata.create_all(bind or engine)
