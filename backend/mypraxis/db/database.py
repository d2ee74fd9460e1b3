"""Database setup — SQLModel/SQLAlchemy engine.

SQLite (WAL mode) for local development and tests, PostgreSQL in production.
Tables are owned by the web application; `create_db_and_tables` exists for
local runs and test fixtures only.
"""

from __future__ import annotations

import os

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from mypraxis.config import settings


def get_database_url() -> str:
    """Get database URL, ensuring the data directory exists."""
    url = settings.database_url
    if url.startswith("sqlite:///"):
        db_path = url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir and db_path != ":memory:":
            os.makedirs(db_dir, exist_ok=True)
    return url


def set_sqlite_wal(dbapi_connection, connection_record):
    """Enable WAL mode for concurrent reads while artifacts are generated."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA busy_timeout=5000")    # 5s wait on lock
    cursor.close()


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine, attaching SQLite pragmas when applicable."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        new_engine = create_engine(url, echo=False, **kwargs)
        event.listen(new_engine, "connect", set_sqlite_wal)
        return new_engine
    return create_engine(url, echo=False, pool_pre_ping=True, **kwargs)


engine = build_engine(get_database_url())


def create_db_and_tables(target: Engine | None = None) -> None:
    """Create all tables defined by SQLModel metadata."""
    # Register table classes with the metadata before create_all
    import mypraxis.models  # noqa: F401

    SQLModel.metadata.create_all(target or engine)
