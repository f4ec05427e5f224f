# backend/cv_intelligence/db/session.py
"""
SQLAlchemy session/engine bootstrap.
- Reads DATABASE_URL via core.config (defaults to a local SQLite file).
- Exposes: Base, init_engine(), get_engine(), session_scope(), ensure_tables().
- SQLite gets check_same_thread=False (analysis runs on worker threads) and
  foreign keys switched on so candidate rows cascade with their batch.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase

from ..core.config import get_database_url

log = logging.getLogger(__name__)

# --- SQLAlchemy base ---------------------------------------------------------

class Base(DeclarativeBase):
    pass

# --- engine & session --------------------------------------------------------

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker[Session]] = None


def _enable_sqlite_fks(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def init_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """(Re)build the engine + session factory. Tests call this with a temp DB."""
    global engine, SessionLocal
    url = url or get_database_url()
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, echo=echo, pool_pre_ping=True, future=True, connect_args=connect_args)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_fks)
    SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)
    log.info("[db] engine ready (%s)", engine.url.render_as_string(hide_password=True))
    return engine


def get_engine() -> Engine:
    if engine is None:
        init_engine()
    return engine

# --- helpers ----------------------------------------------------------------

@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Context manager for a DB session; commits on success, rolls back on error.
    Example:
        with session_scope() as s:
            crud.create_batch(s, owner_id, "Frontend Q1")
    """
    get_engine()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

def ensure_tables() -> None:
    """
    Create tables if needed. Import models lazily to avoid circulars.
    Call this once at startup.
    """
    # local import to prevent circular import during module import
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=get_engine())

__all__ = [
    "Base",
    "init_engine",
    "get_engine",
    "session_scope",
    "ensure_tables",
]
