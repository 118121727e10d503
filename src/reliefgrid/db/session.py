"""SQLAlchemy engine and session management for the relational store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..persistence.tables import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_write_locks(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite ignores ``SELECT ... FOR UPDATE``; ``BEGIN IMMEDIATE`` gives the
    same serialization of concurrent writers at transaction start.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str | None = None, *, echo: bool | None = None) -> Engine:
    url = url or settings.database_url
    connect_args: dict = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        if url.startswith("sqlite:///") and ":memory:" not in url:
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        connect_args=connect_args,
        future=True,
    )
    if engine.dialect.name == "sqlite":
        _enable_sqlite_write_locks(engine)
    logger.info(f"Database engine created for dialect '{engine.dialect.name}'")
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    """Get the cached session factory bound to the configured database."""
    return make_session_factory(build_engine())


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Provide a transactional scope: commit on success, roll back on any error."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
