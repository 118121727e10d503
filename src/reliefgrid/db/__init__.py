"""Database clients and utilities."""

from .session import build_engine, get_session_factory, init_db, make_session_factory, session_scope

__all__ = ["build_engine", "get_session_factory", "init_db", "make_session_factory", "session_scope"]
