from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


SessionFactory = Callable[[], Session]


def create_sqlalchemy_engine(database_url: str) -> Engine:
    """Create the engine shared by every SQL repository.

    SQLite connections are handed between FastAPI's worker threads, so the
    same-thread check is disabled for that dialect.
    """

    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, future=True, connect_args=connect_args)


def create_sqlalchemy_session_factory(engine: Engine) -> SessionFactory:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)

    def _factory() -> Session:  # pragma: no cover - thin wrapper
        return SessionLocal()

    return _factory
