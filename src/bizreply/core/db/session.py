"""Database engine and session helpers built on SQLModel."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from bizreply.core.config import AppSettings

SessionFactory = Callable[[], Session]

_ENGINE_CACHE: dict[str, Engine] = {}


def create_engine_from_settings(settings: AppSettings, *, echo: bool = False) -> Engine:
    """Create (or reuse) an engine for the configured datastore."""

    dsn = settings.postgres.dsn
    if dsn not in _ENGINE_CACHE:
        _ENGINE_CACHE[dsn] = create_engine(dsn, echo=echo, pool_pre_ping=True)
    return _ENGINE_CACHE[dsn]


def init_db(engine: Engine) -> None:
    """Enable pgvector (on Postgres) and create all tables."""

    from . import models  # noqa: F401  Ensures models are imported before metadata usage.

    if engine.dialect.name == "postgresql":
        with engine.begin() as connection:
            connection.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    SQLModel.metadata.create_all(engine)


def session_factory_for(engine: Engine) -> SessionFactory:
    """Return a zero-argument callable opening sessions bound to ``engine``."""

    def _factory() -> Session:
        return Session(engine)

    return _factory


@contextmanager
def session_scope(factory: SessionFactory) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
