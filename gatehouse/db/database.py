"""Engine, session factory and transaction scope.

Every transaction starts as a write transaction so "count, then insert"
sequences (the per-address account quota) cannot interleave:

- SQLite: the driver's implicit transaction handling is switched off and
  each transaction opens with ``BEGIN IMMEDIATE``, taking the database write
  lock before the first read. Competing writers wait up to the busy timeout.
- Other backends run at SERIALIZABLE isolation.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from gatehouse.core.config import DatabaseSettings


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(db_settings: DatabaseSettings) -> Engine:
    """Create the engine with write-serialising transactions."""

    url = db_settings.url
    if _is_sqlite(url):
        engine = create_engine(
            url,
            echo=db_settings.echo,
            connect_args={
                "check_same_thread": False,
                "timeout": db_settings.busy_timeout_seconds,
            },
        )
        _use_immediate_transactions(engine)
        return engine

    return create_engine(url, echo=db_settings.echo, isolation_level="SERIALIZABLE")


def _use_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    from gatehouse.db import models  # noqa: F401 - registers ORM mappings

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Context-manager style session with automatic commit/rollback."""
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
