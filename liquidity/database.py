# liquidity/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from liquidity.core.config import settings
from liquidity.models import Base

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def normalize_url(url: str) -> str:
    # Railway/Heroku use postgres:// sometimes; SQLAlchemy expects postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def build_engine(url: str):
    url = normalize_url(url)
    if not url:
        raise RuntimeError("DATABASE_URL is not set")

    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, future=True)

    engine = create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite defers BEGIN until the first write, which lets two writers deadlock on
    # lock upgrade. Take the write lock up front so transactions serialize instead.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_sessionmaker(engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
        future=True,
    )


def get_engine():
    global _engine, _SessionLocal
    if _engine is None:
        _engine = build_engine(settings.DATABASE_URL)
        _SessionLocal = build_sessionmaker(_engine)
    return _engine


def get_sessionmaker() -> sessionmaker:
    if _SessionLocal is None:
        get_engine()
    return _SessionLocal


@contextmanager
def session_scope(factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    SessionLocal = factory or get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine=None) -> None:
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Schema ensured on %s", engine.url.render_as_string(hide_password=True))
