"""SQLAlchemy engine and session helpers.

Usage:
    from bankrec.storage.client import session_scope

    with session_scope(database_url) as session:
        session.execute(...)
"""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from bankrec.config.settings import DATABASE_URL
from bankrec.storage.models import Base
from bankrec.utils.logger import get_logger

_ENGINES: Dict[str, Engine] = {}
_SESSION_MAKERS: Dict[str, sessionmaker] = {}

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Return a shared engine for the URL, creating it on first use.

    Args:
        database_url: SQLAlchemy URL; defaults to ``DATABASE_URL``.

    Returns:
        Engine cached per URL.
    """
    url = database_url or DATABASE_URL
    engine = _ENGINES.get(url)
    if engine is None:
        engine = create_engine(url, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        _ENGINES[url] = engine
        _SESSION_MAKERS[url] = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        logger.debug(f"Created database engine for dialect {engine.dialect.name}")
    return engine


def get_session(database_url: Optional[str] = None) -> Session:
    """Return a new session bound to the shared engine."""
    url = database_url or DATABASE_URL
    get_engine(url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(database_url: Optional[str] = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = get_session(database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create all tables that do not exist yet."""
    engine = get_engine(database_url)
    Base.metadata.create_all(bind=engine)
    return engine


def dispose_engines() -> None:
    for engine in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()
    _SESSION_MAKERS.clear()
