"""
Engine and session handling for batchflow.

One engine and one sessionmaker are created lazily from the configured
database URL and shared by every service. Services open their own
transaction through session_scope() unless the caller passes a session in.

SQLite connections get foreign keys, WAL journaling and NORMAL sync on
connect; WAL lets a second session read while the first one writes, which
the optimistic version checks rely on.
"""

from typing import Optional
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, close_all_sessions
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

# Tables whose presence means the schema was created
_REQUIRED_TABLES = ("production_batches", "packing_area_stock", "fg_dispatches")


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Apply SQLite pragmas to each new connection; other drivers are skipped."""
    if type(dbapi_connection).__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None) -> Engine:
    """
    Build an engine for `database_url` (default: the configured URL).

    In-memory SQLite shares one connection through StaticPool so every
    session sees the same database. File-backed SQLite gets the configured
    busy timeout; other backends get pool_pre_ping.
    """
    config = get_config()
    if database_url is None:
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        config.ensure_directories()
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": config.db_timeout},
        )
    return create_engine(database_url, pool_pre_ping=True)


def get_engine() -> Engine:
    """The shared engine, created on first use."""
    global _engine

    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """The shared sessionmaker; objects stay readable after commit."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def session_scope():
    """
    Transactional scope: commit on success, roll back on any exception.

    Example:
        with session_scope() as session:
            batch = production_service.create_batch(data, principal=p, session=session)
            production_service.update_batch_stage(batch["id"], "mixing", principal=p, session=session)
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    if engine is None:
        engine = get_engine()

    # Importing the package registers every model with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Database tables initialized")


def verify_database() -> bool:
    """True if the workflow tables exist; connection errors count as False."""
    try:
        tables = inspect(get_engine()).get_table_names()
    except SQLAlchemyError as e:
        logger.error(f"Database verification failed: {e}")
        return False
    return all(table in tables for table in _REQUIRED_TABLES)


def reset_database(confirm: bool = False) -> None:
    """
    Drop and recreate every table.

    Raises:
        ValueError: Unless confirm=True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("Resetting database: all workflow data will be dropped")

    from .. import models  # noqa: F401

    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    logger.info("Tables dropped and recreated")


def close_connections() -> None:
    """Close open sessions and dispose the shared engine."""
    global _engine, _SessionFactory

    if _SessionFactory is not None:
        close_all_sessions()
        _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """Create the database and its tables if needed; run at CLI start-up."""
    config = get_config()

    if config.database_url.startswith("sqlite") and not config.database_exists():
        logger.info(f"Creating new database at: {config.database_url}")
    else:
        logger.info(f"Using database at: {config.database_url}")

    init_database(get_engine())

    if not verify_database():
        logger.warning("Database verification failed: workflow tables are missing")
