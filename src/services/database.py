"""
Database connection and session management for the Production Batch Tracker.

This module provides:
- Database engine creation and configuration
- Session factory for database operations
- Transactional scopes (session_scope, run_in_transaction)
- Translation of driver errors into the service error taxonomy
- Database initialization (create tables)
"""

from typing import Callable, Optional, TypeVar
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, close_all_sessions, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from src.utils.config import get_config
from src.models.base import Base
from src.services.exceptions import IntegrityViolation, TransientStoreError

# Configure logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Extra attempts made by run_in_transaction after a transient failure
DEFAULT_TRANSIENT_RETRIES = 2

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints and WAL mode. Non-SQLite connections are
    left untouched.
    """
    module_name = type(dbapi_connection).__module__
    if "sqlite" not in module_name:
        return

    cursor = dbapi_connection.cursor()
    # Foreign keys carry the RESTRICT/CASCADE rules of the ledger
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def _enable_sqlite_transactions(engine: Engine) -> Engine:
    """
    Let SQLAlchemy emit BEGIN itself on SQLite.

    The pysqlite driver otherwise delays BEGIN until the first write, which
    leaves reads outside the transaction and breaks SAVEPOINT (the outermost
    RELEASE would commit).
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    if database_url is None:
        database_url = get_config().database_url

    logger.info(f"Creating database engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # For in-memory databases (testing), use StaticPool
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return _enable_sqlite_transactions(engine)

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        return _enable_sqlite_transactions(engine)

    # Server databases: serializable isolation, stale connections are re-checked
    return create_engine(
        database_url,
        echo=echo,
        isolation_level="SERIALIZABLE",
        pool_pre_ping=True,
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Register every model with Base before create_all
    from src import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine (singleton).

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Prefer session_scope() or run_in_transaction(); callers using a bare
    session own commit, rollback and close.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    This context manager handles session lifecycle automatically:
    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            lot = session.get(Lot, lot_id)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def translate_store_errors(operation: str = "database operation"):
    """
    Map driver-level failures onto the service error taxonomy.

    - IntegrityError -> IntegrityViolation (logged at CRITICAL; a bug, not user input)
    - OperationalError / DisconnectionError / StaleDataError -> TransientStoreError

    Service errors raised inside the block pass through unchanged.
    """
    try:
        yield
    except IntegrityError as e:
        logger.critical(
            f"{operation}: integrity violation",
            extra={"operation": operation, "outcome": "integrity_violation", "error": str(e.orig)},
        )
        raise IntegrityViolation(str(e.orig), original_error=e) from e
    except StaleDataError as e:
        raise TransientStoreError(f"concurrent update during {operation}", original_error=e) from e
    except (OperationalError, DisconnectionError) as e:
        raise TransientStoreError(str(e), original_error=e) from e


def run_in_transaction(
    work: Callable[[Session], T],
    session: Optional[Session] = None,
    *,
    operation: str = "database operation",
    retries: int = DEFAULT_TRANSIENT_RETRIES,
) -> T:
    """
    Run ``work(session)`` as one all-or-nothing unit.

    If the caller passes a session, ``work`` joins the caller's transaction
    and nothing is committed or retried here. Otherwise a new session_scope()
    is opened; when the attempt fails with a TransientStoreError the whole
    transaction has already rolled back, so it is re-run up to ``retries``
    more times.

    Args:
        work: Callable receiving the session
        session: Optional caller-owned session
        operation: Name used in error messages and logs
        retries: Extra attempts after a transient failure

    Returns:
        Whatever ``work`` returns
    """
    if session is not None:
        with translate_store_errors(operation):
            return work(session)

    attempt = 0
    while True:
        attempt += 1
        try:
            with translate_store_errors(operation):
                with session_scope() as sess:
                    return work(sess)
        except TransientStoreError as e:
            if attempt > retries:
                raise
            logger.warning(
                f"{operation}: transient failure, retrying",
                extra={"operation": operation, "outcome": "retry", "attempt": attempt, "error": str(e)},
            )


def verify_database() -> bool:
    """
    Verify that the database is accessible and has the core tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        engine = get_engine()
        tables = inspect(engine).get_table_names()
        expected_tables = ["lots", "production_batches", "batch_consumptions"]
        return all(table in tables for table in expected_tables)
    except OperationalError as e:
        logger.error(f"Database verification failed: {e}")
        return False


def close_connections() -> None:
    """
    Close all database connections.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory

    if _SessionFactory is not None:
        close_all_sessions()
        _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the application database.

    Creates the data directory, the database and its tables if they don't exist.
    """
    config = get_config()

    if config.uses_sqlite:
        config.ensure_directories()

    if not config.database_exists():
        logger.info(f"Creating new database at: {config.database_path}")
    else:
        logger.info(f"Using existing database at: {config.database_url}")

    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
