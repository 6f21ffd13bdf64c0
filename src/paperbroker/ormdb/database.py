"""Database configuration and session management."""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.logging import get_logger
from ..config.settings import get_settings

logger = get_logger(__name__)

# Base class for all ORM models
Base = declarative_base()

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _configure_sqlite(dbapi_connection, connection_record):
    """Configure SQLite for concurrency and referential integrity."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine_from_settings() -> Engine:
    """Create database engine using application settings."""
    settings = get_settings()
    database_url = settings.get_database_url()

    logger.info(
        "Creating database engine",
        url_type="sqlite" if "sqlite" in database_url else "other",
        echo_sql=settings.database_echo_sql,
    )

    engine_kwargs = {
        "echo": settings.database_echo_sql,
        "pool_pre_ping": settings.database_pool_pre_ping,
        "pool_recycle": settings.database_pool_recycle,
    }

    if "sqlite" in database_url:
        engine_kwargs.update(
            {
                "connect_args": {
                    "check_same_thread": False,
                    "timeout": 30,
                },
                "poolclass": StaticPool,
            }
        )
    else:
        engine_kwargs.update(
            {
                "pool_size": 5,
                "max_overflow": 10,
            }
        )

    engine = create_engine(database_url, **engine_kwargs)

    if "sqlite" in database_url:
        event.listen(engine, "connect", _configure_sqlite)

    return engine


def get_engine() -> Engine:
    """Get the database engine, creating it if necessary."""
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings()
        logger.info("Database engine initialized")

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory, creating it if necessary."""
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
            expire_on_commit=False,  # Keep objects accessible after commit
        )
        logger.debug("Session factory created")

    return _SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Run a block as a single unit of work.

    Everything written inside the block commits together on exit or is
    rolled back together if the block raises.
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


def create_tables():
    """Create all database tables."""
    # Register the models on Base.metadata
    from . import models  # noqa: F401

    logger.info("Creating database tables")
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables created successfully")


def check_database_health() -> dict:
    """
    Check database connectivity and return health information.

    Returns:
        dict: Database health status and metrics
    """
    try:
        with session_scope() as session:
            health_check = session.execute(text("SELECT 1 as health_check")).scalar()

        pool = get_engine().pool
        pool_info = {}
        for key, attr in (
            ("pool_size", "size"),
            ("checked_in", "checkedin"),
            ("checked_out", "checkedout"),
        ):
            value = getattr(pool, attr, None)
            pool_info[key] = value() if callable(value) else "N/A"

        logger.debug("Database health check successful", pool_info=pool_info)

        return {
            "status": "healthy",
            "connectivity": health_check == 1,
            "pool_info": pool_info,
        }

    except Exception as e:
        logger.error("Database health check failed", error=str(e), exc_info=True)
        return {
            "status": "unhealthy",
            "error": str(e),
            "connectivity": False,
        }
