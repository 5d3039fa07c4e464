"""
Database Session Management

Handles connection pooling, session lifecycle and table creation.
PostgreSQL in production, SQLite for local development and tests.
"""

import os
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from .models import Base

logger = logging.getLogger(__name__)

# =============================================================================
# DATABASE URL CONFIGURATION
# =============================================================================

def _normalize_url(url: str) -> str:
    # Hosted PostgreSQL URLs use postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """
    Get database URL from environment.

    Priority:
    1. DATABASE_URL
    2. POSTGRES_URL
    3. SQLite fallback for local development
    """
    for name in ("DATABASE_URL", "POSTGRES_URL"):
        url = os.getenv(name)
        if url:
            logger.info(f"Using database from {name}")
            return _normalize_url(url)

    sqlite_path = os.getenv("SQLITE_PATH", "socialpulse_dev.db")
    logger.warning(f"No DATABASE_URL found, using SQLite: {sqlite_path}")
    return f"sqlite:///{sqlite_path}"


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

def create_db_engine(url: str = None):
    """
    Create database engine with appropriate settings.

    PostgreSQL: Connection pooling
    SQLite: Shared across worker threads
    """
    url = url or get_database_url()
    echo = os.getenv("SQL_DEBUG", "false").lower() == "true"

    if is_postgres_url(url):
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,                # Base connections
            max_overflow=10,            # Additional connections under load
            pool_timeout=30,            # Wait for connection
            pool_recycle=1800,          # Recycle connections after 30 min
            pool_pre_ping=True,         # Verify connections before use
            echo=echo,
        )
        logger.info("Created PostgreSQL engine with connection pooling")
    else:
        # Store calls run in worker threads
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        logger.info("Created SQLite engine")

    return engine


# Global engine (lazy initialization)
_engine = None


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================

# Session factory (lazy initialization)
_SessionLocal = None


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Don't expire objects after commit
    )


def get_session_factory() -> sessionmaker:
    """Get or create session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = make_session_factory(get_engine())
    return _SessionLocal


# =============================================================================
# DATABASE INITIALIZATION
# =============================================================================

def init_db(engine=None, drop_all: bool = False) -> None:
    """
    Create all tables.

    Args:
        drop_all: If True, drop all tables first (USE WITH CAUTION!)
    """
    engine = engine or get_engine()

    if drop_all:
        logger.warning("Dropping all database tables!")
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def check_db_connection(engine=None) -> bool:
    """
    Check if database connection is working.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = engine or get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
