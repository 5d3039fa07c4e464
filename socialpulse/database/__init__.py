"""
Database Layer

Usage:
    from socialpulse.database import init_db, get_session_factory, SqlAggregateStore

    init_db()
    store = SqlAggregateStore(get_session_factory(), "daily_agg", tz)
"""

from socialpulse.database.models import (
    Base,
    PostSnapshot,
    PrecomputedDailyTotal,
    PrecomputedTopPost,
)
from socialpulse.database.session import (
    check_db_connection,
    create_db_engine,
    get_database_url,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
)
from socialpulse.database.store import (
    DAILY_AGGREGATE,
    TOP_POSTS_AGGREGATE,
    SqlAggregateStore,
)

__all__ = [
    # Models
    "Base",
    "PostSnapshot",
    "PrecomputedDailyTotal",
    "PrecomputedTopPost",
    # Session
    "check_db_connection",
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    # Store
    "DAILY_AGGREGATE",
    "TOP_POSTS_AGGREGATE",
    "SqlAggregateStore",
]
