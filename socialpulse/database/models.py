"""
SQLAlchemy Models

Raw post snapshots plus the precomputed tables the refresh job
maintains. Column types stay portable so the same models run on
PostgreSQL in production and SQLite locally.
"""

from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Date, DateTime, Text,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# =============================================================================
# RAW DATA
# =============================================================================

class PostSnapshot(Base):
    """Latest scraped state of one post"""
    __tablename__ = "post_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(64), nullable=False)
    platform = Column(String(20), nullable=False)  # tiktok, instagram, facebook, youtube

    post_id = Column(String(255), nullable=False)
    username = Column(String(255))
    url = Column(String(2000))
    caption = Column(Text)

    # Engagement
    views = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    shares = Column(Integer, default=0)

    # Naive UTC
    created_at = Column(DateTime, nullable=False)
    scraped_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("client_id", "platform", "post_id", name="uq_snapshot_post"),
        Index("idx_snapshot_client_created", "client_id", "platform", "created_at"),
        Index("idx_snapshot_views", "client_id", "views"),
    )


# =============================================================================
# PRECOMPUTED (rebuilt by the refresh job)
# =============================================================================

class PrecomputedDailyTotal(Base):
    """One totals row per client, platform and local day"""
    __tablename__ = "precomputed_daily_totals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(64), nullable=False)
    platform = Column(String(20), nullable=False)
    day = Column(Date, nullable=False)  # App timezone

    posts = Column(Integer, default=0)
    accounts = Column(Integer, default=0)
    views = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    shares = Column(Integer, default=0)
    engagement_rate = Column(Float, default=0.0)

    computed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("client_id", "platform", "day", name="uq_daily_total"),
        Index("idx_daily_total_lookup", "client_id", "platform", "day"),
    )


class PrecomputedTopPost(Base):
    """Top-N ranking per client, platform and named period"""
    __tablename__ = "precomputed_top_posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(64), nullable=False)
    platform = Column(String(20), nullable=False)
    period = Column(String(20), nullable=False)  # today, yesterday, 3days, 7days, month, all

    post_id = Column(String(255), nullable=False)
    username = Column(String(255))
    url = Column(String(2000))
    caption = Column(Text)
    views = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    created_at = Column(DateTime)

    computed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_top_post_lookup", "client_id", "platform", "period"),
    )
