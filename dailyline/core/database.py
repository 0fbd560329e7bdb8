"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (StaticPool for in-memory SQLite)
- Table definitions for the continuity and reminder state store
"""
from typing import Optional, Generator
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Date, Boolean, JSON, Text, Index, UniqueConstraint, text
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import logging
import os

from dailyline.core.config import settings

logger = logging.getLogger("dailyline")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Drop the current engine so the next access re-reads configuration."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dialect_name() -> str:
    return get_engine().dialect.name


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on clean exit, rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI-friendly DB dependency that yields a Session and closes it."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Continuity records: one per user, mutated only under SELECT ... FOR UPDATE
continuity_records = Table(
    'continuity_records',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('current_streak', Integer, nullable=False, server_default='0'),
    Column('longest_streak', Integer, nullable=False, server_default='0'),
    Column('last_entry_date', Date, nullable=True),
    Column('grace_remaining', Integer, nullable=False, server_default='2'),
    Column('grace_used_dates', JSON, nullable=False),  # ISO dates in the current weekly window
    Column('bonus_grace', Integer, nullable=False, server_default='0'),
    Column('grace_covered_through', Date, nullable=True),
    Column('last_swept_date', Date, nullable=True),
    Column('grace_week_start', Date, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Notification settings: one per user, written by the settings surface only
notification_settings = Table(
    'notification_settings',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('enabled', Boolean, nullable=False, server_default='true'),
    Column('timezone', String(64), nullable=False, server_default='Asia/Tokyo'),
    Column('primary_time', String(5), nullable=False, server_default='21:00'),  # local HH:mm
    Column('active_days', JSON, nullable=False),  # 0=Sunday..6=Saturday, empty means every day
    Column('reminders', JSON, nullable=True),  # up to 5 {time, enabled} slots; empty means primary_time only
    Column('follow_up_enabled', Boolean, nullable=False, server_default='true'),
    Column('follow_up_interval_minutes', Integer, nullable=False, server_default='60'),
    Column('follow_up_max_count', Integer, nullable=False, server_default='2'),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_notification_settings_enabled', 'enabled'),
)

# Device registrations (Web Push subscriptions)
device_registrations = Table(
    'device_registrations',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('endpoint', Text, nullable=False),
    Column('p256dh_key', Text, nullable=False),
    Column('auth_key', Text, nullable=False),
    Column('user_agent', String(255), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('endpoint', name='uq_device_registrations_endpoint'),
)

# Delivery log: audit trail and dedup key source for targeting
delivery_logs = Table(
    'delivery_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('stage', String(32), nullable=False),  # main_reminder | follow_up_<n>
    Column('sent_at', DateTime(timezone=True), nullable=False),
    Column('result', String(16), nullable=False),  # success | failed | skipped
    Column('error_message', Text, nullable=True),
    Column('entry_recorded_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Dedup lookups: (user_id, stage, sent_at)
    Index('idx_delivery_logs_user_stage_sent', 'user_id', 'stage', 'sent_at'),
    # Targeting window scans and retention cleanup
    Index('idx_delivery_logs_sent_at', 'sent_at'),
)

# "Recorded today" flags: cancels remaining follow-ups for a user-local date
follow_up_cancellations = Table(
    'follow_up_cancellations',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('target_date', Date, nullable=False),
    Column('cancelled_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'target_date', name='uq_follow_up_cancellations_user_date'),
)

# Idempotency keys table
idempotency_keys = Table(
    'idempotency_keys',
    metadata,
    Column('key', String(255), primary_key=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('scope', String(100), nullable=True, index=True),
    # Composite index for scope + created_at lookups
    Index('idx_idempotency_keys_scope_created', 'scope', 'created_at'),
)

# Scheduled job runs (ticks, sweeps, cleanups)
job_runs = Table(
    'job_runs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('job_name', String(100), nullable=False),
    Column('started_at', DateTime(timezone=True), nullable=False),
    Column('finished_at', DateTime(timezone=True), nullable=True),
    Column('status', String(20), nullable=False),
    Column('stats_json', JSON, nullable=True),
    Index('idx_job_runs_name_started', 'job_name', 'started_at'),
)
