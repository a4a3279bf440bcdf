"""
Database tables and engine configuration for the persistent backend.
One table per entity plus the ``session`` table owned by the session store.
"""

import logging

from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean, DateTime, Date, Text, Float, JSON, Enum,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Genre, utcnow

logger = logging.getLogger('topgames.database')

Base = declarative_base()


class UserRow(Base):
    """Registered account. ``password`` holds the hashed credential."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password = Column(Text, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    avatar = Column("avatar_url", Text, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class GameRow(Base):
    """Catalog entry. ``rating`` is written only by the rating aggregator."""
    __tablename__ = "games"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), index=True, nullable=False)
    description = Column(Text, nullable=False)
    genre = Column(
        Enum(Genre, name="genre", values_callable=lambda enum: [m.value for m in enum]),
        index=True, nullable=False,
    )
    developer = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=False)
    rating = Column(Float, default=0.0, nullable=False)
    release_date = Column(DateTime, nullable=True)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_trending = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class ReviewRow(Base):
    """User review; counts toward the game rating only once approved."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    game_id = Column(Integer, index=True, nullable=False)
    user_id = Column(Integer, index=True, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class FavoriteRow(Base):
    """(user, game) bookmark; uniqueness is checked before insert."""
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True, nullable=False)
    game_id = Column(Integer, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ActivityLogRow(Base):
    """Append-only audit trail for the admin panel."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True)
    action = Column(String(255), nullable=False)
    user_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class AnalyticsRow(Base):
    """Daily usage counters, one row per calendar day."""
    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True)
    date = Column(Date, index=True, nullable=False)
    total_visits = Column(Integer, default=0, nullable=False)
    new_users = Column(Integer, default=0, nullable=False)
    active_users = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SessionRow(Base):
    """Server-side login session (sid -> JSON payload)."""
    __tablename__ = "session"

    sid = Column(String(255), primary_key=True)
    sess = Column(JSON, nullable=False)
    expire = Column(DateTime, index=True, nullable=False)


# Entity tables in the order they are wiped by the legacy repair.
ENTITY_TABLES = (
    ActivityLogRow, AnalyticsRow, FavoriteRow, ReviewRow, GameRow, UserRow,
)


def normalize_url(url: str) -> str:
    """Accept Heroku/Render style ``postgres://`` URLs."""
    url = (url or '').strip().strip('"').strip("'")
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


def make_engine(url: str, echo: bool = False):
    """Create an engine for *url*.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.
    """
    url = normalize_url(url)
    kwargs = {'echo': echo}
    if url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in url or url in ('sqlite://', 'sqlite:///'):
            kwargs['poolclass'] = StaticPool
    else:
        kwargs['pool_pre_ping'] = True
    return create_engine(url, **kwargs)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized on %s", engine.url.render_as_string(hide_password=True))
