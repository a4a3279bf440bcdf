"""Relational storage backend built on SQLAlchemy.

Same contract and observable behaviour as
:class:`~topgames.repositories.memory.MemoryStorage`.  Each public call runs
in its own unit of work: committed on success, rolled back and re-raised on
any error.  No transaction spans the read-then-write steps of the rating
aggregator or the analytics upsert.
"""
import datetime
from contextlib import contextmanager
from typing import Any, List, Optional

from sqlalchemy import func

from ..database import (
    ActivityLogRow, AnalyticsRow, ENTITY_TABLES, FavoriteRow, GameRow, ReviewRow, UserRow,
    init_db, make_engine, make_session_factory,
)
from ..models import (
    ActivityLog, ActivityLogCreate, Analytics, AnalyticsDelta, Favorite, FavoriteCreate,
    Game, GameCreate, GamePatch, Review, ReviewCreate, ReviewPatch, User, UserCreate,
    UserPatch, parse, utcnow,
)
from ..security import is_supported_credential
from .base import BaseStorage
from .sessions import DEFAULT_TTL_SECONDS, DatabaseSessionStore


class DatabaseStorage(BaseStorage):
    """SQL implementation of :class:`~topgames.repositories.base.BaseStorage`.

    Args:
        url:         SQLAlchemy database URL (ignored when *engine* is given).
        engine:      Pre-built engine, e.g. shared with other components.
        create_tables: Run ``CREATE TABLE IF NOT EXISTS`` for every table.
        session_ttl: Lifetime of login sessions in seconds.
    """

    backend_name = 'sql'

    def __init__(self, url: Optional[str] = None, engine=None,
                 create_tables: bool = True,
                 session_ttl: int = DEFAULT_TTL_SECONDS) -> None:
        super().__init__()
        if engine is None:
            if not url:
                raise ValueError("DatabaseStorage needs a database URL or an engine")
            engine = make_engine(url)
        self.engine = engine
        self._Session = make_session_factory(engine)
        if create_tables:
            init_db(engine)
        self.session_store = DatabaseSessionStore(self._Session, engine=engine,
                                                  ttl=session_ttl)

    @contextmanager
    def _session(self):
        """Yield a session; commit on success, roll back and re-raise on error."""
        db = self._Session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._session() as db:
            row = db.get(UserRow, user_id)
            return User.model_validate(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        with self._session() as db:
            row = db.query(UserRow).filter(
                func.lower(UserRow.username) == username.strip().lower()
            ).first()
            return User.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        with self._session() as db:
            row = db.query(UserRow).filter(
                func.lower(UserRow.email) == email.strip().lower()
            ).first()
            return User.model_validate(row) if row else None

    def create_user(self, data: Any) -> User:
        fields = parse(UserCreate, data)
        self._ensure_unique_user(fields.username, fields.email)
        with self._session() as db:
            row = UserRow(created_at=utcnow(), **fields.model_dump())
            db.add(row)
            db.flush()
            user = User.model_validate(row)
        self._log.debug("Created user %s (%s)", user.id, user.username)
        return user

    def update_user(self, user_id: int, patch: Any) -> Optional[User]:
        changes = parse(UserPatch, patch).changes()
        if self.get_user(user_id) is None:
            return None
        self._ensure_unique_user(changes.get('username'), changes.get('email'),
                                 exclude_id=user_id)
        with self._session() as db:
            row = db.get(UserRow, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            db.flush()
            return User.model_validate(row)

    def get_all_users(self) -> List[User]:
        with self._session() as db:
            return [User.model_validate(r) for r in db.query(UserRow).order_by(UserRow.id).all()]

    def delete_user(self, user_id: int) -> bool:
        with self._session() as db:
            row = db.get(UserRow, user_id)
            if row is None:
                return False
            touched = [gid for (gid,) in db.query(ReviewRow.game_id)
                       .filter(ReviewRow.user_id == user_id).distinct()]
            db.query(ReviewRow).filter(ReviewRow.user_id == user_id).delete()
            db.query(FavoriteRow).filter(FavoriteRow.user_id == user_id).delete()
            db.delete(row)
        self._recompute_all(touched)
        return True

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def get_game(self, game_id: int) -> Optional[Game]:
        with self._session() as db:
            row = db.get(GameRow, game_id)
            return Game.model_validate(row) if row else None

    def get_game_by_title(self, title: str) -> Optional[Game]:
        if not title:
            return None
        with self._session() as db:
            row = db.query(GameRow).filter(
                func.lower(GameRow.title) == title.strip().lower()
            ).order_by(GameRow.id).first()
            return Game.model_validate(row) if row else None

    def create_game(self, data: Any) -> Game:
        fields = parse(GameCreate, data)
        now = utcnow()
        with self._session() as db:
            row = GameRow(rating=0.0, created_at=now, updated_at=now, **fields.model_dump())
            db.add(row)
            db.flush()
            return Game.model_validate(row)

    def update_game(self, game_id: int, patch: Any) -> Optional[Game]:
        changes = parse(GamePatch, patch).changes()
        with self._session() as db:
            row = db.get(GameRow, game_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            db.flush()
            return Game.model_validate(row)

    def get_all_games(self) -> List[Game]:
        with self._session() as db:
            return [Game.model_validate(r) for r in db.query(GameRow).order_by(GameRow.id).all()]

    def _games_by_rating(self, *criteria) -> List[Game]:
        with self._session() as db:
            rows = (db.query(GameRow).filter(*criteria)
                    .order_by(GameRow.rating.desc(), GameRow.id.asc()).all())
            return [Game.model_validate(r) for r in rows]

    def get_featured_games(self) -> List[Game]:
        return self._games_by_rating(GameRow.is_featured.is_(True))

    def get_trending_games(self) -> List[Game]:
        return self._games_by_rating(GameRow.is_trending.is_(True))

    def get_games_by_genre(self, genre) -> List[Game]:
        return self._games_by_rating(GameRow.genre == self._parse_genre(genre))

    def delete_game(self, game_id: int) -> bool:
        with self._session() as db:
            row = db.get(GameRow, game_id)
            if row is None:
                return False
            db.query(ReviewRow).filter(ReviewRow.game_id == game_id).delete()
            db.query(FavoriteRow).filter(FavoriteRow.game_id == game_id).delete()
            db.delete(row)
        return True

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def get_review(self, review_id: int) -> Optional[Review]:
        with self._session() as db:
            row = db.get(ReviewRow, review_id)
            return Review.model_validate(row) if row else None

    def create_review(self, data: Any) -> Review:
        fields = parse(ReviewCreate, data)
        with self._session() as db:
            row = ReviewRow(is_approved=False, created_at=utcnow(), **fields.model_dump())
            db.add(row)
            db.flush()
            review = Review.model_validate(row)
        self.ratings.recompute(review.game_id)
        return review

    def update_review(self, review_id: int, patch: Any) -> Optional[Review]:
        patch = parse(ReviewPatch, patch)
        with self._session() as db:
            row = db.get(ReviewRow, review_id)
            if row is None:
                return None
            for key, value in patch.changes().items():
                setattr(row, key, value)
            db.flush()
            review = Review.model_validate(row)
        if patch.touches_rating():
            self.ratings.recompute(review.game_id)
        return review

    def _reviews_newest_first(self, *criteria) -> List[Review]:
        with self._session() as db:
            rows = (db.query(ReviewRow).filter(*criteria)
                    .order_by(ReviewRow.created_at.desc(), ReviewRow.id.desc()).all())
            return [Review.model_validate(r) for r in rows]

    def get_reviews_by_game(self, game_id: int) -> List[Review]:
        return self._reviews_newest_first(ReviewRow.game_id == game_id,
                                          ReviewRow.is_approved.is_(True))

    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        return self._reviews_newest_first(ReviewRow.user_id == user_id)

    def get_pending_reviews(self) -> List[Review]:
        return self._reviews_newest_first(ReviewRow.is_approved.is_(False))

    def get_all_reviews(self) -> List[Review]:
        return self._reviews_newest_first()

    def delete_review(self, review_id: int) -> bool:
        with self._session() as db:
            row = db.get(ReviewRow, review_id)
            if row is None:
                return False
            game_id = row.game_id
            db.delete(row)
        self.ratings.recompute(game_id)
        return True

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    def get_favorite(self, favorite_id: int) -> Optional[Favorite]:
        with self._session() as db:
            row = db.get(FavoriteRow, favorite_id)
            return Favorite.model_validate(row) if row else None

    def create_favorite(self, data: Any) -> Favorite:
        fields = parse(FavoriteCreate, data)
        self._ensure_not_favorite(fields.user_id, fields.game_id)
        with self._session() as db:
            row = FavoriteRow(created_at=utcnow(), **fields.model_dump())
            db.add(row)
            db.flush()
            return Favorite.model_validate(row)

    def get_favorites_by_user(self, user_id: int) -> List[Favorite]:
        with self._session() as db:
            rows = (db.query(FavoriteRow).filter(FavoriteRow.user_id == user_id)
                    .order_by(FavoriteRow.created_at.desc(), FavoriteRow.id.desc()).all())
            return [Favorite.model_validate(r) for r in rows]

    def delete_favorite(self, favorite_id: int) -> bool:
        with self._session() as db:
            return db.query(FavoriteRow).filter(FavoriteRow.id == favorite_id).delete() > 0

    def is_favorite(self, user_id: int, game_id: int) -> bool:
        with self._session() as db:
            return db.query(FavoriteRow.id).filter(
                FavoriteRow.user_id == user_id,
                FavoriteRow.game_id == game_id,
            ).first() is not None

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def create_activity_log(self, data: Any) -> ActivityLog:
        fields = parse(ActivityLogCreate, data)
        with self._session() as db:
            row = ActivityLogRow(created_at=utcnow(), **fields.model_dump())
            db.add(row)
            db.flush()
            return ActivityLog.model_validate(row)

    def get_recent_activity_logs(self, limit: int = 10) -> List[ActivityLog]:
        with self._session() as db:
            rows = (db.query(ActivityLogRow)
                    .order_by(ActivityLogRow.created_at.desc(), ActivityLogRow.id.desc())
                    .limit(max(int(limit), 0)).all())
            return [ActivityLog.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_analytics(self, days: int, today=None) -> List[Analytics]:
        cutoff = self._cutoff(days, today)
        with self._session() as db:
            rows = (db.query(AnalyticsRow).filter(AnalyticsRow.date >= cutoff)
                    .order_by(AnalyticsRow.date.desc(), AnalyticsRow.id.desc()).all())
            return [Analytics.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Seeding and legacy repair
    # ------------------------------------------------------------------

    def count_legacy_credentials(self) -> int:
        """Number of users whose stored password is not a current credential."""
        with self._session() as db:
            return sum(1 for (password,) in db.query(UserRow.password)
                       if not is_supported_credential(password))

    def wipe(self) -> None:
        """Delete every entity row.  Sessions are left alone."""
        with self._session() as db:
            for table in ENTITY_TABLES:
                db.query(table).delete()

    def seed_initial_data(self) -> bool:
        """Seed an empty database, repairing legacy credential data first.

        If any stored password is in a format :mod:`topgames.security`
        cannot verify, nobody could log in with it.  In that case every
        entity table is wiped and re-seeded, and the repair is logged at
        WARNING level.
        """
        legacy = self.count_legacy_credentials()
        if legacy:
            self._log.warning(
                "Found %d user(s) with legacy credential format; wiping and re-seeding data",
                legacy,
            )
            self.wipe()
        return super().seed_initial_data()

    # ------------------------------------------------------------------
    # Aggregator / upserter hooks
    # ------------------------------------------------------------------

    def _approved_review_ratings(self, game_id: int) -> List[int]:
        with self._session() as db:
            return [rating for (rating,) in db.query(ReviewRow.rating).filter(
                ReviewRow.game_id == game_id,
                ReviewRow.is_approved.is_(True),
            )]

    def _write_game_rating(self, game_id: int, rating: float) -> bool:
        with self._session() as db:
            row = db.get(GameRow, game_id)
            if row is None:
                return False
            row.rating = rating
            row.updated_at = utcnow()
        return True

    def _find_analytics_for_day(self, day: datetime.date) -> Optional[Analytics]:
        with self._session() as db:
            row = (db.query(AnalyticsRow).filter(AnalyticsRow.date == day)
                   .order_by(AnalyticsRow.id).first())
            return Analytics.model_validate(row) if row else None

    def _insert_analytics(self, day: datetime.date, delta: AnalyticsDelta) -> Analytics:
        with self._session() as db:
            row = AnalyticsRow(date=day, created_at=utcnow(), **delta.model_dump())
            db.add(row)
            db.flush()
            return Analytics.model_validate(row)

    def _write_analytics_counters(self, analytics_id: int, total_visits: int,
                                  new_users: int, active_users: int) -> Analytics:
        with self._session() as db:
            row = db.get(AnalyticsRow, analytics_id)
            row.total_visits = total_visits
            row.new_users = new_users
            row.active_users = active_users
            db.flush()
            return Analytics.model_validate(row)
