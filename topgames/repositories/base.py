"""Storage interface implemented by every backend."""
import datetime
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Union

from ..errors import DuplicateError
from ..models import (
    ActivityLog, Analytics, AnalyticsDelta, Favorite, Game, Genre, Review, User,
    day_key, parse_genre,
)
from ..services.analytics_service import AnalyticsUpserter
from ..services.rating_service import RatingAggregator
from .seed import seed_catalog

DateLike = Union[datetime.date, datetime.datetime, str]


class BaseStorage(ABC):
    """Capability contract shared by the in-memory and database backends.

    Every method runs to completion before returning.  Lookups by id return
    ``None`` when the entity does not exist, deletes return ``False``.
    Input problems raise :class:`~topgames.errors.ValidationError`; backend
    failures propagate unchanged.

    Review mutations re-derive the owning game's rating through
    :attr:`ratings` before returning, and
    :meth:`update_daily_analytics` goes through :attr:`analytics`.  Both
    collaborators reach the backend through the protected hooks at the
    bottom of this class.

    Attributes:
        session_store: :class:`~topgames.repositories.sessions.SessionStore`
            used by the web layer to persist login state.
    """

    backend_name = 'base'

    def __init__(self) -> None:
        self._log = logging.getLogger(f'topgames.storage.{self.backend_name}')
        self.ratings = RatingAggregator(self)
        self.analytics = AnalyticsUpserter(self)
        self.session_store = None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        """Return the user with *user_id*, or ``None``."""

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive exact match on username."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive exact match on email."""

    @abstractmethod
    def create_user(self, data: Any) -> User:
        """Insert a user.

        Raises:
            DuplicateError: username or email already taken.
        """

    @abstractmethod
    def update_user(self, user_id: int, patch: Any) -> Optional[User]:
        """Merge a :class:`~topgames.models.UserPatch` into the user."""

    @abstractmethod
    def get_all_users(self) -> List[User]:
        pass

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """Remove the user with their reviews and favorites."""

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    @abstractmethod
    def get_game(self, game_id: int) -> Optional[Game]:
        pass

    @abstractmethod
    def get_game_by_title(self, title: str) -> Optional[Game]:
        """Case-insensitive exact match on title."""

    @abstractmethod
    def create_game(self, data: Any) -> Game:
        """Insert a game.  The stored rating always starts at 0."""

    @abstractmethod
    def update_game(self, game_id: int, patch: Any) -> Optional[Game]:
        """Merge a :class:`~topgames.models.GamePatch`; refreshes ``updated_at``."""

    @abstractmethod
    def get_all_games(self) -> List[Game]:
        pass

    @abstractmethod
    def get_featured_games(self) -> List[Game]:
        """Featured games, highest rating first."""

    @abstractmethod
    def get_trending_games(self) -> List[Game]:
        """Trending games, highest rating first."""

    @abstractmethod
    def get_games_by_genre(self, genre: Union[Genre, str]) -> List[Game]:
        """Games of *genre*, highest rating first."""

    @abstractmethod
    def delete_game(self, game_id: int) -> bool:
        """Remove the game with its reviews and favorites."""

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    @abstractmethod
    def get_review(self, review_id: int) -> Optional[Review]:
        pass

    @abstractmethod
    def create_review(self, data: Any) -> Review:
        """Insert an unapproved review and re-derive its game's rating."""

    @abstractmethod
    def update_review(self, review_id: int, patch: Any) -> Optional[Review]:
        """Merge a :class:`~topgames.models.ReviewPatch`.

        Re-derives the game rating when ``rating`` or ``is_approved`` was
        part of the patch.
        """

    @abstractmethod
    def get_reviews_by_game(self, game_id: int) -> List[Review]:
        """Approved reviews of the game, newest first."""

    @abstractmethod
    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        """All of the user's reviews regardless of status, newest first."""

    @abstractmethod
    def get_pending_reviews(self) -> List[Review]:
        """Unapproved reviews, newest first."""

    @abstractmethod
    def get_all_reviews(self) -> List[Review]:
        """Every review regardless of status, newest first."""

    @abstractmethod
    def delete_review(self, review_id: int) -> bool:
        """Remove the review and re-derive its game's rating."""

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    @abstractmethod
    def get_favorite(self, favorite_id: int) -> Optional[Favorite]:
        pass

    @abstractmethod
    def create_favorite(self, data: Any) -> Favorite:
        """Insert a favorite.

        Raises:
            DuplicateError: the (user, game) pair already exists.
        """

    @abstractmethod
    def get_favorites_by_user(self, user_id: int) -> List[Favorite]:
        """The user's favorites, newest first."""

    @abstractmethod
    def delete_favorite(self, favorite_id: int) -> bool:
        pass

    @abstractmethod
    def is_favorite(self, user_id: int, game_id: int) -> bool:
        pass

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    @abstractmethod
    def create_activity_log(self, data: Any) -> ActivityLog:
        """Append an entry to the audit trail."""

    @abstractmethod
    def get_recent_activity_logs(self, limit: int = 10) -> List[ActivityLog]:
        """At most *limit* entries, newest first."""

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    @abstractmethod
    def get_analytics(self, days: int,
                      today: Optional[DateLike] = None) -> List[Analytics]:
        """Daily buckets from ``today - days`` through today, newest first."""

    def update_daily_analytics(self, day: DateLike, counters: Any = None) -> Analytics:
        """Add *counters* into the bucket for *day*, creating it if needed."""
        return self.analytics.upsert(day, counters)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def seed_initial_data(self) -> bool:
        """Populate the admin account and sample games if the store is empty.

        Returns:
            ``True`` if seed data was written.
        """
        if self.get_all_users() or self.get_all_games():
            self._log.debug("Store already populated; skipping seed")
            return False
        seed_catalog(self)
        return True

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _ensure_unique_user(self, username: Optional[str], email: Optional[str],
                            exclude_id: Optional[int] = None) -> None:
        if username is not None:
            existing = self.get_user_by_username(username)
            if existing is not None and existing.id != exclude_id:
                raise DuplicateError(f"Username '{username}' already exists")
        if email is not None:
            existing = self.get_user_by_email(email)
            if existing is not None and existing.id != exclude_id:
                raise DuplicateError(f"Email '{email}' already exists")

    def _ensure_not_favorite(self, user_id: int, game_id: int) -> None:
        if self.is_favorite(user_id, game_id):
            raise DuplicateError("Game already in favorites")

    @staticmethod
    def _cutoff(days: int, today: Optional[DateLike]) -> datetime.date:
        base = day_key(today) if today is not None else datetime.date.today()
        return base - datetime.timedelta(days=int(days))

    @staticmethod
    def _parse_genre(genre: Union[Genre, str]) -> Genre:
        return parse_genre(genre)

    def _recompute_all(self, game_ids: Iterable[int]) -> None:
        for game_id in sorted(set(game_ids)):
            self.ratings.recompute(game_id)

    # ------------------------------------------------------------------
    # Hooks for the rating aggregator and analytics upserter
    # ------------------------------------------------------------------

    @abstractmethod
    def _approved_review_ratings(self, game_id: int) -> List[int]:
        """Rating values of every approved review of the game."""

    @abstractmethod
    def _write_game_rating(self, game_id: int, rating: float) -> bool:
        """Persist the derived rating.  ``False`` if the game is gone."""

    @abstractmethod
    def _find_analytics_for_day(self, day: datetime.date) -> Optional[Analytics]:
        pass

    @abstractmethod
    def _insert_analytics(self, day: datetime.date, delta: AnalyticsDelta) -> Analytics:
        pass

    @abstractmethod
    def _write_analytics_counters(self, analytics_id: int, total_visits: int,
                                  new_users: int, active_users: int) -> Analytics:
        pass
