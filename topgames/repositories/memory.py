"""In-process storage backend.

Reference semantics for every storage operation; used for development and
tests.  All state lives in per-entity dicts guarded by one re-entrant lock,
so mutations from concurrent request threads are serialised.
"""
import datetime
import itertools
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..models import (
    ActivityLog, ActivityLogCreate, Analytics, AnalyticsDelta, Favorite, FavoriteCreate,
    Game, GameCreate, GamePatch, Review, ReviewCreate, ReviewPatch, User, UserCreate,
    UserPatch, parse, utcnow,
)
from .base import BaseStorage
from .sessions import DEFAULT_TTL_SECONDS, MemorySessionStore

RecordT = TypeVar('RecordT')


def _newest_first(records):
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def _best_rated_first(games):
    return sorted(games, key=lambda g: (-g.rating, g.id))


class MemoryStorage(BaseStorage):
    """Dict-backed implementation of :class:`~topgames.repositories.base.BaseStorage`.

    Records handed out are copies; mutating them does not touch the store.

    Args:
        seed: Populate the admin account and sample games on construction.
        session_ttl: Lifetime of login sessions in seconds.
    """

    backend_name = 'memory'

    def __init__(self, seed: bool = True,
                 session_ttl: int = DEFAULT_TTL_SECONDS) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._games: Dict[int, Game] = {}
        self._reviews: Dict[int, Review] = {}
        self._favorites: Dict[int, Favorite] = {}
        self._activity_logs: Dict[int, ActivityLog] = {}
        self._analytics: Dict[int, Analytics] = {}
        self._ids = {name: itertools.count(1) for name in (
            'users', 'games', 'reviews', 'favorites', 'activity_logs', 'analytics')}
        self.session_store = MemorySessionStore(ttl=session_ttl)
        if seed:
            self.seed_initial_data()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    @staticmethod
    def _copy(record):
        return None if record is None else record.model_copy()

    def _select(self, table: Dict[int, RecordT],
                predicate: Callable[[RecordT], bool]) -> List[RecordT]:
        with self._lock:
            return [r.model_copy() for r in table.values() if predicate(r)]

    def _find_one(self, table: Dict[int, RecordT],
                  predicate: Callable[[RecordT], bool]) -> Optional[RecordT]:
        with self._lock:
            for record in table.values():
                if predicate(record):
                    return record.model_copy()
        return None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        wanted = username.strip().lower()
        return self._find_one(self._users, lambda u: u.username.lower() == wanted)

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        wanted = email.strip().lower()
        return self._find_one(self._users, lambda u: u.email.lower() == wanted)

    def create_user(self, data: Any) -> User:
        fields = parse(UserCreate, data)
        with self._lock:
            self._ensure_unique_user(fields.username, fields.email)
            user = User(id=self._next_id('users'), created_at=utcnow(), **fields.model_dump())
            self._users[user.id] = user
        self._log.debug("Created user %s (%s)", user.id, user.username)
        return user.model_copy()

    def update_user(self, user_id: int, patch: Any) -> Optional[User]:
        changes = parse(UserPatch, patch).changes()
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            self._ensure_unique_user(changes.get('username'), changes.get('email'),
                                     exclude_id=user_id)
            updated = user.model_copy(update=changes)
            self._users[user_id] = updated
            return updated.model_copy()

    def get_all_users(self) -> List[User]:
        return self._select(self._users, lambda u: True)

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            touched = [r.game_id for r in self._reviews.values() if r.user_id == user_id]
            self._reviews = {k: r for k, r in self._reviews.items() if r.user_id != user_id}
            self._favorites = {k: f for k, f in self._favorites.items() if f.user_id != user_id}
            self._recompute_all(touched)
        return True

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def get_game(self, game_id: int) -> Optional[Game]:
        with self._lock:
            return self._copy(self._games.get(game_id))

    def get_game_by_title(self, title: str) -> Optional[Game]:
        if not title:
            return None
        wanted = title.strip().lower()
        return self._find_one(self._games, lambda g: g.title.lower() == wanted)

    def create_game(self, data: Any) -> Game:
        fields = parse(GameCreate, data)
        now = utcnow()
        with self._lock:
            game = Game(id=self._next_id('games'), rating=0.0, created_at=now, updated_at=now,
                        **fields.model_dump())
            self._games[game.id] = game
        return game.model_copy()

    def update_game(self, game_id: int, patch: Any) -> Optional[Game]:
        changes = parse(GamePatch, patch).changes()
        changes['updated_at'] = utcnow()
        with self._lock:
            game = self._games.get(game_id)
            if game is None:
                return None
            updated = game.model_copy(update=changes)
            self._games[game_id] = updated
            return updated.model_copy()

    def get_all_games(self) -> List[Game]:
        return self._select(self._games, lambda g: True)

    def get_featured_games(self) -> List[Game]:
        return _best_rated_first(self._select(self._games, lambda g: g.is_featured))

    def get_trending_games(self) -> List[Game]:
        return _best_rated_first(self._select(self._games, lambda g: g.is_trending))

    def get_games_by_genre(self, genre) -> List[Game]:
        wanted = self._parse_genre(genre)
        return _best_rated_first(self._select(self._games, lambda g: g.genre == wanted))

    def delete_game(self, game_id: int) -> bool:
        with self._lock:
            if self._games.pop(game_id, None) is None:
                return False
            self._reviews = {k: r for k, r in self._reviews.items() if r.game_id != game_id}
            self._favorites = {k: f for k, f in self._favorites.items() if f.game_id != game_id}
        return True

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def get_review(self, review_id: int) -> Optional[Review]:
        with self._lock:
            return self._copy(self._reviews.get(review_id))

    def create_review(self, data: Any) -> Review:
        fields = parse(ReviewCreate, data)
        with self._lock:
            review = Review(id=self._next_id('reviews'), is_approved=False,
                            created_at=utcnow(), **fields.model_dump())
            self._reviews[review.id] = review
            self.ratings.recompute(review.game_id)
        return review.model_copy()

    def update_review(self, review_id: int, patch: Any) -> Optional[Review]:
        patch = parse(ReviewPatch, patch)
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                return None
            updated = review.model_copy(update=patch.changes())
            self._reviews[review_id] = updated
            if patch.touches_rating():
                self.ratings.recompute(updated.game_id)
            return updated.model_copy()

    def get_reviews_by_game(self, game_id: int) -> List[Review]:
        return _newest_first(self._select(
            self._reviews, lambda r: r.game_id == game_id and r.is_approved))

    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        return _newest_first(self._select(self._reviews, lambda r: r.user_id == user_id))

    def get_pending_reviews(self) -> List[Review]:
        return _newest_first(self._select(self._reviews, lambda r: not r.is_approved))

    def get_all_reviews(self) -> List[Review]:
        return _newest_first(self._select(self._reviews, lambda r: True))

    def delete_review(self, review_id: int) -> bool:
        with self._lock:
            review = self._reviews.pop(review_id, None)
            if review is None:
                return False
            self.ratings.recompute(review.game_id)
        return True

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    def get_favorite(self, favorite_id: int) -> Optional[Favorite]:
        with self._lock:
            return self._copy(self._favorites.get(favorite_id))

    def create_favorite(self, data: Any) -> Favorite:
        fields = parse(FavoriteCreate, data)
        with self._lock:
            self._ensure_not_favorite(fields.user_id, fields.game_id)
            favorite = Favorite(id=self._next_id('favorites'), created_at=utcnow(),
                                **fields.model_dump())
            self._favorites[favorite.id] = favorite
        return favorite.model_copy()

    def get_favorites_by_user(self, user_id: int) -> List[Favorite]:
        return _newest_first(self._select(self._favorites, lambda f: f.user_id == user_id))

    def delete_favorite(self, favorite_id: int) -> bool:
        with self._lock:
            return self._favorites.pop(favorite_id, None) is not None

    def is_favorite(self, user_id: int, game_id: int) -> bool:
        with self._lock:
            return any(f.user_id == user_id and f.game_id == game_id
                       for f in self._favorites.values())

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def create_activity_log(self, data: Any) -> ActivityLog:
        fields = parse(ActivityLogCreate, data)
        with self._lock:
            log = ActivityLog(id=self._next_id('activity_logs'), created_at=utcnow(),
                              **fields.model_dump())
            self._activity_logs[log.id] = log
        return log.model_copy()

    def get_recent_activity_logs(self, limit: int = 10) -> List[ActivityLog]:
        return _newest_first(self._select(self._activity_logs, lambda a: True))[:max(int(limit), 0)]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_analytics(self, days: int, today=None) -> List[Analytics]:
        cutoff = self._cutoff(days, today)
        rows = self._select(self._analytics, lambda a: a.date >= cutoff)
        return sorted(rows, key=lambda a: (a.date, a.id), reverse=True)

    def update_daily_analytics(self, day, counters: Any = None) -> Analytics:
        with self._lock:
            return super().update_daily_analytics(day, counters)

    # ------------------------------------------------------------------
    # Aggregator / upserter hooks
    # ------------------------------------------------------------------

    def _approved_review_ratings(self, game_id: int) -> List[int]:
        with self._lock:
            return [r.rating for r in self._reviews.values()
                    if r.game_id == game_id and r.is_approved]

    def _write_game_rating(self, game_id: int, rating: float) -> bool:
        with self._lock:
            game = self._games.get(game_id)
            if game is None:
                return False
            self._games[game_id] = game.model_copy(update={'rating': rating,
                                                           'updated_at': utcnow()})
        return True

    def _find_analytics_for_day(self, day: datetime.date) -> Optional[Analytics]:
        return self._find_one(self._analytics, lambda a: a.date == day)

    def _insert_analytics(self, day: datetime.date, delta: AnalyticsDelta) -> Analytics:
        with self._lock:
            row = Analytics(id=self._next_id('analytics'), date=day, created_at=utcnow(),
                            **delta.model_dump())
            self._analytics[row.id] = row
        return row.model_copy()

    def _write_analytics_counters(self, analytics_id: int, total_visits: int,
                                  new_users: int, active_users: int) -> Analytics:
        with self._lock:
            updated = self._analytics[analytics_id].model_copy(update={
                'total_visits': total_visits,
                'new_users': new_users,
                'active_users': active_users,
            })
            self._analytics[analytics_id] = updated
        return updated.model_copy()
