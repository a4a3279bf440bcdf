"""Daily usage counters: the idempotent per-day upsert and visit tracking."""
import datetime
import logging
from typing import Any, List, Optional

from ..models import Analytics, AnalyticsDelta, day_key, parse

logger = logging.getLogger('topgames.services.analytics')

# Path prefixes that are never counted as page visits.
UNTRACKED_PREFIXES = ('/api',)


class AnalyticsUpserter:
    """Accumulates counters into exactly one row per calendar day.

    Given a day and a partial set of counters, the row whose date falls on
    the same calendar day (see :func:`topgames.models.day_key`) is updated
    by *adding* the deltas; when no such row exists one is inserted with
    the deltas as its initial values.

    The lookup and the write are separate statements.  Two writers racing
    on a day that has no row yet can both insert.
    """

    def __init__(self, storage) -> None:
        self._storage = storage

    def upsert(self, day, counters: Any = None) -> Analytics:
        key = day_key(day)
        delta = parse(AnalyticsDelta, counters)
        existing = self._storage._find_analytics_for_day(key)
        if existing is None:
            logger.debug("New analytics bucket for %s", key)
            return self._storage._insert_analytics(key, delta)
        return self._storage._write_analytics_counters(
            existing.id,
            total_visits=existing.total_visits + delta.total_visits,
            new_users=existing.new_users + delta.new_users,
            active_users=existing.active_users + delta.active_users,
        )


def should_track(path: str) -> bool:
    """True for page requests: not an API call and not a static file."""
    if not path:
        return False
    if any(path.startswith(prefix) for prefix in UNTRACKED_PREFIXES):
        return False
    return '.' not in path


class AnalyticsService:
    """Visit counting and dashboard reads on top of the storage upsert."""

    def __init__(self, storage) -> None:
        self._storage = storage

    def record_visit(self, path: str,
                     now: Optional[datetime.datetime] = None) -> Optional[Analytics]:
        """Count one visit for today if *path* is a page request."""
        if not should_track(path):
            return None
        return self._storage.update_daily_analytics(now or datetime.datetime.now(),
                                                    {'total_visits': 1})

    def record_registration(self, now: Optional[datetime.datetime] = None) -> Analytics:
        return self._storage.update_daily_analytics(now or datetime.datetime.now(),
                                                    {'new_users': 1})

    def record_login(self, now: Optional[datetime.datetime] = None) -> Analytics:
        return self._storage.update_daily_analytics(now or datetime.datetime.now(),
                                                    {'active_users': 1})

    def last_days(self, days: int = 7) -> List[Analytics]:
        return self._storage.get_analytics(days)

    def totals(self, days: int = 7) -> dict:
        """Sum of each counter over the last *days* days."""
        rows = self._storage.get_analytics(days)
        return {
            'days': days,
            'total_visits': sum(r.total_visits for r in rows),
            'new_users': sum(r.new_users for r in rows),
            'active_users': sum(r.active_users for r in rows),
        }
