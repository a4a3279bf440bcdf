"""Server-side session stores, one per storage backend.

A session is a JSON-serialisable dict keyed by an opaque session id.  The
web layer (:mod:`topgames.web`) reads and writes through whichever store the
active storage backend exposes as ``session_store``.
"""
import datetime
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from ..database import SessionRow
from ..models import utcnow

DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60
CHECK_PERIOD_SECONDS = 24 * 60 * 60


class SessionStore(ABC):
    """Minimal session persistence contract."""

    def __init__(self, ttl: int = DEFAULT_TTL_SECONDS) -> None:
        self.ttl = int(ttl)
        self._log = logging.getLogger(f'topgames.sessions.{type(self).__name__}')

    def _expiry(self, ttl: Optional[int]) -> datetime.datetime:
        return utcnow() + datetime.timedelta(seconds=self.ttl if ttl is None else int(ttl))

    @abstractmethod
    def get(self, sid: str) -> Optional[Dict]:
        """Return the session data for *sid*, or ``None`` if absent or expired."""

    @abstractmethod
    def set(self, sid: str, data: Dict, ttl: Optional[int] = None) -> None:
        """Create or replace session *sid*, resetting its expiry."""

    @abstractmethod
    def destroy(self, sid: str) -> bool:
        """Remove session *sid*.  Returns ``True`` if it existed."""

    @abstractmethod
    def prune(self) -> int:
        """Delete expired sessions and return how many were removed."""

    @abstractmethod
    def __len__(self) -> int:
        pass


class MemorySessionStore(SessionStore):
    """Process-local store.  Expired entries are dropped lazily on read and
    swept at most once per *check_period* seconds on write."""

    def __init__(self, ttl: int = DEFAULT_TTL_SECONDS,
                 check_period: int = CHECK_PERIOD_SECONDS) -> None:
        super().__init__(ttl)
        self.check_period = check_period
        self._data: Dict[str, Tuple[str, datetime.datetime]] = {}
        self._lock = threading.Lock()
        self._last_prune = utcnow()

    def get(self, sid: str) -> Optional[Dict]:
        with self._lock:
            entry = self._data.get(sid)
            if entry is None:
                return None
            payload, expire = entry
            if expire <= utcnow():
                del self._data[sid]
                return None
            return json.loads(payload)

    def set(self, sid: str, data: Dict, ttl: Optional[int] = None) -> None:
        # Serialised on write so callers see the same round-trip as the DB store.
        payload = json.dumps(data)
        with self._lock:
            self._data[sid] = (payload, self._expiry(ttl))
        if (utcnow() - self._last_prune).total_seconds() >= self.check_period:
            self.prune()

    def destroy(self, sid: str) -> bool:
        with self._lock:
            return self._data.pop(sid, None) is not None

    def prune(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [sid for sid, (_, expire) in self._data.items() if expire <= now]
            for sid in expired:
                del self._data[sid]
            self._last_prune = now
        if expired:
            self._log.debug("Pruned %d expired sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class DatabaseSessionStore(SessionStore):
    """Stores sessions in the ``session`` table, creating it if missing."""

    def __init__(self, session_factory, engine=None,
                 ttl: int = DEFAULT_TTL_SECONDS) -> None:
        super().__init__(ttl)
        self._Session = session_factory
        if engine is not None:
            SessionRow.__table__.create(bind=engine, checkfirst=True)

    def get(self, sid: str) -> Optional[Dict]:
        db = self._Session()
        try:
            row = db.get(SessionRow, sid)
            if row is None:
                return None
            if row.expire <= utcnow():
                db.delete(row)
                db.commit()
                return None
            return dict(row.sess)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def set(self, sid: str, data: Dict, ttl: Optional[int] = None) -> None:
        payload = json.loads(json.dumps(data))
        db = self._Session()
        try:
            row = db.get(SessionRow, sid)
            if row is None:
                db.add(SessionRow(sid=sid, sess=payload, expire=self._expiry(ttl)))
            else:
                row.sess = payload
                row.expire = self._expiry(ttl)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def destroy(self, sid: str) -> bool:
        db = self._Session()
        try:
            removed = db.query(SessionRow).filter(SessionRow.sid == sid).delete()
            db.commit()
            return removed > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def prune(self) -> int:
        db = self._Session()
        try:
            removed = db.query(SessionRow).filter(SessionRow.expire <= utcnow()).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        if removed:
            self._log.info("Pruned %d expired sessions", removed)
        return removed

    def __len__(self) -> int:
        db = self._Session()
        try:
            return db.query(SessionRow).count()
        finally:
            db.close()
