"""Flask integration: server-side sessions and page-visit counting.

``configure_app`` wires one storage backend into a Flask application::

    app = Flask(__name__)
    storage = configure_app(app, Config.from_env())

(``init_app`` does the same for a storage instance built elsewhere.)

After that, ``flask.session`` is persisted through ``storage.session_store``
and every page request (not ``/api``, not a static file) bumps today's
visit counter.  Route handlers reach the backend with :func:`get_storage`.
"""
import datetime
import logging
import secrets
from typing import Optional

from flask import current_app, request
from flask.sessions import SessionInterface, SessionMixin
from werkzeug.datastructures import CallbackDict

from .config import create_storage
from .services.analytics_service import AnalyticsService

logger = logging.getLogger('topgames.web')

EXTENSION_KEY = 'topgames'


class StoredSession(CallbackDict, SessionMixin):
    """Session dict that remembers its id and whether it changed."""

    def __init__(self, initial=None, sid: Optional[str] = None, new: bool = False) -> None:
        def on_update(session):
            session.modified = True
        super().__init__(initial, on_update)
        self.sid = sid or secrets.token_urlsafe(32)
        self.new = new
        self.modified = False

    def regenerate(self) -> None:
        """Move the data to a fresh id (call after login)."""
        self.previous_sid = self.sid
        self.sid = secrets.token_urlsafe(32)
        self.modified = True


class StorageSessionInterface(SessionInterface):
    """Keeps session payloads in a :class:`~topgames.repositories.sessions.SessionStore`;
    only the opaque session id travels in the cookie."""

    session_class = StoredSession

    def __init__(self, store) -> None:
        self.store = store

    def _ttl(self, app, session) -> Optional[int]:
        if session.permanent:
            return int(app.permanent_session_lifetime.total_seconds())
        return None

    def open_session(self, app, request):
        sid = request.cookies.get(self.get_cookie_name(app))
        if sid:
            data = self.store.get(sid)
            if data is not None:
                return self.session_class(data, sid=sid)
        return self.session_class(new=True)

    def save_session(self, app, session, response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        previous = getattr(session, 'previous_sid', None)
        if previous:
            self.store.destroy(previous)

        if not session:
            if session.modified and not session.new:
                self.store.destroy(session.sid)
                response.delete_cookie(name, domain=domain, path=path)
            return

        if not self.should_set_cookie(app, session):
            return

        self.store.set(session.sid, dict(session), ttl=self._ttl(app, session))
        response.set_cookie(
            name,
            session.sid,
            expires=self.get_expiration_time(app, session),
            httponly=self.get_cookie_httponly(app),
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
            path=path,
            domain=domain,
        )


def init_app(app, storage, cookie_name: Optional[str] = None,
             track_visits: bool = True) -> None:
    """Attach *storage* to *app* as its session backend and visit counter."""
    if cookie_name:
        app.config['SESSION_COOKIE_NAME'] = cookie_name
    app.session_interface = StorageSessionInterface(storage.session_store)
    app.extensions[EXTENSION_KEY] = storage

    if track_visits:
        analytics = AnalyticsService(storage)

        @app.before_request
        def _count_visit():
            analytics.record_visit(request.path)

    logger.debug("Storage %s attached to %s", storage.backend_name, app.name)


def configure_app(app, config, storage=None):
    """Build the backend described by *config* and attach it to *app*.

    Returns:
        The storage instance, for callers that also need it outside Flask.
    """
    if storage is None:
        storage = create_storage(config)
    app.config['SESSION_COOKIE_SECURE'] = config.session_cookie_secure
    app.permanent_session_lifetime = datetime.timedelta(seconds=config.session_ttl)
    init_app(app, storage, cookie_name=config.session_cookie_name)
    return storage


def get_storage():
    """The storage backend attached to the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
