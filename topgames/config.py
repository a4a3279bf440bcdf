"""Environment-driven configuration and backend selection.

Values come from the process environment; a ``.env`` file in the working
directory is loaded first (existing variables win).
"""
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .repositories import DatabaseStorage, MemoryStorage
from .repositories.sessions import DEFAULT_TTL_SECONDS

logger = logging.getLogger('topgames.config')

BACKENDS = ('memory', 'database')


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    storage: str = 'memory'
    database_url: str = ''
    session_ttl: int = DEFAULT_TTL_SECONDS
    session_cookie_name: str = 'topgames_session'
    session_cookie_secure: bool = False
    seed: bool = True
    log_level: str = 'WARNING'

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> 'Config':
        """Build a config from ``TOPGAMES_*`` / ``DATABASE_URL`` variables.

        ``TOPGAMES_STORAGE`` defaults to ``database`` when ``DATABASE_URL``
        is set, ``memory`` otherwise.
        """
        if load_dotenv_file:
            load_dotenv()
        database_url = os.getenv('DATABASE_URL', '').strip()
        storage = os.getenv('TOPGAMES_STORAGE', 'database' if database_url else 'memory')
        return cls(
            storage=storage.strip().lower(),
            database_url=database_url,
            session_ttl=int(os.getenv('SESSION_TTL_SECONDS', str(DEFAULT_TTL_SECONDS))),
            session_cookie_name=os.getenv('SESSION_COOKIE_NAME', 'topgames_session'),
            session_cookie_secure=_env_bool('SESSION_COOKIE_SECURE', False),
            seed=_env_bool('TOPGAMES_SEED', True),
            log_level=os.getenv('TOPGAMES_LOG_LEVEL', 'WARNING'),
        )


def create_storage(config: Config):
    """Construct the one storage backend the process will use.

    Raises:
        ValueError: unknown backend name, or ``database`` without a URL.
    """
    if config.storage not in BACKENDS:
        raise ValueError(f"Unknown storage backend {config.storage!r}; "
                         f"expected one of {', '.join(BACKENDS)}")
    if config.storage == 'memory':
        logger.info("Using in-memory storage")
        return MemoryStorage(seed=config.seed, session_ttl=config.session_ttl)
    if not config.database_url:
        raise ValueError("TOPGAMES_STORAGE=database requires DATABASE_URL")
    storage = DatabaseStorage(config.database_url, session_ttl=config.session_ttl)
    logger.info("Using database storage")
    if config.seed:
        storage.seed_initial_data()
    return storage
