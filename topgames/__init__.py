"""
Persistence and domain layer for the TopBestGames catalog/review site.

Introduces a layered architecture:

  topgames/repositories/ : storage backends behind one interface
                           (in-memory and SQLAlchemy) plus session stores.
  topgames/services/     : rating aggregation, analytics upsert, review
                           moderation and the admin workflows.

The route layer builds one backend at startup with
``topgames.config.create_storage`` and passes it to the services (or to
``topgames.web.init_app`` for Flask).  Nothing else branches on the backend
type.
"""
import logging

__version__ = '1.0.0'


def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root ``topgames`` logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('topgames')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger
