"""Derives a game's displayed rating from its approved reviews."""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

logger = logging.getLogger('topgames.services.rating')

_ONE_DECIMAL = Decimal('0.1')


def average_rating(ratings: Iterable[int]) -> float:
    """Mean of *ratings* rounded half-up to one decimal; ``0.0`` when empty.

    >>> average_rating([5, 4, 3])
    4.0
    >>> average_rating([5, 4, 4, 4])
    4.3
    """
    values = [int(r) for r in ratings]
    if not values:
        return 0.0
    mean = Decimal(sum(values)) / Decimal(len(values))
    return float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


class RatingAggregator:
    """Keeps ``Game.rating`` equal to the rounded mean of approved reviews.

    Every call re-derives the value from scratch (no running sums), so a
    failed earlier write cannot leave drift behind.  Backend errors are not
    caught: if the recomputation fails, the triggering review mutation
    fails with it.
    """

    def __init__(self, storage) -> None:
        """
        Args:
            storage: Backend exposing ``_approved_review_ratings`` and
                ``_write_game_rating``.
        """
        self._storage = storage

    def recompute(self, game_id: int) -> Optional[float]:
        """Re-derive and persist the rating of *game_id*.

        Returns:
            The new rating, or ``None`` if the game no longer exists.
        """
        ratings = self._storage._approved_review_ratings(game_id)
        rating = average_rating(ratings)
        if not self._storage._write_game_rating(game_id, rating):
            logger.debug("Game %s not found; rating not updated", game_id)
            return None
        logger.debug("Game %s rating -> %.1f (%d approved)", game_id, rating, len(ratings))
        return rating
