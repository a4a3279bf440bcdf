"""Review submission and the moderation workflow."""
import logging
from typing import Dict, List, Optional

from ..models import Review, ReviewPatch

logger = logging.getLogger('topgames.services.review')


class ReviewService:
    """Moves reviews through the moderation lifecycle, delegating persistence
    (and the rating recomputation it triggers) to the storage backend.

    Lifecycle
    ---------
    * ``pending`` : every submitted review starts here (``is_approved`` False).
    * ``approved``: counts toward the game rating and is listed publicly.
    * ``rejected``: ``is_approved`` set back to False; the row is kept.
    * ``deleted`` : the row is removed.

    Each admin transition appends an activity-log entry naming the actor.
    The storage layer trusts its caller: checking that the actor is an
    administrator is the route layer's job.
    """

    def __init__(self, storage) -> None:
        self._storage = storage

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, user_id: int, game_id: int, rating: int, content: str) -> Review:
        """Create a pending review on behalf of *user_id*."""
        review = self._storage.create_review({
            'user_id': user_id,
            'game_id': game_id,
            'rating': rating,
            'content': content,
        })
        self._storage.create_activity_log({
            'action': 'Review Submitted',
            'user_id': user_id,
            'details': f'Review for game ID {game_id} submitted',
        })
        return review

    def approve(self, review_id: int, actor_id: Optional[int] = None) -> Optional[Review]:
        """Mark the review approved.  Returns ``None`` if it does not exist."""
        return self._moderate(review_id, True, actor_id)

    def reject(self, review_id: int, actor_id: Optional[int] = None) -> Optional[Review]:
        """Mark the review not approved.  Returns ``None`` if it does not exist."""
        return self._moderate(review_id, False, actor_id)

    def delete(self, review_id: int, actor_id: Optional[int] = None) -> bool:
        """Remove the review.  Returns ``False`` if it did not exist."""
        if not self._storage.delete_review(review_id):
            return False
        self._storage.create_activity_log({
            'action': 'Review Deleted',
            'user_id': actor_id,
            'details': f'Deleted review ID {review_id}',
        })
        logger.info("Review %s deleted by %s", review_id, actor_id)
        return True

    def pending(self) -> List[Review]:
        return self._storage.get_pending_reviews()

    def for_game(self, game_id: int) -> List[Review]:
        """Publicly visible (approved) reviews of a game."""
        return self._storage.get_reviews_by_game(game_id)

    def all_with_context(self) -> List[Dict]:
        """Every review, newest first, with its game and author attached.

        Returns:
            List of dicts: the review fields plus ``game`` (a
            :class:`~topgames.models.Game` or ``None``) and ``user`` (public
            author fields or ``None`` if the author is gone).
        """
        games = {g.id: g for g in self._storage.get_all_games()}
        users = {u.id: u for u in self._storage.get_all_users()}
        enriched = []
        for review in self._storage.get_all_reviews():
            author = users.get(review.user_id)
            entry = review.model_dump()
            entry['status'] = review.status
            entry['game'] = games.get(review.game_id)
            entry['user'] = author.public() if author else None
            enriched.append(entry)
        return enriched

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _moderate(self, review_id: int, approved: bool,
                  actor_id: Optional[int]) -> Optional[Review]:
        review = self._storage.update_review(review_id, ReviewPatch(is_approved=approved))
        if review is None:
            return None
        action = 'Review Approved' if approved else 'Review Rejected'
        self._storage.create_activity_log({
            'action': action,
            'user_id': actor_id,
            'details': f'{action}: Review ID {review_id}',
        })
        logger.info("%s: review %s by %s", action, review_id, actor_id)
        return review
