"""Business logic for a user's favorite games."""
from typing import Dict, List, Optional

from ..models import Favorite


class FavoritesService:
    """Adds, removes and lists favorites for one user at a time.

    Rules
    -----
    * The game must exist; adding an unknown game returns ``None``.
    * A (user, game) pair is stored at most once; a second add raises
      :class:`~topgames.errors.DuplicateError`.
    """

    def __init__(self, storage) -> None:
        self._storage = storage

    def add(self, user_id: int, game_id: int) -> Optional[Favorite]:
        if self._storage.get_game(game_id) is None:
            return None
        return self._storage.create_favorite({'user_id': user_id, 'game_id': game_id})

    def remove(self, user_id: int, game_id: int) -> bool:
        """Remove the favorite for *game_id*.  ``False`` if it was not present."""
        for favorite in self._storage.get_favorites_by_user(user_id):
            if favorite.game_id == game_id:
                return self._storage.delete_favorite(favorite.id)
        return False

    def contains(self, user_id: int, game_id: int) -> bool:
        return self._storage.is_favorite(user_id, game_id)

    def list_with_games(self, user_id: int) -> List[Dict]:
        """Favorites, newest first, each with its ``game`` record attached."""
        result = []
        for favorite in self._storage.get_favorites_by_user(user_id):
            entry = favorite.model_dump()
            entry['game'] = self._storage.get_game(favorite.game_id)
            result.append(entry)
        return result
