"""Admin-side game catalog management."""
from typing import Any, Optional

from ..models import Game


class CatalogService:
    """Creates, edits and removes games, recording each change in the
    activity log.  Validation (closed genre set, required fields) and the
    rating reset on creation happen in the storage layer.
    """

    def __init__(self, storage) -> None:
        self._storage = storage

    def add_game(self, data: Any, actor_id: Optional[int] = None) -> Game:
        game = self._storage.create_game(data)
        self._log(actor_id, 'Game Added', f'Added game: {game.title}')
        return game

    def update_game(self, game_id: int, patch: Any,
                    actor_id: Optional[int] = None) -> Optional[Game]:
        """Returns ``None`` if the game does not exist."""
        game = self._storage.update_game(game_id, patch)
        if game is not None:
            self._log(actor_id, 'Game Updated', f'Updated game: {game.title}')
        return game

    def delete_game(self, game_id: int, actor_id: Optional[int] = None) -> bool:
        game = self._storage.get_game(game_id)
        if game is None or not self._storage.delete_game(game_id):
            return False
        self._log(actor_id, 'Game Deleted', f'Deleted game: {game.title}')
        return True

    def _log(self, actor_id: Optional[int], action: str, details: str) -> None:
        self._storage.create_activity_log({
            'action': action, 'user_id': actor_id, 'details': details,
        })
