"""Business logic for account management."""
import logging
from typing import Any, Dict, List, Optional

from ..errors import DuplicateError, SelfDeletionError, ValidationError
from ..models import User, UserCreate, UserPatch, parse
from ..security import hash_password

logger = logging.getLogger('topgames.services.user')

MIN_PASSWORD_LENGTH = 6


def _hash_plaintext(password: str) -> str:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            [f"password: must be at least {MIN_PASSWORD_LENGTH} characters"],
        )
    return hash_password(password)


class UserService:
    """Registration plus the admin user-management operations.

    Rules
    -----
    * Usernames and emails are unique, compared case-insensitively; a
      duplicate registration raises :class:`~topgames.errors.DuplicateError`
      with an "already exists" message.
    * An administrator may not delete the account they are logged in as.
    * Passwords arrive in plain text, must be at least
      ``MIN_PASSWORD_LENGTH`` characters, and are stored only as
      :func:`~topgames.security.hash_password` credentials.
    """

    def __init__(self, storage, analytics=None) -> None:
        """
        Args:
            storage:   Active storage backend.
            analytics: Optional :class:`~topgames.services.AnalyticsService`;
                when given, registrations bump today's ``new_users``.
        """
        self._storage = storage
        self._analytics = analytics

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, data: Any) -> User:
        """Create a regular (non-admin) account.

        Raises:
            DuplicateError: username or email already in use.
            ValidationError: malformed input.
        """
        fields = parse(UserCreate, data)
        if self._storage.get_user_by_username(fields.username):
            raise DuplicateError('Username already exists')
        if self._storage.get_user_by_email(fields.email):
            raise DuplicateError('Email already exists')
        fields = fields.model_copy(update={
            'password': _hash_plaintext(fields.password),
            'is_admin': False,
        })
        user = self._storage.create_user(fields)
        if self._analytics is not None:
            self._analytics.record_registration()
        logger.info("Registered user %s", user.username)
        return user

    def update(self, user_id: int, patch: Any,
               actor_id: Optional[int] = None) -> Optional[User]:
        """Admin edit.  Returns ``None`` if the user does not exist.

        A ``password`` in *patch* is plain text and is hashed before storage.
        """
        changes = parse(UserPatch, patch).changes()
        if changes.get('password') is not None:
            changes['password'] = _hash_plaintext(changes['password'])
        user = self._storage.update_user(user_id, changes)
        if user is not None:
            self._storage.create_activity_log({
                'action': 'User Updated',
                'user_id': actor_id,
                'details': f'Updated user: {user.username}',
            })
        return user

    def delete(self, user_id: int, actor_id: int) -> bool:
        """Admin delete.

        Raises:
            SelfDeletionError: *actor_id* is the account being deleted.
        """
        if user_id == actor_id:
            raise SelfDeletionError('Cannot delete your own account')
        user = self._storage.get_user(user_id)
        if user is None or not self._storage.delete_user(user_id):
            return False
        self._storage.create_activity_log({
            'action': 'User Deleted',
            'user_id': actor_id,
            'details': f'Deleted user: {user.username}',
        })
        return True

    def get_all(self) -> List[User]:
        return self._storage.get_all_users()

    def recent_activity(self, limit: int = 10) -> List[Dict]:
        """Recent activity entries with the acting user's public fields."""
        entries = []
        for log in self._storage.get_recent_activity_logs(limit):
            entry = log.model_dump()
            user = self._storage.get_user(log.user_id) if log.user_id else None
            if user is not None:
                entry['user'] = user.public()
            entries.append(entry)
        return entries
