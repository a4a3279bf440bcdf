"""Error taxonomy shared by every storage backend and service.

Not-found is *not* an error: lookups return ``None`` and deletes return
``False``.  Input problems raise :class:`ValidationError` (or a subclass);
backend failures (e.g. :class:`sqlalchemy.exc.SQLAlchemyError`) propagate
unmodified.
"""
from typing import List, Optional


class StorageError(Exception):
    """Base class for errors raised by the storage layer itself."""


class ValidationError(StorageError, ValueError):
    """Malformed input that the caller can report back to the user.

    Attributes:
        errors: Individual field messages, e.g. ``["rating: must be 1-5"]``.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors: List[str] = list(errors) if errors else [message]

    @classmethod
    def from_pydantic(cls, exc) -> 'ValidationError':
        """Build from a :class:`pydantic.ValidationError`."""
        messages = []
        for err in exc.errors():
            loc = '.'.join(str(part) for part in err.get('loc', ())) or 'value'
            messages.append(f"{loc}: {err.get('msg', 'invalid value')}")
        title = getattr(exc, 'title', 'input')
        return cls(f"Invalid {title}: " + '; '.join(messages), messages)


class DuplicateError(ValidationError):
    """A uniqueness rule was violated (username, email, favorite pair)."""


class SelfDeletionError(ValidationError):
    """An administrator attempted to delete their own account."""
