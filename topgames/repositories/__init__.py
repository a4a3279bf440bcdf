"""Repository package: expose every storage backend from one import."""
from .base import BaseStorage
from .memory import MemoryStorage
from .sql import DatabaseStorage
from .sessions import SessionStore, MemorySessionStore, DatabaseSessionStore

__all__ = [
    'BaseStorage',
    'MemoryStorage',
    'DatabaseStorage',
    'SessionStore',
    'MemorySessionStore',
    'DatabaseSessionStore',
]
