"""
Session persistence infrastructure.
"""

from .store import SessionStore, JsonFileSessionStore

__all__ = [
    'SessionStore',
    'JsonFileSessionStore',
]
