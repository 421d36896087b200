"""
Session storage for authenticators.

The authenticator persists identity through a key/value store supplied by
the caller, usually backed by a cookie or server-side session.
"""

from typing import Dict, Optional, Protocol


class SessionStore(Protocol):
    """Key/value store for session data."""

    def get(self, key: str) -> Optional[str]:
        """Return the value of ``key`` or None."""

    def set(self, key: str, value: Optional[str]) -> None:
        """Store ``value`` under ``key``, None removes the key."""


class InMemorySessionStore:
    """
    Session data kept in a local dict.

    Useful for tests and for single process applications.
    """

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value
