"""
Authorization decision engine.

Decides whether the current user may use a permission or access a path,
with session based authentication and switch user support.
"""

from .models import User, Role, Permission
from .errors import ErrorField, ErrorKind, SecurityError
from .matcher import PathMatcher, PathRule
from .voter import ChainVoter, ModelVoter, Strategy, Vote, Voter
from .session import InMemorySessionStore, SessionStore
from .authenticator import (
    PERMISSION_SWITCH,
    Authenticator,
    ChainAuthenticator,
    SessionAuthenticator,
)
from .store import BackingStore, ChainableBackingStore, InMemoryBackingStore
from .chain import ChainedStore
from .database import SQLiteBackingStore
from .hashing import BcryptHasher, PasswordHasher, Sha256Hasher
from .events import EVENT_LOGIN, EVENT_PASSWORD_UPDATE, EventSink, RecordingEventSink
from .manager import AuthorizationManager
from .config import SecuritySettings, build_manager, load_settings

__version__ = "0.1.0"

__all__ = [
    # Models
    "User",
    "Role",
    "Permission",
    # Errors
    "ErrorField",
    "ErrorKind",
    "SecurityError",
    # Decisions
    "PathMatcher",
    "PathRule",
    "Vote",
    "Voter",
    "ModelVoter",
    "ChainVoter",
    "Strategy",
    # Authentication
    "SessionStore",
    "InMemorySessionStore",
    "PERMISSION_SWITCH",
    "Authenticator",
    "SessionAuthenticator",
    "ChainAuthenticator",
    # Backing stores
    "BackingStore",
    "ChainableBackingStore",
    "InMemoryBackingStore",
    "ChainedStore",
    "SQLiteBackingStore",
    # Passwords and events
    "PasswordHasher",
    "Sha256Hasher",
    "BcryptHasher",
    "EVENT_LOGIN",
    "EVENT_PASSWORD_UPDATE",
    "EventSink",
    "RecordingEventSink",
    # Facade
    "AuthorizationManager",
    "SecuritySettings",
    "build_manager",
    "load_settings",
]
