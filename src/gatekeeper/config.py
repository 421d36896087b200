"""
Security settings.

Loads pydantic settings from a YAML file and the environment, and wires an
AuthorizationManager from them.
"""

import os
from typing import Iterable, List, Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from .authenticator import DEFAULT_TIMEOUT, SessionAuthenticator
from .chain import ChainedStore
from .database import SQLiteBackingStore
from .errors import SecurityError
from .events import EventSink
from .hashing import BcryptHasher, PasswordHasher, Sha256Hasher
from .manager import AuthorizationManager
from .matcher import PathMatcher
from .session import SessionStore
from .store import ChainableBackingStore, InMemoryBackingStore
from .voter import ChainVoter, ModelVoter, Strategy


class SecuritySettings(BaseModel):
    """Top-level configuration model."""

    salt: str
    timeout: int = DEFAULT_TIMEOUT
    unique: bool = False
    require_email_confirmation: bool = False
    strategy: Strategy = Strategy.AFFIRMATIVE
    hash_algorithm: Literal["none", "sha256", "bcrypt"] = "none"
    database_path: Optional[str] = None
    secured_paths: List[str] = []

    @field_validator("salt")
    @classmethod
    def _salt_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("salt must not be empty")
        return value

    @field_validator("timeout")
    @classmethod
    def _timeout_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("timeout must not be negative")
        return value


def load_settings(path: Optional[str] = None, **overrides) -> SecuritySettings:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to GATEKEEPER_CONFIG env
            variable or 'security.yaml' in the current directory.
        overrides: Values taking precedence over the file.

    Raises:
        SecurityError: INVALID_CONFIGURATION when the settings do not validate
    """

    config_path = path or os.getenv("GATEKEEPER_CONFIG", "security.yaml")
    data = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    env_salt = os.getenv("GATEKEEPER_SALT")
    if env_salt:
        data["salt"] = env_salt

    env_db_path = os.getenv("GATEKEEPER_DATABASE_PATH")
    if env_db_path:
        data["database_path"] = env_db_path

    data.update(overrides)

    try:
        return SecuritySettings(**data)
    except ValidationError as e:
        raise SecurityError.invalid_configuration(f"Invalid security settings: {e}") from e


def get_hasher(settings: SecuritySettings) -> Optional[PasswordHasher]:
    if settings.hash_algorithm == "sha256":
        return Sha256Hasher()
    if settings.hash_algorithm == "bcrypt":
        return BcryptHasher()
    return None


def build_manager(
    settings: SecuritySettings,
    session: SessionStore,
    stores: Optional[Iterable[ChainableBackingStore]] = None,
    event_sink: Optional[EventSink] = None,
) -> AuthorizationManager:
    """Wire a manager for one request from settings.

    The backing stores are chained in the given order. Without stores, a
    SQLite store is used when ``database_path`` is set, an in-memory store
    otherwise. Configured secured paths are written to the chain when it
    has none yet.
    """

    if stores is None:
        if settings.database_path:
            stores = [SQLiteBackingStore(settings.database_path)]
        else:
            stores = [InMemoryBackingStore()]

    model = ChainedStore(stores)
    if settings.secured_paths and model.ping() and not model.get_secured_paths():
        model.set_secured_paths(settings.secured_paths)

    authenticator = SessionAuthenticator(
        session,
        salt=settings.salt,
        timeout=settings.timeout,
        unique=settings.unique,
        require_email_confirmation=settings.require_email_confirmation,
    )
    voter = ChainVoter(settings.strategy, [ModelVoter(model, PathMatcher())])

    return AuthorizationManager(
        authenticator,
        event_sink=event_sink,
        model=model,
        voter=voter,
        hasher=get_hasher(settings),
    )
