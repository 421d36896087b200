"""
Authorization manager.

Facade combining the authenticator, backing store and voters into allow or
deny decisions for the current user.
"""

from typing import Any, Optional, Set
from urllib.parse import urlsplit

from loguru import logger

from .authenticator import Authenticator
from .errors import SecurityError
from .events import EVENT_LOGIN, EVENT_PASSWORD_UPDATE, EventSink
from .hashing import PasswordHasher
from .models import User
from .store import BackingStore
from .voter import ChainVoter, Vote, Voter


class AuthorizationManager:
    """
    Security facade.

    Provides:
    - Login, logout and switch user through the authenticator
    - Permission and path checks through the voter
    - Password hashing

    Checks fail open when no backing store or no voter is configured. Any
    error raised while resolving the user during a check is logged and the
    check continues for an anonymous user.
    """

    def __init__(
        self,
        authenticator: Authenticator,
        event_sink: Optional[EventSink] = None,
        model: Optional[BackingStore] = None,
        voter: Optional[Voter] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        """
        Initialize manager.

        Args:
            authenticator: Authenticator resolving the current user
            event_sink: Receiver of login and password events
            model: Backing store, discarded when it does not answer ping
            voter: Voter deciding on permissions and paths
            hasher: Password hasher, passwords stay plain text without one
        """
        self.event_sink = event_sink
        self.voter = voter
        self.hasher = hasher
        self.model: Optional[BackingStore] = None
        self.request: Any = None
        self._authenticated_request = False
        self._fail_open_warned: Set[str] = set()

        self.set_authenticator(authenticator)
        self.set_model(model)

    # ------------------------------------------------------------------
    # Configuration

    def set_authenticator(self, authenticator: Authenticator) -> None:
        self.authenticator = authenticator
        self.authenticator.set_manager(self)
        self._authenticated_request = False

    def set_model(self, model: Optional[BackingStore]) -> None:
        if model is not None and not model.ping():
            logger.warning(f"Backing store {model} provided but not ready for work")
            model = None
        elif model is not None:
            logger.debug(f"Using backing store {model}")
        elif self.model is not None:
            logger.debug(f"Unsetting backing store {self.model}")

        self.model = model

    def get_model(self, required: bool = True) -> Optional[BackingStore]:
        """
        Get the backing store.

        Raises:
            SecurityError: MODEL_NOT_CONFIGURED when required and not set
        """
        if required and self.model is None:
            raise SecurityError.model_not_configured()
        return self.model

    def set_voter(self, voter: Optional[Voter]) -> None:
        self.voter = voter

    def set_request(self, request: Any) -> None:
        """Make the incoming request available to the authenticator."""
        self.request = request
        self._authenticated_request = False

    # ------------------------------------------------------------------
    # Passwords

    def hash_password(self, password: str) -> str:
        """
        Hash a password.

        Without a hasher the password is returned as is. This is insecure
        and only meant for development setups.
        """
        if self.hasher is None:
            return password
        return self.hasher.hash(password)

    def verify_password(self, password: str, digest: str) -> bool:
        if self.hasher is None:
            return password == digest
        return self.hasher.verify(password, digest)

    def create_user(self, username: str, password: str, email: Optional[str] = None) -> User:
        """Create a user on the backing store with a hashed password."""
        return self.get_model().create_user(username, self.hash_password(password), email)

    def update_password(self, user: User, password: str) -> None:
        """Hash and save a new password, then publish the password event."""
        user.password_hash = self.hash_password(password)
        self.get_model().save_user(user)

        self._publish(EVENT_PASSWORD_UPDATE, {"user": user, "password": password})

    # ------------------------------------------------------------------
    # Authentication

    def get_user(self) -> Optional[User]:
        """
        Get the current user.

        Returns:
            The authenticated user, None when anonymous or without store
        """
        if self.model is None:
            return None

        user = self.authenticator.get_user()
        if user is not None or self._authenticated_request or self.request is None:
            return user

        self._authenticated_request = True
        return self.authenticator.authenticate(self.request)

    def set_user(self, user: Optional[User]) -> None:
        self.authenticator.set_user(user)

    def login(self, username: str, password: str) -> User:
        """
        Log a user in.

        Raises:
            SecurityError: when the user could not be authenticated
        """
        try:
            user = self.authenticator.login(username, password)
        except SecurityError:
            self._publish(EVENT_LOGIN, {"user": None})
            raise

        self._publish(EVENT_LOGIN, {"user": user})
        return user

    def logout(self) -> None:
        self.authenticator.logout()

    def switch_user(self, username: str) -> None:
        """
        Switch the current user.

        Raises:
            SecurityError: UNAUTHORIZED, USER_NOT_FOUND or PRIVILEGE_ESCALATION
        """
        self.authenticator.switch_user(username)

    def is_switched_user(self) -> bool:
        return self.authenticator.is_switched_user()

    # ------------------------------------------------------------------
    # Decisions

    def is_permission_granted(self, code: str) -> bool:
        """
        Check whether the current user is granted a permission.

        Checking an unknown permission registers it on the backing store.

        Args:
            code: Permission code

        Returns:
            True if granted
        """
        reason = self._fail_open_reason()
        if reason:
            self._log_fail_open(reason)
            return True

        user = self._resolve_user()
        vote = self.voter.is_granted(code, user)

        logger.debug(f"Permission {code} {'granted' if vote is Vote.ALLOW else 'denied'} for {user or 'anonymous'} ({vote.value})")
        return vote is Vote.ALLOW

    def is_path_allowed(self, path: str, method: Optional[str] = None) -> bool:
        """
        Check whether the current user may access a path.

        Args:
            path: Requested path
            method: HTTP method, GET when not provided

        Returns:
            True if allowed
        """
        reason = self._fail_open_reason()
        if reason:
            self._log_fail_open(reason)
            return True

        user = self._resolve_user()
        vote = self.voter.is_allowed(path, method, user)

        logger.debug(f"Path {path} {'allowed' if vote is Vote.ALLOW else 'denied'} for {user or 'anonymous'} ({vote.value})")
        return vote is Vote.ALLOW

    def is_url_allowed(self, url: str) -> bool:
        """
        Check whether the current user may access a URL.

        Raises:
            SecurityError: MALFORMED_URL when the URL has no path
        """
        try:
            path = urlsplit(url).path
        except ValueError:
            path = None

        if not path:
            raise SecurityError.malformed_url(url)

        return self.is_path_allowed(path)

    def _fail_open_reason(self) -> Optional[str]:
        if self.model is None:
            return "no backing store set"
        if self.voter is None:
            return "no voter set"
        if isinstance(self.voter, ChainVoter) and not len(self.voter):
            return "no voters in chain"
        return None

    def _log_fail_open(self, reason: str) -> None:
        # warn once per missing component
        if reason in self._fail_open_warned:
            logger.debug(f"Check allowed: {reason}")
            return

        self._fail_open_warned.add(reason)
        logger.warning(f"Security checks allow everything: {reason}")

    def _resolve_user(self) -> Optional[User]:
        try:
            return self.get_user()
        except Exception as e:
            logger.warning(f"Could not resolve the current user, continuing anonymous: {e}")
            return None

    def _publish(self, event: str, payload: dict) -> None:
        if self.event_sink is not None:
            self.event_sink.publish(event, payload)
