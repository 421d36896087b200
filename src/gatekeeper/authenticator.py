"""
Authenticators resolve the current user.

SessionAuthenticator proves identity across requests through a SessionStore.
In unique mode it rotates a token on every login so only the last client of
a user stays authenticated. ChainAuthenticator combines several
authenticators.
"""

import hashlib
import secrets
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional

from loguru import logger

from .errors import ErrorKind, SecurityError
from .models import User

if TYPE_CHECKING:
    from .manager import AuthorizationManager

PERMISSION_SWITCH = "security.switch"

DEFAULT_TIMEOUT = 1800  # half an hour


class Authenticator:
    """
    Base authenticator.

    Holds the resolved user for the current request. Subclasses override
    the operations they support.
    """

    def __init__(self) -> None:
        self.manager: Optional["AuthorizationManager"] = None
        self._user: Optional[User] = None
        self._resolved = False

    def set_manager(self, manager: Optional["AuthorizationManager"]) -> None:
        self.manager = manager

    def authenticate(self, request: Any) -> Optional[User]:
        """Authenticate from an incoming request, None when not supported."""
        return None

    def login(self, username: str, password: str) -> User:
        raise SecurityError.unknown_user()

    def logout(self) -> None:
        self._user = None
        self._resolved = True

    def get_user(self) -> Optional[User]:
        return self._user

    def set_user(self, user: Optional[User]) -> Optional[User]:
        self._user = user
        self._resolved = True
        return user

    def switch_user(self, username: str) -> None:
        raise SecurityError.unauthorized("Could not switch user: not supported")

    def is_switched_user(self) -> bool:
        return False

    def reset(self) -> None:
        """Forget the resolved user, the next get_user resolves again."""
        self._user = None
        self._resolved = False

    # ------------------------------------------------------------------
    def _get_model(self):
        if self.manager is None:
            raise SecurityError.model_not_configured()
        return self.manager.get_model()

    def _get_user_for_switch(self, username: str) -> User:
        """
        Look up the target of a switch for the current user.

        Raises:
            SecurityError: UNAUTHORIZED, USER_NOT_FOUND or PRIVILEGE_ESCALATION
        """
        user = self.get_user()
        if user is None:
            raise SecurityError.unauthorized("Could not switch user: not authenticated")

        if not _may_switch(user):
            raise SecurityError.unauthorized("Could not switch user: not allowed")

        switched_user = self._get_model().get_user_by_username(username)
        if switched_user is None:
            raise SecurityError.user_not_found(f"Could not switch user: {username} not found")

        if switched_user.is_super_user and not user.is_super_user:
            raise SecurityError.privilege_escalation(
                f"Could not switch user: {switched_user.username} is a super user"
            )

        return switched_user


def _may_switch(user: User) -> bool:
    return user.is_super_user or user.is_permission_granted(PERMISSION_SWITCH)


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class SessionAuthenticator(Authenticator):
    """
    Authenticator persisting identity in a session store.

    Session keys:
        security.username: username of the logged in user
        security.authentication: identifier, or identifier:token in unique mode
        security.username.switched: username switched to, if any

    Create one instance per request: the resolved user is cached.
    """

    PREFERENCE_TOKEN = "security.token"
    PREFERENCE_TIMEOUT = "security.timeout"

    VAR_USERNAME = "security.username"
    VAR_AUTHENTICATION = "security.authentication"
    VAR_SWITCHED_USERNAME = "security.username.switched"

    def __init__(
        self,
        session,
        salt: str,
        timeout: int = DEFAULT_TIMEOUT,
        unique: bool = False,
        require_email_confirmation: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize authenticator.

        Args:
            session: SessionStore of the current client
            salt: Secret salt for the session identifier
            timeout: Lifetime of a unique session in seconds
            unique: Allow only one authenticated client per user
            require_email_confirmation: Refuse login with unconfirmed email
            clock: Returns the current time in seconds

        Raises:
            SecurityError: INVALID_CONFIGURATION for a bad salt or timeout
        """
        super().__init__()

        if not isinstance(salt, str) or not salt:
            raise SecurityError.invalid_configuration("Provided salt is empty")

        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
            raise SecurityError.invalid_configuration(f"Provided timeout is invalid: {timeout!r}")

        self.session = session
        self.salt = salt
        self.timeout = int(timeout)
        self.unique = unique
        self.require_email_confirmation = require_email_confirmation
        self.clock = clock

    # ------------------------------------------------------------------
    def login(self, username: str, password: str) -> User:
        """
        Log a user in.

        Raises:
            SecurityError: UNKNOWN_USER, INACTIVE_USER, EMAIL_UNCONFIRMED or
                BAD_CREDENTIALS
        """
        user = self._get_model().get_user_by_username(username)
        if user is None:
            self._clear_session()
            logger.warning(f"Login failed: user '{username}' not found")
            raise SecurityError.unknown_user()

        if not user.is_active:
            self._clear_session()
            logger.warning(f"Login failed: user '{username}' is inactive")
            raise SecurityError.inactive_user()

        if self.require_email_confirmation and not user.is_email_confirmed:
            self._clear_session()
            logger.warning(f"Login failed: email of '{username}' is not confirmed")
            raise SecurityError.email_unconfirmed()

        if not self.manager.verify_password(password, user.password_hash):
            self._clear_session()
            logger.warning(f"Login failed: invalid password for '{username}'")
            raise SecurityError.bad_credentials()

        logger.info(f"User logged in: {username}")
        return self.set_user(user)

    def logout(self) -> None:
        """
        Log out.

        While switched, only the switch is undone and the original user is
        active again.
        """
        if self.session.get(self.VAR_SWITCHED_USERNAME):
            self.session.set(self.VAR_SWITCHED_USERNAME, None)
            self.reset()
            logger.debug("Switched user reverted")
            return

        self._clear_session()

    def _clear_session(self) -> None:
        self.session.set(self.VAR_AUTHENTICATION, None)
        self.session.set(self.VAR_SWITCHED_USERNAME, None)
        self.session.set(self.VAR_USERNAME, None)
        super().logout()

    def get_user(self) -> Optional[User]:
        """
        Resolve the user of the session.

        Raises:
            SecurityError: UNAUTHORIZED when a switched user is persisted but
                the base user lost the right to switch
        """
        if self._resolved:
            return self._user

        self._resolved = True
        self._user = None

        username = self.session.get(self.VAR_USERNAME)
        if not username:
            return None

        model = self._get_model()

        user = model.get_user_by_username(username)
        if user is None:
            return None

        if self.unique:
            if not self._is_unique_authentication(user):
                return None
        elif self.session.get(self.VAR_AUTHENTICATION) != self.get_identifier(user.username):
            return None

        self._user = user

        switched_username = self.session.get(self.VAR_SWITCHED_USERNAME)
        if not switched_username:
            return user

        switched_user = model.get_user_by_username(switched_username)
        if switched_user is None:
            return user

        if not _may_switch(user):
            self.session.set(self.VAR_SWITCHED_USERNAME, None)
            raise SecurityError.unauthorized("Could not switch user: not allowed")

        self._user = switched_user
        return switched_user

    def set_user(self, user: Optional[User]) -> Optional[User]:
        """Persist ``user`` as the authenticated user of the session."""
        if user is None:
            self._clear_session()
            return None

        identifier = self.get_identifier(user.username)

        if not self.unique:
            self.session.set(self.VAR_USERNAME, user.username)
            self.session.set(self.VAR_AUTHENTICATION, identifier)
            return super().set_user(user)

        token = self.generate_token()
        timeout = int(self.clock()) + self.timeout

        # the store must hold the token before the session refers to it
        user.set_preference(self.PREFERENCE_TOKEN, token)
        user.set_preference(self.PREFERENCE_TIMEOUT, timeout)
        self._get_model().save_user(user)

        self.session.set(self.VAR_USERNAME, user.username)
        self.session.set(self.VAR_AUTHENTICATION, f"{identifier}:{token}")

        return super().set_user(user)

    def switch_user(self, username: str) -> None:
        """
        Switch to another user without their credentials.

        Raises:
            SecurityError: UNAUTHORIZED, USER_NOT_FOUND or PRIVILEGE_ESCALATION
        """
        switched_user = self._get_user_for_switch(username)

        self.session.set(self.VAR_SWITCHED_USERNAME, switched_user.username)
        self._user = switched_user
        self._resolved = True

        logger.info(f"Switched to user {switched_user.username}")

    def is_switched_user(self) -> bool:
        return bool(self.session.get(self.VAR_SWITCHED_USERNAME)) and self.get_user() is not None

    # ------------------------------------------------------------------
    def get_identifier(self, username: str) -> str:
        return _digest(self.salt + _digest(username + self.salt))

    def generate_token(self) -> str:
        return secrets.token_hex(16)

    def _is_unique_authentication(self, user: User) -> bool:
        value = self.session.get(self.VAR_AUTHENTICATION)
        if not value or ":" not in value:
            return False

        identifier, _, token = value.partition(":")
        if not (identifier.isalnum() and token.isalnum()):
            return False

        user_token = user.get_preference(self.PREFERENCE_TOKEN)
        user_timeout = user.get_preference(self.PREFERENCE_TIMEOUT)

        try:
            expired = user_timeout is None or float(user_timeout) <= self.clock()
        except (TypeError, ValueError):
            expired = True

        return (
            not expired
            and user_token is not None
            and secrets.compare_digest(str(user_token), token)
            and identifier == self.get_identifier(user.username)
        )


class ChainAuthenticator(Authenticator):
    """
    Chain of authenticators.

    The first member which knows the user wins. Logout and switch user are
    handed to every member.
    """

    def __init__(self, authenticators: Optional[Iterable[Authenticator]] = None):
        super().__init__()
        self.authenticators: List[Authenticator] = list(authenticators or [])

    def add_authenticator(self, authenticator: Authenticator) -> None:
        authenticator.set_manager(self.manager)
        self.authenticators.append(authenticator)

    def set_manager(self, manager: Optional["AuthorizationManager"]) -> None:
        super().set_manager(manager)
        for authenticator in self.authenticators:
            authenticator.set_manager(manager)

    def authenticate(self, request: Any) -> Optional[User]:
        for authenticator in self.authenticators:
            user = authenticator.authenticate(request)
            if user is not None:
                return super().set_user(user)

        return None

    def login(self, username: str, password: str) -> User:
        for authenticator in self.authenticators:
            try:
                user = authenticator.login(username, password)
            except SecurityError as e:
                if e.kind is not ErrorKind.UNKNOWN_USER:
                    raise
                continue

            return super().set_user(user)

        return super().login(username, password)

    def logout(self) -> None:
        for authenticator in self.authenticators:
            try:
                authenticator.logout()
            except SecurityError as e:
                logger.warning(f"Logout failed on {type(authenticator).__name__}: {e}")

        # members may still hold a user, e.g. after reverting a switch
        super().reset()

    def get_user(self) -> Optional[User]:
        if self._resolved:
            return self._user

        for authenticator in self.authenticators:
            user = authenticator.get_user()
            if user is not None:
                return super().set_user(user)

        self._resolved = True
        return None

    def set_user(self, user: Optional[User]) -> Optional[User]:
        if self.authenticators:
            user = self.authenticators[0].set_user(user)

        return super().set_user(user)

    def switch_user(self, username: str) -> None:
        """
        Switch user on every member.

        Raises:
            SecurityError: the last member error when no member switched
        """
        error = None
        switched = False

        for authenticator in self.authenticators:
            try:
                authenticator.switch_user(username)
            except SecurityError as e:
                logger.debug(f"Switch user skipped by {type(authenticator).__name__}: {e}")
                error = e
                continue

            switched = True
            super().set_user(authenticator.get_user())

        if not switched and error is not None:
            raise error

    def is_switched_user(self) -> bool:
        return any(authenticator.is_switched_user() for authenticator in self.authenticators)

    def reset(self) -> None:
        super().reset()
        for authenticator in self.authenticators:
            authenticator.reset()
