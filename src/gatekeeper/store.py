"""
Backing store contracts and an in-memory implementation.

A backing store owns users, roles, permissions and the secured paths. The
security manager and the voters only talk to stores through BackingStore.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from loguru import logger

from .models import Permission, Role, User


class BackingStore(ABC):
    """Storage for users, roles and permissions."""

    @abstractmethod
    def ping(self) -> bool:
        """True when the store is ready for work."""

    # ------------------------------------------------------------------
    # Secured paths

    @abstractmethod
    def get_secured_paths(self) -> List[str]:
        """Ordered path rules which need a clearance."""

    @abstractmethod
    def set_secured_paths(self, paths: Iterable[str]) -> None:
        """Replace the secured path rules."""

    # ------------------------------------------------------------------
    # Users

    @abstractmethod
    def create_user(self, username: str, password_hash: str = "", email: Optional[str] = None) -> User:
        """Create and persist a new user owned by this store."""

    @abstractmethod
    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """User with ``user_id`` or None."""

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        """User with ``username`` or None."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """User with ``email`` or None."""

    @abstractmethod
    def get_users(self, limit: Optional[int] = None) -> List[User]:
        """Users ordered by username, at most ``limit`` when given."""

    @abstractmethod
    def count_users(self) -> int:
        """Number of users."""

    @abstractmethod
    def find_users_by_username(self, query: str) -> List[User]:
        """Users whose username contains ``query``."""

    @abstractmethod
    def find_users_by_email(self, query: str) -> List[User]:
        """Users whose email contains ``query``."""

    @abstractmethod
    def save_user(self, user: User) -> None:
        """Persist the attributes and preferences of ``user``."""

    @abstractmethod
    def set_roles_to_user(self, user: User, roles: Iterable[Role]) -> None:
        """Replace the roles of ``user``."""

    @abstractmethod
    def delete_user(self, user: User) -> None:
        """Remove ``user``."""

    # ------------------------------------------------------------------
    # Roles

    @abstractmethod
    def create_role(self, name: str, weight: int = 0) -> Role:
        """Create and persist a new role owned by this store."""

    @abstractmethod
    def get_role_by_id(self, role_id: str) -> Optional[Role]:
        """Role with ``role_id`` or None."""

    @abstractmethod
    def get_role_by_name(self, name: str) -> Optional[Role]:
        """Role with ``name`` or None."""

    @abstractmethod
    def get_roles(self, limit: Optional[int] = None) -> List[Role]:
        """Roles, at most ``limit`` when given."""

    @abstractmethod
    def count_roles(self) -> int:
        """Number of roles."""

    @abstractmethod
    def find_roles_by_name(self, query: str) -> List[Role]:
        """Roles whose name contains ``query``."""

    @abstractmethod
    def save_role(self, role: Role) -> None:
        """Persist the name and weight of ``role``."""

    @abstractmethod
    def set_granted_permissions_to_role(self, role: Role, codes: Iterable[str]) -> None:
        """Replace the granted permissions of ``role``."""

    @abstractmethod
    def set_allowed_paths_to_role(self, role: Role, paths: Iterable[str]) -> None:
        """Replace the allowed path rules of ``role``."""

    @abstractmethod
    def delete_role(self, role: Role) -> None:
        """Remove ``role``."""

    # ------------------------------------------------------------------
    # Permissions

    @abstractmethod
    def get_permissions(self) -> List[Permission]:
        """All known permissions."""

    @abstractmethod
    def has_permission(self, code: str) -> bool:
        """True when ``code`` is a known permission."""

    @abstractmethod
    def add_permission(self, code: str, description: str = "") -> None:
        """Register a permission."""

    @abstractmethod
    def delete_permission(self, code: str) -> None:
        """Unregister a permission and revoke it from all roles."""


class ChainableBackingStore(BackingStore):
    """Backing store which can take part in a ChainedStore."""

    @abstractmethod
    def owns_user(self, user: User) -> bool:
        """True when ``user`` lives in this store."""

    @abstractmethod
    def owns_role(self, role: Role) -> bool:
        """True when ``role`` lives in this store."""

    @abstractmethod
    def owns_permission(self, permission: Permission) -> bool:
        """True when ``permission`` lives in this store."""


def _contains(value: Optional[str], query: str) -> bool:
    return value is not None and query.lower() in value.lower()


class InMemoryBackingStore(ChainableBackingStore):
    """
    Keep users, roles and permissions in local memory.

    Useful for tests, fixtures and static configurations. Data is not
    persisted across process restarts. Entities are returned by reference.
    """

    def __init__(self, name: str = "memory", ready: bool = True) -> None:
        self.name = name
        self.ready = ready
        self._users: Dict[str, User] = {}
        self._roles: Dict[str, Role] = {}
        self._permissions: Dict[str, Permission] = {}
        self._secured_paths: List[str] = []

    def __str__(self) -> str:
        return f"InMemoryBackingStore({self.name})"

    def ping(self) -> bool:
        return self.ready

    # ------------------------------------------------------------------
    def get_secured_paths(self) -> List[str]:
        return list(self._secured_paths)

    def set_secured_paths(self, paths: Iterable[str]) -> None:
        self._secured_paths = list(paths)

    # ------------------------------------------------------------------
    def create_user(self, username: str, password_hash: str = "", email: Optional[str] = None) -> User:
        if self.get_user_by_username(username) is not None:
            raise ValueError(f"Username already exists: {username}")

        user = User(user_id=str(uuid.uuid4()), username=username, password_hash=password_hash, email=email)
        self._users[user.user_id] = user

        logger.debug(f"User created in {self.name}: {username}")
        return user

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email is not None and user.email == email:
                return user
        return None

    def get_users(self, limit: Optional[int] = None) -> List[User]:
        users = sorted(self._users.values(), key=lambda user: user.username)
        return users if limit is None else users[:limit]

    def count_users(self) -> int:
        return len(self._users)

    def find_users_by_username(self, query: str) -> List[User]:
        return [user for user in self._users.values() if _contains(user.username, query)]

    def find_users_by_email(self, query: str) -> List[User]:
        return [user for user in self._users.values() if _contains(user.email, query)]

    def save_user(self, user: User) -> None:
        self._users[user.user_id] = user

    def set_roles_to_user(self, user: User, roles: Iterable[Role]) -> None:
        user.roles = list(roles)
        self.save_user(user)

    def delete_user(self, user: User) -> None:
        self._users.pop(user.user_id, None)

    # ------------------------------------------------------------------
    def create_role(self, name: str, weight: int = 0) -> Role:
        if self.get_role_by_name(name) is not None:
            raise ValueError(f"Role already exists: {name}")

        role = Role(role_id=str(uuid.uuid4()), name=name, weight=weight)
        self._roles[role.role_id] = role
        return role

    def get_role_by_id(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        for role in self._roles.values():
            if role.name == name:
                return role
        return None

    def get_roles(self, limit: Optional[int] = None) -> List[Role]:
        roles = list(self._roles.values())
        return roles if limit is None else roles[:limit]

    def count_roles(self) -> int:
        return len(self._roles)

    def find_roles_by_name(self, query: str) -> List[Role]:
        return [role for role in self._roles.values() if _contains(role.name, query)]

    def save_role(self, role: Role) -> None:
        self._roles[role.role_id] = role

    def set_granted_permissions_to_role(self, role: Role, codes: Iterable[str]) -> None:
        role.permissions = set(codes)
        for code in role.permissions:
            if not self.has_permission(code):
                self.add_permission(code)
        self.save_role(role)

    def set_allowed_paths_to_role(self, role: Role, paths: Iterable[str]) -> None:
        role.paths = list(paths)
        self.save_role(role)

    def delete_role(self, role: Role) -> None:
        self._roles.pop(role.role_id, None)
        for user in self._users.values():
            user.roles = [r for r in user.roles if r.role_id != role.role_id]

    # ------------------------------------------------------------------
    def get_permissions(self) -> List[Permission]:
        return list(self._permissions.values())

    def has_permission(self, code: str) -> bool:
        return code in self._permissions

    def add_permission(self, code: str, description: str = "") -> None:
        if code not in self._permissions:
            self._permissions[code] = Permission(code=code, description=description)

    def delete_permission(self, code: str) -> None:
        self._permissions.pop(code, None)
        for role in self._roles.values():
            role.permissions.discard(code)

    # ------------------------------------------------------------------
    def owns_user(self, user: User) -> bool:
        return user.user_id in self._users

    def owns_role(self, role: Role) -> bool:
        return role.role_id in self._roles

    def owns_permission(self, permission: Permission) -> bool:
        return permission.code in self._permissions
