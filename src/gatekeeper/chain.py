"""
Chained backing store.

Lets several chainable stores act as one. Reads are answered by the first
store with a result, or merged over all stores. Writes go to the store which
owns the entity.
"""

from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from loguru import logger

from .errors import SecurityError
from .models import Permission, Role, User
from .store import BackingStore, ChainableBackingStore

T = TypeVar("T")


class ChainedStore(BackingStore):
    """
    Chain of backing stores.

    Stores which are not ready when added are left out of the chain. A write
    for an entity no store claims is dropped with a warning.
    """

    def __init__(self, stores: Optional[Iterable[ChainableBackingStore]] = None) -> None:
        self._stores: List[ChainableBackingStore] = []

        for store in stores or []:
            self.add_store(store)

    def __str__(self) -> str:
        return "[" + ", ".join(str(store) for store in self._stores) + "]"

    @property
    def stores(self) -> List[ChainableBackingStore]:
        return list(self._stores)

    def add_store(self, store: ChainableBackingStore) -> bool:
        """
        Add a store to the end of the chain.

        Returns:
            True if the store was ready and added
        """
        if not store.ping():
            logger.debug(f"Backing store {store} is not ready, skipping")
            return False

        self._stores.append(store)
        return True

    def remove_store(self, store: ChainableBackingStore) -> bool:
        for index, existing in enumerate(self._stores):
            if existing is store:
                del self._stores[index]
                return True

        return False

    def ping(self) -> bool:
        return bool(self._stores)

    # ------------------------------------------------------------------
    # Routing helpers

    def _first(self, read: Callable[[ChainableBackingStore], Optional[T]]) -> Optional[T]:
        for store in self._stores:
            result = read(store)
            if result:
                return result
        return None

    def _collect(self, read: Callable[[ChainableBackingStore], Iterable[T]]) -> List[T]:
        results: List[T] = []
        for store in self._stores:
            results.extend(read(store))
        return results

    def _head(self) -> ChainableBackingStore:
        if not self._stores:
            raise SecurityError.model_not_configured()
        return self._stores[0]

    def _owner_of_user(self, user: User) -> Optional[ChainableBackingStore]:
        for store in self._stores:
            if store.owns_user(user):
                return store

        logger.warning(f"No backing store owns user {user.username}, write dropped")
        return None

    def _owner_of_role(self, role: Role) -> Optional[ChainableBackingStore]:
        for store in self._stores:
            if store.owns_role(role):
                return store

        logger.warning(f"No backing store owns role {role.name}, write dropped")
        return None

    # ------------------------------------------------------------------
    # Secured paths

    def get_secured_paths(self) -> List[str]:
        # dict keeps the first position of each rule
        return list(dict.fromkeys(self._collect(lambda store: store.get_secured_paths())))

    def set_secured_paths(self, paths: Iterable[str]) -> None:
        self._head().set_secured_paths(paths)

    # ------------------------------------------------------------------
    # Users

    def create_user(self, username: str, password_hash: str = "", email: Optional[str] = None) -> User:
        return self._head().create_user(username, password_hash, email)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._first(lambda store: store.get_user_by_id(user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._first(lambda store: store.get_user_by_username(username))

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._first(lambda store: store.get_user_by_email(email))

    def get_users(self, limit: Optional[int] = None) -> List[User]:
        """
        Users of every store in chain order.

        Args:
            limit: Maximum number of users over the whole chain
        """
        users: List[User] = []
        for store in self._stores:
            if limit is not None and len(users) >= limit:
                break
            users.extend(store.get_users(None if limit is None else limit - len(users)))
        return users

    def count_users(self) -> int:
        return sum(store.count_users() for store in self._stores)

    def find_users_by_username(self, query: str) -> List[User]:
        return self._collect(lambda store: store.find_users_by_username(query))

    def find_users_by_email(self, query: str) -> List[User]:
        return self._collect(lambda store: store.find_users_by_email(query))

    def save_user(self, user: User) -> None:
        store = self._owner_of_user(user)
        if store is not None:
            store.save_user(user)

    def set_roles_to_user(self, user: User, roles: Iterable[Role]) -> None:
        store = self._owner_of_user(user)
        if store is not None:
            store.set_roles_to_user(user, roles)

    def delete_user(self, user: User) -> None:
        store = self._owner_of_user(user)
        if store is not None:
            store.delete_user(user)

    # ------------------------------------------------------------------
    # Roles

    def create_role(self, name: str, weight: int = 0) -> Role:
        return self._head().create_role(name, weight)

    def get_role_by_id(self, role_id: str) -> Optional[Role]:
        return self._first(lambda store: store.get_role_by_id(role_id))

    def get_role_by_name(self, name: str) -> Optional[Role]:
        return self._first(lambda store: store.get_role_by_name(name))

    def get_roles(self, limit: Optional[int] = None) -> List[Role]:
        roles: Dict[str, Role] = {}
        for store in self._stores:
            for role in store.get_roles():
                if limit is not None and len(roles) >= limit:
                    return list(roles.values())
                roles.setdefault(role.name, role)
        return list(roles.values())

    def count_roles(self) -> int:
        return sum(store.count_roles() for store in self._stores)

    def find_roles_by_name(self, query: str) -> List[Role]:
        return self._collect(lambda store: store.find_roles_by_name(query))

    def save_role(self, role: Role) -> None:
        store = self._owner_of_role(role)
        if store is not None:
            store.save_role(role)

    def set_granted_permissions_to_role(self, role: Role, codes: Iterable[str]) -> None:
        store = self._owner_of_role(role)
        if store is not None:
            store.set_granted_permissions_to_role(role, codes)

    def set_allowed_paths_to_role(self, role: Role, paths: Iterable[str]) -> None:
        store = self._owner_of_role(role)
        if store is not None:
            store.set_allowed_paths_to_role(role, paths)

    def delete_role(self, role: Role) -> None:
        store = self._owner_of_role(role)
        if store is not None:
            store.delete_role(role)

    # ------------------------------------------------------------------
    # Permissions

    def get_permissions(self) -> List[Permission]:
        permissions: Dict[str, Permission] = {}
        for permission in self._collect(lambda store: store.get_permissions()):
            permissions.setdefault(permission.code, permission)
        return list(permissions.values())

    def has_permission(self, code: str) -> bool:
        return any(store.has_permission(code) for store in self._stores)

    def add_permission(self, code: str, description: str = "") -> None:
        self._head().add_permission(code, description)

    def delete_permission(self, code: str) -> None:
        for store in self._stores:
            store.delete_permission(code)

    def owner_of_permission(self, permission: Permission) -> Optional[ChainableBackingStore]:
        """Store which owns ``permission``, None when no store claims it."""
        for store in self._stores:
            if store.owns_permission(permission):
                return store
        return None
