"""
Security data models.

Data classes for users, roles and permissions.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

if TYPE_CHECKING:
    from .matcher import PathMatcher


@dataclass
class Permission:
    """
    Permission known to a backing store.

    Attributes:
        code: Unique permission code (e.g., "security.switch")
        description: Human-readable description
    """
    code: str
    description: str = ""


@dataclass
class Role:
    """
    User role.

    Attributes:
        role_id: Unique role identifier
        name: Unique role name
        weight: Rank of the role, higher outranks lower
        permissions: Codes of the granted permissions
        paths: Ordered path rules this role may access
    """
    role_id: str
    name: str
    weight: int = 0
    permissions: Set[str] = field(default_factory=set)
    paths: List[str] = field(default_factory=list)

    def is_permission_granted(self, code: str) -> bool:
        return code in self.permissions


@dataclass
class User:
    """
    User account.

    Attributes:
        user_id: Unique user identifier
        username: Unique username, the identity key
        password_hash: Digest of the password
        email: User email address
        is_active: Whether the account may log in
        is_super_user: Whether every check is granted
        is_email_confirmed: Whether the email address is confirmed
        display_name: Name to show instead of the username
        roles: Ordered roles of the user
        preferences: Free form preferences, also used for session tokens
    """
    user_id: str
    username: str
    password_hash: str = ""
    email: Optional[str] = None
    is_active: bool = True
    is_super_user: bool = False
    is_email_confirmed: bool = False
    display_name: Optional[str] = None
    roles: List[Role] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)

    def ranked_roles(self) -> List[Role]:
        """Roles by descending weight, keeping the user's order for equal weights."""
        return sorted(self.roles, key=lambda role: role.weight, reverse=True)

    def get_role_weight(self) -> int:
        """Weight of the highest role, 0 without roles."""
        return max((role.weight for role in self.roles), default=0)

    def is_permission_granted(self, code: str) -> bool:
        """
        Check if one of the roles grants a permission.

        Args:
            code: Permission code

        Returns:
            True when any role grants it
        """
        for role in self.ranked_roles():
            if role.is_permission_granted(code):
                return True

        return False

    def is_path_allowed(self, path: str, method: str, matcher: "PathMatcher") -> bool:
        """
        Check if one of the roles allows a path.

        Args:
            path: Requested path
            method: Requested HTTP method
            matcher: Matcher used to evaluate the role path rules

        Returns:
            The verdict of the highest ranked role with a matching rule,
            False when no rule of any role matches
        """
        for role in self.ranked_roles():
            verdict = matcher.evaluate(path, method, role.paths)
            if verdict is not None:
                return verdict

        return False

    def get_preference(self, name: str, default: Any = None) -> Any:
        return self.preferences.get(name, default)

    def set_preference(self, name: str, value: Any) -> None:
        if value is None:
            self.preferences.pop(name, None)
        else:
            self.preferences[name] = value

    def __str__(self) -> str:
        return self.username
