"""
SQLite backing store.

Thread-safe store for users, roles, permissions and secured paths.
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from loguru import logger

from .models import Permission, Role, User
from .store import ChainableBackingStore


class SQLiteBackingStore(ChainableBackingStore):
    """
    Thread-safe backing store.

    Manages users, roles, permissions and secured paths using SQLite.
    All operations are protected by threading.RLock for thread safety.
    Every read returns fresh objects.
    """

    def __init__(self, db_path: Union[Path, str]):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._init_db()

    def __str__(self) -> str:
        return f"SQLiteBackingStore({self.db_path})"

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            conn = sqlite3.connect(str(self.db_path))
            try:
                yield conn.cursor()
                conn.commit()
            finally:
                conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    username TEXT UNIQUE NOT NULL,
                    email TEXT,
                    password_hash TEXT NOT NULL,
                    display_name TEXT,
                    created_at TEXT NOT NULL,
                    is_active INTEGER DEFAULT 1,
                    is_super_user INTEGER DEFAULT 0,
                    is_email_confirmed INTEGER DEFAULT 0,
                    preferences TEXT NOT NULL DEFAULT '{}'
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS roles (
                    role_id TEXT PRIMARY KEY,
                    name TEXT UNIQUE NOT NULL,
                    weight INTEGER DEFAULT 0
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS permissions (
                    code TEXT PRIMARY KEY,
                    description TEXT
                )
            """)

            # User roles (many-to-many, ordered)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_roles (
                    user_id TEXT NOT NULL,
                    role_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (user_id, role_id),
                    FOREIGN KEY (user_id) REFERENCES users(user_id),
                    FOREIGN KEY (role_id) REFERENCES roles(role_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS role_permissions (
                    role_id TEXT NOT NULL,
                    code TEXT NOT NULL,
                    PRIMARY KEY (role_id, code),
                    FOREIGN KEY (role_id) REFERENCES roles(role_id)
                )
            """)

            # Rule order matters, keep the position
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS role_paths (
                    role_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    PRIMARY KEY (role_id, position),
                    FOREIGN KEY (role_id) REFERENCES roles(role_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS secured_paths (
                    position INTEGER PRIMARY KEY,
                    path TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_user_roles_user ON user_roles(user_id)")

        logger.info(f"Security database initialized: {self.db_path}")

    def ping(self) -> bool:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.error(f"Security database not available: {e}")
            return False

    # ========================================================================
    # Secured paths
    # ========================================================================

    def get_secured_paths(self) -> List[str]:
        with self._cursor() as cursor:
            cursor.execute("SELECT path FROM secured_paths ORDER BY position")
            return [row[0] for row in cursor.fetchall()]

    def set_secured_paths(self, paths: Iterable[str]) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM secured_paths")
            cursor.executemany(
                "INSERT INTO secured_paths (position, path) VALUES (?, ?)",
                list(enumerate(paths)),
            )

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(self, username: str, password_hash: str = "", email: Optional[str] = None) -> User:
        """
        Create new user.

        Args:
            username: Unique username
            password_hash: Already hashed password
            email: User email

        Returns:
            Created User object

        Raises:
            sqlite3.IntegrityError: If username already exists
        """
        user = User(user_id=str(uuid.uuid4()), username=username, password_hash=password_hash, email=email)

        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO users (user_id, username, email, password_hash, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user.user_id, user.username, user.email, user.password_hash, datetime.now().isoformat()))

        logger.info(f"User created: {username} ({user.user_id})")
        return user

    def _load_user(self, cursor: sqlite3.Cursor, row) -> User:
        user = User(
            user_id=row[0],
            username=row[1],
            email=row[2],
            password_hash=row[3],
            display_name=row[4],
            is_active=bool(row[5]),
            is_super_user=bool(row[6]),
            is_email_confirmed=bool(row[7]),
            preferences=json.loads(row[8] or "{}"),
        )

        cursor.execute("""
            SELECT r.role_id, r.name, r.weight
            FROM roles r
            JOIN user_roles ur ON r.role_id = ur.role_id
            WHERE ur.user_id = ?
            ORDER BY ur.position
        """, (user.user_id,))
        user.roles = [self._load_role(cursor, role_row) for role_row in cursor.fetchall()]

        return user

    def _select_users(self, where: str, params: tuple) -> List[User]:
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT user_id, username, email, password_hash, display_name,
                       is_active, is_super_user, is_email_confirmed, preferences
                FROM users WHERE {where} ORDER BY username
            """, params)
            return [self._load_user(cursor, row) for row in cursor.fetchall()]

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        users = self._select_users("user_id = ?", (user_id,))
        return users[0] if users else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        users = self._select_users("username = ?", (username,))
        return users[0] if users else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        users = self._select_users("email = ?", (email,))
        return users[0] if users else None

    def get_users(self, limit: Optional[int] = None) -> List[User]:
        users = self._select_users("1 = 1", ())
        return users if limit is None else users[:limit]

    def count_users(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM users")
            return cursor.fetchone()[0]

    def find_users_by_username(self, query: str) -> List[User]:
        return self._select_users("username LIKE ?", (f"%{query}%",))

    def find_users_by_email(self, query: str) -> List[User]:
        return self._select_users("email LIKE ?", (f"%{query}%",))

    def save_user(self, user: User) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                UPDATE users
                SET username = ?, email = ?, password_hash = ?, display_name = ?,
                    is_active = ?, is_super_user = ?, is_email_confirmed = ?, preferences = ?
                WHERE user_id = ?
            """, (
                user.username,
                user.email,
                user.password_hash,
                user.display_name,
                1 if user.is_active else 0,
                1 if user.is_super_user else 0,
                1 if user.is_email_confirmed else 0,
                json.dumps(user.preferences),
                user.user_id,
            ))

            if cursor.rowcount > 0:
                logger.debug(f"User updated: {user.username}")

    def set_roles_to_user(self, user: User, roles: Iterable[Role]) -> None:
        roles = list(roles)

        with self._cursor() as cursor:
            cursor.execute("DELETE FROM user_roles WHERE user_id = ?", (user.user_id,))
            cursor.executemany(
                "INSERT INTO user_roles (user_id, role_id, position) VALUES (?, ?, ?)",
                [(user.user_id, role.role_id, position) for position, role in enumerate(roles)],
            )

        user.roles = roles

    def delete_user(self, user: User) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM user_roles WHERE user_id = ?", (user.user_id,))
            cursor.execute("DELETE FROM users WHERE user_id = ?", (user.user_id,))

            if cursor.rowcount > 0:
                logger.info(f"User deleted: {user.username}")

    # ========================================================================
    # Role Operations
    # ========================================================================

    def create_role(self, name: str, weight: int = 0) -> Role:
        role = Role(role_id=str(uuid.uuid4()), name=name, weight=weight)

        with self._cursor() as cursor:
            cursor.execute(
                "INSERT INTO roles (role_id, name, weight) VALUES (?, ?, ?)",
                (role.role_id, role.name, role.weight),
            )

        logger.info(f"Role created: {name}")
        return role

    def _load_role(self, cursor: sqlite3.Cursor, row) -> Role:
        role = Role(role_id=row[0], name=row[1], weight=row[2] or 0)

        cursor.execute("SELECT code FROM role_permissions WHERE role_id = ?", (role.role_id,))
        role.permissions = {code for (code,) in cursor.fetchall()}

        cursor.execute("SELECT path FROM role_paths WHERE role_id = ? ORDER BY position", (role.role_id,))
        role.paths = [path for (path,) in cursor.fetchall()]

        return role

    def _select_roles(self, where: str, params: tuple) -> List[Role]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT role_id, name, weight FROM roles WHERE {where} ORDER BY weight DESC, name", params)
            return [self._load_role(cursor, row) for row in cursor.fetchall()]

    def get_role_by_id(self, role_id: str) -> Optional[Role]:
        roles = self._select_roles("role_id = ?", (role_id,))
        return roles[0] if roles else None

    def get_role_by_name(self, name: str) -> Optional[Role]:
        roles = self._select_roles("name = ?", (name,))
        return roles[0] if roles else None

    def get_roles(self, limit: Optional[int] = None) -> List[Role]:
        roles = self._select_roles("1 = 1", ())
        return roles if limit is None else roles[:limit]

    def count_roles(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM roles")
            return cursor.fetchone()[0]

    def find_roles_by_name(self, query: str) -> List[Role]:
        return self._select_roles("name LIKE ?", (f"%{query}%",))

    def save_role(self, role: Role) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE roles SET name = ?, weight = ? WHERE role_id = ?",
                (role.name, role.weight, role.role_id),
            )

    def set_granted_permissions_to_role(self, role: Role, codes: Iterable[str]) -> None:
        codes = set(codes)

        with self._cursor() as cursor:
            cursor.executemany(
                "INSERT OR IGNORE INTO permissions (code, description) VALUES (?, '')",
                [(code,) for code in codes],
            )
            cursor.execute("DELETE FROM role_permissions WHERE role_id = ?", (role.role_id,))
            cursor.executemany(
                "INSERT INTO role_permissions (role_id, code) VALUES (?, ?)",
                [(role.role_id, code) for code in codes],
            )

        role.permissions = codes

    def set_allowed_paths_to_role(self, role: Role, paths: Iterable[str]) -> None:
        paths = list(paths)

        with self._cursor() as cursor:
            cursor.execute("DELETE FROM role_paths WHERE role_id = ?", (role.role_id,))
            cursor.executemany(
                "INSERT INTO role_paths (role_id, position, path) VALUES (?, ?, ?)",
                [(role.role_id, position, path) for position, path in enumerate(paths)],
            )

        role.paths = paths

    def delete_role(self, role: Role) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM user_roles WHERE role_id = ?", (role.role_id,))
            cursor.execute("DELETE FROM role_permissions WHERE role_id = ?", (role.role_id,))
            cursor.execute("DELETE FROM role_paths WHERE role_id = ?", (role.role_id,))
            cursor.execute("DELETE FROM roles WHERE role_id = ?", (role.role_id,))

        logger.info(f"Role deleted: {role.name}")

    # ========================================================================
    # Permission Operations
    # ========================================================================

    def get_permissions(self) -> List[Permission]:
        with self._cursor() as cursor:
            cursor.execute("SELECT code, description FROM permissions ORDER BY code")
            return [Permission(code=code, description=description or "") for code, description in cursor.fetchall()]

    def has_permission(self, code: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM permissions WHERE code = ?", (code,))
            return cursor.fetchone() is not None

    def add_permission(self, code: str, description: str = "") -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO permissions (code, description) VALUES (?, ?)",
                (code, description),
            )

    def delete_permission(self, code: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM role_permissions WHERE code = ?", (code,))
            cursor.execute("DELETE FROM permissions WHERE code = ?", (code,))

    # ========================================================================
    # Ownership
    # ========================================================================

    def owns_user(self, user: User) -> bool:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM users WHERE user_id = ?", (user.user_id,))
            return cursor.fetchone() is not None

    def owns_role(self, role: Role) -> bool:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM roles WHERE role_id = ?", (role.role_id,))
            return cursor.fetchone() is not None

    def owns_permission(self, permission: Permission) -> bool:
        return self.has_permission(permission.code)
