"""
Tests for the SQLite backing store.
"""

import sqlite3

import pytest

from gatekeeper import (
    AuthorizationManager,
    ChainedStore,
    ChainVoter,
    InMemoryBackingStore,
    InMemorySessionStore,
    ModelVoter,
    SessionAuthenticator,
    SQLiteBackingStore,
)

from conftest import SALT


@pytest.fixture
def db(tmp_path):
    return SQLiteBackingStore(tmp_path / "security.db")


class TestUsers:
    """Test user persistence."""

    def test_create_and_get(self, db):
        user = db.create_user("alice", "hash", "alice@example.com")

        loaded = db.get_user_by_username("alice")

        assert loaded is not user
        assert loaded.user_id == user.user_id
        assert loaded.email == "alice@example.com"
        assert db.get_user_by_id(user.user_id).username == "alice"
        assert db.get_user_by_email("alice@example.com").username == "alice"
        assert db.get_user_by_username("nobody") is None

    def test_duplicate_username(self, db):
        db.create_user("alice")

        with pytest.raises(sqlite3.IntegrityError):
            db.create_user("alice")

    def test_save_flags_and_preferences(self, db):
        user = db.create_user("alice", "hash")
        user.is_super_user = True
        user.is_email_confirmed = True
        user.display_name = "Alice"
        user.set_preference("security.token", "abc123")
        user.set_preference("security.timeout", 1234)

        db.save_user(user)
        loaded = db.get_user_by_username("alice")

        assert loaded.is_super_user
        assert loaded.is_email_confirmed
        assert loaded.display_name == "Alice"
        assert loaded.get_preference("security.token") == "abc123"
        assert loaded.get_preference("security.timeout") == 1234

    def test_find(self, db):
        db.create_user("alice", email="alice@example.com")
        db.create_user("malice", email="m@example.org")
        db.create_user("bob")

        assert [u.username for u in db.find_users_by_username("alic")] == ["alice", "malice"]
        assert [u.username for u in db.find_users_by_email("example.org")] == ["malice"]

    def test_roles_keep_order(self, db):
        user = db.create_user("alice")
        low = db.create_role("low", weight=1)
        high = db.create_role("high", weight=50)

        db.set_roles_to_user(user, [low, high])

        assert [r.name for r in db.get_user_by_username("alice").roles] == ["low", "high"]

    def test_list_and_count(self, db):
        db.create_user("carol")
        db.create_user("alice")
        db.create_user("bob")

        assert [u.username for u in db.get_users()] == ["alice", "bob", "carol"]
        assert [u.username for u in db.get_users(limit=2)] == ["alice", "bob"]
        assert db.count_users() == 3

    def test_delete_user(self, db):
        user = db.create_user("alice")
        db.set_roles_to_user(user, [db.create_role("staff")])

        db.delete_user(user)

        assert db.get_user_by_username("alice") is None
        assert not db.owns_user(user)


class TestRoles:
    """Test role persistence."""

    def test_permissions_and_paths(self, db):
        role = db.create_role("editors", weight=20)

        db.set_granted_permissions_to_role(role, ["content.edit", "security.switch"])
        db.set_allowed_paths_to_role(role, ["/admin/content**", "!/admin/content/locked"])
        loaded = db.get_role_by_name("editors")

        assert loaded.weight == 20
        assert loaded.permissions == {"content.edit", "security.switch"}
        assert loaded.paths == ["/admin/content**", "!/admin/content/locked"]
        assert db.has_permission("content.edit")

    def test_roles_by_weight(self, db):
        db.create_role("low", weight=1)
        db.create_role("high", weight=50)

        assert [r.name for r in db.get_roles()] == ["high", "low"]
        assert [r.name for r in db.get_roles(limit=1)] == ["high"]
        assert db.count_roles() == 2
        assert [r.name for r in db.find_roles_by_name("ig")] == ["high"]

    def test_save_role(self, db):
        role = db.create_role("staff")
        role.weight = 7

        db.save_role(role)

        assert db.get_role_by_id(role.role_id).weight == 7

    def test_delete_role(self, db):
        role = db.create_role("staff")
        user = db.create_user("alice")
        db.set_roles_to_user(user, [role])

        db.delete_role(role)

        assert db.get_role_by_name("staff") is None
        assert db.get_user_by_username("alice").roles == []


class TestPermissionsAndPaths:
    """Test permissions and secured paths."""

    def test_add_and_delete_permission(self, db):
        role = db.create_role("staff")
        db.add_permission("reports.view", "View reports")
        db.set_granted_permissions_to_role(role, ["reports.view"])

        db.delete_permission("reports.view")

        assert not db.has_permission("reports.view")
        assert db.get_role_by_name("staff").permissions == set()

    def test_add_permission_is_idempotent(self, db):
        db.add_permission("reports.view", "View reports")
        db.add_permission("reports.view", "Again")

        assert [(p.code, p.description) for p in db.get_permissions()] == [("reports.view", "View reports")]

    def test_secured_paths_keep_order(self, db):
        db.set_secured_paths(["/z**", "/a**", "!/a/open"])

        assert db.get_secured_paths() == ["/z**", "/a**", "!/a/open"]

        db.set_secured_paths(["/only"])

        assert db.get_secured_paths() == ["/only"]

    def test_persisted_across_instances(self, tmp_path):
        SQLiteBackingStore(tmp_path / "security.db").set_secured_paths(["/admin**"])

        assert SQLiteBackingStore(tmp_path / "security.db").get_secured_paths() == ["/admin**"]


class TestWithManager:
    """Test the SQLite store behind the manager."""

    def test_ping(self, db):
        assert db.ping()
        assert str(db).startswith("SQLiteBackingStore(")

    def test_chain_with_memory(self, db):
        memory = InMemoryBackingStore()
        memory.create_user("alice", "alice-pass")
        bob = db.create_user("bob", "bob-pass")

        chained = ChainedStore([memory, db])
        bob.display_name = "Bob"
        chained.save_user(bob)

        assert db.get_user_by_username("bob").display_name == "Bob"
        assert chained.get_user_by_username("alice").password_hash == "alice-pass"

    def test_unique_session_rotation(self, db):
        db.create_user("alice", "alice-pass")
        first, second = InMemorySessionStore(), InMemorySessionStore()

        def manager(session):
            return AuthorizationManager(
                SessionAuthenticator(session, salt=SALT, unique=True),
                model=db,
                voter=ChainVoter(voters=[ModelVoter(db)]),
            )

        manager(first).login("alice", "alice-pass")
        assert manager(first).get_user().username == "alice"

        manager(second).login("alice", "alice-pass")

        assert manager(first).get_user() is None
        assert manager(second).get_user().username == "alice"
