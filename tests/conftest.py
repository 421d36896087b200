"""
Shared fixtures for gatekeeper tests.
"""

import pytest

from gatekeeper import (
    PERMISSION_SWITCH,
    AuthorizationManager,
    ChainVoter,
    InMemoryBackingStore,
    InMemorySessionStore,
    ModelVoter,
    RecordingEventSink,
    SessionAuthenticator,
)

SALT = "pepper"


class FakeClock:
    """Clock which only moves when told to."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """
    In-memory store with:
        admin: super user
        editor: may switch user, may access /admin/content**
        alice: plain user, may read reports
        bob: inactive
    """
    store = InMemoryBackingStore()
    store.set_secured_paths(["/admin**", "!/admin/login"])

    editors = store.create_role("editors", weight=20)
    store.set_granted_permissions_to_role(editors, [PERMISSION_SWITCH, "content.edit"])
    store.set_allowed_paths_to_role(editors, ["/admin/content**"])

    readers = store.create_role("readers", weight=10)
    store.set_granted_permissions_to_role(readers, ["reports.view"])

    admin = store.create_user("admin", "admin-pass", "admin@example.com")
    admin.is_super_user = True
    store.save_user(admin)

    editor = store.create_user("editor", "editor-pass", "editor@example.com")
    store.set_roles_to_user(editor, [editors])

    alice = store.create_user("alice", "alice-pass", "alice@example.com")
    store.set_roles_to_user(alice, [readers])

    bob = store.create_user("bob", "bob-pass")
    bob.is_active = False
    store.save_user(bob)

    return store


@pytest.fixture
def session():
    return InMemorySessionStore()


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def make_manager(store, events, clock):
    """
    Build a manager for one request.

    Each call gives a fresh authenticator, like a new request would.
    """

    def _make(session, unique: bool = False, timeout: int = 1800, model=store) -> AuthorizationManager:
        authenticator = SessionAuthenticator(session, salt=SALT, timeout=timeout, unique=unique, clock=clock)
        return AuthorizationManager(
            authenticator,
            event_sink=events,
            model=model,
            voter=ChainVoter(voters=[ModelVoter(model)]),
        )

    return _make
