"""
Password hashing.

The security manager only needs ``hash`` and ``verify``. Without a hasher,
passwords are compared in plain text.
"""

import hashlib
import hmac
from typing import Protocol

import bcrypt


class PasswordHasher(Protocol):
    """Hashes and verifies passwords."""

    def hash(self, password: str) -> str:
        """Return the digest of ``password``."""

    def verify(self, password: str, digest: str) -> bool:
        """Check ``password`` against a stored ``digest``."""


class Sha256Hasher:
    """Deterministic SHA-256 hex digests."""

    def hash(self, password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    def verify(self, password: str, digest: str) -> bool:
        return hmac.compare_digest(self.hash(password), digest or "")


class BcryptHasher:
    """
    Salted bcrypt digests.

    Two hashes of the same password differ, so passwords must be checked
    with ``verify``.
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def verify(self, password: str, digest: str) -> bool:
        if not digest:
            return False

        try:
            return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            # not a bcrypt digest
            return False
