"""
Security errors for gatekeeper.

A single exception type carries what went wrong (``kind``) and which login
form field is implicated (``field``).
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """What went wrong."""
    # Login failures
    BAD_CREDENTIALS = "bad_credentials"
    UNKNOWN_USER = "unknown_user"
    INACTIVE_USER = "inactive_user"
    EMAIL_UNCONFIRMED = "email_unconfirmed"

    # Switch user
    UNAUTHORIZED = "unauthorized"
    USER_NOT_FOUND = "user_not_found"
    PRIVILEGE_ESCALATION = "privilege_escalation"

    # Setup
    MODEL_NOT_CONFIGURED = "model_not_configured"
    MALFORMED_URL = "malformed_url"
    INVALID_CONFIGURATION = "invalid_configuration"


class ErrorField(str, Enum):
    """Login form field implicated by an error."""
    NONE = "none"
    USERNAME = "username"
    PASSWORD = "password"


AUTHENTICATION_KINDS = frozenset({
    ErrorKind.BAD_CREDENTIALS,
    ErrorKind.UNKNOWN_USER,
    ErrorKind.INACTIVE_USER,
    ErrorKind.EMAIL_UNCONFIRMED,
})


class SecurityError(Exception):
    """
    Raised by the security layer.

    Attributes:
        kind: The ErrorKind describing the failure
        field: The form field to flag (username, password or none)
        message: Human readable message
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        field: ErrorField = ErrorField.NONE,
    ):
        self.kind = kind
        self.field = field
        self.message = message or kind.value.replace("_", " ")

        super().__init__(self.message)

    @property
    def is_authentication_error(self) -> bool:
        """True for errors raised by a failed login."""
        return self.kind in AUTHENTICATION_KINDS

    def __repr__(self) -> str:
        return f"SecurityError(kind={self.kind.value!r}, field={self.field.value!r}, message={self.message!r})"

    # ------------------------------------------------------------------
    # Named constructors

    @classmethod
    def bad_credentials(cls) -> "SecurityError":
        return cls(ErrorKind.BAD_CREDENTIALS, "Password is incorrect", ErrorField.PASSWORD)

    @classmethod
    def unknown_user(cls) -> "SecurityError":
        return cls(ErrorKind.UNKNOWN_USER, "Username is unknown", ErrorField.USERNAME)

    @classmethod
    def inactive_user(cls) -> "SecurityError":
        return cls(ErrorKind.INACTIVE_USER, "Your account is not activated", ErrorField.USERNAME)

    @classmethod
    def email_unconfirmed(cls) -> "SecurityError":
        return cls(ErrorKind.EMAIL_UNCONFIRMED, "Email address is not confirmed", ErrorField.USERNAME)

    @classmethod
    def unauthorized(cls, message: str) -> "SecurityError":
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def user_not_found(cls, message: str) -> "SecurityError":
        return cls(ErrorKind.USER_NOT_FOUND, message)

    @classmethod
    def privilege_escalation(cls, message: str) -> "SecurityError":
        return cls(ErrorKind.PRIVILEGE_ESCALATION, message)

    @classmethod
    def model_not_configured(cls) -> "SecurityError":
        return cls(ErrorKind.MODEL_NOT_CONFIGURED, "No backing store has been configured")

    @classmethod
    def malformed_url(cls, url: str) -> "SecurityError":
        return cls(ErrorKind.MALFORMED_URL, f"Could not check the permissions of URL {url!r}: no path found")

    @classmethod
    def invalid_configuration(cls, message: str) -> "SecurityError":
        return cls(ErrorKind.INVALID_CONFIGURATION, message)
