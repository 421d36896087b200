"""Event publishing for security events."""

from typing import Any, Dict, List, Protocol, Tuple

EVENT_LOGIN = "security.authentication.login"
EVENT_PASSWORD_UPDATE = "security.password.update"


class EventSink(Protocol):
    """Receives security events."""

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        """Publish ``event`` with ``payload``."""


class RecordingEventSink:
    """Keeps published events in order of arrival."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> List[Dict[str, Any]]:
        """Payloads published for ``event``."""
        return [payload for name, payload in self.events if name == event]
