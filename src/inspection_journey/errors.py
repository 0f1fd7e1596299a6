"""Typed errors raised by the journey core."""


class JourneyError(Exception):
    """Base class for journey core errors."""


class NotFoundError(JourneyError):
    """The requested id has no backing record. Never retried."""

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(f"{kind} {resource_id} not found")
        self.kind = kind
        self.resource_id = resource_id


class TransientError(JourneyError):
    """Network or server failure that may succeed on a later attempt."""


class MalformedResponseError(TransientError):
    """Payload failed validation at the loader boundary."""


class RedirectLoopGuardTripped(JourneyError):
    """A second corrective rewrite was attempted within one navigation pass."""

    def __init__(self, navigation_key: str) -> None:
        super().__init__(f"rewrite already performed for {navigation_key}")
        self.navigation_key = navigation_key


class SessionTransitionError(JourneyError):
    """A status change was requested that the session cannot make."""
