"""Custom exception hierarchy for Hivemind.

All application-specific exceptions inherit from HivemindError,
which carries an error code for tool-call error mapping.
"""

from __future__ import annotations

from collections.abc import Sequence


class HivemindError(Exception):
    """Base exception for all Hivemind errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class StoreError(HivemindError):
    """The document store rejected or failed an operation."""

    def __init__(self, message: str, *, code: str = "STORE_ERROR") -> None:
        super().__init__(message, code=code)


class StoreUnavailable(StoreError):
    """Backing store is unreachable or its collections are not initialized."""

    def __init__(self, message: str = "Hivemind store is not available") -> None:
        super().__init__(message, code="STORE_UNAVAILABLE")


class RateLimited(StoreError):
    """Store kept rate-limiting after every retry was spent."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="RATE_LIMITED")


class CoordError(HivemindError):
    """Coordination state could not be read or updated consistently."""

    def __init__(self, message: str, *, code: str = "COORD_ERROR") -> None:
        super().__init__(message, code=code)


class UnknownAgent(CoordError):
    """Named agent is not among the active agents."""

    def __init__(
        self,
        name: str,
        active: Sequence[str] = (),
        *,
        code: str = "UNKNOWN_AGENT",
    ) -> None:
        self.name = name
        self.active = tuple(active)
        listing = ", ".join(self.active) if self.active else "(none)"
        super().__init__(f"Agent '{name}' not found. Active agents: {listing}", code=code)


class UnknownRecipient(UnknownAgent):
    """Message target does not name an active agent."""

    def __init__(self, name: str, active: Sequence[str] = ()) -> None:
        super().__init__(name, active, code="UNKNOWN_RECIPIENT")


class MalformedInput(HivemindError):
    """Required argument missing from a tool call or hook payload."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_PARAMS")
