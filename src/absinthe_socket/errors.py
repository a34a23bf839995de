"""Error types.

Two families live here:
- Raised synchronously on API misuse (FormatError, ObserverNotAttachedError).
- Delivered to observers as Error/Abort event payloads. The engine creates
  these but never raises them; transport failures always become events.
"""

from __future__ import annotations

from typing import Any


class AbsintheSocketError(Exception):
    """Base class for all errors of this package."""


class FormatError(AbsintheSocketError, ValueError):
    """Operation text does not start with query, mutation, subscription or '{'."""

    def __init__(self, operation: str):
        super().__init__(f"Invalid operation:\n{operation}")
        self.operation = operation


class ObserverNotAttachedError(AbsintheSocketError):
    """Detaching an observer that is not active on the notifier."""

    def __init__(self) -> None:
        super().__init__("Observer is not attached to notifier")


class OperationCanceledError(AbsintheSocketError):
    """An awaited operation was canceled before producing a result."""

    def __init__(self) -> None:
        super().__init__("Operation canceled before a result was received")


class RequestError(AbsintheSocketError):
    """A doc push failed or timed out."""

    def __init__(self, reason: Any):
        super().__init__(f"request: {reason}")
        # Raw error payload as received from the server
        self.object = reason

    @property
    def is_timeout(self) -> bool:
        return self.object == "timeout"


class UnsubscribeError(AbsintheSocketError):
    """An unsubscribe push failed or timed out."""

    def __init__(self, reason: Any):
        super().__init__(f"unsubscribe: {reason}")
        self.object = reason

    @property
    def is_timeout(self) -> bool:
        return self.object == "timeout"


class ChannelJoinError(AbsintheSocketError):
    """Joining the control channel failed or timed out."""

    def __init__(self, reason: Any):
        super().__init__(f"channel join: {reason}")
        self.object = reason


class ConnectionCloseError(AbsintheSocketError):
    """The transport closed while the operation was outstanding."""

    def __init__(self) -> None:
        super().__init__("connection: close")
