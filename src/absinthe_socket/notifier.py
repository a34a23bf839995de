"""Notifiers and observers.

A Notifier tracks one logical operation and the observers interested in it.
Notifiers are immutable: every function here returns a new value and the
socket installs it in its store. Delivery helpers (notify_*) return the
notifier they were given so calls can be chained.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .events import Event
from .request import OperationType, Request


class RequestStatus(str, Enum):
    """Transport stage of the notifier's current push."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    CANCELING = "canceling"
    CANCELED = "canceled"


@dataclass(eq=False)
class Observer:
    """Lifecycle callbacks registered against a notifier.

    Observers compare by identity; the same callbacks wrapped in two
    Observer instances are two observers.
    """

    on_start: Callable[[Any], None] | None = None
    on_result: Callable[[Any], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_abort: Callable[[Exception], None] | None = None
    on_cancel: Callable[[], None] | None = None


@dataclass(frozen=True)
class Notifier:
    """Stateful handle for one logical operation."""

    request: Request
    operation_type: OperationType
    request_status: RequestStatus = RequestStatus.PENDING
    # Observer interest, independent of request_status
    is_active: bool = True
    # Set for subscriptions once the subscribe push succeeded
    subscription_id: str | None = None
    active_observers: tuple[Any, ...] = field(default_factory=tuple)
    # Observers detached while a cancel round trip is pending
    canceled_observers: tuple[Any, ...] = field(default_factory=tuple)
    # The push of the current stage timed out and nothing is in flight
    push_timed_out: bool = False

    @classmethod
    def create(cls, request: Request) -> Notifier:
        """Create a pending notifier.

        Raises:
            FormatError: If the operation text is not a recognized operation
        """
        return cls(request=request, operation_type=request.operation_type)

    @property
    def is_subscription(self) -> bool:
        return self.operation_type == OperationType.SUBSCRIPTION


# =============================================================================
# Transitions
# =============================================================================


def with_status(notifier: Notifier, status: RequestStatus) -> Notifier:
    return replace(notifier, request_status=status, push_timed_out=False)


def timed_out(notifier: Notifier) -> Notifier:
    """Record a push timeout; the stage is kept until the next push."""
    return replace(notifier, push_timed_out=True)


def subscribed(notifier: Notifier, subscription_id: str | None) -> Notifier:
    return replace(
        notifier,
        subscription_id=subscription_id,
        request_status=RequestStatus.SENT,
        push_timed_out=False,
    )


def observe(notifier: Notifier, observer: Any) -> Notifier:
    # An observer re-attached before its Cancel was flushed is active again
    return replace(
        notifier,
        active_observers=(*notifier.active_observers, observer),
        canceled_observers=tuple(o for o in notifier.canceled_observers if o is not observer),
        is_active=True,
    )


def unobserve(notifier: Notifier, observer: Any) -> Notifier:
    return replace(
        notifier,
        active_observers=tuple(o for o in notifier.active_observers if o is not observer),
    )


def has_active_observer(notifier: Notifier, observer: Any) -> bool:
    return any(o is observer for o in notifier.active_observers)


def cancel(notifier: Notifier) -> Notifier:
    """Mark inactive, moving every active observer to the canceled set."""
    return replace(
        notifier,
        is_active=False,
        active_observers=(),
        canceled_observers=(*notifier.active_observers, *notifier.canceled_observers),
    )


def reactivate(notifier: Notifier) -> Notifier:
    return notifier if notifier.is_active else replace(notifier, is_active=True)


def reset(notifier: Notifier) -> Notifier:
    """Bring the notifier back to pending so it can be pushed again."""
    return flush_canceled(
        replace(
            notifier,
            is_active=True,
            request_status=RequestStatus.PENDING,
            subscription_id=None,
            push_timed_out=False,
        )
    )


# =============================================================================
# Delivery
# =============================================================================


def _notify(observers: Iterable[Any], event: Event) -> None:
    for observer in tuple(observers):
        event.dispatch(observer)


def notify_active(notifier: Notifier, event: Event) -> Notifier:
    _notify(notifier.active_observers, event)
    return notifier


def notify_canceled(notifier: Notifier, event: Event) -> Notifier:
    _notify(notifier.canceled_observers, event)
    return notifier


def notify_all(notifier: Notifier, event: Event) -> Notifier:
    """Deliver to active and canceled observers alike.

    Used for Abort, which must also reach observers that asked to stop but
    have not been told yet.
    """
    _notify((*notifier.active_observers, *notifier.canceled_observers), event)
    return notifier


def flush_canceled(notifier: Notifier) -> Notifier:
    """Send Cancel to every canceled observer and clear the set."""
    if not notifier.canceled_observers:
        return notifier
    notify_canceled(notifier, Event.cancel())
    return replace(notifier, canceled_observers=())
