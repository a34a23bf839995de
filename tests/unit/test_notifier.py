"""Tests for notifier transitions, observer delivery and events."""

from __future__ import annotations

import pytest

from absinthe_socket import Event, EventName, Notifier, Observer, OperationType, Request, RequestStatus
from absinthe_socket import notifier as notifiers


@pytest.fixture
def subscription() -> Notifier:
    return Notifier.create(Request(operation="subscription { userAdded { id } }"))


# =============================================================================
# Event Tests
# =============================================================================


class TestEvent:
    """Tests for Event dispatch."""

    def test_callback_names(self) -> None:
        """Each event maps to an on_<name> callback."""
        assert Event.start(None).callback_name == "on_start"
        assert Event.result({}).callback_name == "on_result"
        assert Event.error(ValueError()).callback_name == "on_error"
        assert Event.abort(ValueError()).callback_name == "on_abort"
        assert Event.cancel().callback_name == "on_cancel"

    def test_dispatch_passes_payload(self) -> None:
        """Dispatch calls the matching callback with the payload."""
        received = []
        Event.result({"data": 1}).dispatch(Observer(on_result=received.append))
        assert received == [{"data": 1}]

    def test_dispatch_cancel_has_no_argument(self) -> None:
        """Cancel callbacks take no argument."""
        calls = []
        Event.cancel().dispatch(Observer(on_cancel=lambda: calls.append("cancel")))
        assert calls == ["cancel"]

    def test_dispatch_missing_callback_is_ignored(self) -> None:
        """Observers only implement the callbacks they care about."""
        Event.abort(RuntimeError("x")).dispatch(Observer())
        Event.result({}).dispatch(object())

    def test_event_names(self) -> None:
        """Event names are the five lifecycle events."""
        assert {e.value for e in EventName} == {"Start", "Result", "Error", "Abort", "Cancel"}


# =============================================================================
# Notifier Tests
# =============================================================================


class TestNotifierCreate:
    """Tests for Notifier.create()."""

    def test_initial_state(self, subscription: Notifier) -> None:
        """New notifiers are pending, active and unobserved."""
        assert subscription.operation_type == OperationType.SUBSCRIPTION
        assert subscription.request_status == RequestStatus.PENDING
        assert subscription.is_active
        assert subscription.subscription_id is None
        assert subscription.active_observers == ()
        assert subscription.canceled_observers == ()
        assert subscription.is_subscription

    def test_query_is_not_subscription(self) -> None:
        notifier = Notifier.create(Request(operation="{ a }"))
        assert notifier.operation_type == OperationType.QUERY
        assert not notifier.is_subscription


class TestTransitions:
    """Tests for the pure notifier transitions."""

    def test_transitions_return_new_values(self, subscription: Notifier) -> None:
        """The original snapshot is never modified."""
        observed = notifiers.observe(subscription, Observer())
        assert subscription.active_observers == ()
        assert len(observed.active_observers) == 1

    def test_cancel_moves_observers(self, subscription: Notifier) -> None:
        """cancel() deactivates and moves active observers to canceled."""
        first, second = Observer(), Observer()
        observed = notifiers.observe(notifiers.observe(subscription, first), second)

        canceled = notifiers.cancel(observed)

        assert not canceled.is_active
        assert canceled.active_observers == ()
        assert canceled.canceled_observers == (first, second)

    def test_observe_reactivates(self, subscription: Notifier) -> None:
        """Attaching an observer makes the notifier active."""
        canceled = notifiers.cancel(subscription)
        assert notifiers.observe(canceled, Observer()).is_active

    def test_observe_keeps_sets_disjoint(self, subscription: Notifier) -> None:
        """A canceled observer attached again leaves the canceled set."""
        observer = Observer()
        canceled = notifiers.cancel(notifiers.observe(subscription, observer))

        again = notifiers.observe(canceled, observer)

        assert again.active_observers == (observer,)
        assert again.canceled_observers == ()

    def test_unobserve_by_identity(self, subscription: Notifier) -> None:
        """Observers are removed by identity, not equality."""
        first, second = Observer(), Observer()
        observed = notifiers.observe(notifiers.observe(subscription, first), second)

        remaining = notifiers.unobserve(observed, first)

        assert remaining.active_observers == (second,)
        assert notifiers.has_active_observer(remaining, second)
        assert not notifiers.has_active_observer(remaining, first)

    def test_subscribed(self, subscription: Notifier) -> None:
        """Recording the subscription id marks the notifier sent."""
        subscribed = notifiers.subscribed(subscription, "sub1")
        assert subscribed.subscription_id == "sub1"
        assert subscribed.request_status == RequestStatus.SENT

    def test_timed_out_kept_until_next_stage(self, subscription: Notifier) -> None:
        """A push timeout keeps the stage; any status change clears it."""
        sending = notifiers.with_status(subscription, RequestStatus.SENDING)

        timed_out = notifiers.timed_out(sending)

        assert timed_out.request_status == RequestStatus.SENDING
        assert timed_out.push_timed_out
        assert not notifiers.with_status(timed_out, RequestStatus.SENDING).push_timed_out
        assert not notifiers.subscribed(timed_out, "sub1").push_timed_out
        assert not notifiers.reset(timed_out).push_timed_out

    def test_reset(self, subscription: Notifier) -> None:
        """reset() returns to pending and flushes Cancel to canceled observers."""
        calls = []
        detached = Observer(on_cancel=lambda: calls.append("cancel"))
        canceled = notifiers.cancel(notifiers.observe(notifiers.subscribed(subscription, "sub1"), detached))
        canceling = notifiers.with_status(notifiers.reactivate(canceled), RequestStatus.CANCELING)

        reset = notifiers.reset(canceling)

        assert reset.request_status == RequestStatus.PENDING
        assert reset.subscription_id is None
        assert reset.is_active
        assert reset.canceled_observers == ()
        assert calls == ["cancel"]

    def test_reactivate_active_is_identity(self, subscription: Notifier) -> None:
        assert notifiers.reactivate(subscription) is subscription


class TestDelivery:
    """Tests for notify_* and flush_canceled."""

    def _observers(self, subscription: Notifier):
        log: list[tuple[str, str]] = []

        def make(name: str) -> Observer:
            return Observer(
                on_result=lambda r: log.append((name, "result")),
                on_abort=lambda e: log.append((name, "abort")),
                on_cancel=lambda: log.append((name, "cancel")),
            )

        active, detached = make("active"), make("detached")
        notifier = notifiers.cancel(notifiers.observe(subscription, detached))
        notifier = notifiers.observe(notifier, active)
        return notifier, log

    def test_notify_active_skips_canceled(self, subscription: Notifier) -> None:
        notifier, log = self._observers(subscription)
        notifiers.notify_active(notifier, Event.result({}))
        assert log == [("active", "result")]

    def test_notify_all_reaches_canceled(self, subscription: Notifier) -> None:
        """Abort must also reach observers that asked to stop."""
        notifier, log = self._observers(subscription)
        notifiers.notify_all(notifier, Event.abort(RuntimeError()))
        assert log == [("active", "abort"), ("detached", "abort")]

    def test_flush_canceled_once(self, subscription: Notifier) -> None:
        """Each canceled observer gets exactly one Cancel."""
        notifier, log = self._observers(subscription)

        flushed = notifiers.flush_canceled(notifier)
        notifiers.flush_canceled(flushed)

        assert log == [("detached", "cancel")]
        assert flushed.canceled_observers == ()

    def test_flush_without_canceled_is_identity(self, subscription: Notifier) -> None:
        assert notifiers.flush_canceled(subscription) is subscription
