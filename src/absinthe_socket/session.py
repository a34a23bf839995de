"""AbsintheSocket - GraphQL operations over a Phoenix channel.

Owns one transport and the control channel on it, and drives every
notifier through its request lifecycle:

    pending -> sending -> sent                (subscriptions)
    pending -> sending -> removed             (queries and mutations)
    sent -> canceling -> removed | pending    (unsubscribe, resubscribe)

Observer interest (is_active) is tracked independently of the transport
stage: cancel() flips it immediately, the network catches up later.

Everything here is synchronous and runs to completion. Push handlers are
correlated by request: when a reply arrives the notifier is looked up again,
so a handler always sees the latest snapshot, and replies for notifiers that
no longer exist are dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from . import notifier as notifiers
from .config import SocketConfig
from .errors import (
    ChannelJoinError,
    ConnectionCloseError,
    ObserverNotAttachedError,
    RequestError,
    UnsubscribeError,
)
from .events import Event
from .notifier import Notifier, RequestStatus
from .request import OperationType, Request
from .store import NotifierStore
from .transport import (
    Push,
    PushStatus,
    Reply,
    SocketTransport,
    decode_data_message,
    decode_reply,
    format_graphql_errors,
    has_graphql_errors,
)

logger = logging.getLogger(__name__)

# Handler invoked with the current notifier and the decoded reply payload
NotifierHandler = Callable[[Notifier, Any], None]


class ChannelState(str, Enum):
    """Control channel join state."""

    UNJOINED = "unjoined"
    JOINING = "joining"
    JOINED = "joined"


class AbsintheSocket:
    """Client-side engine for GraphQL operations over a channel transport.

    Usage:
        socket = AbsintheSocket(phoenix_transport)

        notifier = socket.send(Request(operation="subscription { userAdded { id } }"))
        observer = Observer(on_result=print, on_abort=print)
        socket.observe(notifier, observer)

        # later
        socket.unobserve_or_cancel(notifier, observer)

    Transport failures never raise: they reach observers as Error or Abort
    events. Only API misuse raises (FormatError, ObserverNotAttachedError).
    """

    def __init__(
        self,
        transport: SocketTransport,
        config: SocketConfig | None = None,
        store: NotifierStore | None = None,
    ) -> None:
        """Initialize the socket and hook into the transport lifecycle.

        Args:
            transport: Connection providing channels and lifecycle hooks
            config: Channel and message names (defaults to SocketConfig())
            store: Notifier store (a fresh one by default)
        """
        self.transport = transport
        self.config = config or SocketConfig()
        self.store = store or NotifierStore()
        self.channel = transport.channel(self.config.channel_topic)
        self.channel_state = ChannelState.UNJOINED

        transport.on_open(self._on_open)
        transport.on_close(self._on_close)
        transport.on_message(self._on_message)

    @property
    def notifiers(self) -> list[Notifier]:
        return list(self.store)

    # =========================================================================
    # Public API
    # =========================================================================

    def send(self, request: Request, observer: Any = None) -> Notifier:
        """Send a request and return the notifier tracking it.

        An identical request already in flight is reused without any new
        traffic, and reactivated if it was being canceled. A notifier whose
        last push timed out is pushed again.

        Args:
            request: Operation to send
            observer: Attached before anything is pushed, so it sees Start

        Raises:
            FormatError: If the operation text is not a recognized operation
        """
        existing = self.store.find(request)
        if existing is None:
            return self._send_new(request, observer)

        notifier = existing if existing.is_active else self._reactivate(existing)
        if observer is not None:
            notifier = self.store.upsert(notifiers.observe(notifier, observer))
        if notifier.push_timed_out and self.channel_state == ChannelState.JOINED:
            self._retry(notifier)
        return self.store.find(request) or notifier

    def observe(self, notifier: Notifier, observer: Any) -> Notifier:
        """Attach an observer, reactivating the notifier if it was canceled."""
        current = self.store.find(notifier.request)
        if current is None:
            logger.debug(f"Observing a finished {notifier.operation_type.value}, nothing to deliver")
            return notifiers.observe(notifier, observer)

        if not current.is_active:
            current = self._reactivate(current)
        return self.store.upsert(notifiers.observe(current, observer))

    def unobserve(self, notifier: Notifier, observer: Any) -> Notifier:
        """Detach an observer without any network effect.

        Raises:
            ObserverNotAttachedError: If the observer is not active on the notifier
        """
        current = self.store.find(notifier.request) or notifier
        if not notifiers.has_active_observer(current, observer):
            raise ObserverNotAttachedError()

        updated = notifiers.unobserve(current, observer)
        if notifier.request in self.store:
            self.store.upsert(updated)
        return updated

    def unobserve_or_cancel(self, notifier: Notifier, observer: Any) -> None:
        """Detach the observer, or cancel the notifier if it is the last one."""
        current = self.store.find(notifier.request)
        if current is None or not current.is_active:
            return
        if not notifiers.has_active_observer(current, observer):
            logger.debug("Observer already detached, nothing to do")
            return

        if len(current.active_observers) == 1:
            self.cancel(current)
        else:
            self.unobserve(current, observer)

    def cancel(self, notifier: Notifier) -> None:
        """Cancel the notifier.

        Every observer receives a Cancel (or an Abort if the cancellation
        fails); a subscription is unsubscribed on the server first. No-op if
        the notifier is finished or already being canceled, except that a
        canceled subscription is unsubscribed again, which is how callers
        retry after an unsubscribe timeout.
        """
        current = self.store.find(notifier.request)
        if current is None:
            return
        if not current.is_active:
            if current.request_status == RequestStatus.CANCELING:
                logger.debug("Retrying unsubscribe")
                self._unsubscribe(current)
            return

        if current.is_subscription:
            self._cancel_subscription(current)
        else:
            self._cancel_query_or_mutation(current)

    # =========================================================================
    # Sending
    # =========================================================================

    def _send_new(self, request: Request, observer: Any = None) -> Notifier:
        notifier = Notifier.create(request)
        if observer is not None:
            notifier = notifiers.observe(notifier, observer)
        notifier = self.store.upsert(notifier)
        logger.debug(f"New {notifier.operation_type.value} notifier")

        if self.channel_state == ChannelState.JOINED:
            self._push_request(notifier)
        elif self.channel_state == ChannelState.UNJOINED:
            self._connect_or_join()

        return self.store.find(request) or notifier

    def _reactivate(self, notifier: Notifier) -> Notifier:
        # A subscribe still in flight gets no unsubscribe round trip, which is
        # where pending Cancel events are normally flushed
        if notifier.request_status == RequestStatus.SENDING:
            notifier = notifiers.flush_canceled(notifier)
        logger.debug(f"Reactivating {notifier.operation_type.value} ({notifier.request_status.value})")
        return self.store.upsert(notifiers.reactivate(notifier))

    def _retry(self, notifier: Notifier) -> None:
        logger.debug(f"Retrying {notifier.operation_type.value} ({notifier.request_status.value})")
        if notifier.request_status == RequestStatus.CANCELING:
            # Unsubscribe ok resubscribes an active notifier
            self._unsubscribe(notifier)
        else:
            self._push_request(notifier)

    def _push_request(self, notifier: Notifier) -> None:
        if notifier.is_subscription:
            self._subscribe(notifier)
        else:
            self._push_query_or_mutation(notifier)

    def _push_query_or_mutation(self, notifier: Notifier) -> None:
        notifiers.notify_active(notifier, Event.start(notifier))
        self._push_doc(notifier, self._on_query_or_mutation_succeed)

    def _subscribe(self, notifier: Notifier) -> None:
        self._push_doc(notifier, self._on_subscribe)

    def _push_doc(self, notifier: Notifier, on_succeed: NotifierHandler) -> None:
        sending = self.store.upsert(notifiers.with_status(notifier, RequestStatus.SENDING))
        push = self.channel.push(self.config.doc_event, sending.request.to_payload())
        self._handle_push(
            push,
            sending.request,
            on_ok=on_succeed,
            on_error=self._on_request_error,
            on_timeout=self._on_request_timeout,
            graphql=True,
        )

    def _handle_push(
        self,
        push: Push,
        request: Request,
        on_ok: NotifierHandler,
        on_error: NotifierHandler,
        on_timeout: NotifierHandler,
        graphql: bool = False,
    ) -> None:
        handlers = {
            PushStatus.OK: on_ok,
            PushStatus.ERROR: on_error,
            PushStatus.TIMEOUT: on_timeout,
        }

        def receiver(status: PushStatus) -> Callable[..., None]:
            def on_reply(payload: Any = None) -> None:
                reply = decode_reply(status, payload, graphql=graphql)
                self._dispatch_reply(request, reply, handlers)

            return on_reply

        for status in PushStatus:
            push.receive(status.value, receiver(status))

    def _dispatch_reply(
        self,
        request: Request,
        reply: Reply,
        handlers: dict[PushStatus, NotifierHandler],
    ) -> None:
        notifier = self.store.find(request)
        if notifier is None:
            logger.debug(f"Dropping {reply.status.value} reply for a notifier no longer stored")
            return
        handlers[reply.status](notifier, reply.payload)

    # =========================================================================
    # Doc push replies
    # =========================================================================

    def _on_query_or_mutation_succeed(self, notifier: Notifier, response: Any) -> None:
        sent = self.store.upsert(notifiers.with_status(notifier, RequestStatus.SENT))
        notifiers.notify_active(sent, Event.result(response))
        self.store.remove(sent.request)

    def _on_subscribe(self, notifier: Notifier, response: Any) -> None:
        if has_graphql_errors(response):
            self._abort(notifier, RequestError(format_graphql_errors(response)))
            return

        subscription_id = response.get("subscriptionId") if isinstance(response, dict) else None
        subscribed = self.store.upsert(notifiers.subscribed(notifier, subscription_id))
        logger.debug(f"Subscribed: {subscription_id}")

        if subscribed.is_active:
            notifiers.notify_active(subscribed, Event.start(subscribed))
        else:
            self._unsubscribe(subscribed)

    def _on_request_error(self, notifier: Notifier, error: Any) -> None:
        logger.debug(f"{notifier.operation_type.value} push failed: {error}")
        self._abort(notifier, RequestError(error))

    def _on_request_timeout(self, notifier: Notifier, _payload: Any = None) -> None:
        logger.debug(f"{notifier.operation_type.value} push timed out")
        if not notifier.is_active:
            # Canceled while subscribing; no ack will come to unsubscribe
            self._cancel_pending(notifier)
            return
        timed_out = self.store.upsert(notifiers.timed_out(notifier))
        notifiers.notify_active(timed_out, Event.error(RequestError("timeout")))

    def _abort(self, notifier: Notifier, error: Exception) -> None:
        notifiers.notify_all(notifier, Event.abort(error))
        self.store.remove(notifier.request)

    # =========================================================================
    # Cancellation
    # =========================================================================

    def _cancel_query_or_mutation(self, notifier: Notifier) -> None:
        # Once sent, the Result has already been delivered
        if notifier.request_status in (RequestStatus.PENDING, RequestStatus.SENDING):
            self._cancel_pending(notifier)

    def _cancel_subscription(self, notifier: Notifier) -> None:
        status = notifier.request_status
        if status == RequestStatus.PENDING or (status == RequestStatus.SENDING and notifier.push_timed_out):
            self._cancel_pending(notifier)
            return

        canceled = self.store.upsert(notifiers.cancel(notifier))
        # While sending, the subscribe reply starts the unsubscribe; while
        # canceling, the unsubscribe in flight will see the notifier inactive
        if status == RequestStatus.SENT or canceled.push_timed_out:
            self._unsubscribe(canceled)

    def _cancel_pending(self, notifier: Notifier) -> None:
        notifiers.flush_canceled(notifiers.cancel(notifier))
        self.store.remove(notifier.request)

    def _unsubscribe(self, notifier: Notifier) -> None:
        canceling = self.store.upsert(notifiers.with_status(notifier, RequestStatus.CANCELING))
        push = self.channel.push(
            self.config.unsubscribe_event,
            {"subscriptionId": canceling.subscription_id},
        )
        self._handle_push(
            push,
            canceling.request,
            on_ok=self._on_unsubscribe_succeed,
            on_error=self._on_unsubscribe_error,
            on_timeout=self._on_unsubscribe_timeout,
        )

    def _on_unsubscribe_succeed(self, notifier: Notifier, _payload: Any = None) -> None:
        if notifier.is_active:
            logger.debug("Unsubscribed a reactivated subscription, resubscribing")
            self._subscribe(self.store.upsert(notifiers.reset(notifier)))
        else:
            notifiers.flush_canceled(notifier)
            self.store.remove(notifier.request)

    def _on_unsubscribe_error(self, notifier: Notifier, error: Any) -> None:
        self._abort(notifier, UnsubscribeError(error))

    def _on_unsubscribe_timeout(self, notifier: Notifier, _payload: Any = None) -> None:
        # Stays canceling; the caller may cancel again
        timed_out = self.store.upsert(notifiers.timed_out(notifier))
        notifiers.notify_canceled(timed_out, Event.error(UnsubscribeError("timeout")))

    # =========================================================================
    # Channel and connection
    # =========================================================================

    def _connect_or_join(self) -> None:
        if self.transport.is_connected:
            self._join_channel()
        else:
            # Transports ignore connect() while a connection is being made
            self.transport.connect()

    def _join_channel(self) -> None:
        self.channel_state = ChannelState.JOINING
        push = self.channel.join()
        push.receive(PushStatus.OK.value, self._on_join_succeed)
        push.receive(PushStatus.ERROR.value, self._on_join_error)
        push.receive(PushStatus.TIMEOUT.value, self._on_join_timeout)

    def _on_join_succeed(self, _payload: Any = None) -> None:
        self.channel_state = ChannelState.JOINED
        logger.info(f"Joined {self.config.channel_topic}")
        for notifier in self.store:
            current = self.store.find(notifier.request)
            if current is not None and current.request_status == RequestStatus.PENDING:
                self._push_request(current)

    def _on_join_error(self, error: Any = None) -> None:
        logger.warning(f"Failed to join {self.config.channel_topic}: {error}")
        self._notify_join_failure(error)

    def _on_join_timeout(self, _payload: Any = None) -> None:
        logger.warning(f"Timed out joining {self.config.channel_topic}")
        self._notify_join_failure("timeout")

    def _notify_join_failure(self, reason: Any) -> None:
        # A channel failure is not attributable to a single request
        self.channel_state = ChannelState.UNJOINED
        for notifier in self.store:
            notifiers.notify_active(notifier, Event.error(ChannelJoinError(reason)))

    def _on_open(self) -> None:
        if self.channel_state == ChannelState.UNJOINED and len(self.store) > 0:
            self._join_channel()

    def _on_close(self) -> None:
        logger.info(f"Connection closed with {len(self.store)} operation(s) outstanding")
        self.channel_state = ChannelState.UNJOINED
        for notifier in self.store:
            current = self.store.find(notifier.request)
            if current is not None:
                self._on_connection_close(current)

    def _on_connection_close(self, notifier: Notifier) -> None:
        if not notifier.is_active:
            self._abort(notifier, ConnectionCloseError())
        elif notifier.request_status == RequestStatus.PENDING:
            # Never pushed, replayed once the channel is joined again
            return
        elif notifier.operation_type == OperationType.MUTATION:
            # Effect unknown, must not be retried silently
            self._abort(notifier, ConnectionCloseError())
        else:
            notifiers.notify_all(notifier, Event.error(ConnectionCloseError()))
            self.store.upsert(notifiers.reset(notifier))

    def _on_message(self, message: dict[str, Any]) -> None:
        data = decode_data_message(message, self.config.data_event)
        if data is None:
            return

        notifier = self.store.find_by_subscription_id(data.payload.subscription_id)
        if notifier is None or notifier.request_status != RequestStatus.SENT:
            logger.debug(f"Dropping data for subscription {data.payload.subscription_id}")
            return
        notifiers.notify_active(notifier, Event.result(data.payload.result))
