"""Transport adapter contract.

The socket does not speak any wire format itself. It drives a transport
that provides:
- Connection lifecycle: is_connected, connect(), on_open/on_close hooks
- Inbound server-pushed messages via on_message
- Channels: join() and push(event, payload), each answered by exactly one
  of ok / error / timeout on the returned Push

This mirrors the Phoenix JavaScript client, so adapters over a Phoenix
socket are thin. MockSocket is an in-memory implementation for tests.

Replies are decoded once here (decode_reply) so the state machine never has
to inspect payload shapes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class PushStatus(str, Enum):
    """Possible answers to a push."""

    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"


@runtime_checkable
class Push(Protocol):
    """Handle of one request/acknowledgement round trip."""

    def receive(self, status: str, callback: Callable[..., None]) -> Push:
        """Register the callback for one reply status. Returns self for chaining."""
        ...


@runtime_checkable
class Channel(Protocol):
    """Logical, server-multiplexed sub-connection."""

    def join(self) -> Push:
        """Join the channel."""
        ...

    def push(self, event: str, payload: dict[str, Any]) -> Push:
        """Send a message over the joined channel."""
        ...


@runtime_checkable
class SocketTransport(Protocol):
    """Persistent connection the socket runs over."""

    @property
    def is_connected(self) -> bool:
        """Check if the connection is open."""
        ...

    def connect(self) -> None:
        """Open the connection. Ignored if a connection already exists."""
        ...

    def channel(self, topic: str) -> Channel:
        """Create a channel for the given topic."""
        ...

    def on_open(self, callback: Callable[[], None]) -> None: ...

    def on_close(self, callback: Callable[[], None]) -> None: ...

    def on_message(self, callback: Callable[[dict[str, Any]], None]) -> None: ...


# =============================================================================
# Reply and message decoding
# =============================================================================


class ErrorLocation(BaseModel):
    line: int
    column: int


class GraphQLErrorEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    locations: list[ErrorLocation] | None = None

    def __str__(self) -> str:
        if not self.locations:
            return self.message
        locations = "; ".join(f"{loc.line}:{loc.column}" for loc in self.locations)
        return f"{self.message} ({locations})"


class GraphQLErrorsPayload(BaseModel):
    """A GraphQL response carrying an errors list."""

    model_config = ConfigDict(extra="allow")

    errors: list[GraphQLErrorEntry]


def format_graphql_errors(payload: dict[str, Any]) -> str:
    """Render the errors of a GraphQL response, one per line.

    Entries not shaped like GraphQL errors are rendered as they came.
    """
    try:
        parsed = GraphQLErrorsPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Malformed GraphQL errors: {e}")
        return str(payload.get("errors"))
    return "\n".join(str(error) for error in parsed.errors)


def has_graphql_errors(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("errors"), list)


@dataclass(frozen=True)
class Reply:
    """A decoded push reply."""

    status: PushStatus
    payload: Any = None


def decode_reply(status: PushStatus, payload: Any = None, *, graphql: bool = False) -> Reply:
    """Decode a raw push reply.

    For doc pushes (graphql=True) the server reports GraphQL errors as an
    error reply; those are successful GraphQL responses and are decoded as
    ok so the caller can render partial failures.
    """
    if graphql and status == PushStatus.ERROR and has_graphql_errors(payload):
        return Reply(PushStatus.OK, payload)
    return Reply(status, payload)


class SubscriptionDataPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(alias="subscriptionId")
    result: Any = None


class SubscriptionDataMessage(BaseModel):
    """Server-pushed update for an active subscription."""

    event: str
    payload: SubscriptionDataPayload


def decode_data_message(message: dict[str, Any], data_event: str) -> SubscriptionDataMessage | None:
    """Decode a subscription data message, or None if the message is something else."""
    if message.get("event") != data_event:
        return None
    try:
        return SubscriptionDataMessage.model_validate(message)
    except ValidationError as e:
        logger.warning(f"Malformed {data_event} message: {e}")
        return None


# =============================================================================
# In-memory transport
# =============================================================================


class MockPush:
    """Push whose reply is triggered explicitly with reply()."""

    def __init__(self, event: str | None = None, payload: dict[str, Any] | None = None):
        self.event = event
        self.payload = payload or {}
        self._callbacks: dict[str, Callable[..., None]] = {}

    def receive(self, status: str, callback: Callable[..., None]) -> MockPush:
        self._callbacks[PushStatus(status).value] = callback
        return self

    def reply(self, status: PushStatus | str, payload: Any = None) -> None:
        """Fire the callback registered for status."""
        status = PushStatus(status)
        callback = self._callbacks.get(status.value)
        if callback is None:
            return
        if status == PushStatus.TIMEOUT:
            callback()
        else:
            callback(payload)


class MockChannel:
    """Channel recording joins and pushes."""

    def __init__(self, topic: str):
        self.topic = topic
        self.joins: list[MockPush] = []
        self.pushes: list[MockPush] = []

    def join(self) -> MockPush:
        push = MockPush()
        self.joins.append(push)
        return push

    def push(self, event: str, payload: dict[str, Any]) -> MockPush:
        push = MockPush(event, payload)
        self.pushes.append(push)
        return push

    def pushes_for(self, event: str) -> list[MockPush]:
        return [p for p in self.pushes if p.event == event]


@dataclass
class MockSocket:
    """In-memory SocketTransport.

    Nothing happens on its own: tests open/close the connection, answer
    pushes and inject server messages explicitly.

    Usage:
        transport = MockSocket()
        socket = AbsintheSocket(transport)
        notifier = socket.send(request)

        transport.open()                       # socket joins the channel
        transport.last_channel.joins[-1].reply("ok")
        transport.last_channel.pushes[-1].reply("ok", {"data": {...}})
    """

    connected: bool = False
    connect_calls: int = 0
    channels: list[MockChannel] = field(default_factory=list)
    _open_callbacks: list[Callable[[], None]] = field(default_factory=list)
    _close_callbacks: list[Callable[[], None]] = field(default_factory=list)
    _message_callbacks: list[Callable[[dict[str, Any]], None]] = field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def last_channel(self) -> MockChannel:
        return self.channels[-1]

    def connect(self) -> None:
        self.connect_calls += 1

    def channel(self, topic: str) -> MockChannel:
        channel = MockChannel(topic)
        self.channels.append(channel)
        return channel

    def on_open(self, callback: Callable[[], None]) -> None:
        self._open_callbacks.append(callback)

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def on_message(self, callback: Callable[[dict[str, Any]], None]) -> None:
        self._message_callbacks.append(callback)

    # Test drivers

    def open(self) -> None:
        self.connected = True
        for callback in list(self._open_callbacks):
            callback()

    def close(self) -> None:
        self.connected = False
        for callback in list(self._close_callbacks):
            callback()

    def emit(self, message: dict[str, Any]) -> None:
        for callback in list(self._message_callbacks):
            callback(message)
