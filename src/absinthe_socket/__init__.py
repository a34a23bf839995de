"""Absinthe Socket - GraphQL over Phoenix channels.

Sends queries, mutations and subscriptions over a channel transport,
deduplicating identical requests and multiplexing observers onto them.

Two APIs:
- AbsintheSocket: callback-based engine (send / observe / cancel)
- SocketLink: asyncio bridge (await execute(), async for over subscribe())
"""

from .config import SocketConfig
from .errors import (
    AbsintheSocketError,
    ChannelJoinError,
    ConnectionCloseError,
    FormatError,
    ObserverNotAttachedError,
    OperationCanceledError,
    RequestError,
    UnsubscribeError,
)
from .events import Event, EventName
from .link import NotifierStream, SocketLink
from .notifier import Notifier, Observer, RequestStatus
from .request import OperationType, Request, get_operation_type
from .session import AbsintheSocket, ChannelState
from .store import NotifierStore
from .transport import (
    Channel,
    MockChannel,
    MockPush,
    MockSocket,
    Push,
    PushStatus,
    SocketTransport,
)

__all__ = [
    # Engine
    "AbsintheSocket",
    "ChannelState",
    "SocketConfig",
    "NotifierStore",
    # Async bridge
    "SocketLink",
    "NotifierStream",
    # Model
    "Request",
    "OperationType",
    "get_operation_type",
    "Notifier",
    "Observer",
    "RequestStatus",
    "Event",
    "EventName",
    # Transport contract
    "SocketTransport",
    "Channel",
    "Push",
    "PushStatus",
    "MockSocket",
    "MockChannel",
    "MockPush",
    # Errors
    "AbsintheSocketError",
    "FormatError",
    "ObserverNotAttachedError",
    "OperationCanceledError",
    "RequestError",
    "UnsubscribeError",
    "ChannelJoinError",
    "ConnectionCloseError",
]
