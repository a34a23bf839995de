"""Async bridge over AbsintheSocket.

The socket itself only knows observer callbacks. This module adapts them to
asyncio:
- NotifierStream: one observer on one notifier, consumed with `async for`
- SocketLink: sends documents and hands back streams or awaited results

Usage:
    link = SocketLink(socket)

    data = await link.execute("query { user(id: 1) { name } }")

    async with link.subscribe(gql_document, {"userId": 10}) as updates:
        async for result in updates:
            print(result)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from graphql import DocumentNode, print_ast

from .errors import OperationCanceledError
from .notifier import Notifier, Observer
from .request import OperationType, Request

if TYPE_CHECKING:
    from .session import AbsintheSocket

logger = logging.getLogger(__name__)

# Marks the end of a stream in its queue
_END = object()


@dataclass(frozen=True)
class _Failure:
    error: Exception


class NotifierStream:
    """Async iterator over the results of a notifier.

    Attaches an observer on creation. Results are yielded in order:
    - queries and mutations end after their single result
    - subscriptions run until canceled or aborted
    - Abort raises the abort error from the iterator
    - Error is reported to on_error; it also ends query/mutation streams by
      raising, while subscriptions keep running
    - Cancel ends the stream

    aclose() (or leaving the `async with` block) detaches the observer,
    canceling the operation if no other observer remains.
    """

    def __init__(
        self,
        socket: AbsintheSocket,
        source: Notifier | Request,
        on_start: Callable[[Notifier], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        """Follow an existing notifier, or send a request and follow it.

        A request is sent with the observer already attached, so Start is
        seen even when the channel is joined and the push goes out at once.
        """
        self._socket = socket
        self._is_subscription = source.operation_type == OperationType.SUBSCRIPTION
        self._user_on_start = on_start
        self._user_on_error = on_error
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._finished = False
        self._observer = Observer(
            on_start=self._on_start,
            on_result=self._on_result,
            on_error=self._on_error,
            on_abort=self._on_abort,
            on_cancel=self._on_cancel,
        )
        if isinstance(source, Request):
            self.notifier = socket.send(source, self._observer)
        else:
            self.notifier = socket.observe(source, self._observer)

    @property
    def observer(self) -> Observer:
        return self._observer

    @property
    def finished(self) -> bool:
        return self._finished

    # Observer callbacks

    def _on_start(self, notifier: Notifier) -> None:
        if self._user_on_start:
            self._user_on_start(notifier)

    def _on_result(self, result: Any) -> None:
        self._queue.put_nowait(result)
        if not self._is_subscription:
            self._finish()

    def _on_error(self, error: Exception) -> None:
        if self._user_on_error:
            self._user_on_error(error)
        else:
            logger.warning(f"Operation error: {error}")

        if not self._is_subscription:
            self._queue.put_nowait(_Failure(error))
            self._finish(detach=True)

    def _on_abort(self, error: Exception) -> None:
        self._queue.put_nowait(_Failure(error))
        self._finish()

    def _on_cancel(self) -> None:
        self._finish()

    def _finish(self, detach: bool = False) -> None:
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(_END)
        if detach:
            self._socket.unobserve_or_cancel(self.notifier, self._observer)

    # Async iteration

    def __aiter__(self) -> NotifierStream:
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _END:
            # Keep the stream exhausted for later calls
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.error
        return item

    async def aclose(self) -> None:
        """Stop following the notifier."""
        if self._finished:
            return
        self._finish(detach=True)

    async def __aenter__(self) -> NotifierStream:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


class SocketLink:
    """Terminating link sending GraphQL documents through an AbsintheSocket.

    Documents may be operation text or graphql-core DocumentNode objects.
    on_error and on_start apply to every operation sent through the link.
    """

    def __init__(
        self,
        socket: AbsintheSocket,
        on_error: Callable[[Exception], None] | None = None,
        on_start: Callable[[Notifier], None] | None = None,
    ) -> None:
        self.socket = socket
        self._on_error = on_error
        self._on_start = on_start

    @staticmethod
    def to_request(document: str | DocumentNode, variables: dict[str, Any] | None = None) -> Request:
        """Build a request from operation text or a parsed document."""
        operation = print_ast(document) if isinstance(document, DocumentNode) else document
        return Request(operation=operation, variables=variables)

    def request(
        self,
        document: str | DocumentNode,
        variables: dict[str, Any] | None = None,
    ) -> NotifierStream:
        """Send the operation and return a stream following it.

        Raises:
            FormatError: If the operation is not a query, mutation or subscription
        """
        return NotifierStream(
            self.socket,
            self.to_request(document, variables),
            on_start=self._on_start,
            on_error=self._on_error,
        )

    def subscribe(
        self,
        document: str | DocumentNode,
        variables: dict[str, Any] | None = None,
    ) -> NotifierStream:
        """Start a subscription; iterate the returned stream for updates."""
        return self.request(document, variables)

    async def execute(
        self,
        document: str | DocumentNode,
        variables: dict[str, Any] | None = None,
    ) -> Any:
        """Run a query or mutation and return its response.

        Raises:
            RequestError: If the server rejected the request or it timed out
            ConnectionCloseError: If the connection closed during a mutation
            OperationCanceledError: If the operation was canceled elsewhere
        """
        async with self.request(document, variables) as stream:
            async for result in stream:
                return result
        raise OperationCanceledError()
