"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from absinthe_socket import AbsintheSocket, MockSocket, Notifier, Request


class RecordingObserver:
    """Observer recording every lifecycle event it receives."""

    def __init__(self, name: str = "observer") -> None:
        self.name = name
        self.events: list[tuple[str, Any]] = []

    def on_start(self, notifier: Any) -> None:
        self.events.append(("Start", notifier))

    def on_result(self, result: Any) -> None:
        self.events.append(("Result", result))

    def on_error(self, error: Exception) -> None:
        self.events.append(("Error", error))

    def on_abort(self, error: Exception) -> None:
        self.events.append(("Abort", error))

    def on_cancel(self) -> None:
        self.events.append(("Cancel", None))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[Any]:
        return [payload for event_name, payload in self.events if event_name == name]

    def __repr__(self) -> str:
        return f"RecordingObserver({self.name})"


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def transport() -> MockSocket:
    return MockSocket()


@pytest.fixture
def socket(transport: MockSocket) -> AbsintheSocket:
    return AbsintheSocket(transport)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_observer() -> Callable[[str], RecordingObserver]:
    return RecordingObserver


@pytest.fixture
def join(socket: AbsintheSocket, transport: MockSocket) -> Callable[[], None]:
    """Open the connection and acknowledge the channel join."""

    def _join() -> None:
        if not transport.is_connected:
            transport.open()
        socket.channel.joins[-1].reply("ok")

    return _join


@pytest.fixture
def start(
    socket: AbsintheSocket, join: Callable[[], None]
) -> Callable[..., Notifier]:
    """Send an operation, attach the observers and join the channel."""

    def _start(operation: str, *observers: Any, variables: dict[str, Any] | None = None) -> Notifier:
        notifier = socket.send(Request(operation=operation, variables=variables))
        for obs in observers:
            socket.observe(notifier, obs)
        join()
        return socket.store.find(notifier.request) or notifier

    return _start
