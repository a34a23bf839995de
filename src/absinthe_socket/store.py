"""In-flight notifiers of one socket, indexed by request identity."""

from __future__ import annotations

from collections.abc import Iterator

from .notifier import Notifier
from .request import Request


class NotifierStore:
    """Notifiers keyed by request.

    Values are replaced wholesale; a notifier read from the store is a
    snapshot and stays unchanged when the store is updated.
    """

    def __init__(self) -> None:
        self._notifiers: dict[tuple[str, str], Notifier] = {}

    def upsert(self, notifier: Notifier) -> Notifier:
        self._notifiers[notifier.request.key] = notifier
        return notifier

    def find(self, request: Request) -> Notifier | None:
        return self._notifiers.get(request.key)

    def find_by_subscription_id(self, subscription_id: str) -> Notifier | None:
        for notifier in self._notifiers.values():
            if notifier.subscription_id is not None and notifier.subscription_id == subscription_id:
                return notifier
        return None

    def remove(self, request: Request) -> Notifier | None:
        return self._notifiers.pop(request.key, None)

    def __iter__(self) -> Iterator[Notifier]:
        # Snapshot, so callers may update the store while iterating
        return iter(list(self._notifiers.values()))

    def __len__(self) -> int:
        return len(self._notifiers)

    def __contains__(self, request: object) -> bool:
        return isinstance(request, Request) and request.key in self._notifiers
