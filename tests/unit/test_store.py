"""Tests for NotifierStore."""

from __future__ import annotations

from absinthe_socket import Notifier, NotifierStore, Request, RequestStatus
from absinthe_socket import notifier as notifiers

QUERY = Request(operation="query { a }")
SUBSCRIPTION = Request(operation="subscription { b }")


class TestNotifierStore:
    """Tests for lookup and replacement."""

    def test_upsert_and_find(self) -> None:
        store = NotifierStore()
        notifier = store.upsert(Notifier.create(QUERY))

        assert store.find(QUERY) is notifier
        assert store.find(Request(operation="query { a }")) is notifier
        assert QUERY in store
        assert len(store) == 1

    def test_upsert_replaces(self) -> None:
        """One notifier per request; upsert replaces the stored value."""
        store = NotifierStore()
        original = store.upsert(Notifier.create(QUERY))
        sending = store.upsert(notifiers.with_status(original, RequestStatus.SENDING))

        assert len(store) == 1
        assert store.find(QUERY) is sending
        assert original.request_status == RequestStatus.PENDING

    def test_find_missing(self) -> None:
        assert NotifierStore().find(QUERY) is None

    def test_find_by_subscription_id(self) -> None:
        store = NotifierStore()
        store.upsert(Notifier.create(QUERY))
        subscribed = store.upsert(notifiers.subscribed(Notifier.create(SUBSCRIPTION), "sub1"))

        assert store.find_by_subscription_id("sub1") is subscribed
        assert store.find_by_subscription_id("sub2") is None

    def test_remove(self) -> None:
        store = NotifierStore()
        notifier = store.upsert(Notifier.create(QUERY))

        assert store.remove(QUERY) is notifier
        assert store.remove(QUERY) is None
        assert QUERY not in store

    def test_iteration_is_snapshot(self) -> None:
        """The store can be changed while iterating over it."""
        store = NotifierStore()
        store.upsert(Notifier.create(QUERY))
        store.upsert(Notifier.create(SUBSCRIPTION))

        seen = []
        for notifier in store:
            seen.append(notifier.request)
            store.remove(notifier.request)

        assert seen == [QUERY, SUBSCRIPTION]
        assert len(store) == 0

    def test_contains_rejects_other_types(self) -> None:
        assert "query { a }" not in NotifierStore()
