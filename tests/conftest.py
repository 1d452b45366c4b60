"""Shared fixtures: a recording in-memory store, a controllable clock and wired services."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from social_feed.config import Settings
from social_feed.dependencies import Services
from social_feed.errors import StorageError
from social_feed.services.activity import ActivityNotifier, BackgroundDispatcher
from social_feed.services.feed import FeedService
from social_feed.services.notifications import NotificationService
from social_feed.services.profiles import ProfileService
from social_feed.services.relationships import RelationshipService
from social_feed.services.threads import ThreadService
from social_feed.store.memory import InMemoryDocumentStore


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingStore(InMemoryDocumentStore):
    """
    In-memory store that records every call and can be told to fail.

    ``calls`` holds ``(method, collection)`` tuples in call order.
    ``fail(method, collection, document_id)`` makes matching calls raise
    ``StorageError`` until ``heal()``.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []
        self._failures: list[tuple[str, Optional[str], Optional[str]]] = []

    def fail(self, method: str, collection: Optional[str] = None, document_id: Optional[str] = None) -> None:
        self._failures.append((method, collection, document_id))

    def heal(self) -> None:
        self._failures.clear()

    def reset_calls(self) -> None:
        self.calls.clear()

    def count_calls(self, method: str, collection: str) -> int:
        return sum(1 for call in self.calls if call == (method, collection))

    def _record(self, method: str, collection: str, document_id: Optional[str] = None) -> None:
        self.calls.append((method, collection))
        for f_method, f_collection, f_id in self._failures:
            if f_method != method:
                continue
            if f_collection is not None and f_collection != collection:
                continue
            if f_id is not None and f_id != document_id:
                continue
            raise StorageError(f"injected failure: {method} on {collection}")

    async def create_document(self, collection, data, *, document_id=None, permissions=None):
        self._record("create_document", collection, document_id)
        return await super().create_document(
            collection, data, document_id=document_id, permissions=permissions
        )

    async def get_document(self, collection, document_id):
        self._record("get_document", collection, document_id)
        return await super().get_document(collection, document_id)

    async def update_document(self, collection, document_id, data):
        self._record("update_document", collection, document_id)
        return await super().update_document(collection, document_id, data)

    async def increment_field(self, collection, document_id, attribute, delta, *, minimum=0):
        self._record("increment_field", collection, document_id)
        return await super().increment_field(
            collection, document_id, attribute, delta, minimum=minimum
        )

    async def delete_document(self, collection, document_id):
        self._record("delete_document", collection, document_id)
        return await super().delete_document(collection, document_id)

    async def list_documents(self, collection, queries=None):
        self._record("list_documents", collection)
        return await super().list_documents(collection, queries)

    async def count_documents(self, collection, queries=None):
        self._record("count_documents", collection)
        return await super().count_documents(collection, queries)


@pytest.fixture
def settings():
    return Settings(store_backend="memory", otel_enabled=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def services(store, settings, clock):
    dispatcher = BackgroundDispatcher()
    notifications = NotificationService(store, settings, clock)
    notifier = ActivityNotifier(notifications, dispatcher)
    return Services(
        store=store,
        dispatcher=dispatcher,
        profiles=ProfileService(store, settings, clock),
        relationships=RelationshipService(store, notifier, clock),
        feed=FeedService(store, settings),
        notifications=notifications,
        threads=ThreadService(store, settings, notifier, clock),
    )


@pytest.fixture
async def users(services, store):
    """Profiles for alice, bob and carol; maps username -> user id."""
    ids = {}
    for name in ("alice", "bob", "carol"):
        user_id = f"user-{name}"
        await services.profiles.create_profile(user_id, name, name.title())
        ids[name] = user_id
    store.reset_calls()
    return ids
