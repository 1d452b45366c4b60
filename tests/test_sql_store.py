"""SqlDocumentStore against a throwaway SQLite database (aiosqlite)."""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from social_feed.config import Settings
from social_feed.database import build_engine, init_db
from social_feed.errors import DuplicateDocument, InvalidCursor, NotFound
from social_feed.services.notifications import NotificationService
from social_feed.store.base import Collections
from social_feed.store.query import Query, owner_only
from social_feed.store.sql import SqlDocumentStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def sql_store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'feed.db'}")
    await init_db(engine)
    store = SqlDocumentStore(engine)
    yield store
    await store.close()


def _thread(author_id, created_at, parent=None, **extra):
    return {
        "author_id": author_id,
        "content": extra.pop("content", "hello"),
        "media_ids": [],
        "parent_thread_id": parent,
        "reply_count": 0,
        "like_count": 0,
        "created_at": created_at,
        **extra,
    }


async def test_create_get_update_delete(sql_store):
    doc = await sql_store.create_document(
        Collections.NOTIFICATIONS,
        {"recipient_id": "u1", "actor_id": "u2", "type": "follow", "read": False, "created_at": T0},
        permissions=owner_only("u1"),
    )

    fetched = await sql_store.get_document(Collections.NOTIFICATIONS, doc["id"])
    assert fetched["created_at"] == T0
    assert fetched["permissions"] == owner_only("u1")

    updated = await sql_store.update_document(Collections.NOTIFICATIONS, doc["id"], {"read": True})
    assert updated["read"] is True

    await sql_store.delete_document(Collections.NOTIFICATIONS, doc["id"])
    with pytest.raises(NotFound):
        await sql_store.get_document(Collections.NOTIFICATIONS, doc["id"])
    with pytest.raises(NotFound):
        await sql_store.delete_document(Collections.NOTIFICATIONS, doc["id"])


async def test_edge_uniqueness(sql_store):
    like = {"user_id": "u1", "thread_id": "t1", "created_at": T0}
    await sql_store.create_document(Collections.LIKES, like)

    with pytest.raises(DuplicateDocument):
        await sql_store.create_document(Collections.LIKES, like)
    assert await sql_store.count_documents(Collections.LIKES) == 1


async def test_filters_and_counts(sql_store):
    await sql_store.create_document(Collections.THREADS, _thread("a", T0))
    await sql_store.create_document(Collections.THREADS, _thread("b", T0 + timedelta(seconds=1)))
    parent = await sql_store.create_document(Collections.THREADS, _thread("c", T0))
    await sql_store.create_document(Collections.THREADS, _thread("a", T0, parent=parent["id"]))

    top_level_by_ab = await sql_store.list_documents(
        Collections.THREADS,
        [Query.equal("author_id", ["a", "b"]), Query.is_null("parent_thread_id"), Query.order_desc("created_at")],
    )
    assert [d["author_id"] for d in top_level_by_ab] == ["b", "a"]
    assert await sql_store.count_documents(Collections.THREADS, [Query.equal("author_id", "a")]) == 2
    assert await sql_store.count_documents(
        Collections.THREADS, [Query.greater_than("created_at", T0)]
    ) == 1


async def test_cursor_pagination_with_identical_timestamps(sql_store):
    for i in range(7):
        await sql_store.create_document(Collections.THREADS, _thread("a", T0, content=f"p{i}"))

    seen, cursor = [], None
    while True:
        queries = [Query.order_desc("created_at"), Query.limit(3)]
        if cursor:
            queries.append(Query.cursor_after(cursor))
        page = await sql_store.list_documents(Collections.THREADS, queries)
        if not page:
            break
        seen.extend(d["id"] for d in page)
        cursor = page[-1]["id"]

    assert len(seen) == len(set(seen)) == 7
    assert seen == sorted(seen, reverse=True)


async def test_unknown_cursor(sql_store):
    with pytest.raises(InvalidCursor):
        await sql_store.list_documents(Collections.THREADS, [Query.cursor_after("nope")])


async def test_increment_field_clamps_at_zero(sql_store):
    doc = await sql_store.create_document(Collections.THREADS, _thread("a", T0))

    up = await sql_store.increment_field(Collections.THREADS, doc["id"], "like_count", 2)
    down = await sql_store.increment_field(Collections.THREADS, doc["id"], "like_count", -5)

    assert up["like_count"] == 2
    assert down["like_count"] == 0
    with pytest.raises(NotFound):
        await sql_store.increment_field(Collections.THREADS, "missing", "like_count", 1)


def _profile(username, display_name):
    return {
        "user_id": f"user-{username}",
        "username": username,
        "display_name": display_name,
        "created_at": T0,
    }


async def test_prefix_and_substring_filters(sql_store):
    for username, display_name in [("a_b", "Ann"), ("axb", "Max Power"), ("bob", "Bob Allen")]:
        await sql_store.create_document(Collections.PROFILES, _profile(username, display_name))

    prefix = await sql_store.list_documents(Collections.PROFILES, [Query.starts_with("username", "a_")])
    substring = await sql_store.list_documents(Collections.PROFILES, [Query.contains("display_name", "AL")])
    percent = await sql_store.list_documents(Collections.PROFILES, [Query.contains("display_name", "%")])

    # "_" and "%" are literal characters, not LIKE wildcards
    assert [d["username"] for d in prefix] == ["a_b"]
    assert [d["username"] for d in substring] == ["bob"]
    assert percent == []


async def test_concurrent_duplicate_notifications_store_one(sql_store):
    notifications = NotificationService(sql_store, Settings(store_backend="memory", otel_enabled=False))

    results = await asyncio.gather(
        notifications.notify_like("author", "liker", "t1"),
        notifications.notify_like("author", "liker", "t1"),
    )

    assert sum(r.notification is not None for r in results) == 1
    assert await sql_store.count_documents(Collections.NOTIFICATIONS) == 1
    assert notifications._dedup_locks == {}
