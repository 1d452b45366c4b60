import pytest

from social_feed.errors import InvalidCursor
from social_feed.pagination import clamp_limit, split_page
from social_feed.services.feed import attach_like_status
from social_feed.store.base import Collections


async def _collect_pages(fetch, limit):
    pages, cursor = [], None
    while True:
        page = await fetch(cursor=cursor, limit=limit)
        pages.append(page)
        if not page.has_more:
            return pages
        cursor = page.next_cursor


async def test_public_feed_pages_without_gaps_or_duplicates(services, users):
    # Frozen clock: every thread shares one created_at, ordering falls to the id tie-break
    for i in range(45):
        await services.threads.create_thread(users["alice"], f"post {i}")

    pages = await _collect_pages(services.feed.get_public_feed, 20)

    assert [len(p.threads) for p in pages] == [20, 20, 5]
    assert [p.has_more for p in pages] == [True, True, False]
    assert pages[-1].next_cursor is None
    ids = [t.id for p in pages for t in p.threads]
    assert len(ids) == len(set(ids)) == 45


async def test_public_feed_newest_first_and_excludes_replies(services, users, clock):
    older = await services.threads.create_thread(users["alice"], "older")
    clock.advance(10)
    newer = await services.threads.create_thread(users["bob"], "newer")
    clock.advance(10)
    await services.threads.create_reply(users["carol"], older.id, "a reply")

    page = await services.feed.get_public_feed()

    assert [t.id for t in page.threads] == [newer.id, older.id]
    assert page.threads[0].author.username == "bob"
    assert page.has_more is False


async def test_cursor_is_stable_under_new_inserts(services, users, clock):
    created = []
    for i in range(10):
        created.append(await services.threads.create_thread(users["alice"], f"post {i}"))
        clock.advance(1)
    expected = [t.id for t in reversed(created)]

    first = await services.feed.get_public_feed(limit=4)
    for i in range(3):
        clock.advance(1)
        await services.threads.create_thread(users["bob"], f"late {i}")
    second = await services.feed.get_public_feed(cursor=first.next_cursor, limit=4)

    assert [t.id for t in first.threads] == expected[:4]
    assert [t.id for t in second.threads] == expected[4:8]


async def test_unknown_cursor_is_rejected(services, users):
    await services.threads.create_thread(users["alice"], "hi")
    with pytest.raises(InvalidCursor):
        await services.feed.get_public_feed(cursor="not-a-thread")


async def test_threads_without_author_profile_are_dropped(services, users, store, clock):
    await services.threads.create_thread(users["alice"], "visible")
    await store.create_document(
        Collections.THREADS,
        {"author_id": "user-ghost", "content": "orphan", "media_ids": [],
         "parent_thread_id": None, "reply_count": 0, "like_count": 0, "created_at": clock()},
    )

    page = await services.feed.get_public_feed()

    assert [t.content for t in page.threads] == ["visible"]


async def test_feed_resolves_authors_with_one_lookup(services, users, store):
    for name in ("alice", "bob", "carol", "alice"):
        await services.threads.create_thread(users[name], f"from {name}")
    store.reset_calls()

    await services.feed.get_public_feed()

    assert store.count_calls("list_documents", Collections.PROFILES) == 1
    assert store.count_calls("list_documents", Collections.THREADS) == 1


async def test_following_feed_empty_when_following_nobody(services, users, store):
    await services.threads.create_thread(users["bob"], "unseen")
    store.reset_calls()

    page = await services.feed.get_following_feed(users["alice"])

    assert page.threads == []
    assert page.has_more is False
    assert page.following_count == 0
    assert store.count_calls("list_documents", Collections.THREADS) == 0


async def test_following_feed_only_followed_authors(services, users, clock):
    await services.relationships.toggle_follow(users["alice"], users["bob"])
    await services.threads.create_thread(users["bob"], "from bob")
    clock.advance(1)
    await services.threads.create_thread(users["carol"], "from carol")
    clock.advance(1)
    await services.threads.create_thread(users["alice"], "from alice")

    page = await services.feed.get_following_feed(users["alice"])

    assert [t.content for t in page.threads] == ["from bob"]
    assert page.following_count == 1


async def test_following_feed_respects_fanout_ceiling(services, users, settings, clock):
    settings.following_fanout_ceiling = 1
    await services.relationships.toggle_follow(users["alice"], users["bob"])
    clock.advance(1)
    await services.relationships.toggle_follow(users["alice"], users["carol"])
    await services.threads.create_thread(users["bob"], "from bob")
    await services.threads.create_thread(users["carol"], "from carol")

    page = await services.feed.get_following_feed(users["alice"])

    # Most recent follow wins
    assert [t.content for t in page.threads] == ["from carol"]
    assert page.following_count == 1


async def test_author_feed_and_replies(services, users, clock):
    parent = await services.threads.create_thread(users["alice"], "parent")
    clock.advance(1)
    await services.threads.create_thread(users["bob"], "someone else")
    for name in ("bob", "carol"):
        clock.advance(1)
        await services.threads.create_reply(users[name], parent.id, f"reply from {name}")

    author_page = await services.feed.get_author_feed(users["alice"])
    replies = await services.feed.get_replies(parent.id)

    assert [t.content for t in author_page.threads] == ["parent"]
    assert [t.content for t in replies.threads] == ["reply from bob", "reply from carol"]


async def test_attach_like_status(services, users):
    a = await services.threads.create_thread(users["bob"], "A")
    await services.threads.create_thread(users["bob"], "B")
    await services.relationships.toggle_like(users["alice"], a.id)

    page = await services.feed.get_public_feed()
    anonymous = await attach_like_status(page.model_copy(deep=True), None, services.relationships)
    viewed = await attach_like_status(page, users["alice"], services.relationships)

    assert all(t.is_liked is None for t in anonymous.threads)
    assert {t.content: t.is_liked for t in viewed.threads} == {"A": True, "B": False}


def test_clamp_limit():
    assert clamp_limit(None, 20, 50) == 20
    assert clamp_limit(0, 20, 50) == 1
    assert clamp_limit(500, 20, 50) == 50
    assert clamp_limit(7, 20, 50) == 7


def test_split_page():
    docs = [{"id": str(i)} for i in range(3)]
    assert split_page(docs, 2) == (docs[:2], "1", True)
    assert split_page(docs, 3) == (docs, None, False)
    assert split_page([], 3) == ([], None, False)


async def test_author_replies_page_across_tied_timestamps(services, users, clock):
    first = await services.threads.create_thread(users["alice"], "first")
    second = await services.threads.create_thread(users["bob"], "second")
    await services.threads.create_thread(users["carol"], "top level, not a reply")
    # Frozen clock: all replies share one created_at
    for i in range(7):
        parent = first if i % 2 else second
        await services.threads.create_reply(users["carol"], parent.id, f"reply {i}")
    await services.threads.create_reply(users["bob"], first.id, "from bob")

    pages = await _collect_pages(
        lambda **kw: services.feed.get_author_replies(users["carol"], **kw), 3
    )

    assert [len(p.threads) for p in pages] == [3, 3, 1]
    ids = [t.id for p in pages for t in p.threads]
    assert len(ids) == len(set(ids)) == 7
    assert {t.parent_thread_id for p in pages for t in p.threads} == {first.id, second.id}
    assert all(t.author.username == "carol" for p in pages for t in p.threads)


async def test_author_replies_newest_first(services, users, clock):
    parent = await services.threads.create_thread(users["alice"], "parent")
    clock.advance(1)
    older = await services.threads.create_reply(users["bob"], parent.id, "older")
    clock.advance(1)
    newer = await services.threads.create_reply(users["bob"], parent.id, "newer")

    page = await services.feed.get_author_replies(users["bob"])

    assert [t.id for t in page.threads] == [newer.id, older.id]
    assert (await services.feed.get_author_replies(users["alice"])).threads == []
