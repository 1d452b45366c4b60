import pytest

from social_feed.errors import NotFound, ValidationError
from social_feed.store.base import Collections


async def _notification_types(services, user_id):
    page = await services.notifications.get_notifications(user_id)
    return sorted(n.type.value for n in page.notifications)


async def test_thread_requires_content_or_media(services, users):
    with pytest.raises(ValidationError):
        await services.threads.create_thread(users["alice"], "   ")

    media_only = await services.threads.create_thread(users["alice"], "", ["media-1"])
    assert media_only.media_ids == ["media-1"]
    assert media_only.content == ""


async def test_thread_too_long_is_rejected(services, users, store):
    with pytest.raises(ValidationError):
        await services.threads.create_thread(users["alice"], "x" * 501)
    assert await store.count_documents(Collections.THREADS) == 0


async def test_thread_content_is_sanitized(services, users):
    thread = await services.threads.create_thread(
        users["alice"], "  <b>hi</b> javascript:alert(1)\n\n\n\nbye  "
    )
    assert thread.content == "bhi/b alert(1)\n\nbye"


async def test_reply_bumps_count_and_notifies_parent_author(services, users, store):
    parent = await services.threads.create_thread(users["bob"], "parent")

    reply = await services.threads.create_reply(users["alice"], parent.id, "nice one")
    await services.dispatcher.drain()

    assert reply.parent_thread_id == parent.id
    doc = await store.get_document(Collections.THREADS, parent.id)
    assert doc["reply_count"] == 1
    page = await services.notifications.get_notifications(users["bob"])
    assert [(n.type.value, n.message) for n in page.notifications] == [("reply", "nice one")]


async def test_reply_to_missing_parent(services, users, store):
    with pytest.raises(NotFound, match="Parent thread not found"):
        await services.threads.create_reply(users["alice"], "missing", "hello?")
    assert await store.count_documents(Collections.THREADS) == 0


async def test_reply_survives_counter_failure(services, users, store):
    parent = await services.threads.create_thread(users["bob"], "parent")
    store.fail("increment_field", Collections.THREADS)

    reply = await services.threads.create_reply(users["alice"], parent.id, "still here")

    assert reply.id
    store.heal()
    assert (await store.get_document(Collections.THREADS, parent.id))["reply_count"] == 0


async def test_own_reply_does_not_notify(services, users):
    parent = await services.threads.create_thread(users["bob"], "parent")

    await services.threads.create_reply(users["bob"], parent.id, "replying to myself")
    await services.dispatcher.drain()

    assert await _notification_types(services, users["bob"]) == []


async def test_mentions_notify_each_existing_user_once(services, users, store):
    await services.threads.create_thread(
        users["alice"], "hey @bob and @Carol, also @bob again and @nobody_here"
    )
    await services.dispatcher.drain()

    assert await _notification_types(services, users["bob"]) == ["mention"]
    assert await _notification_types(services, users["carol"]) == ["mention"]
    assert await store.count_documents(Collections.NOTIFICATIONS) == 2


async def test_reply_mentioning_parent_author_only_sends_reply(services, users):
    parent = await services.threads.create_thread(users["bob"], "parent")

    await services.threads.create_reply(users["alice"], parent.id, "@bob @carol look")
    await services.dispatcher.drain()

    assert await _notification_types(services, users["bob"]) == ["reply"]
    assert await _notification_types(services, users["carol"]) == ["mention"]


async def test_get_thread_includes_author(services, users):
    created = await services.threads.create_thread(users["carol"], "with author")

    thread = await services.threads.get_thread(created.id)

    assert thread.author.username == "carol"
    assert thread.is_liked is None
    with pytest.raises(NotFound):
        await services.threads.get_thread("missing")
