"""
Notification service: "someone did something to you".

Lifecycle of a notification:  created (unread) → read, and either state →
deleted by its recipient. Only the recipient may read, update or delete
it; the actor never touches it after creation.

Write path (create_notification):
  1. recipient == actor      → silent success, nothing stored
  2. same (recipient, actor, type[, thread]) inside the dedup window
                             → silent success, nothing stored
  3. otherwise store it unread with recipient-only permissions

Steps 2 and 3 run under a per-key lock, so concurrent calls for the same
key in one process store at most one notification.

Read path (get_notifications):
  one page query, then actor profiles, thread previews and the unread
  total fetched together; notifications whose actor no longer has a
  profile are dropped from the page.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from opentelemetry import trace

from social_feed.config import Settings
from social_feed.errors import NotFound, StorageError, Unauthorized
from social_feed.pagination import clamp_limit, page_queries, split_page
from social_feed.schemas import (
    MarkAllResult,
    Notification,
    NotificationPage,
    NotificationResult,
    NotificationType,
    NotificationWithContext,
    ThreadPreview,
)
from social_feed.services.profiles import fetch_profiles, utcnow
from social_feed.store.base import Collections, DocumentStore
from social_feed.store.query import Query, owner_only
from social_feed.telemetry import (
    DEGRADED_READS_TOTAL,
    NOTIFICATIONS_CREATED_TOTAL,
    NOTIFICATIONS_SUPPRESSED_TOTAL,
)
from social_feed.text import truncate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class NotificationService:
    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        # dedup key -> [lock, number of holders and waiters]
        self._dedup_locks: dict[tuple, list] = {}

    @asynccontextmanager
    async def _dedup_guard(self, key: tuple):
        entry = self._dedup_locks.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._dedup_locks[key]

    # ── create ─────────────────────────────────────────────────────────────

    async def create_notification(
        self,
        *,
        recipient_id: str,
        actor_id: str,
        type: NotificationType,
        thread_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> NotificationResult:
        type = NotificationType(type)
        with tracer.start_as_current_span("create_notification") as span:
            span.set_attribute("notification.type", type.value)
            span.set_attribute("notification.recipient_id", recipient_id)

            if recipient_id == actor_id:
                logger.debug("Skipping self-notification (%s, user=%s)", type.value, actor_id)
                NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="self").inc()
                return NotificationResult(success=True)

            key = (recipient_id, actor_id, type.value, thread_id or None)
            async with self._dedup_guard(key):
                now = self._clock()
                window_start = now - timedelta(seconds=self._settings.notification_dedup_window_seconds)
                duplicate_check = [
                    Query.equal("recipient_id", recipient_id),
                    Query.equal("actor_id", actor_id),
                    Query.equal("type", type.value),
                    Query.greater_than("created_at", window_start),
                    Query.limit(1),
                ]
                if thread_id:
                    duplicate_check.append(Query.equal("thread_id", thread_id))

                if await self._store.list_documents(Collections.NOTIFICATIONS, duplicate_check):
                    logger.debug(
                        "Duplicate notification suppressed (%s, %s -> %s)",
                        type.value, actor_id, recipient_id,
                    )
                    NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="duplicate").inc()
                    return NotificationResult(success=True)

                doc = await self._store.create_document(
                    Collections.NOTIFICATIONS,
                    {
                        "recipient_id": recipient_id,
                        "actor_id": actor_id,
                        "type": type.value,
                        "thread_id": thread_id or None,
                        "message": message or None,
                        "read": False,
                        "created_at": now,
                    },
                    permissions=owner_only(recipient_id),
                )
                NOTIFICATIONS_CREATED_TOTAL.labels(type=type.value).inc()
                logger.info(
                    "Notification created: %s (%s, %s -> %s)",
                    doc["id"], type.value, actor_id, recipient_id,
                )
                return NotificationResult(success=True, notification=Notification.model_validate(doc))

    def _preview(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        return truncate(text, self._settings.notification_preview_length)

    async def notify_like(
        self, thread_author_id: str, liker_id: str, thread_id: str
    ) -> NotificationResult:
        return await self.create_notification(
            recipient_id=thread_author_id,
            actor_id=liker_id,
            type=NotificationType.LIKE,
            thread_id=thread_id,
        )

    async def notify_follow(self, followed_id: str, follower_id: str) -> NotificationResult:
        return await self.create_notification(
            recipient_id=followed_id,
            actor_id=follower_id,
            type=NotificationType.FOLLOW,
        )

    async def notify_reply(
        self,
        thread_author_id: str,
        replier_id: str,
        thread_id: str,
        reply_content: Optional[str] = None,
    ) -> NotificationResult:
        return await self.create_notification(
            recipient_id=thread_author_id,
            actor_id=replier_id,
            type=NotificationType.REPLY,
            thread_id=thread_id,
            message=self._preview(reply_content),
        )

    async def notify_mention(
        self,
        mentioned_id: str,
        mentioner_id: str,
        thread_id: str,
        content: Optional[str] = None,
    ) -> NotificationResult:
        return await self.create_notification(
            recipient_id=mentioned_id,
            actor_id=mentioner_id,
            type=NotificationType.MENTION,
            thread_id=thread_id,
            message=self._preview(content),
        )

    # ── read ───────────────────────────────────────────────────────────────

    async def get_notifications(
        self,
        user_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        unread_only: bool = False,
    ) -> NotificationPage:
        limit = clamp_limit(limit, self._settings.feed_page_size, self._settings.feed_max_page_size)
        with tracer.start_as_current_span("get_notifications") as span:
            span.set_attribute("user.id", user_id)

            queries = [
                Query.equal("recipient_id", user_id),
                Query.order_desc("created_at"),
                *page_queries(limit, cursor),
            ]
            if unread_only:
                queries.append(Query.equal("read", False))

            docs = await self._store.list_documents(Collections.NOTIFICATIONS, queries)
            page, next_cursor, has_more = split_page(docs, limit)

            actor_ids = {doc["actor_id"] for doc in page}
            thread_ids = {doc["thread_id"] for doc in page if doc.get("thread_id")}
            actors, threads, unread_count = await asyncio.gather(
                fetch_profiles(self._store, actor_ids),
                self._fetch_thread_previews(thread_ids),
                self.get_unread_count(user_id),
            )

            notifications = []
            for doc in page:
                actor = actors.get(doc["actor_id"])
                if actor is None:
                    logger.debug("Dropping notification %s: actor %s has no profile",
                                 doc["id"], doc["actor_id"])
                    continue
                notifications.append(
                    NotificationWithContext(
                        **Notification.model_validate(doc).model_dump(),
                        actor=actor,
                        thread=threads.get(doc.get("thread_id")),
                    )
                )

            span.set_attribute("notifications.returned", len(notifications))
            return NotificationPage(
                notifications=notifications,
                next_cursor=next_cursor,
                has_more=has_more,
                unread_count=unread_count,
            )

    async def _fetch_thread_previews(self, thread_ids: set[str]) -> dict[str, ThreadPreview]:
        if not thread_ids:
            return {}
        docs = await self._store.list_documents(
            Collections.THREADS,
            [Query.equal("id", sorted(thread_ids)), Query.limit(len(thread_ids))],
        )
        length = self._settings.notification_preview_length
        return {
            doc["id"]: ThreadPreview(
                id=doc["id"],
                author_id=doc["author_id"],
                content=truncate(doc.get("content") or "", length),
                like_count=doc.get("like_count") or 0,
                reply_count=doc.get("reply_count") or 0,
                created_at=doc["created_at"],
            )
            for doc in docs
        }

    async def get_unread_count(self, user_id: str) -> int:
        """Badge count; a storage failure reads as zero."""
        try:
            return await self._store.count_documents(
                Collections.NOTIFICATIONS,
                [Query.equal("recipient_id", user_id), Query.equal("read", False)],
            )
        except StorageError as exc:
            logger.warning("Unread count unavailable for %s: %s", user_id, exc)
            DEGRADED_READS_TOTAL.labels(operation="unread_count").inc()
            return 0

    # ── update / delete ────────────────────────────────────────────────────

    async def _get_owned(self, notification_id: str, user_id: str) -> dict:
        doc = await self._store.get_document(Collections.NOTIFICATIONS, notification_id)
        if doc["recipient_id"] != user_id:
            logger.warning(
                "User %s attempted to modify notification %s owned by %s",
                user_id, notification_id, doc["recipient_id"],
            )
            raise Unauthorized("Not authorized to modify this notification")
        return doc

    async def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        with tracer.start_as_current_span("mark_notification_read"):
            doc = await self._get_owned(notification_id, user_id)
            if not doc["read"]:
                doc = await self._store.update_document(
                    Collections.NOTIFICATIONS, notification_id, {"read": True}
                )
            return Notification.model_validate(doc)

    async def mark_all_as_read(self, user_id: str) -> MarkAllResult:
        """
        Mark up to one batch of unread notifications as read.

        Each update is independent: one failure is logged and skipped, and
        the result reports how many actually flipped.
        """
        with tracer.start_as_current_span("mark_all_notifications_read") as span:
            unread = await self._store.list_documents(
                Collections.NOTIFICATIONS,
                [
                    Query.equal("recipient_id", user_id),
                    Query.equal("read", False),
                    Query.order_desc("created_at"),
                    Query.limit(self._settings.notification_mark_all_batch),
                ],
            )
            count = 0
            for doc in unread:
                try:
                    await self._store.update_document(
                        Collections.NOTIFICATIONS, doc["id"], {"read": True}
                    )
                    count += 1
                except (StorageError, NotFound) as exc:
                    logger.warning("Failed to mark notification %s as read: %s", doc["id"], exc)

            span.set_attribute("notifications.marked", count)
            logger.info("Marked %d notifications as read for %s", count, user_id)
            return MarkAllResult(success=True, count=count)

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        with tracer.start_as_current_span("delete_notification"):
            await self._get_owned(notification_id, user_id)
            await self._store.delete_document(Collections.NOTIFICATIONS, notification_id)
            logger.info("Notification %s deleted by %s", notification_id, user_id)
