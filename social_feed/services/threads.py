"""
Thread service: creating posts and replies.

Creating a reply bumps the parent's ``reply_count`` and notifies the
parent's author; any ``@username`` in the content notifies the mentioned
users. Counter bumps and notifications are best-effort: the thread document
is the only write that must succeed.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from opentelemetry import trace

from social_feed.config import Settings
from social_feed.errors import NotFound, StorageError, ValidationError
from social_feed.schemas import Thread, ThreadWithAuthor
from social_feed.services.activity import ActivityNotifier
from social_feed.services.profiles import fetch_profiles, utcnow
from social_feed.store.base import Collections, DocumentStore
from social_feed.store.query import Query, public_read_owner_write
from social_feed.text import extract_mentions, sanitize_content, sanitize_input

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ThreadService:
    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        notifier: Optional[ActivityNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._notifier = notifier
        self._clock = clock

    def _clean(self, content: str) -> str:
        if len(content) > self._settings.thread_max_length:
            raise ValidationError(
                f"Thread cannot exceed {self._settings.thread_max_length} characters"
            )
        return sanitize_content(content, self._settings.thread_max_length)

    async def create_thread(
        self, author_id: str, content: str = "", media_ids: Optional[list[str]] = None
    ) -> Thread:
        """A top-level thread needs text, media, or both."""
        if not author_id:
            raise ValidationError("author_id is required")
        content = self._clean(content or "")
        media_ids = [m.strip() for m in media_ids or [] if m and m.strip()]
        if not content and not media_ids:
            raise ValidationError("Thread must have either text content or media")

        with tracer.start_as_current_span("create_thread") as span:
            span.set_attribute("thread.author_id", author_id)
            now = self._clock()
            doc = await self._store.create_document(
                Collections.THREADS,
                {
                    "author_id": author_id,
                    "content": content,
                    "media_ids": media_ids,
                    "parent_thread_id": None,
                    "parent_reply_id": None,
                    "reply_to_username": None,
                    "reply_count": 0,
                    "like_count": 0,
                    "created_at": now,
                    "updated_at": now,
                },
                permissions=public_read_owner_write(author_id),
            )
            thread = Thread.model_validate(doc)
            logger.info("Thread created: %s by %s", thread.id, author_id)
            await self._notify_mentions(thread)
            return thread

    async def create_reply(
        self,
        author_id: str,
        parent_thread_id: str,
        content: str,
        parent_reply_id: Optional[str] = None,
        reply_to_username: Optional[str] = None,
    ) -> Thread:
        if not author_id:
            raise ValidationError("author_id is required")
        content = self._clean(content or "")
        if not content:
            raise ValidationError("Reply cannot be empty")

        with tracer.start_as_current_span("create_reply") as span:
            span.set_attribute("thread.author_id", author_id)
            span.set_attribute("thread.parent_id", parent_thread_id)

            try:
                parent = await self._store.get_document(Collections.THREADS, parent_thread_id)
            except NotFound:
                raise NotFound("Parent thread not found") from None

            now = self._clock()
            doc = await self._store.create_document(
                Collections.THREADS,
                {
                    "author_id": author_id,
                    "content": content,
                    "media_ids": [],
                    "parent_thread_id": parent_thread_id,
                    "parent_reply_id": sanitize_input(parent_reply_id, 36) if parent_reply_id else None,
                    "reply_to_username": (
                        sanitize_input(reply_to_username, self._settings.username_max_length)
                        if reply_to_username
                        else None
                    ),
                    "reply_count": 0,
                    "like_count": 0,
                    "created_at": now,
                    "updated_at": now,
                },
                permissions=public_read_owner_write(author_id),
            )
            reply = Thread.model_validate(doc)

            try:
                await self._store.increment_field(
                    Collections.THREADS, parent_thread_id, "reply_count", 1
                )
            except (StorageError, NotFound) as exc:
                logger.error(
                    "Failed to increment reply_count on %s (reply %s): %s",
                    parent_thread_id, reply.id, exc,
                )

            logger.info("Reply created: %s on %s by %s", reply.id, parent_thread_id, author_id)
            if self._notifier is not None:
                self._notifier.reply(parent["author_id"], author_id, parent_thread_id, content)
            await self._notify_mentions(reply, skip_user_id=parent["author_id"])
            return reply

    async def _notify_mentions(self, thread: Thread, skip_user_id: Optional[str] = None) -> None:
        """Resolve ``@username`` mentions with one lookup and notify each user."""
        if self._notifier is None:
            return
        usernames = extract_mentions(thread.content)
        if not usernames:
            return
        try:
            docs = await self._store.list_documents(
                Collections.PROFILES,
                [Query.equal("username", usernames), Query.limit(len(usernames))],
            )
        except StorageError as exc:
            logger.warning("Mention lookup failed for thread %s: %s", thread.id, exc)
            return
        for doc in docs:
            # The parent author already gets a reply notification
            if doc["user_id"] == skip_user_id:
                continue
            self._notifier.mention(doc["user_id"], thread.author_id, thread.id, thread.content)

    async def get_thread(self, thread_id: str) -> ThreadWithAuthor:
        doc = await self._store.get_document(Collections.THREADS, thread_id)
        authors = await fetch_profiles(self._store, [doc["author_id"]])
        author = authors.get(doc["author_id"])
        if author is None:
            raise NotFound("Thread author not found")
        return ThreadWithAuthor(**Thread.model_validate(doc).model_dump(), author=author)
