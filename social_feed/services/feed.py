"""
Feed service: reverse-chronological thread streams.

  public          all top-level threads
  following       top-level threads by authors the user follows
  author          one author's top-level threads (profile page)
  author_replies  one author's replies across threads (profile page)
  replies         replies under a thread, oldest first

Every feed is read-only and deterministic for unchanged data: ordering is
``created_at`` with an ``id`` tie-break, and cursors anchor on the last
returned thread rather than an offset. Like status is not attached here;
the API layer composes ``RelationshipService.get_user_like_status_batch``
onto the page via ``attach_like_status`` so anonymous traffic never needs a
principal.
"""
import logging
import time
from typing import Optional

from opentelemetry import trace

from social_feed.config import Settings
from social_feed.pagination import clamp_limit, page_queries, split_page
from social_feed.schemas import FeedPage, FollowingFeedPage, Thread, ThreadWithAuthor
from social_feed.services.profiles import fetch_profiles
from social_feed.store.base import Collections, DocumentStore
from social_feed.store.query import Query
from social_feed.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FeedService:
    def __init__(self, store: DocumentStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    def _limit(self, limit: Optional[int]) -> int:
        return clamp_limit(limit, self._settings.feed_page_size, self._settings.feed_max_page_size)

    async def _page(
        self,
        feed: str,
        filters: list[Query],
        cursor: Optional[str],
        limit: int,
        newest_first: bool = True,
    ) -> FeedPage:
        start = time.perf_counter()
        order = Query.order_desc("created_at") if newest_first else Query.order_asc("created_at")
        docs = await self._store.list_documents(
            Collections.THREADS, [*filters, order, *page_queries(limit, cursor)]
        )
        page, next_cursor, has_more = split_page(docs, limit)

        authors = await fetch_profiles(self._store, (doc["author_id"] for doc in page))
        threads = []
        for doc in page:
            author = authors.get(doc["author_id"])
            if author is None:
                logger.warning("Author %s not found for thread %s, skipping", doc["author_id"], doc["id"])
                continue
            threads.append(ThreadWithAuthor(**Thread.model_validate(doc).model_dump(), author=author))

        FEED_LATENCY.labels(feed=feed).observe(time.perf_counter() - start)
        logger.debug("%s feed page: %d threads, has_more=%s", feed, len(threads), has_more)
        return FeedPage(threads=threads, next_cursor=next_cursor, has_more=has_more)

    async def get_public_feed(
        self, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FeedPage:
        with tracer.start_as_current_span("get_public_feed"):
            return await self._page(
                "public", [Query.is_null("parent_thread_id")], cursor, self._limit(limit)
            )

    async def get_following_feed(
        self, user_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FollowingFeedPage:
        """
        Top-level threads by followed authors.

        The followed-id set is resolved in full first (bounded by
        ``following_fanout_ceiling``); following nobody is an empty page.
        """
        with tracer.start_as_current_span("get_following_feed") as span:
            span.set_attribute("user.id", user_id)
            follows = await self._store.list_documents(
                Collections.FOLLOWS,
                [
                    Query.equal("follower_id", user_id),
                    Query.order_desc("created_at"),
                    Query.limit(self._settings.following_fanout_ceiling),
                ],
            )
            following_ids = [doc["following_id"] for doc in follows]
            span.set_attribute("feed.following_count", len(following_ids))
            if len(following_ids) >= self._settings.following_fanout_ceiling:
                logger.warning(
                    "User %s follows %d+ authors; following feed truncated to the most recent follows",
                    user_id, self._settings.following_fanout_ceiling,
                )

            if not following_ids:
                return FollowingFeedPage(threads=[], next_cursor=None, has_more=False, following_count=0)

            page = await self._page(
                "following",
                [Query.equal("author_id", following_ids), Query.is_null("parent_thread_id")],
                cursor,
                self._limit(limit),
            )
            return FollowingFeedPage(**page.model_dump(), following_count=len(following_ids))

    async def get_author_feed(
        self, author_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FeedPage:
        with tracer.start_as_current_span("get_author_feed"):
            return await self._page(
                "author",
                [Query.equal("author_id", author_id), Query.is_null("parent_thread_id")],
                cursor,
                self._limit(limit),
            )

    async def get_author_replies(
        self, author_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FeedPage:
        """Replies written by one author across all threads, newest first."""
        with tracer.start_as_current_span("get_author_replies") as span:
            span.set_attribute("user.id", author_id)
            return await self._page(
                "author_replies",
                [Query.equal("author_id", author_id), Query.is_not_null("parent_thread_id")],
                cursor,
                self._limit(limit),
            )

    async def get_replies(
        self, thread_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FeedPage:
        with tracer.start_as_current_span("get_replies"):
            return await self._page(
                "replies",
                [Query.equal("parent_thread_id", thread_id)],
                cursor,
                self._limit(limit),
                newest_first=False,
            )


async def attach_like_status(page: FeedPage, viewer_id: Optional[str], relationships) -> FeedPage:
    """Fill ``is_liked`` on every thread of ``page`` with one batched lookup."""
    if not viewer_id or not page.threads:
        return page
    status = await relationships.get_user_like_status_batch(
        viewer_id, [thread.id for thread in page.threads]
    )
    for thread in page.threads:
        thread.is_liked = status.get(thread.id, False)
    return page
