"""
Relationship service: follow and like edges.

An edge is a document whose existence *is* the relationship; there is no
boolean flag anywhere else. Toggles are read-then-write without a
transaction, so two concurrent toggles can race. The store's uniqueness
constraint on the edge key is the backstop: a ``DuplicateDocument`` on
create, or a ``NotFound`` on delete, means another request already applied
the same change, and the toggle reports that outcome instead of failing.

Read-path helpers (counts, like-status batches, existence checks) never
raise for storage problems; they log, count the degradation and return the
safe default. Write-path helpers propagate ``StorageError``.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from opentelemetry import trace

from social_feed.errors import DuplicateDocument, InvalidOperation, NotFound, StorageError, ValidationError
from social_feed.schemas import FollowCounts, FollowStatus, FollowToggle, LikeToggle
from social_feed.services.activity import ActivityNotifier
from social_feed.services.profiles import utcnow
from social_feed.store.base import Collections, DocumentStore
from social_feed.store.query import Query, public_read_owner_write
from social_feed.telemetry import DEGRADED_READS_TOTAL, EDGE_TOGGLES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RelationshipService:
    def __init__(
        self,
        store: DocumentStore,
        notifier: Optional[ActivityNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock

    # ── follows ────────────────────────────────────────────────────────────

    async def _find_follow(self, follower_id: str, following_id: str) -> Optional[dict]:
        docs = await self._store.list_documents(
            Collections.FOLLOWS,
            [
                Query.equal("follower_id", follower_id),
                Query.equal("following_id", following_id),
                Query.limit(1),
            ],
        )
        return docs[0] if docs else None

    async def is_following(self, follower_id: Optional[str], following_id: str) -> bool:
        if not follower_id:
            return False
        try:
            return await self._find_follow(follower_id, following_id) is not None
        except StorageError as exc:
            logger.warning("Follow check failed (%s -> %s): %s", follower_id, following_id, exc)
            DEGRADED_READS_TOTAL.labels(operation="is_following").inc()
            return False

    async def toggle_follow(self, follower_id: str, following_id: str) -> FollowToggle:
        """Follow ``following_id`` if not already following, otherwise unfollow."""
        if not follower_id or not following_id:
            raise ValidationError("Both follower and target are required")
        if follower_id == following_id:
            raise InvalidOperation("Cannot follow yourself")

        with tracer.start_as_current_span("toggle_follow") as span:
            span.set_attribute("follow.follower_id", follower_id)
            span.set_attribute("follow.following_id", following_id)

            existing = await self._find_follow(follower_id, following_id)
            if existing is not None:
                try:
                    await self._store.delete_document(Collections.FOLLOWS, existing["id"])
                    EDGE_TOGGLES_TOTAL.labels(edge="follow", action="deleted").inc()
                except NotFound:
                    EDGE_TOGGLES_TOTAL.labels(edge="follow", action="already_applied").inc()
                logger.info("%s unfollowed %s", follower_id, following_id)
                return FollowToggle(following=False)

            target = await self._store.list_documents(
                Collections.PROFILES, [Query.equal("user_id", following_id), Query.limit(1)]
            )
            if not target:
                raise NotFound(f"User {following_id} not found")

            try:
                await self._store.create_document(
                    Collections.FOLLOWS,
                    {
                        "follower_id": follower_id,
                        "following_id": following_id,
                        "created_at": self._clock(),
                    },
                    permissions=public_read_owner_write(follower_id),
                )
            except DuplicateDocument:
                logger.info("Follow %s -> %s already exists", follower_id, following_id)
                EDGE_TOGGLES_TOTAL.labels(edge="follow", action="already_applied").inc()
                return FollowToggle(following=True)

            EDGE_TOGGLES_TOTAL.labels(edge="follow", action="created").inc()
            logger.info("%s followed %s", follower_id, following_id)
            if self._notifier is not None:
                self._notifier.follow(following_id, follower_id)
            return FollowToggle(following=True)

    async def _count_follows(self, attribute: str, user_id: str) -> int:
        try:
            return await self._store.count_documents(
                Collections.FOLLOWS, [Query.equal(attribute, user_id)]
            )
        except StorageError as exc:
            logger.warning("Follow count (%s=%s) unavailable: %s", attribute, user_id, exc)
            DEGRADED_READS_TOTAL.labels(operation="follow_count").inc()
            return 0

    async def get_follow_counts(self, user_id: str) -> FollowCounts:
        # Each side degrades to 0 on its own
        followers, following = await asyncio.gather(
            self._count_follows("following_id", user_id),
            self._count_follows("follower_id", user_id),
        )
        return FollowCounts(followers=followers, following=following)

    async def get_follow_status(self, viewer_id: Optional[str], target_id: str) -> FollowStatus:
        following, counts = await asyncio.gather(
            self.is_following(viewer_id, target_id),
            self.get_follow_counts(target_id),
        )
        return FollowStatus(
            target_user_id=target_id,
            following=following,
            followers_count=counts.followers,
            following_count=counts.following,
        )

    async def list_following_ids(self, user_id: str, limit: int = 1000) -> list[str]:
        docs = await self._store.list_documents(
            Collections.FOLLOWS,
            [Query.equal("follower_id", user_id), Query.order_desc("created_at"), Query.limit(limit)],
        )
        return [doc["following_id"] for doc in docs]

    async def list_follower_ids(self, user_id: str, limit: int = 1000) -> list[str]:
        docs = await self._store.list_documents(
            Collections.FOLLOWS,
            [Query.equal("following_id", user_id), Query.order_desc("created_at"), Query.limit(limit)],
        )
        return [doc["follower_id"] for doc in docs]

    # ── likes ──────────────────────────────────────────────────────────────

    async def _find_like(self, user_id: str, thread_id: str) -> Optional[dict]:
        docs = await self._store.list_documents(
            Collections.LIKES,
            [Query.equal("user_id", user_id), Query.equal("thread_id", thread_id), Query.limit(1)],
        )
        return docs[0] if docs else None

    async def has_liked(self, user_id: Optional[str], thread_id: str) -> bool:
        if not user_id:
            return False
        try:
            return await self._find_like(user_id, thread_id) is not None
        except StorageError as exc:
            logger.warning("Like check failed (%s, %s): %s", user_id, thread_id, exc)
            DEGRADED_READS_TOTAL.labels(operation="has_liked").inc()
            return False

    async def _adjust_like_count(self, thread: dict, delta: int) -> int:
        """Apply ``delta`` to the thread's cached count, never below zero."""
        try:
            updated = await self._store.increment_field(
                Collections.THREADS, thread["id"], "like_count", delta, minimum=0
            )
            return updated["like_count"]
        except (StorageError, NotFound) as exc:
            # Edge already written; the counter drifts until the next change
            logger.error(
                "like_count update failed for thread %s (delta=%d): %s",
                thread["id"], delta, exc,
            )
            return max((thread.get("like_count") or 0) + delta, 0)

    async def toggle_like(self, user_id: str, thread_id: str) -> LikeToggle:
        """Like the thread if not liked yet, otherwise remove the like."""
        if not user_id or not thread_id:
            raise ValidationError("Both user and thread are required")

        with tracer.start_as_current_span("toggle_like") as span:
            span.set_attribute("like.user_id", user_id)
            span.set_attribute("like.thread_id", thread_id)

            thread = await self._store.get_document(Collections.THREADS, thread_id)
            existing = await self._find_like(user_id, thread_id)

            if existing is not None:
                try:
                    await self._store.delete_document(Collections.LIKES, existing["id"])
                except NotFound:
                    EDGE_TOGGLES_TOTAL.labels(edge="like", action="already_applied").inc()
                    return LikeToggle(liked=False, like_count=thread.get("like_count") or 0)
                EDGE_TOGGLES_TOTAL.labels(edge="like", action="deleted").inc()
                like_count = await self._adjust_like_count(thread, -1)
                logger.info("%s unliked thread %s", user_id, thread_id)
                return LikeToggle(liked=False, like_count=like_count)

            try:
                await self._store.create_document(
                    Collections.LIKES,
                    {"user_id": user_id, "thread_id": thread_id, "created_at": self._clock()},
                    permissions=public_read_owner_write(user_id),
                )
            except DuplicateDocument:
                logger.info("Like %s on %s already exists", user_id, thread_id)
                EDGE_TOGGLES_TOTAL.labels(edge="like", action="already_applied").inc()
                return LikeToggle(liked=True, like_count=thread.get("like_count") or 0)

            EDGE_TOGGLES_TOTAL.labels(edge="like", action="created").inc()
            like_count = await self._adjust_like_count(thread, 1)
            logger.info("%s liked thread %s", user_id, thread_id)
            if self._notifier is not None:
                self._notifier.like(thread["author_id"], user_id, thread_id)
            return LikeToggle(liked=True, like_count=like_count)

    async def get_user_like_status_batch(
        self, user_id: Optional[str], thread_ids: Iterable[str]
    ) -> dict[str, bool]:
        """
        Map every thread id to whether ``user_id`` has liked it.

        One ``thread_id IN (...)`` query for the whole id set, so rendering a
        feed page costs a single round trip regardless of its size. Anonymous
        viewers and storage failures yield all ``False``.
        """
        ids = list(dict.fromkeys(tid for tid in thread_ids if tid))
        status = {tid: False for tid in ids}
        if not user_id or not ids:
            return status

        try:
            likes = await self._store.list_documents(
                Collections.LIKES,
                [
                    Query.equal("user_id", user_id),
                    Query.equal("thread_id", ids),
                    Query.limit(len(ids)),
                ],
            )
        except StorageError as exc:
            logger.warning("Batch like status unavailable for %s: %s", user_id, exc)
            DEGRADED_READS_TOTAL.labels(operation="like_status_batch").inc()
            return status

        for like in likes:
            status[like["thread_id"]] = True
        return status
