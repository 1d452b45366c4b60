"""
Fire-and-forget delivery of activity notifications.

Mutations (follow, like, reply, mention) hand their notification to an
``ActivityNotifier`` and return immediately. The notification is created in
a background task; if it fails the failure is logged and counted, and the
mutation that triggered it is unaffected.
"""
import asyncio
import logging
from typing import Awaitable, Optional

from social_feed.services.notifications import NotificationService
from social_feed.telemetry import NOTIFICATION_DISPATCH_FAILURES_TOTAL

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Runs side-effect coroutines as tasks and keeps them alive until done."""

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, coro: Awaitable, *, description: str) -> Optional[asyncio.Task]:
        try:
            task = asyncio.get_running_loop().create_task(self._run(coro, description))
        except RuntimeError:
            # No running loop: nothing can execute the side effect
            coro.close()
            logger.error("Dropped background task (no event loop): %s", description)
            NOTIFICATION_DISPATCH_FAILURES_TOTAL.inc()
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, coro: Awaitable, description: str) -> None:
        try:
            await coro
        except Exception:
            logger.error("Background task failed: %s", description, exc_info=True)
            NOTIFICATION_DISPATCH_FAILURES_TOTAL.inc()

    async def drain(self) -> None:
        """Wait for every task dispatched so far (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


class ActivityNotifier:
    def __init__(
        self, notifications: NotificationService, dispatcher: BackgroundDispatcher
    ) -> None:
        self._notifications = notifications
        self._dispatcher = dispatcher

    def like(self, thread_author_id: str, liker_id: str, thread_id: str) -> None:
        self._dispatcher.dispatch(
            self._notifications.notify_like(thread_author_id, liker_id, thread_id),
            description=f"like notification ({liker_id} -> thread {thread_id})",
        )

    def follow(self, followed_id: str, follower_id: str) -> None:
        self._dispatcher.dispatch(
            self._notifications.notify_follow(followed_id, follower_id),
            description=f"follow notification ({follower_id} -> {followed_id})",
        )

    def reply(
        self, thread_author_id: str, replier_id: str, thread_id: str, content: str
    ) -> None:
        self._dispatcher.dispatch(
            self._notifications.notify_reply(thread_author_id, replier_id, thread_id, content),
            description=f"reply notification ({replier_id} -> thread {thread_id})",
        )

    def mention(
        self, mentioned_id: str, mentioner_id: str, thread_id: str, content: str
    ) -> None:
        self._dispatcher.dispatch(
            self._notifications.notify_mention(mentioned_id, mentioner_id, thread_id, content),
            description=f"mention notification ({mentioner_id} -> {mentioned_id})",
        )
