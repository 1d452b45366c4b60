"""
Service wiring and FastAPI dependencies.

One ``Services`` container is built per process by the app factory and
hung on ``app.state``; every service in it is stateless apart from the
injected store handle, so requests share it freely.

The authenticated principal arrives in the ``X-User-Id`` header, set by the
auth gateway in front of this service after it validated the session.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from social_feed.config import Settings
from social_feed.errors import AuthenticationRequired
from social_feed.services.activity import ActivityNotifier, BackgroundDispatcher
from social_feed.services.feed import FeedService
from social_feed.services.notifications import NotificationService
from social_feed.services.profiles import ProfileService
from social_feed.services.relationships import RelationshipService
from social_feed.services.threads import ThreadService
from social_feed.store.base import DocumentStore


@dataclass
class Services:
    store: DocumentStore
    dispatcher: BackgroundDispatcher
    profiles: ProfileService
    relationships: RelationshipService
    feed: FeedService
    notifications: NotificationService
    threads: ThreadService

    @classmethod
    def build(cls, store: DocumentStore, settings: Settings) -> "Services":
        dispatcher = BackgroundDispatcher()
        notifications = NotificationService(store, settings)
        notifier = ActivityNotifier(notifications, dispatcher)
        return cls(
            store=store,
            dispatcher=dispatcher,
            profiles=ProfileService(store, settings),
            relationships=RelationshipService(store, notifier),
            feed=FeedService(store, settings),
            notifications=notifications,
            threads=ThreadService(store, settings, notifier),
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Principal id, or None for anonymous requests."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


async def require_user_id(user_id: Optional[str] = Depends(current_user_id)) -> str:
    if user_id is None:
        raise AuthenticationRequired("Authentication required")
    return user_id
