"""
Profile management and the shared batched profile lookup.

``fetch_profiles`` is the one place threads and notifications resolve
author / actor ids: a single ``user_id IN (...)`` query per page.
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from opentelemetry import trace

from social_feed.config import Settings
from social_feed.errors import NotFound, Unauthorized, ValidationError
from social_feed.pagination import clamp_limit
from social_feed.schemas import Profile, ProfileSummary, ProfileUpdate, UserSearchResult
from social_feed.store.base import Collections, DocumentStore
from social_feed.store.query import Query, public_read_owner_write
from social_feed.text import sanitize_input, sanitize_search_query

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_USERNAME = re.compile(r"^[a-z0-9_]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def fetch_profiles(
    store: DocumentStore, user_ids: Iterable[str]
) -> dict[str, ProfileSummary]:
    """Resolve a set of user ids to profile summaries with one query."""
    wanted = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not wanted:
        return {}
    docs = await store.list_documents(
        Collections.PROFILES,
        [Query.equal("user_id", wanted), Query.limit(len(wanted))],
    )
    return {doc["user_id"]: ProfileSummary.model_validate(doc) for doc in docs}


class ProfileService:
    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    def _normalise_username(self, username: str) -> str:
        username = username.strip().lower().lstrip("@")
        s = self._settings
        if not (s.username_min_length <= len(username) <= s.username_max_length):
            raise ValidationError(
                f"Username must be {s.username_min_length}-{s.username_max_length} characters"
            )
        if not _USERNAME.match(username):
            raise ValidationError("Username may only contain letters, numbers and underscores")
        return username

    async def create_profile(self, user_id: str, username: str, display_name: str) -> Profile:
        """
        Create the profile for an authenticated user.

        Both ``user_id`` and ``username`` are unique; a collision raises
        ``DuplicateDocument`` for the caller to render as 409.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        username = self._normalise_username(username)
        display_name = sanitize_input(display_name, self._settings.display_name_max_length)
        if not display_name:
            raise ValidationError("Display name cannot be empty")

        with tracer.start_as_current_span("create_profile") as span:
            span.set_attribute("user.id", user_id)
            now = self._clock()
            doc = await self._store.create_document(
                Collections.PROFILES,
                {
                    "user_id": user_id,
                    "username": username,
                    "display_name": display_name,
                    "bio": None,
                    "avatar_url": None,
                    "created_at": now,
                    "updated_at": now,
                },
                permissions=public_read_owner_write(user_id),
            )
            logger.info("Created profile %s (user=%s)", username, user_id)
            return Profile.model_validate(doc)

    async def get_by_user_id(self, user_id: str) -> Optional[Profile]:
        docs = await self._store.list_documents(
            Collections.PROFILES, [Query.equal("user_id", user_id), Query.limit(1)]
        )
        return Profile.model_validate(docs[0]) if docs else None

    async def get_by_username(self, username: str) -> Optional[Profile]:
        docs = await self._store.list_documents(
            Collections.PROFILES,
            [Query.equal("username", username.strip().lower()), Query.limit(1)],
        )
        return Profile.model_validate(docs[0]) if docs else None

    async def update_profile(
        self, user_id: str, principal_id: Optional[str], update: ProfileUpdate
    ) -> Profile:
        """Only the owner (``principal_id == user_id``) may edit a profile."""
        if principal_id != user_id:
            raise Unauthorized("Cannot edit another user's profile")

        profile = await self.get_by_user_id(user_id)
        if profile is None:
            raise NotFound("Profile not found")

        changes: dict = {}
        if update.display_name is not None:
            display_name = sanitize_input(
                update.display_name, self._settings.display_name_max_length
            )
            if not display_name:
                raise ValidationError("Display name cannot be empty")
            changes["display_name"] = display_name
        if update.bio is not None:
            changes["bio"] = sanitize_input(update.bio, self._settings.bio_max_length)
        if update.avatar_url is not None:
            changes["avatar_url"] = update.avatar_url.strip() or None
        changes["updated_at"] = self._clock()

        doc = await self._store.update_document(Collections.PROFILES, profile.id, changes)
        logger.info("Updated profile %s", user_id)
        return Profile.model_validate(doc)

    async def search(self, query: str, limit: Optional[int] = None) -> UserSearchResult:
        """
        Find profiles by username prefix or display-name substring.

        Both lookups run together; username matches are listed first, then
        display-name matches not already present, up to ``limit`` in total.
        """
        s = self._settings
        limit = clamp_limit(limit, s.search_page_size, s.search_max_page_size)
        term = sanitize_search_query(query or "", s.search_query_max_length)
        if not term:
            return UserSearchResult(users=[], query=term)

        with tracer.start_as_current_span("search_profiles") as span:
            span.set_attribute("search.query", term)
            by_username, by_display_name = await asyncio.gather(
                self._store.list_documents(
                    Collections.PROFILES,
                    [Query.starts_with("username", term), Query.order_desc("created_at"), Query.limit(limit)],
                ),
                self._store.list_documents(
                    Collections.PROFILES,
                    [Query.contains("display_name", term), Query.order_desc("created_at"), Query.limit(limit)],
                ),
            )

            seen: set[str] = set()
            users = []
            for doc in [*by_username, *by_display_name]:
                if doc["id"] in seen or len(users) >= limit:
                    continue
                seen.add(doc["id"])
                users.append(Profile.model_validate(doc))

            logger.info("User search %r: %d results", term, len(users))
            return UserSearchResult(users=users, query=term)
