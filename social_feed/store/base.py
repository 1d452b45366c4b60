"""
Document store abstraction.

The services treat the store as the sole persistence substrate and source
of truth. Two backends implement it: ``SqlDocumentStore`` (SQLAlchemy,
production) and ``InMemoryDocumentStore`` (local runs and tests).

Contract shared by every backend:
  • documents are plain dicts with an ``id`` key and a ``permissions`` list
  • list ordering always ends with an ``id`` tie-break, so pages are stable
    when two documents share a timestamp
  • ``cursor_after(id)`` resumes strictly after the anchor document in the
    query's ordering; an unknown anchor raises ``InvalidCursor``
  • uniqueness violations raise ``DuplicateDocument``; any other backend
    failure raises ``StorageError``
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

from social_feed.store.query import Query


class Collections:
    PROFILES = "profiles"
    THREADS = "threads"
    LIKES = "likes"
    FOLLOWS = "follows"
    NOTIFICATIONS = "notifications"


UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    Collections.PROFILES: [("user_id",), ("username",)],
    Collections.LIKES: [("user_id", "thread_id")],
    Collections.FOLLOWS: [("follower_id", "following_id")],
}


class DocumentStore(ABC):

    @abstractmethod
    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        *,
        document_id: Optional[str] = None,
        permissions: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def get_document(self, collection: str, document_id: str) -> dict[str, Any]:
        """Raises ``NotFound`` when the document does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def update_document(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def increment_field(
        self,
        collection: str,
        document_id: str,
        attribute: str,
        delta: int,
        *,
        minimum: Optional[int] = 0,
    ) -> dict[str, Any]:
        """Add ``delta`` to a numeric attribute in one write, clamped at ``minimum``."""
        raise NotImplementedError

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def count_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> int:
        """Count matches of the filter queries; ordering, cursor and limit are ignored."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
