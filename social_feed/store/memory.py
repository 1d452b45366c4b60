"""
In-process document store.

Used for local runs (STORE_BACKEND=memory) and as the base of the test
doubles. Enforces the same uniqueness keys as the SQL schema so the
duplicate-key paths of the services behave identically on both backends.
All operations complete without awaiting, so each one is atomic with
respect to other coroutines on the same event loop.
"""
import copy
import functools
import uuid
from typing import Any, Optional

from social_feed.errors import DuplicateDocument, InvalidCursor, NotFound, StorageError
from social_feed.store.base import UNIQUE_KEYS, DocumentStore
from social_feed.store.query import Query, QueryPlan


def _compare_values(a: Any, b: Any) -> int:
    # NULLs sort lowest, matching SQL ascending order on most backends
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def _compare(a: dict, b: dict, keys: list[tuple[str, bool]]) -> int:
    for attribute, descending in keys:
        result = _compare_values(a.get(attribute), b.get(attribute))
        if result:
            return -result if descending else result
    return 0


def _matches(doc: dict, query: Query) -> bool:
    value = doc.get(query.attribute)
    method = query.method
    if method == "equal":
        return value in query.values
    if method == "not_equal":
        return value != query.value
    if method == "is_null":
        return value is None
    if method == "is_not_null":
        return value is not None
    if method in ("starts_with", "contains"):
        if not isinstance(value, str):
            return False
        needle = str(query.value).lower()
        if method == "starts_with":
            return value.lower().startswith(needle)
        return needle in value.lower()
    if value is None:
        return False
    if method == "less_than":
        return value < query.value
    if method == "less_than_equal":
        return value <= query.value
    if method == "greater_than":
        return value > query.value
    if method == "greater_than_equal":
        return value >= query.value
    raise StorageError(f"Unsupported filter: {method}")


class InMemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, doc: dict, exclude_id: Optional[str] = None) -> None:
        for key in UNIQUE_KEYS.get(collection, []):
            wanted = tuple(doc.get(attr) for attr in key)
            for other in self._collection(collection).values():
                if other["id"] == exclude_id:
                    continue
                if tuple(other.get(attr) for attr in key) == wanted:
                    raise DuplicateDocument(
                        f"Duplicate {collection} document for {', '.join(key)}",
                        context={"collection": collection, "key": dict(zip(key, wanted))},
                    )

    # ── writes ─────────────────────────────────────────────────────────────

    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        *,
        document_id: Optional[str] = None,
        permissions: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        doc = copy.deepcopy(data)
        doc["id"] = document_id or str(uuid.uuid4())
        doc["permissions"] = list(permissions or [])
        if doc["id"] in self._collection(collection):
            raise DuplicateDocument(f"Document {doc['id']} already exists in {collection}")
        self._check_unique(collection, doc)
        self._collection(collection)[doc["id"]] = doc
        return copy.deepcopy(doc)

    async def get_document(self, collection: str, document_id: str) -> dict[str, Any]:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            raise NotFound(f"Document {document_id} not found in {collection}")
        return copy.deepcopy(doc)

    async def update_document(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        current = self._collection(collection).get(document_id)
        if current is None:
            raise NotFound(f"Document {document_id} not found in {collection}")
        updated = {**current, **copy.deepcopy(data), "id": document_id}
        self._check_unique(collection, updated, exclude_id=document_id)
        self._collection(collection)[document_id] = updated
        return copy.deepcopy(updated)

    async def increment_field(
        self,
        collection: str,
        document_id: str,
        attribute: str,
        delta: int,
        *,
        minimum: Optional[int] = 0,
    ) -> dict[str, Any]:
        current = self._collection(collection).get(document_id)
        if current is None:
            raise NotFound(f"Document {document_id} not found in {collection}")
        value = (current.get(attribute) or 0) + delta
        if minimum is not None:
            value = max(value, minimum)
        current[attribute] = value
        return copy.deepcopy(current)

    async def delete_document(self, collection: str, document_id: str) -> None:
        if self._collection(collection).pop(document_id, None) is None:
            raise NotFound(f"Document {document_id} not found in {collection}")

    # ── reads ──────────────────────────────────────────────────────────────

    def _select(self, collection: str, plan: QueryPlan) -> list[dict[str, Any]]:
        return [
            doc
            for doc in self._collection(collection).values()
            if all(_matches(doc, f) for f in plan.filters)
        ]

    async def list_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> list[dict[str, Any]]:
        plan = QueryPlan.from_queries(queries)
        keys = plan.sort_keys()
        docs = self._select(collection, plan)
        docs.sort(key=functools.cmp_to_key(lambda a, b: _compare(a, b, keys)))

        if plan.cursor is not None:
            anchor = self._collection(collection).get(plan.cursor)
            if anchor is None:
                raise InvalidCursor(f"Cursor {plan.cursor} does not reference a document")
            docs = [doc for doc in docs if _compare(doc, anchor, keys) > 0]

        if plan.limit is not None:
            docs = docs[: plan.limit]
        return [copy.deepcopy(doc) for doc in docs]

    async def count_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> int:
        return len(self._select(collection, QueryPlan.from_queries(queries)))
