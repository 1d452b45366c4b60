"""
SQLAlchemy-backed document store (TiDB in production, SQLite locally).

Collections map onto the ORM models in ``social_feed.models``; documents
are the row's column values as a dict. Uniqueness is enforced by the
schema's unique constraints and surfaces as ``DuplicateDocument``.

Timestamps are stored as naive UTC (both MySQL DATETIME and SQLite drop the
offset) and handed back to callers as aware UTC datetimes.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from social_feed.database import build_session_factory
from social_feed.errors import DuplicateDocument, InvalidCursor, NotFound, StorageError
from social_feed.models import MODELS_BY_COLLECTION
from social_feed.store.base import DocumentStore
from social_feed.store.query import Query, QueryPlan

logger = logging.getLogger(__name__)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlDocumentStore(DocumentStore):
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)

    # ── helpers ────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as exc:
            raise DuplicateDocument(f"Uniqueness constraint violated: {exc.orig}") from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Storage backend failure: %s", exc)
            raise StorageError(f"Storage backend failure: {exc}") from exc

    @staticmethod
    def _model(collection: str):
        try:
            return MODELS_BY_COLLECTION[collection]
        except KeyError:
            raise StorageError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _column(model, attribute: str):
        if attribute not in model.__table__.columns:
            raise StorageError(f"Unknown attribute {attribute} on {model.__tablename__}")
        return getattr(model, attribute)

    @staticmethod
    def _to_document(row) -> dict[str, Any]:
        return {c.key: _from_db(getattr(row, c.key)) for c in row.__table__.columns}

    def _filter(self, model, query: Query):
        column = self._column(model, query.attribute)
        method = query.method
        if method == "equal":
            values = [_to_db(v) for v in query.values]
            if len(values) == 1:
                return column == values[0]
            return column.in_(values)
        if method == "is_null":
            return column.is_(None)
        if method == "is_not_null":
            return column.is_not(None)
        if method == "starts_with":
            return column.istartswith(query.value, autoescape=True)
        if method == "contains":
            return column.icontains(query.value, autoescape=True)

        value = _to_db(query.value)
        if method == "not_equal":
            return column != value
        if method == "less_than":
            return column < value
        if method == "less_than_equal":
            return column <= value
        if method == "greater_than":
            return column > value
        if method == "greater_than_equal":
            return column >= value
        raise StorageError(f"Unsupported filter: {method}")

    def _after(self, model, keys: list[tuple[str, bool]], anchor):
        """Rows strictly after ``anchor`` in lexicographic order over ``keys``."""
        clauses = []
        for i, (attribute, descending) in enumerate(keys):
            column = self._column(model, attribute)
            value = getattr(anchor, attribute)
            ties = [
                self._column(model, prev) == getattr(anchor, prev)
                for prev, _ in keys[:i]
            ]
            beyond = column < value if descending else column > value
            clauses.append(and_(*ties, beyond))
        return or_(*clauses)

    # ── writes ─────────────────────────────────────────────────────────────

    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        *,
        document_id: Optional[str] = None,
        permissions: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        model = self._model(collection)
        values = {k: _to_db(v) for k, v in data.items()}
        for attribute in values:
            self._column(model, attribute)
        values["id"] = document_id or str(uuid.uuid4())
        values["permissions"] = list(permissions or [])

        async with self._session() as session:
            row = model(**values)
            session.add(row)
            await session.commit()
            return self._to_document(row)

    async def get_document(self, collection: str, document_id: str) -> dict[str, Any]:
        model = self._model(collection)
        async with self._session() as session:
            row = await session.get(model, document_id)
            if row is None:
                raise NotFound(f"Document {document_id} not found in {collection}")
            return self._to_document(row)

    async def update_document(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        model = self._model(collection)
        async with self._session() as session:
            row = await session.get(model, document_id)
            if row is None:
                raise NotFound(f"Document {document_id} not found in {collection}")
            for attribute, value in data.items():
                if attribute == "id":
                    continue
                self._column(model, attribute)
                setattr(row, attribute, _to_db(value))
            await session.commit()
            return self._to_document(row)

    async def increment_field(
        self,
        collection: str,
        document_id: str,
        attribute: str,
        delta: int,
        *,
        minimum: Optional[int] = 0,
    ) -> dict[str, Any]:
        model = self._model(collection)
        column = self._column(model, attribute)
        new_value = column + delta
        if minimum is not None:
            new_value = case((column + delta < minimum, minimum), else_=column + delta)

        async with self._session() as session:
            result = await session.execute(
                update(model)
                .where(model.id == document_id)
                .values({attribute: new_value})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound(f"Document {document_id} not found in {collection}")
            await session.commit()
            row = await session.get(model, document_id)
            return self._to_document(row)

    async def delete_document(self, collection: str, document_id: str) -> None:
        model = self._model(collection)
        async with self._session() as session:
            row = await session.get(model, document_id)
            if row is None:
                raise NotFound(f"Document {document_id} not found in {collection}")
            await session.delete(row)
            await session.commit()

    # ── reads ──────────────────────────────────────────────────────────────

    async def list_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> list[dict[str, Any]]:
        model = self._model(collection)
        plan = QueryPlan.from_queries(queries)
        keys = plan.sort_keys()
        stmt = select(model).where(*[self._filter(model, q) for q in plan.filters])

        async with self._session() as session:
            if plan.cursor is not None:
                anchor = await session.get(model, plan.cursor)
                if anchor is None:
                    raise InvalidCursor(f"Cursor {plan.cursor} does not reference a document")
                stmt = stmt.where(self._after(model, keys, anchor))

            stmt = stmt.order_by(
                *[
                    self._column(model, attribute).desc()
                    if descending
                    else self._column(model, attribute).asc()
                    for attribute, descending in keys
                ]
            )
            if plan.limit is not None:
                stmt = stmt.limit(plan.limit)

            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_document(row) for row in rows]

    async def count_documents(
        self, collection: str, queries: Optional[list[Query]] = None
    ) -> int:
        model = self._model(collection)
        plan = QueryPlan.from_queries(queries)
        stmt = (
            select(func.count())
            .select_from(model)
            .where(*[self._filter(model, q) for q in plan.filters])
        )
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def close(self) -> None:
        await self._engine.dispose()
