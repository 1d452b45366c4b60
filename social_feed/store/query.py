"""
Query builder and permission grants for the document store.

Queries are small immutable values; a store backend turns a list of them
into a ``QueryPlan`` (filters, orderings, cursor anchor, limit) and executes
it against its own storage.

    [
        Query.equal("author_id", followed_ids),   # list → containment
        Query.is_null("parent_thread_id"),
        Query.order_desc("created_at"),
        Query.cursor_after(cursor),
        Query.limit(21),
    ]
"""
from dataclasses import dataclass, field
from typing import Any, Optional

FILTER_METHODS = frozenset(
    {
        "equal",
        "not_equal",
        "less_than",
        "less_than_equal",
        "greater_than",
        "greater_than_equal",
        "is_null",
        "is_not_null",
        "starts_with",
        "contains",
    }
)


@dataclass(frozen=True)
class Query:
    method: str
    attribute: Optional[str] = None
    values: tuple = ()

    # ── filters ────────────────────────────────────────────────────────────

    @classmethod
    def equal(cls, attribute: str, value: Any) -> "Query":
        """Match a single value, or any of a list/set of values."""
        if isinstance(value, (list, tuple, set, frozenset)):
            return cls("equal", attribute, tuple(value))
        return cls("equal", attribute, (value,))

    @classmethod
    def not_equal(cls, attribute: str, value: Any) -> "Query":
        return cls("not_equal", attribute, (value,))

    @classmethod
    def less_than(cls, attribute: str, value: Any) -> "Query":
        return cls("less_than", attribute, (value,))

    @classmethod
    def less_than_equal(cls, attribute: str, value: Any) -> "Query":
        return cls("less_than_equal", attribute, (value,))

    @classmethod
    def greater_than(cls, attribute: str, value: Any) -> "Query":
        return cls("greater_than", attribute, (value,))

    @classmethod
    def greater_than_equal(cls, attribute: str, value: Any) -> "Query":
        return cls("greater_than_equal", attribute, (value,))

    @classmethod
    def is_null(cls, attribute: str) -> "Query":
        return cls("is_null", attribute)

    @classmethod
    def is_not_null(cls, attribute: str) -> "Query":
        return cls("is_not_null", attribute)

    @classmethod
    def starts_with(cls, attribute: str, prefix: str) -> "Query":
        """Case-insensitive prefix match."""
        return cls("starts_with", attribute, (prefix,))

    @classmethod
    def contains(cls, attribute: str, fragment: str) -> "Query":
        """Case-insensitive substring match."""
        return cls("contains", attribute, (fragment,))

    # ── modifiers ──────────────────────────────────────────────────────────

    @classmethod
    def order_asc(cls, attribute: str) -> "Query":
        return cls("order_asc", attribute)

    @classmethod
    def order_desc(cls, attribute: str) -> "Query":
        return cls("order_desc", attribute)

    @classmethod
    def cursor_after(cls, document_id: str) -> "Query":
        return cls("cursor_after", None, (document_id,))

    @classmethod
    def limit(cls, count: int) -> "Query":
        return cls("limit", None, (count,))

    @property
    def value(self) -> Any:
        return self.values[0] if self.values else None


@dataclass
class QueryPlan:
    filters: list[Query] = field(default_factory=list)
    # (attribute, descending)
    orderings: list[tuple[str, bool]] = field(default_factory=list)
    cursor: Optional[str] = None
    limit: Optional[int] = None

    @classmethod
    def from_queries(cls, queries: Optional[list[Query]]) -> "QueryPlan":
        plan = cls()
        for query in queries or []:
            if query.method in FILTER_METHODS:
                plan.filters.append(query)
            elif query.method == "order_asc":
                plan.orderings.append((query.attribute, False))
            elif query.method == "order_desc":
                plan.orderings.append((query.attribute, True))
            elif query.method == "cursor_after":
                plan.cursor = query.value
            elif query.method == "limit":
                plan.limit = max(int(query.value), 0)
            else:
                raise ValueError(f"Unsupported query method: {query.method}")
        return plan

    def sort_keys(self) -> list[tuple[str, bool]]:
        """Orderings with the id tie-break appended, in the last ordering's direction."""
        keys = [k for k in self.orderings if k[0] != "id"]
        descending = keys[-1][1] if keys else False
        return keys + [("id", descending)]


class Role:
    @staticmethod
    def any() -> str:
        return "any"

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"


class Permission:
    @staticmethod
    def read(role: str) -> str:
        return f'read("{role}")'

    @staticmethod
    def update(role: str) -> str:
        return f'update("{role}")'

    @staticmethod
    def delete(role: str) -> str:
        return f'delete("{role}")'


def owner_only(user_id: str) -> list[str]:
    """Read, update and delete granted to a single user."""
    role = Role.user(user_id)
    return [Permission.read(role), Permission.update(role), Permission.delete(role)]


def public_read_owner_write(user_id: str) -> list[str]:
    """World-readable, writable only by its owner."""
    role = Role.user(user_id)
    return [Permission.read(Role.any()), Permission.update(role), Permission.delete(role)]
