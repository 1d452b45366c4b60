"""
Cursor pagination shared by feeds and notification lists.

Pages are fetched with ``limit + 1`` rows: the extra row only signals that
another page exists and is trimmed before returning. The cursor handed back
is the id of the last retained row; the store resumes strictly after that
row's sort key, so inserts made after the cursor was issued never shift
the next page.
"""
from typing import Any, Optional

from social_feed.store.query import Query


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        return default
    return min(max(int(limit), 1), maximum)


def page_queries(limit: int, cursor: Optional[str]) -> list[Query]:
    queries = [Query.limit(limit + 1)]
    if cursor:
        queries.append(Query.cursor_after(cursor))
    return queries


def split_page(
    docs: list[dict[str, Any]], limit: int
) -> tuple[list[dict[str, Any]], Optional[str], bool]:
    """Return ``(page, next_cursor, has_more)``."""
    has_more = len(docs) > limit
    page = docs[:limit]
    next_cursor = page[-1]["id"] if has_more and page else None
    return page, next_cursor, has_more
