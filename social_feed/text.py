"""Input sanitisation and text helpers for user-generated content."""
import re

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_MENTION = re.compile(r"(?<![\w@])@([A-Za-z0-9_]{3,30})\b")
_SEARCH_DISALLOWED = re.compile(r"[^a-z0-9_\s]")


def sanitize_input(value: str, max_length: int = 500) -> str:
    """Strip markup vectors and bound the length of a single-line field."""
    value = value.strip()
    value = _ANGLE_BRACKETS.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _INLINE_HANDLER.sub("", value)
    return value[:max_length]


def sanitize_content(content: str, max_length: int) -> str:
    """Like ``sanitize_input`` but keeps line breaks, collapsing runs of blank lines."""
    content = sanitize_input(content, max_length)
    content = content.replace("\\n", "\n")
    content = _EXCESS_NEWLINES.sub("\n\n", content)
    return content.strip()


def truncate(value: str, length: int) -> str:
    return value if len(value) <= length else value[:length]


def extract_mentions(content: str) -> list[str]:
    """Distinct lowercase usernames mentioned as ``@name``, in order of appearance."""
    seen: dict[str, None] = {}
    for match in _MENTION.finditer(content):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


def sanitize_search_query(query: str, max_length: int = 50) -> str:
    """Lowercase, keep only username-safe characters and whitespace, bound the length."""
    query = _SEARCH_DISALLOWED.sub("", query.strip().lower())
    return query[:max_length].strip()
