"""Helpers for listing in-memory resources."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping, Sequence

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def generate_slug(text: str | None) -> str:
    """Turn a title into a URL slug.

    Examples:
        >>> generate_slug("  Hello, World!  Again ")
        'hello-world-again'
    """
    if not text or not isinstance(text, str):
        return ""
    slug = _NON_WORD.sub("", text.lower().strip())
    slug = _WHITESPACE.sub("-", slug)
    return _DASHES.sub("-", slug)


def _loosely_equal(left: Any, right: Any) -> bool:
    # Query values arrive as strings; compare by string form as a fallback.
    return left == right or (left is not None and str(left) == str(right))


def filter_items(items: Iterable[Mapping[str, Any]], query: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Keep items matching every non-None query value."""
    criteria = {key: value for key, value in query.items() if value is not None}
    return [
        item
        for item in items
        if all(_loosely_equal(item.get(key), value) for key, value in criteria.items())
    ]


def paginate(data: Sequence[Any], page: int = 1, limit: int = 10) -> dict[str, Any]:
    """Slice ``data`` into one page and describe the pagination.

    Args:
        data: Full ordered result set.
        page: 1-based page number.
        limit: Items per page.

    Returns:
        ``{"data": [...], "pagination": {"page", "limit", "total", "pages"}}``

    Raises:
        ValueError: If page or limit is below 1.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if limit < 1:
        raise ValueError("limit must be >= 1")

    start = (page - 1) * limit
    return {
        "data": list(data[start : start + limit]),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": len(data),
            "pages": math.ceil(len(data) / limit),
        },
    }
