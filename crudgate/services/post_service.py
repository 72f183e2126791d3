"""In-memory posts service backing the CRUD routes.

Thread-safe: a single lock guards the store, which is small and only held
for dictionary operations.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from crudgate.core.errors import NotFoundAppError
from crudgate.utils.collections import filter_items, generate_slug, paginate

logger = logging.getLogger(__name__)

FILTERABLE_FIELDS = ("author_id", "slug")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Post:
    id: str
    title: str
    slug: str
    content: str
    author_id: str
    created_at: datetime
    updated_at: datetime


class PostService:
    """Create, list, read, update and delete posts."""

    def __init__(self, *, log: logging.Logger | None = None) -> None:
        self._posts: dict[str, Post] = {}
        self._lock = threading.RLock()
        self._log = log or logger

    def create(self, *, title: str, content: str, author_id: str) -> Post:
        now = _utcnow()
        post = Post(
            id=uuid.uuid4().hex[:12],
            title=title,
            slug=generate_slug(title),
            content=content,
            author_id=author_id,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._posts[post.id] = post
        self._log.info("post.created", extra={"post_id": post.id, "author_id": author_id})
        return post

    def get(self, post_id: str) -> Post:
        """Return a post by id.

        Raises:
            NotFoundAppError: If no post has this id.
        """
        with self._lock:
            post = self._posts.get(post_id)
        if post is None:
            raise NotFoundAppError(
                code="post_not_found",
                message="Post not found",
                details={"resource": "post", "resource_id": post_id},
            )
        return post

    def list(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        filters: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """List posts oldest first, filtered and paginated.

        Returns:
            ``{"data": [post dicts], "pagination": {...}}``
        """
        with self._lock:
            rows = [asdict(post) for post in self._posts.values()]

        criteria = {key: value for key, value in (filters or {}).items() if key in FILTERABLE_FIELDS}
        return paginate(filter_items(rows, criteria), page=page, limit=limit)

    def update(self, post_id: str, *, title: str | None = None, content: str | None = None) -> Post:
        with self._lock:
            post = self.get(post_id)
            changes: dict[str, Any] = {"updated_at": _utcnow()}
            if title is not None:
                changes["title"] = title
                changes["slug"] = generate_slug(title)
            if content is not None:
                changes["content"] = content
            updated = replace(post, **changes)
            self._posts[post_id] = updated
        self._log.info("post.updated", extra={"post_id": post_id, "fields": sorted(changes)})
        return updated

    def delete(self, post_id: str) -> None:
        with self._lock:
            self.get(post_id)
            del self._posts[post_id]
        self._log.info("post.deleted", extra={"post_id": post_id})
