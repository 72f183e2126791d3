"""Pydantic schemas for the posts resource."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class PostResponse(BaseModel):
    """A stored post."""

    id: str = Field(..., description="Opaque post identifier.")
    title: str = Field(..., description="Post title.")
    slug: str = Field(..., description="URL slug derived from the title.")
    content: str = Field(..., description="Post body.")
    author_id: str = Field(..., description="Principal id of the author.")
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    """Page metadata for list responses."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)


class PostPage(BaseModel):
    """One page of posts."""

    data: List[PostResponse] = Field(default_factory=list)
    pagination: Pagination
