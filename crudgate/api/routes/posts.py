from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, status

from crudgate.api.dependencies import get_post_service, get_principal
from crudgate.core.auth import Principal
from crudgate.core.validation import FieldRule, validated_body
from crudgate.schemas.post import PostPage, PostResponse
from crudgate.services.post_service import Post, PostService

router = APIRouter(tags=["Posts"])

CREATE_POST_SCHEMA = {
    "title": FieldRule(required=True, type="string", min_length=3),
    "content": FieldRule(required=True, type="string", min_length=10),
}

UPDATE_POST_SCHEMA = {
    "title": FieldRule(type="string", min_length=3),
    "content": FieldRule(type="string", min_length=10),
}

ServiceDep = Annotated[PostService, Depends(get_post_service)]


def _to_response(post: Post) -> PostResponse:
    return PostResponse.model_validate(post, from_attributes=True)


@router.get("/posts", response_model=PostPage)
def list_posts(
    service: ServiceDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    author_id: str | None = None,
    slug: str | None = None,
) -> dict[str, Any]:
    """List posts, oldest first, with equality filters and pagination."""
    return service.list(page=page, limit=limit, filters={"author_id": author_id, "slug": slug})


@router.post("/posts", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    service: ServiceDep,
    principal: Annotated[Principal, Depends(get_principal)],
    payload: Annotated[dict[str, Any], Depends(validated_body(CREATE_POST_SCHEMA))],
) -> PostResponse:
    """Create a post authored by the authenticated principal.

    Raises:
        ValidationAppError: 400 with a field-indexed error map.
    """
    post = service.create(title=payload["title"], content=payload["content"], author_id=principal.id)
    return _to_response(post)


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(post_id: str, service: ServiceDep) -> PostResponse:
    return _to_response(service.get(post_id))


@router.put("/posts/{post_id}", response_model=PostResponse)
def update_post(
    post_id: str,
    service: ServiceDep,
    payload: Annotated[dict[str, Any], Depends(validated_body(UPDATE_POST_SCHEMA))],
) -> PostResponse:
    post = service.update(
        post_id,
        title=payload.get("title") or None,
        content=payload.get("content") or None,
    )
    return _to_response(post)


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(post_id: str, service: ServiceDep) -> Response:
    service.delete(post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
