"""FastAPI dependencies exposing pipeline state and services to routes."""

from __future__ import annotations

from fastapi import Request

from crudgate.core.auth import Principal
from crudgate.core.errors import UnauthenticatedError
from crudgate.services.post_service import PostService

ANONYMOUS_ID = "anonymous"


def get_principal(request: Request) -> Principal:
    """Return the principal the auth handler attached to this request.

    When auth is disabled the request runs as an anonymous principal.
    """
    principal = getattr(request.state, "principal", None)
    if principal is not None:
        return principal
    if request.app.state.settings.app.auth_required:
        raise UnauthenticatedError(code="not_authenticated", message="Not authenticated")
    return Principal(id=ANONYMOUS_ID, token="")


def get_post_service(request: Request) -> PostService:
    return request.app.state.post_service
