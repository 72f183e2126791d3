"""End-to-end tests of the FastAPI app behind the middleware pipeline."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from crudgate.core.app_factory import create_app
from crudgate.core.config import AppSettings, Settings

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def make_client(fake_clock):
    def _make(**overrides) -> TestClient:
        app_settings = AppSettings(**{"api_keys": None, "auth_required": True, **overrides})
        return TestClient(create_app(Settings(app=app_settings), clock=fake_clock))

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def test_health_is_public(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_missing_authorization_is_rejected(client: TestClient) -> None:
    response = client.get("/api/posts")

    assert response.status_code == 401
    assert response.json() == {"error": "No authorization header"}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_empty_bearer_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/posts", headers={"Authorization": "Bearer "})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_configured_api_keys_are_enforced(make_client) -> None:
    client = make_client(api_keys="alpha,beta")

    assert client.get("/api/posts", headers={"Authorization": "Bearer beta"}).status_code == 200

    rejected = client.get("/api/posts", headers={"Authorization": "Bearer gamma"})
    assert rejected.status_code == 401
    assert rejected.json() == {"error": "Authentication failed"}


def test_preflight_short_circuits_before_auth(client: TestClient) -> None:
    response = client.options("/api/posts")

    assert response.status_code == 200
    assert response.content == b""
    assert "POST" in response.headers["Access-Control-Allow-Methods"]
    assert "Authorization" in response.headers["Access-Control-Allow-Headers"]


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/api/posts", headers={**AUTH, "X-Request-ID": "req-e2e-1"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-e2e-1"
    assert "X-Request-Duration-ms" in response.headers


def test_rate_limit_rejects_over_capacity_then_recovers(make_client, fake_clock) -> None:
    client = make_client(rate_limit_capacity=2, rate_limit_window_ms=1000)

    assert client.get("/api/posts", headers=AUTH).status_code == 200
    fake_clock.advance(100)
    assert client.get("/api/posts", headers=AUTH).status_code == 200
    fake_clock.advance(100)

    blocked = client.get("/api/posts", headers=AUTH)

    assert blocked.status_code == 429
    assert blocked.json() == {"error": "Too many requests"}
    assert blocked.headers["Retry-After"] == "1"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert blocked.headers["Access-Control-Allow-Origin"] == "*"

    # The first admitted request leaves the window at +1001ms.
    fake_clock.advance(801)
    assert client.get("/api/posts", headers=AUTH).status_code == 200


def test_public_paths_are_not_rate_limited(make_client) -> None:
    client = make_client(rate_limit_capacity=1)

    for _ in range(3):
        assert client.get("/health").status_code == 200


def test_rate_limit_can_be_disabled(make_client) -> None:
    client = make_client(rate_limit_capacity=0, rate_limit_enabled=False)

    assert client.get("/api/posts", headers=AUTH).status_code == 200


def test_unauthorized_requests_do_not_consume_rate_limit(make_client) -> None:
    client = make_client(rate_limit_capacity=1)

    for _ in range(3):
        assert client.get("/api/posts").status_code == 401

    assert client.get("/api/posts", headers=AUTH).status_code == 200


def test_posts_crud_flow(client: TestClient) -> None:
    created = client.post(
        "/api/posts",
        json={"title": "Hello World", "content": "A first post body."},
        headers=AUTH,
    )
    assert created.status_code == 201
    post = created.json()
    assert post["slug"] == "hello-world"
    assert post["author_id"].startswith("user-")

    fetched = client.get(f"/api/posts/{post['id']}", headers=AUTH)
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Hello World"

    updated = client.put(
        f"/api/posts/{post['id']}",
        json={"title": "Hello Again"},
        headers=AUTH,
    )
    assert updated.status_code == 200
    assert updated.json()["slug"] == "hello-again"
    assert updated.json()["content"] == "A first post body."

    listing = client.get("/api/posts", params={"author_id": post["author_id"]}, headers=AUTH)
    assert listing.status_code == 200
    body = listing.json()
    assert [item["id"] for item in body["data"]] == [post["id"]]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    deleted = client.delete(f"/api/posts/{post['id']}", headers=AUTH)
    assert deleted.status_code == 204

    missing = client.get(f"/api/posts/{post['id']}", headers=AUTH)
    assert missing.status_code == 404
    assert missing.json() == {"error": {"message": "Post not found", "status": 404}}


def test_create_post_reports_field_errors(client: TestClient) -> None:
    response = client.post("/api/posts", json={"title": "Hi"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {
        "errors": {
            "title": "title must be at least 3 characters",
            "content": "content is required",
        }
    }


def test_create_post_rejects_non_object_body(client: TestClient) -> None:
    response = client.post("/api/posts", json=["not", "an", "object"], headers=AUTH)

    assert response.status_code == 400


def test_list_rejects_out_of_range_limit(client: TestClient) -> None:
    response = client.get("/api/posts", params={"limit": 0}, headers=AUTH)

    assert response.status_code == 400
    assert "limit" in response.json()["errors"]


def test_anonymous_author_when_auth_disabled(make_client) -> None:
    client = make_client(auth_required=False)

    response = client.post(
        "/api/posts",
        json={"title": "Open post", "content": "Nobody signed this one."},
    )

    assert response.status_code == 201
    assert response.json()["author_id"] == "anonymous"
