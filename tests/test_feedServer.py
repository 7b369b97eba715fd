from __future__ import annotations

import base64
import json

import pytest
import redis
from fastapi.testclient import TestClient

from server.feedServer import FeedServer


def _segment(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def bearer(user_id: str) -> dict:
    token = f"{_segment({'alg': 'none'})}.{_segment({'sub': user_id})}.signature"
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def server(assembler, redis_client) -> FeedServer:
    return FeedServer(assembler=assembler, redis_client=redis_client)


@pytest.fixture()
def client(server) -> TestClient:
    return TestClient(server.app)


@pytest.fixture()
def stocked(catalog):
    for i in range(5):
        catalog.add_content(f"c{i}", minutes=i)
    return catalog


def test_decode_user_id(server):
    assert server.decode_user_id(bearer("user-42")["Authorization"]) == "user-42"
    assert server.decode_user_id("") is None
    assert server.decode_user_id("Basic abc") is None
    assert server.decode_user_id("Bearer not-a-jwt") is None
    assert server.decode_user_id("Bearer a.!!!.c") is None


def test_missing_token_is_unauthorized(client):
    assert client.get("/api/v1/feed").status_code == 401
    assert client.get("/api/v1/feed/following").status_code == 401
    assert client.get("/api/v1/feed/recommended").status_code == 401
    assert client.delete("/api/v1/feed/recommendations").status_code == 401


def test_main_feed_response_shape(stocked, client):
    response = client.get("/api/v1/feed", params={"limit": 2}, headers=bearer("u"))

    assert response.status_code == 200
    body = response.json()
    assert [item["contentId"] for item in body["content"]] == ["c4", "c3"]
    assert body["nextCursor"] == "c3"
    assert body["hasNext"] is True
    assert body["content"][0]["creator"]["nickname"] == "nick-creator-1"


def test_main_feed_cursor_round_trip(stocked, client):
    first = client.get("/api/v1/feed", params={"limit": 3}, headers=bearer("u")).json()
    second = client.get(
        "/api/v1/feed", params={"limit": 3, "cursor": first["nextCursor"]}, headers=bearer("u")
    ).json()

    assert [item["contentId"] for item in second["content"]] == ["c1", "c0"]
    assert second["hasNext"] is False


@pytest.mark.parametrize("limit", [0, 101])
def test_limit_out_of_range_is_unprocessable(client, limit):
    response = client.get("/api/v1/feed", params={"limit": limit}, headers=bearer("u"))

    assert response.status_code == 422


def test_upstream_failure_is_service_unavailable(stocked, history, client):
    history.failing.add("recently_viewed")

    response = client.get("/api/v1/feed", headers=bearer("u"))

    assert response.status_code == 503
    assert response.json()["source"] == "fake"


def test_following_feed(catalog, client):
    catalog.add_content("fav-1", creator_id="fav", minutes=1)
    catalog.add_content("other-1", creator_id="other", minutes=2)
    catalog.follow("u", "fav")

    body = client.get("/api/v1/feed/following", headers=bearer("u")).json()

    assert [item["contentId"] for item in body["content"]] == ["fav-1"]


def test_recommended_feed(stocked, client):
    response = client.get("/api/v1/feed/recommended", params={"limit": 2}, headers=bearer("u"))

    assert response.status_code == 200
    body = response.json()
    assert len(body["content"]) <= 2
    assert {item["contentId"] for item in body["content"]} <= {f"c{i}" for i in range(5)}


def test_recommended_feed_bad_cursor(client):
    response = client.get("/api/v1/feed/recommended", params={"cursor": "nope"}, headers=bearer("u"))

    assert response.status_code == 400


def test_invalidate_recommendations(stocked, client, batch_cache):
    client.get("/api/v1/feed/recommended", headers=bearer("u"))
    assert batch_cache.get_batch("u", 0) is not None

    response = client.delete("/api/v1/feed/recommendations", headers=bearer("u"))

    assert response.status_code == 200
    assert response.json() == {"cleared": True}
    assert batch_cache.get_batch("u", 0) is None


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_without_redis(assembler):
    client = TestClient(FeedServer(assembler=assembler).app)

    assert client.get("/health").json()["status"] == "healthy"


def test_health_reports_unreachable_redis(client, fake_redis, monkeypatch):
    def unreachable(*args, **kwargs):
        raise redis.ConnectionError("connection refused")

    monkeypatch.setattr(fake_redis, "ping", unreachable)

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["redis"] == "unreachable"


class RecordingPrefetcher:
    def __init__(self):
        self.shutdown_calls = []

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)


def test_app_shutdown_stops_prefetcher(assembler, redis_client):
    prefetcher = RecordingPrefetcher()
    server = FeedServer(assembler=assembler, redis_client=redis_client, prefetcher=prefetcher)

    with TestClient(server.app) as client:
        assert client.get("/").status_code == 200
        assert prefetcher.shutdown_calls == []

    assert prefetcher.shutdown_calls == [False]
