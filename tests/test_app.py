"""
HTTP tests for the board API, using FastAPI's TestClient over an in-memory store.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import MAX_REQUEST_SIZE_MB, TOMBSTONE_TEXT
from exceptions import StorageUnavailable
from forum import ThreadService
from threads import MemoryThreadStore


@pytest.fixture
def client(clock, security_manager):
    service = ThreadService(MemoryThreadStore(clock=clock), security_manager)
    with TestClient(create_app(service)) as test_client:
        yield test_client


class DownStore(MemoryThreadStore):
    """Store whose medium is always down."""

    async def _fail(self, *args, **kwargs):
        raise StorageUnavailable("database is locked")

    create_thread = list_recent_by_board = get_thread = count_threads = _fail


@pytest.fixture
def down_client(security_manager):
    with TestClient(create_app(ThreadService(DownStore(), security_manager))) as test_client:
        yield test_client


def parse_time(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def post_thread(client, board="b", text="hello", password="p1"):
    response = client.post(f"/api/threads/{board}", json={"text": text, "delete_password": password})
    assert response.status_code == 201
    return response.json()["thread_id"]


def post_reply(client, thread_id, board="b", text="hi", password="p2"):
    response = client.post(f"/api/replies/{board}",
                           json={"thread_id": thread_id, "text": text, "delete_password": password})
    assert response.status_code == 201
    return response.json()["reply_id"]


class TestThreads:
    def test_create_thread_returns_location(self, client):
        response = client.post("/api/threads/b", json={"text": "hello", "delete_password": "p1"})

        assert response.status_code == 201
        body = response.json()
        assert body["board"] == "b"
        assert response.headers["location"] == f"/b/b/{body['thread_id']}"

    def test_missing_field_is_bad_request(self, client):
        response = client.post("/api/threads/b", json={"text": "hello"})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_blank_text_is_bad_request(self, client):
        response = client.post("/api/threads/b", json={"text": "  ", "delete_password": "p1"})

        assert response.status_code == 400
        assert response.json()["details"]

    def test_list_threads(self, client):
        thread_id = post_thread(client)
        for i in range(5):
            post_reply(client, thread_id, text=f"reply {i}")

        response = client.get("/api/threads/b")

        assert response.status_code == 200
        threads = response.json()
        assert len(threads) == 1
        assert set(threads[0]) == {"_id", "text", "created_on", "bumped_on", "replies"}
        assert [r["text"] for r in threads[0]["replies"]] == ["reply 2", "reply 3", "reply 4"]
        assert set(threads[0]["replies"][0]) == {"_id", "text", "created_on"}

    def test_dates_are_iso_8601(self, client, clock):
        created_at = datetime.fromtimestamp(clock.now, tz=timezone.utc)
        thread_id = post_thread(client)
        post_reply(client, thread_id)

        thread = client.get("/api/threads/b").json()[0]

        assert isinstance(thread["created_on"], str)
        assert parse_time(thread["created_on"]) == created_at
        assert parse_time(thread["bumped_on"]) > created_at
        assert parse_time(thread["replies"][0]["created_on"]) == parse_time(thread["bumped_on"])

    def test_list_empty_board(self, client):
        response = client.get("/api/threads/empty")

        assert response.status_code == 200
        assert response.json() == []

    def test_delete_thread(self, client):
        thread_id = post_thread(client)

        wrong = client.request("DELETE", "/api/threads/b",
                               json={"thread_id": thread_id, "delete_password": "nope"})
        assert wrong.status_code == 200
        assert wrong.text == "incorrect password"

        right = client.request("DELETE", "/api/threads/b",
                               json={"thread_id": thread_id, "delete_password": "p1"})
        assert right.text == "success"

        gone = client.get("/api/replies/b", params={"thread_id": thread_id})
        assert gone.status_code == 404

    def test_delete_missing_thread(self, client):
        response = client.request("DELETE", "/api/threads/b",
                                  json={"thread_id": "missing", "delete_password": "p1"})
        assert response.status_code == 404

    def test_report_thread(self, client):
        thread_id = post_thread(client)

        response = client.put("/api/threads/b", json={"thread_id": thread_id})
        assert response.status_code == 200
        assert response.text == "reported"

        assert client.put("/api/threads/b", json={"thread_id": "missing"}).status_code == 404


class TestReplies:
    def test_create_reply_location(self, client):
        thread_id = post_thread(client)

        response = client.post("/api/replies/b",
                               json={"thread_id": thread_id, "text": "hi", "delete_password": "p2"})

        assert response.status_code == 201
        reply_id = response.json()["reply_id"]
        assert response.headers["location"] == f"/b/b/{thread_id}?new_reply_id={reply_id}"

    def test_reply_to_missing_thread(self, client):
        response = client.post("/api/replies/b",
                               json={"thread_id": "missing", "text": "hi", "delete_password": "p2"})

        assert response.status_code == 404
        assert response.json()["message"] == "Thread not found"

    def test_view_full_thread(self, client):
        thread_id = post_thread(client)
        for i in range(5):
            post_reply(client, thread_id, text=f"reply {i}")

        response = client.get("/api/replies/b", params={"thread_id": thread_id})

        assert response.status_code == 200
        body = response.json()
        assert body["_id"] == thread_id
        assert len(body["replies"]) == 5
        assert "delete_password" not in response.text
        assert "secret" not in response.text

    def test_delete_reply(self, client):
        thread_id = post_thread(client)
        reply_id = post_reply(client, thread_id)

        wrong = client.request("DELETE", "/api/replies/b",
                               json={"thread_id": thread_id, "reply_id": reply_id, "delete_password": "p1"})
        assert wrong.text == "incorrect password"

        right = client.request("DELETE", "/api/replies/b",
                               json={"thread_id": thread_id, "reply_id": reply_id, "delete_password": "p2"})
        assert right.text == "success"

        body = client.get("/api/replies/b", params={"thread_id": thread_id}).json()
        assert body["replies"][0]["text"] == TOMBSTONE_TEXT

    def test_report_reply(self, client):
        thread_id = post_thread(client)
        reply_id = post_reply(client, thread_id)

        response = client.put("/api/replies/b", json={"thread_id": thread_id, "reply_id": reply_id})
        assert response.text == "reported"

        missing = client.put("/api/replies/b", json={"thread_id": thread_id, "reply_id": "missing"})
        assert missing.status_code == 404
        assert missing.json()["message"] == "Reply not found"

    def test_reply_moderation_on_missing_thread(self, client):
        reported = client.put("/api/replies/b", json={"thread_id": "missing", "reply_id": "missing"})
        assert reported.status_code == 404
        assert reported.json()["message"] == "Thread not found"

        deleted = client.request("DELETE", "/api/replies/b",
                                 json={"thread_id": "missing", "reply_id": "missing", "delete_password": "p2"})
        assert deleted.status_code == 404
        assert deleted.json()["message"] == "Thread not found"


class TestShell:
    def test_security_headers(self, client):
        response = client.get("/api/threads/b")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert response.headers["x-dns-prefetch-control"] == "off"
        assert response.headers["referrer-policy"] == "same-origin"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["storage"]["type"] == "MemoryThreadStore"

    def test_oversized_body_is_rejected(self, client):
        response = client.post("/api/threads/b", content=b"x" * (MAX_REQUEST_SIZE_MB * 1024 * 1024 + 1),
                               headers={"content-type": "application/json"})

        assert response.status_code == 413
        assert response.json()["error"] == "RequestTooLarge"

    def test_malformed_json_is_bad_request(self, client):
        response = client.post("/api/threads/b", content=b"{not json",
                               headers={"content-type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"


class TestForms:
    def test_form_thread_redirects_to_thread(self, client):
        response = client.post("/api/threads/b", data={"text": "hello", "delete_password": "p1"},
                               follow_redirects=False)

        assert response.status_code == 303
        location = response.headers["location"]
        assert location.startswith("/b/b/")
        thread_id = location.rsplit("/", 1)[1]
        assert client.get("/api/replies/b", params={"thread_id": thread_id}).json()["text"] == "hello"

    def test_form_reply_redirects_to_reply(self, client):
        thread_id = post_thread(client)

        response = client.post("/api/replies/b",
                               data={"thread_id": thread_id, "text": "hi", "delete_password": "p2"},
                               follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"].startswith(f"/b/b/{thread_id}?new_reply_id=")

    def test_form_missing_field_is_bad_request(self, client):
        response = client.post("/api/threads/b", data={"text": "hello"}, follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_form_moderation(self, client):
        thread_id = post_thread(client)
        reply_id = post_reply(client, thread_id)

        reported = client.put("/api/replies/b", data={"thread_id": thread_id, "reply_id": reply_id})
        assert reported.text == "reported"

        deleted = client.request("DELETE", "/api/threads/b",
                                 data={"thread_id": thread_id, "delete_password": "p1"})
        assert deleted.text == "success"


class TestStorageDown:
    def test_listing_is_unavailable(self, down_client):
        response = down_client.get("/api/threads/b")

        assert response.status_code == 503
        assert response.json()["message"] == "Storage unavailable"

    def test_create_is_unavailable(self, down_client):
        response = down_client.post("/api/threads/b", json={"text": "hello", "delete_password": "p1"})

        assert response.status_code == 503

    def test_health_is_degraded(self, down_client):
        response = down_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["storage"]["available"] is False
