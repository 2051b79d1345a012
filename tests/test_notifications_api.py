"""Notifications REST API tests."""

import pytest

from conftest import ALICE, BOB, bearer


@pytest.mark.asyncio
async def test_list_envelope_and_order(client, alice_token, seed):
    first = seed(ALICE, "first")
    second = seed(ALICE, "second", read=True)
    third = seed(ALICE, "third")
    seed(BOB, "bob only")

    resp = await client.get("/api/v1/notifications", headers=bearer(alice_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert [n["id"] for n in data["notifications"]] == [third, second, first]
    assert data["unread_count"] == 2
    assert data["pagination"] == {
        "current_page": 1,
        "total_pages": 1,
        "total_count": 3,
        "per_page": 50,
    }
    n = data["notifications"][0]
    assert set(n) == {
        "id", "title", "message", "notification_type", "read", "read_at",
        "action_url", "metadata", "created_at", "notifiable_type", "notifiable_id",
    }


@pytest.mark.asyncio
async def test_list_unread_filter_and_per_page(client, alice_token, seed):
    for i in range(3):
        seed(ALICE, f"u{i}")
    seed(ALICE, "r", read=True)

    resp = await client.get(
        "/api/v1/notifications",
        params={"unread": "true", "per_page": 2},
        headers=bearer(alice_token),
    )
    data = resp.json()["data"]
    assert len(data["notifications"]) == 2
    assert all(not n["read"] for n in data["notifications"])
    assert data["pagination"]["total_count"] == 3
    assert data["pagination"]["total_pages"] == 2


@pytest.mark.asyncio
async def test_per_page_capped(client, alice_token):
    resp = await client.get(
        "/api/v1/notifications", params={"per_page": 1000}, headers=bearer(alice_token)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unread_endpoint(client, alice_token, seed):
    seed(ALICE, "a")
    seed(ALICE, "b", read=True)

    resp = await client.get("/api/v1/notifications/unread", headers=bearer(alice_token))
    data = resp.json()["data"]
    assert data["unread_count"] == 1
    assert [n["title"] for n in data["notifications"]] == ["a"]


@pytest.mark.asyncio
async def test_get_one(client, alice_token, seed):
    nid = seed(ALICE, "mine", action_url="/bookings/1")
    resp = await client.get(f"/api/v1/notifications/{nid}", headers=bearer(alice_token))
    assert resp.status_code == 200
    n = resp.json()["data"]["notification"]
    assert n["title"] == "mine"
    assert n["action_url"] == "/bookings/1"


@pytest.mark.asyncio
async def test_get_unknown_is_404(client, alice_token):
    resp = await client.get("/api/v1/notifications/9999", headers=bearer(alice_token))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_other_users_notification_is_403(client, alice_token, seed):
    nid = seed(BOB, "bob's")
    resp = await client.get(f"/api/v1/notifications/{nid}", headers=bearer(alice_token))
    assert resp.status_code == 403
    resp = await client.patch(
        f"/api/v1/notifications/{nid}/read", headers=bearer(alice_token)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_mark_read_idempotent(client, alice_token, seed):
    nid = seed(ALICE, "a")
    seed(ALICE, "b")

    for _ in range(2):
        resp = await client.patch(
            f"/api/v1/notifications/{nid}/read", headers=bearer(alice_token)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Notification marked as read"
        assert body["data"]["notification"]["read"] is True

    resp = await client.get("/api/v1/notifications", headers=bearer(alice_token))
    assert resp.json()["data"]["unread_count"] == 1


@pytest.mark.asyncio
async def test_mark_all_read(client, alice_token, bob_token, seed):
    seed(ALICE, "a")
    seed(ALICE, "b")
    seed(BOB, "c")

    resp = await client.patch(
        "/api/v1/notifications/mark_all_read", headers=bearer(alice_token)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "All notifications marked as read"
    assert body["data"] == {"updated": 2, "unread_count": 0}

    resp = await client.get("/api/v1/notifications", headers=bearer(bob_token))
    assert resp.json()["data"]["unread_count"] == 1


@pytest.mark.asyncio
async def test_mark_read_pushes_to_open_stream(client, app, alice_token, seed):
    import json

    class Socket:
        def __init__(self):
            self.frames = []

        async def send_text(self, data):
            self.frames.append(json.loads(data))

    sock = Socket()
    app.state.registry.add(ALICE, sock)
    nid = seed(ALICE, "a")

    await client.patch(f"/api/v1/notifications/{nid}/read", headers=bearer(alice_token))

    types = [f["message"]["type"] for f in sock.frames]
    assert types == ["notification_updated", "notification_count"]
    assert sock.frames[1]["message"]["unread_count"] == 0
